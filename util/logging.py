"""
Structured logging for validation, batch update, and rollback operations.
"""

import logging
from typing import Any, Dict, List

# Matched as substrings of lower-cased keys
SENSITIVE_FIELDS = ['password', 'secret', 'token', 'api_key', 'credential']


class StructuredLogger:
    """Structured logger for pipeline operations."""

    def __init__(self, name: str = "foundry_directory"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None, level: int = logging.INFO):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        self.logger.log(level, message)

    def log_fetch(self, url: str, status: str, details: Dict[str, Any] = None):
        """Log a content fetch attempt."""
        log_details = {"url": url}
        if details:
            log_details.update(details)

        level = logging.INFO if status == "success" else logging.WARNING
        self.log_operation("fetch", status, log_details, level)

    def log_analysis(self, slug: str, status: str, details: Dict[str, Any] = None):
        """Log a discrepancy analysis call."""
        log_details = {"slug": slug}
        if details:
            log_details.update(details)

        level = logging.INFO if status == "success" else logging.WARNING
        self.log_operation("analysis", status, log_details, level)

    def log_validation_record(self, slug: str, index: int, total: int, status: str, details: Dict[str, Any] = None):
        """Log the outcome of validating one record."""
        log_details = {"slug": slug, "position": f"{index}/{total}"}
        if details:
            log_details.update(details)

        self.log_operation("validation.record", status, log_details)

    def log_validation_run(self, status: str, details: Dict[str, Any] = None):
        """Log validation run start/finish."""
        self.log_operation("validation.run", status, details)

    def log_backup_created(self, backup_id: str, record_count: int, details: Dict[str, Any] = None):
        """Log backup snapshot creation."""
        log_details = {"backup_id": backup_id, "record_count": record_count}
        if details:
            log_details.update(details)

        self.log_operation("backup.created", "success", log_details)

    def log_record_write(self, operation: str, slug: str, fields: List[str], status: str = "success", error: str = None):
        """Log a single record write during batch update or rollback."""
        log_details = {"slug": slug, "fields": fields}
        if error:
            log_details["error"] = error[:200]

        level = logging.INFO if status == "success" else logging.ERROR
        self.log_operation(f"{operation}.write", status, log_details, level)

    def log_batch_update(self, backup_id: str, applied: int, failed: int, dry_run: bool = False):
        """Log a batch update summary."""
        log_details = {
            "backup_id": backup_id,
            "applied": applied,
            "failed": failed,
            "dry_run": dry_run
        }
        status = "success" if failed == 0 else "partial"
        self.log_operation("batch_update", status, log_details)

    def log_rollback(self, backup_id: str, restored: int, failed: int, dry_run: bool = False):
        """Log a rollback summary."""
        log_details = {
            "backup_id": backup_id,
            "restored": restored,
            "failed": failed,
            "dry_run": dry_run
        }
        status = "success" if failed == 0 else "partial"
        self.log_operation("rollback", status, log_details)

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)


# Global logger instance
logger = StructuredLogger()


def audit_event(event_type: str, identifiers: Dict[str, Any], payload: Dict[str, Any] = None, sensitive_fields: List[str] = None):
    """General audit event logging with redaction of secrets."""
    if sensitive_fields is None:
        sensitive_fields = SENSITIVE_FIELDS

    log_details = identifiers.copy() if identifiers else {}

    if payload:
        log_details["payload"] = sanitize_payload(payload, sensitive_fields=sensitive_fields)

    logger.log_operation(event_type.replace(".", "_"), "audit", log_details)


def _is_sensitive(key: Any, sensitive_fields: List[str]) -> bool:
    name = str(key).lower()
    return any(marker in name for marker in sensitive_fields)


def sanitize_payload(payload: Any, sensitive_fields: List[str] = None, max_chars: int = 100) -> Any:
    """Redact keys that look like credentials and shorten long strings, recursively."""
    if sensitive_fields is None:
        sensitive_fields = SENSITIVE_FIELDS

    if isinstance(payload, dict):
        return {
            k: "[REDACTED]" if _is_sensitive(k, sensitive_fields) else sanitize_payload(v, sensitive_fields, max_chars)
            for k, v in payload.items()
        }
    if isinstance(payload, list):
        return [sanitize_payload(item, sensitive_fields, max_chars) for item in payload]
    if isinstance(payload, str) and len(payload) > max_chars:
        return payload[:max_chars] + "..."
    return payload
