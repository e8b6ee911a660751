"""
Typed records for the foundry store, backups, and validation reports.
"""

import hashlib
import json
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .errors import InvalidFieldError

# Field registry for foundry records: name -> type (text|integer|text_array|boolean)
FOUNDRY_FIELDS: Dict[str, str] = {
    "name": "text",
    "url": "text",
    "location_city": "text",
    "location_country": "text",
    "location_country_code": "text",
    "founder": "text",
    "founded": "integer",
    "notable_typefaces": "text_array",
    "style": "text_array",
    "tier": "integer",
    "notes": "text",
    "social_instagram": "text",
    "social_twitter": "text",
    "screenshot_url": "text",
    "logo_url": "text",
    "is_popular": "boolean",
}

# Never written by updates or rollbacks
IMMUTABLE_FIELDS = ("id", "slug", "created_at")

# Excluded when a snapshot row is written back
ROLLBACK_EXCLUDED_FIELDS = ("id", "created_at")

CONFIDENCE_LEVELS = ("high", "medium", "low")

BACKUP_ACTIVE = "active"
BACKUP_ROLLED_BACK = "rolled_back"
BACKUP_EXPIRED = "expired"
BACKUP_STATUSES = (BACKUP_ACTIVE, BACKUP_ROLLED_BACK, BACKUP_EXPIRED)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    return utc_now().replace(microsecond=0).isoformat().replace("+00:00", "Z")


def validate_field_value(name: str, value: Any) -> Any:
    """Check a field name and value against FOUNDRY_FIELDS and return the value to store.

    Raises InvalidFieldError for unknown fields, immutable fields, or mistyped values.
    """
    if name in IMMUTABLE_FIELDS:
        raise InvalidFieldError(f"Field '{name}' is immutable")

    field_type = FOUNDRY_FIELDS.get(name)
    if field_type is None:
        raise InvalidFieldError(f"Unknown field '{name}'")

    if value is None:
        if name == "name":
            raise InvalidFieldError("Field 'name' cannot be null")
        if field_type == "text_array":
            return []
        return None

    if field_type == "text":
        if not isinstance(value, str):
            raise InvalidFieldError(f"Field '{name}' expects a string, got {type(value).__name__}")
        return value

    if field_type == "integer":
        if isinstance(value, bool):
            raise InvalidFieldError(f"Field '{name}' expects an integer, got bool")
        if isinstance(value, int):
            return value
        # LLM output frequently quotes years ("1985")
        if isinstance(value, str) and value.strip().lstrip("-").isdigit():
            return int(value.strip())
        raise InvalidFieldError(f"Field '{name}' expects an integer, got {value!r}")

    if field_type == "text_array":
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise InvalidFieldError(f"Field '{name}' expects a list of strings")
        return list(value)

    if field_type == "boolean":
        if not isinstance(value, bool):
            raise InvalidFieldError(f"Field '{name}' expects a boolean")
        return value

    raise InvalidFieldError(f"Unsupported field type '{field_type}' for '{name}'")


@dataclass
class FoundryRecord:
    """A directory entry keyed by an immutable slug."""
    id: str
    slug: str
    fields: Dict[str, Any]
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def name(self) -> str:
        return self.fields.get("name", self.slug)

    @property
    def url(self) -> Optional[str]:
        return self.fields.get("url")

    def get(self, name: str, default: Any = None) -> Any:
        if name in ("id", "slug", "created_at", "updated_at"):
            return getattr(self, name)
        return self.fields.get(name, default)

    def to_dict(self) -> Dict[str, Any]:
        """Flat row representation (the form stored in backup snapshots)."""
        data = {"id": self.id, "slug": self.slug}
        data.update(self.fields)
        data["created_at"] = self.created_at
        data["updated_at"] = self.updated_at
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FoundryRecord':
        fields = {k: v for k, v in data.items() if k not in ("id", "slug", "created_at", "updated_at")}
        return cls(
            id=data["id"],
            slug=data["slug"],
            fields=fields,
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )


@dataclass
class Changeset:
    """Field changes proposed for one record."""
    slug: str
    changes: Dict[str, Any]
    reason: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Changeset':
        return cls(slug=data["slug"], changes=dict(data.get("changes") or {}), reason=data.get("reason") or "")


def snapshot_checksum(snapshot: List[Dict[str, Any]]) -> str:
    """SHA-256 of the canonical JSON form of a snapshot."""
    canonical = json.dumps(snapshot, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


@dataclass
class Backup:
    """Immutable pre-change snapshot taken by a batch update. Only status changes."""
    id: str
    created_at: str
    reason: str
    record_count: int
    snapshot: List[Dict[str, Any]]
    changesets: List[Changeset]
    status: str = BACKUP_ACTIVE
    rolled_back_at: Optional[str] = None
    checksum: str = ""

    def summary(self) -> Dict[str, Any]:
        """Listing form: the fields an operator needs to decide on a rollback."""
        return {
            "id": self.id,
            "created_at": self.created_at,
            "reason": self.reason,
            "record_count": self.record_count,
            "status": self.status,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.summary()
        data.update({
            "snapshot": self.snapshot,
            "changesets": [c.to_dict() for c in self.changesets],
            "rolled_back_at": self.rolled_back_at,
            "checksum": self.checksum,
        })
        return data


@dataclass
class Suggestion:
    """A proposed correction for one field."""
    current: Any
    suggested: Any
    confidence: str
    reasoning: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Suggestion':
        confidence = str(data.get("confidence", "low")).strip().lower()
        if confidence not in CONFIDENCE_LEVELS:
            confidence = "low"
        return cls(
            current=data.get("current"),
            suggested=data.get("suggested"),
            confidence=confidence,
            reasoning=data.get("reasoning") or "",
        )


@dataclass
class ValidationResult:
    """Per-record outcome of a validation run."""
    slug: str
    name: str
    url: Optional[str]
    issues: List[str] = field(default_factory=list)
    suggestions: Dict[str, Suggestion] = field(default_factory=dict)
    verified: List[str] = field(default_factory=list)
    error: Optional[str] = None
    error_kind: Optional[str] = None  # fetch_unavailable|analysis_parse_failure|generation_failed
    unrecognized_fields: List[str] = field(default_factory=list)
    sources: List[str] = field(default_factory=list)
    validated_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "slug": self.slug,
            "name": self.name,
            "url": self.url,
            "issues": list(self.issues),
            "suggestions": {k: s.to_dict() for k, s in self.suggestions.items()},
            "verified": list(self.verified),
            "sources": list(self.sources),
            "validatedAt": self.validated_at,
        }
        if self.unrecognized_fields:
            data["unrecognizedFields"] = list(self.unrecognized_fields)
        if self.error:
            data["error"] = self.error
            data["errorKind"] = self.error_kind
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ValidationResult':
        return cls(
            slug=data["slug"],
            name=data.get("name", data["slug"]),
            url=data.get("url"),
            issues=list(data.get("issues") or []),
            suggestions={k: Suggestion.from_dict(v) for k, v in (data.get("suggestions") or {}).items()},
            verified=list(data.get("verified") or []),
            error=data.get("error"),
            error_kind=data.get("errorKind"),
            unrecognized_fields=list(data.get("unrecognizedFields") or []),
            sources=list(data.get("sources") or []),
            validated_at=data.get("validatedAt") or utc_now_iso(),
        )


@dataclass
class AutoFixItem:
    """One high-confidence field fix, flattened from a suggestion."""
    slug: str
    field: str
    current_value: Any
    new_value: Any
    reasoning: str
    confidence: str = "high"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "slug": self.slug,
            "field": self.field,
            "currentValue": self.current_value,
            "newValue": self.new_value,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AutoFixItem':
        return cls(
            slug=data["slug"],
            field=data["field"],
            current_value=data.get("currentValue"),
            new_value=data.get("newValue"),
            reasoning=data.get("reasoning") or "",
            confidence=data.get("confidence", "high"),
        )


@dataclass
class ValidationReport:
    """Immutable handoff artifact between a validation run and fix review."""
    generated_at: str
    total_records: int
    validated: int
    errors: int
    duration: int
    results: List[ValidationResult]
    auto_fix_plan: List[AutoFixItem]
    confidence_counts: Dict[str, int]
    cancelled: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "meta": {
                "generatedAt": self.generated_at,
                "totalRecords": self.total_records,
                "validated": self.validated,
                "errors": self.errors,
                "duration": self.duration,
                "cancelled": self.cancelled,
            },
            "summary": {
                "highConfidenceFixes": self.confidence_counts.get("high", 0),
                "mediumConfidenceFixes": self.confidence_counts.get("medium", 0),
                "lowConfidenceFixes": self.confidence_counts.get("low", 0),
            },
            "autoFixPlan": [item.to_dict() for item in self.auto_fix_plan],
            "results": [r.to_dict() for r in self.results],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ValidationReport':
        meta = data.get("meta") or {}
        summary = data.get("summary") or {}
        return cls(
            generated_at=meta.get("generatedAt", ""),
            total_records=meta.get("totalRecords", 0),
            validated=meta.get("validated", 0),
            errors=meta.get("errors", 0),
            duration=meta.get("duration", 0),
            results=[ValidationResult.from_dict(r) for r in data.get("results") or []],
            auto_fix_plan=[AutoFixItem.from_dict(i) for i in data.get("autoFixPlan") or []],
            confidence_counts={
                "high": summary.get("highConfidenceFixes", 0),
                "medium": summary.get("mediumConfidenceFixes", 0),
                "low": summary.get("lowConfidenceFixes", 0),
            },
            cancelled=bool(meta.get("cancelled", False)),
        )
