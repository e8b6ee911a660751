"""
Rollback transaction: restore the pre-change rows stored in a backup snapshot.
"""

import sqlite3
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List, Optional

from . import dao
from .config import BACKUP_LIST_LIMIT
from .errors import (
    AlreadyRolledBackError,
    BackupError,
    BackupExpiredError,
    FoundryDataError,
    NotFoundError,
)
from .schema import (
    BACKUP_EXPIRED,
    BACKUP_ROLLED_BACK,
    ROLLBACK_EXCLUDED_FIELDS,
    Backup,
    snapshot_checksum,
    utc_now_iso,
)
from .batch_update import RecordWriteResult
from util.logging import logger, audit_event


@dataclass
class RollbackResult:
    backup_id: str
    restored_count: int = 0
    failed_count: int = 0
    results: List[RecordWriteResult] = field(default_factory=list)
    dry_run: bool = False
    would_restore: List[Dict[str, str]] = field(default_factory=list)
    rolled_back_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        if self.dry_run:
            return {
                "dryRun": True,
                "backupId": self.backup_id,
                "wouldRestore": self.would_restore,
            }
        return {
            "dryRun": False,
            "backupId": self.backup_id,
            "restoredCount": self.restored_count,
            "failedCount": self.failed_count,
            "results": [r.to_dict() for r in self.results],
            "rolledBackAt": self.rolled_back_at,
        }


def _load_restorable(backup_id: str) -> Backup:
    backup = dao.get_backup(backup_id)
    if backup is None:
        raise NotFoundError(f"Backup not found: {backup_id}", missing=[backup_id])
    if backup.status == BACKUP_ROLLED_BACK:
        raise AlreadyRolledBackError(f"Backup {backup_id} was already rolled back at {backup.rolled_back_at}")
    if backup.status == BACKUP_EXPIRED:
        raise BackupExpiredError(f"Backup {backup_id} has expired")
    if not backup.snapshot:
        raise BackupError(f"Backup {backup_id} has an empty snapshot")
    if backup.checksum and snapshot_checksum(backup.snapshot) != backup.checksum:
        raise BackupError(f"Backup {backup_id} failed checksum verification")
    return backup


def rollback_backup(backup_id: str, dry_run: bool = False) -> RollbackResult:
    """Restore every record in a backup snapshot, then mark the backup rolled back.

    Raises NotFoundError, AlreadyRolledBackError, BackupExpiredError or
    BackupError before any write.
    """
    backup = _load_restorable(backup_id)

    if dry_run:
        would_restore = [
            {"slug": row["slug"], "name": row.get("name") or row["slug"]}
            for row in backup.snapshot
        ]
        logger.log_rollback(backup_id, 0, 0, dry_run=True)
        return RollbackResult(backup_id=backup_id, dry_run=True, would_restore=would_restore)

    result = RollbackResult(backup_id=backup_id)

    for row in backup.snapshot:
        slug = row["slug"]
        restore = {k: v for k, v in row.items() if k not in ROLLBACK_EXCLUDED_FIELDS and k != "slug"}
        try:
            dao.restore_foundry(slug, restore)
        except (FoundryDataError, sqlite3.Error) as e:
            result.failed_count += 1
            result.results.append(RecordWriteResult(slug=slug, success=False, error=str(e)))
            logger.log_record_write("rollback", slug, list(restore.keys()), status="failed", error=str(e))
            continue

        result.restored_count += 1
        result.results.append(RecordWriteResult(slug=slug, success=True))
        logger.log_record_write("rollback", slug, list(restore.keys()))

    # Status changes regardless of partial failures, exactly once
    rolled_back_at = utc_now_iso()
    if dao.mark_backup_rolled_back(backup_id, rolled_back_at):
        result.rolled_back_at = rolled_back_at
    else:
        logger.warning(f"Backup {backup_id} was no longer active when marking it rolled back")

    logger.log_rollback(backup_id, result.restored_count, result.failed_count)
    audit_event("rollback.completed", {"backup_id": backup_id}, {
        "restored": result.restored_count,
        "failed": result.failed_count,
    })
    return result


def get_backup_details(backup_id: str) -> Backup:
    """Full backup including snapshot and changesets."""
    backup = dao.get_backup(backup_id)
    if backup is None:
        raise NotFoundError(f"Backup not found: {backup_id}", missing=[backup_id])
    return backup


def list_backups(limit: int = BACKUP_LIST_LIMIT) -> List[Backup]:
    """Backups ordered newest first."""
    return dao.list_backups(limit)


def expire_backups(older_than_days: int) -> int:
    """Mark active backups older than N days as expired."""
    if older_than_days < 0:
        raise ValueError("older_than_days must be >= 0")

    count = dao.expire_backups(timedelta(days=older_than_days))
    logger.log_operation("backup.expire", "success", {"older_than_days": older_than_days, "expired": count})
    return count


def expire_backup(backup_id: str) -> None:
    """Expire one backup. Raises NotFoundError, AlreadyRolledBackError or BackupExpiredError."""
    backup = dao.get_backup(backup_id)
    if backup is None:
        raise NotFoundError(f"Backup not found: {backup_id}", missing=[backup_id])
    if backup.status == BACKUP_ROLLED_BACK:
        raise AlreadyRolledBackError(f"Backup {backup_id} was already rolled back")
    if not dao.expire_backup(backup_id):
        raise BackupExpiredError(f"Backup {backup_id} has expired")

    logger.log_operation("backup.expire", "success", {"backup_id": backup_id})
