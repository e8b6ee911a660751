"""
Batch update transaction: existence check, backup snapshot, then per-record writes.

The backup is the safety net, not atomicity of the writes. One record's write
failure never blocks or undoes the others; failures come back as results.
"""

import sqlite3
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from . import dao
from .errors import BackupError, FoundryDataError, InvalidChangesetError, NotFoundError
from .schema import (
    BACKUP_ACTIVE,
    IMMUTABLE_FIELDS,
    Backup,
    Changeset,
    snapshot_checksum,
    utc_now_iso,
)
from util.logging import logger, audit_event

ROLLBACK_COMMAND = "python scripts/rollback_fixes.py --backup={backup_id}"


def rollback_reference(backup_id: str) -> str:
    return ROLLBACK_COMMAND.format(backup_id=backup_id)


@dataclass
class RecordWriteResult:
    """Outcome of writing one changeset."""
    slug: str
    success: bool
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"slug": self.slug, "success": self.success}
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class BatchUpdateResult:
    applied_count: int = 0
    failed_count: int = 0
    backup_id: Optional[str] = None
    results: List[RecordWriteResult] = field(default_factory=list)
    rollback_reference: Optional[str] = None
    dry_run: bool = False
    preview: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        if self.dry_run:
            return {"dryRun": True, "preview": self.preview}
        return {
            "dryRun": False,
            "appliedCount": self.applied_count,
            "failedCount": self.failed_count,
            "backupId": self.backup_id,
            "results": [r.to_dict() for r in self.results],
            "rollbackReference": self.rollback_reference,
        }


def _check_changesets(changesets: List[Changeset]) -> None:
    if not changesets:
        raise InvalidChangesetError("No changesets provided")

    for changeset in changesets:
        if not changeset.slug:
            raise InvalidChangesetError("Changeset is missing a slug")
        if not changeset.changes:
            raise InvalidChangesetError(f"Changeset for '{changeset.slug}' has no changes")
        blocked = [name for name in changeset.changes if name in IMMUTABLE_FIELDS]
        if blocked:
            raise InvalidChangesetError(
                f"Changeset for '{changeset.slug}' targets immutable field(s): {', '.join(blocked)}"
            )


def _batch_reason(changesets: List[Changeset]) -> str:
    reasons = "; ".join(c.reason for c in changesets if c.reason)
    reason = f"Batch update: {len(changesets)} foundries"
    return f"{reason} - {reasons}" if reasons else reason


def apply_changesets(changesets: List[Changeset], dry_run: bool = False) -> BatchUpdateResult:
    """Apply changesets behind a backup snapshot.

    Raises InvalidChangesetError, NotFoundError or BackupError before any write.
    Per-record write failures are returned in the result.
    """
    _check_changesets(changesets)

    slugs = [c.slug for c in changesets]
    current = {r.slug: r for r in dao.get_foundries_by_slugs(slugs)}
    missing = [s for s in dict.fromkeys(slugs) if s not in current]
    if missing:
        raise NotFoundError(f"Foundries not found: {', '.join(missing)}", missing=missing)

    if dry_run:
        preview = []
        for changeset in changesets:
            record = current[changeset.slug]
            preview.append({
                "slug": changeset.slug,
                "name": record.name,
                "changes": dict(changeset.changes),
                "currentValues": {name: record.get(name) for name in changeset.changes},
                "reason": changeset.reason,
            })
        logger.log_batch_update(None, 0, 0, dry_run=True)
        return BatchUpdateResult(dry_run=True, preview=preview)

    # One snapshot row per record, in first-seen order
    snapshot = [current[s].to_dict() for s in dict.fromkeys(slugs)]
    backup = Backup(
        id=str(uuid.uuid4()),
        created_at=utc_now_iso(),
        reason=_batch_reason(changesets),
        record_count=len(snapshot),
        snapshot=snapshot,
        changesets=list(changesets),
        status=BACKUP_ACTIVE,
        checksum=snapshot_checksum(snapshot),
    )
    dao.insert_backup(backup)

    stored = dao.get_backup(backup.id)
    if stored is None or stored.checksum != backup.checksum:
        raise BackupError(f"Backup {backup.id} could not be read back after insert")

    logger.log_backup_created(backup.id, backup.record_count)
    audit_event("batch_update.started", {"backup_id": backup.id}, {"slugs": list(current.keys())})

    result = BatchUpdateResult(
        backup_id=backup.id,
        rollback_reference=rollback_reference(backup.id),
    )

    for changeset in changesets:
        fields = list(changeset.changes.keys())
        try:
            dao.update_foundry(changeset.slug, changeset.changes)
        except (FoundryDataError, sqlite3.Error) as e:
            result.failed_count += 1
            result.results.append(RecordWriteResult(slug=changeset.slug, success=False, error=str(e)))
            logger.log_record_write("batch_update", changeset.slug, fields, status="failed", error=str(e))
            continue

        result.applied_count += 1
        result.results.append(RecordWriteResult(slug=changeset.slug, success=True))
        logger.log_record_write("batch_update", changeset.slug, fields)

    logger.log_batch_update(backup.id, result.applied_count, result.failed_count)
    if result.failed_count:
        logger.warning(f"{result.failed_count} write(s) failed; to undo run: {result.rollback_reference}")

    return result
