"""
Record store adapter: typed CRUD over foundries keyed by slug, plus backup snapshot rows.

Read helpers return None/[] for missing data. Write helpers raise, so callers
can tell a failed write from a no-op.
"""

import json
import sqlite3
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from .db import get_db
from .errors import BackupError, InvalidFieldError, NotFoundError
from .schema import (
    BACKUP_ACTIVE,
    BACKUP_EXPIRED,
    BACKUP_ROLLED_BACK,
    FOUNDRY_FIELDS,
    Backup,
    Changeset,
    FoundryRecord,
    utc_now,
    utc_now_iso,
    validate_field_value,
)
from util.logging import logger

_FOUNDRY_COLUMNS = ["id", "slug"] + list(FOUNDRY_FIELDS.keys()) + ["created_at", "updated_at"]
_SELECT_FOUNDRY = f"SELECT {', '.join(_FOUNDRY_COLUMNS)} FROM foundries"


def _encode_value(name: str, value: Any) -> Any:
    """Convert a validated field value to its column representation."""
    if FOUNDRY_FIELDS.get(name) == "text_array":
        return json.dumps(value if value is not None else [])
    return value


def _decode_row(row: sqlite3.Row) -> FoundryRecord:
    fields = {}
    for name, field_type in FOUNDRY_FIELDS.items():
        value = row[name]
        if field_type == "text_array":
            value = json.loads(value) if value else []
        elif field_type == "boolean" and value is not None:
            value = bool(value)
        fields[name] = value

    return FoundryRecord(
        id=row["id"],
        slug=row["slug"],
        fields=fields,
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


# Foundry records

def get_foundry(slug: str) -> Optional[FoundryRecord]:
    """Get a foundry by slug."""
    if not slug or not slug.strip():
        return None

    with get_db() as conn:
        row = conn.execute(f"{_SELECT_FOUNDRY} WHERE slug = ?", (slug.strip(),)).fetchone()
        return _decode_row(row) if row else None


def get_foundry_by_id(foundry_id: str) -> Optional[FoundryRecord]:
    """Get a foundry by its immutable id."""
    with get_db() as conn:
        row = conn.execute(f"{_SELECT_FOUNDRY} WHERE id = ?", (foundry_id,)).fetchone()
        return _decode_row(row) if row else None


def get_foundries_by_slugs(slugs: Iterable[str]) -> List[FoundryRecord]:
    """Select many foundries by slug. Missing slugs are simply absent from the result."""
    unique = list(dict.fromkeys(s for s in slugs if s))
    if not unique:
        return []

    placeholders = ", ".join("?" for _ in unique)
    with get_db() as conn:
        rows = conn.execute(f"{_SELECT_FOUNDRY} WHERE slug IN ({placeholders})", unique).fetchall()

    by_slug = {row["slug"]: _decode_row(row) for row in rows}
    # Preserve the caller's order
    return [by_slug[s] for s in unique if s in by_slug]


def list_foundries(limit: Optional[int] = None) -> List[FoundryRecord]:
    """List foundries ordered by name, optionally limited to the first N."""
    query = f"{_SELECT_FOUNDRY} ORDER BY name COLLATE NOCASE, slug"
    params: tuple = ()
    if limit is not None:
        query += " LIMIT ?"
        params = (int(limit),)

    with get_db() as conn:
        return [_decode_row(row) for row in conn.execute(query, params).fetchall()]


def search_foundries(term: str, limit: int = 50) -> List[FoundryRecord]:
    """Case-insensitive substring search on name and slug."""
    pattern = f"%{term.strip()}%"
    with get_db() as conn:
        rows = conn.execute(
            f"{_SELECT_FOUNDRY} WHERE name LIKE ? OR slug LIKE ? ORDER BY name COLLATE NOCASE LIMIT ?",
            (pattern, pattern, limit)
        ).fetchall()
        return [_decode_row(row) for row in rows]


def get_foundry_count() -> int:
    """Count foundry records."""
    try:
        with get_db() as conn:
            return conn.execute("SELECT COUNT(*) FROM foundries").fetchone()[0]
    except sqlite3.Error as e:
        logger.error(f"Failed to count foundries: {e}")
        return 0


def insert_foundry(data: Dict[str, Any]) -> FoundryRecord:
    """Insert a new foundry. `data` must carry slug and name; id is generated when absent."""
    slug = (data.get("slug") or "").strip()
    if not slug:
        raise InvalidFieldError("Field 'slug' is required")

    values = {}
    for name, value in data.items():
        if name in ("id", "slug", "created_at", "updated_at"):
            continue
        values[name] = _encode_value(name, validate_field_value(name, value))
    if not values.get("name"):
        raise InvalidFieldError("Field 'name' is required")

    now = utc_now_iso()
    row = {
        "id": data.get("id") or str(uuid.uuid4()),
        "slug": slug,
        "created_at": data.get("created_at") or now,
        "updated_at": data.get("updated_at") or now,
    }
    row.update(values)
    for name in ("notable_typefaces", "style"):
        row.setdefault(name, "[]")

    columns = ", ".join(row.keys())
    placeholders = ", ".join("?" for _ in row)
    with get_db() as conn:
        try:
            conn.execute(f"INSERT INTO foundries ({columns}) VALUES ({placeholders})", list(row.values()))
            conn.commit()
        except sqlite3.IntegrityError as e:
            raise InvalidFieldError(f"Could not insert foundry '{slug}': {e}")

    return get_foundry(slug)


def _write_fields(where_column: str, key: str, changes: Dict[str, Any], updated_at: Optional[str]) -> None:
    if not changes:
        raise InvalidFieldError("No fields to update")

    encoded = {name: _encode_value(name, validate_field_value(name, value)) for name, value in changes.items()}
    encoded["updated_at"] = updated_at or utc_now_iso()

    assignments = ", ".join(f"{name} = ?" for name in encoded)
    with get_db() as conn:
        cursor = conn.execute(
            f"UPDATE foundries SET {assignments} WHERE {where_column} = ?",
            list(encoded.values()) + [key]
        )
        conn.commit()
        if cursor.rowcount == 0:
            raise NotFoundError(f"Foundry not found: {key}", missing=[key])


def update_foundry(slug: str, changes: Dict[str, Any]) -> None:
    """Update fields of the foundry with this slug and stamp updated_at.

    Raises NotFoundError, InvalidFieldError, or sqlite3.Error.
    """
    _write_fields("slug", slug, changes, None)


def update_foundry_by_id(foundry_id: str, changes: Dict[str, Any]) -> None:
    """Update fields of the foundry with this id."""
    _write_fields("id", foundry_id, changes, None)


def restore_foundry(slug: str, row: Dict[str, Any]) -> None:
    """Write a snapshot row back onto the foundry with this slug, keeping its recorded updated_at."""
    changes = {name: row[name] for name in FOUNDRY_FIELDS if name in row}
    _write_fields("slug", slug, changes, row.get("updated_at"))


# Backups

def _decode_backup(row: sqlite3.Row) -> Backup:
    return Backup(
        id=row["id"],
        created_at=row["created_at"],
        reason=row["reason"],
        record_count=row["foundry_count"],
        snapshot=json.loads(row["snapshot"]),
        changesets=[Changeset.from_dict(c) for c in json.loads(row["changes_applied"])],
        status=row["status"],
        rolled_back_at=row["rolled_back_at"],
        checksum=row["checksum"],
    )


def insert_backup(backup: Backup) -> None:
    """Persist a backup snapshot row. Raises BackupError on any failure."""
    try:
        with get_db() as conn:
            conn.execute(
                """INSERT INTO foundry_backups
                   (id, created_at, reason, foundry_count, snapshot, changes_applied, checksum, status)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    backup.id,
                    backup.created_at,
                    backup.reason,
                    backup.record_count,
                    json.dumps(backup.snapshot),
                    json.dumps([c.to_dict() for c in backup.changesets]),
                    backup.checksum,
                    backup.status,
                )
            )
            conn.commit()
    except (sqlite3.Error, TypeError, ValueError) as e:
        raise BackupError(f"Failed to create backup: {e}")


def get_backup(backup_id: str) -> Optional[Backup]:
    """Get a backup by id."""
    if not backup_id:
        return None

    with get_db() as conn:
        row = conn.execute("SELECT * FROM foundry_backups WHERE id = ?", (backup_id,)).fetchone()
        return _decode_backup(row) if row else None


def list_backups(limit: int = 20) -> List[Backup]:
    """List backups newest first."""
    with get_db() as conn:
        rows = conn.execute(
            "SELECT * FROM foundry_backups ORDER BY created_at DESC, rowid DESC LIMIT ?",
            (limit,)
        ).fetchall()
        return [_decode_backup(row) for row in rows]


def mark_backup_rolled_back(backup_id: str, rolled_back_at: Optional[str] = None) -> bool:
    """Transition an active backup to rolled_back. Returns False if it was not active."""
    with get_db() as conn:
        cursor = conn.execute(
            "UPDATE foundry_backups SET status = ?, rolled_back_at = ? WHERE id = ? AND status = ?",
            (BACKUP_ROLLED_BACK, rolled_back_at or utc_now_iso(), backup_id, BACKUP_ACTIVE)
        )
        conn.commit()
        return cursor.rowcount == 1


def expire_backup(backup_id: str) -> bool:
    """Mark one active backup as expired. Returns False if it was not active."""
    with get_db() as conn:
        cursor = conn.execute(
            "UPDATE foundry_backups SET status = ? WHERE id = ? AND status = ?",
            (BACKUP_EXPIRED, backup_id, BACKUP_ACTIVE)
        )
        conn.commit()
        return cursor.rowcount == 1


def expire_backups(older_than: timedelta, now: Optional[datetime] = None) -> int:
    """Mark active backups created before now - older_than as expired. Returns count."""
    cutoff = ((now or utc_now()) - older_than).replace(microsecond=0).isoformat().replace("+00:00", "Z")
    with get_db() as conn:
        cursor = conn.execute(
            "UPDATE foundry_backups SET status = ? WHERE status = ? AND created_at < ?",
            (BACKUP_EXPIRED, BACKUP_ACTIVE, cutoff)
        )
        conn.commit()
        return cursor.rowcount
