"""
Rollback transaction: inverse of a batch update, guarded so it happens once.
"""

import sqlite3
from unittest.mock import patch

import pytest

from src.core import dao
from src.core.batch_update import apply_changesets
from src.core.db import get_db
from src.core.errors import AlreadyRolledBackError, BackupError, BackupExpiredError, NotFoundError
from src.core.rollback import (
    expire_backup,
    expire_backups,
    get_backup_details,
    list_backups,
    rollback_backup,
)
from src.core.schema import Backup, Changeset, snapshot_checksum


def _apply(*changesets):
    return apply_changesets(list(changesets))


class TestRollback:

    def test_rollback_restores_acme_and_guards_second_call(self, make_foundry):
        make_foundry("acme", founder="Unknown")
        applied = _apply(Changeset(slug="acme", changes={"founder": "Jane Doe"}, reason="site states founder"))

        result = rollback_backup(applied.backup_id)

        assert result.restored_count == 1
        assert result.failed_count == 0
        assert dao.get_foundry("acme").get("founder") == "Unknown"
        backup = dao.get_backup(applied.backup_id)
        assert backup.status == "rolled_back"
        assert backup.rolled_back_at is not None

        with patch("src.core.rollback.dao.restore_foundry") as restore:
            with pytest.raises(AlreadyRolledBackError):
                rollback_backup(applied.backup_id)
            restore.assert_not_called()
        assert dao.get_foundry("acme").get("founder") == "Unknown"

    def test_rollback_is_inverse_of_apply(self, make_foundry):
        make_foundry("a", founder="A0", founded=1901, notable_typefaces=["One"], style=["serif"])
        make_foundry("b", founder=None, tier=2, notes="keep me")
        before = {slug: dao.get_foundry(slug).to_dict() for slug in ("a", "b")}

        applied = _apply(
            Changeset(slug="a", changes={"founder": "A1", "founded": 1950, "notable_typefaces": ["One", "Two"]}),
            Changeset(slug="b", changes={"founder": "B1", "tier": 1, "notes": None}),
        )
        assert applied.failed_count == 0

        rollback_backup(applied.backup_id)

        for slug, row in before.items():
            after = dao.get_foundry(slug).to_dict()
            assert after == row

    def test_dry_run_lists_records_without_writing(self, make_foundry):
        make_foundry("acme", founder="Unknown")
        applied = _apply(Changeset(slug="acme", changes={"founder": "Jane"}))

        result = rollback_backup(applied.backup_id, dry_run=True)

        assert result.would_restore == [{"slug": "acme", "name": "Acme"}]
        assert dao.get_foundry("acme").get("founder") == "Jane"
        assert dao.get_backup(applied.backup_id).status == "active"

    def test_unknown_backup(self):
        with pytest.raises(NotFoundError):
            rollback_backup("does-not-exist")

    def test_expired_backup_blocks_rollback(self, make_foundry):
        make_foundry("acme", founder="Unknown")
        applied = _apply(Changeset(slug="acme", changes={"founder": "Jane"}))
        expire_backup(applied.backup_id)

        with pytest.raises(BackupExpiredError):
            rollback_backup(applied.backup_id)
        assert dao.get_foundry("acme").get("founder") == "Jane"

    def test_checksum_mismatch_blocks_rollback(self, make_foundry):
        make_foundry("acme", founder="Unknown")
        snapshot = [dao.get_foundry("acme").to_dict()]
        tampered = [dict(snapshot[0], founder="Mallory")]
        dao.insert_backup(Backup(
            id="tampered",
            created_at="2026-01-01T00:00:00Z",
            reason="test",
            record_count=1,
            snapshot=tampered,
            changesets=[],
            checksum=snapshot_checksum(snapshot),
        ))

        with pytest.raises(BackupError):
            rollback_backup("tampered")
        assert dao.get_foundry("acme").get("founder") == "Unknown"

    def test_empty_snapshot_rejected(self):
        dao.insert_backup(Backup(
            id="empty",
            created_at="2026-01-01T00:00:00Z",
            reason="test",
            record_count=0,
            snapshot=[],
            changesets=[],
            checksum=snapshot_checksum([]),
        ))
        with pytest.raises(BackupError):
            rollback_backup("empty")

    def test_partial_failure_still_marks_rolled_back(self, make_foundry):
        make_foundry("a", founder="A0")
        make_foundry("b", founder="B0")
        applied = _apply(
            Changeset(slug="a", changes={"founder": "A1"}),
            Changeset(slug="b", changes={"founder": "B1"}),
        )
        real_restore = dao.restore_foundry

        def flaky_restore(slug, row):
            if slug == "a":
                raise sqlite3.OperationalError("database is locked")
            return real_restore(slug, row)

        with patch("src.core.rollback.dao.restore_foundry", side_effect=flaky_restore):
            result = rollback_backup(applied.backup_id)

        assert result.restored_count == 1
        assert result.failed_count == 1
        assert dao.get_foundry("b").get("founder") == "B0"
        assert dao.get_backup(applied.backup_id).status == "rolled_back"

    def test_rollback_never_writes_id_or_created_at(self, make_foundry):
        original = make_foundry("acme", founder="Unknown")
        applied = _apply(Changeset(slug="acme", changes={"founder": "Jane"}))

        with patch("src.core.rollback.dao.restore_foundry") as restore:
            rollback_backup(applied.backup_id)

        slug, row = restore.call_args[0]
        assert slug == "acme"
        assert "id" not in row and "created_at" not in row
        assert dao.get_foundry("acme").id == original.id


class TestBackupAdministration:

    def test_list_and_details(self, make_foundry):
        make_foundry("acme")
        first = _apply(Changeset(slug="acme", changes={"founder": "One"}))
        second = _apply(Changeset(slug="acme", changes={"founder": "Two"}))

        ids = [b.id for b in list_backups()]
        assert set(ids) == {first.backup_id, second.backup_id}
        assert get_backup_details(second.backup_id).snapshot[0]["founder"] == "One"

    def test_details_unknown(self):
        with pytest.raises(NotFoundError):
            get_backup_details("missing")

    def test_expire_backups_by_age(self, make_foundry):
        make_foundry("acme")
        applied = _apply(Changeset(slug="acme", changes={"founder": "Jane"}))
        with get_db() as conn:
            conn.execute("DROP TRIGGER foundry_backups_snapshot_immutable")
            conn.execute("UPDATE foundry_backups SET created_at = '2000-01-01T00:00:00Z'")
            conn.commit()

        assert expire_backups(30) == 1
        assert dao.get_backup(applied.backup_id).status == "expired"

    def test_expire_rolled_back_backup_rejected(self, make_foundry):
        make_foundry("acme")
        applied = _apply(Changeset(slug="acme", changes={"founder": "Jane"}))
        rollback_backup(applied.backup_id)

        with pytest.raises(AlreadyRolledBackError):
            expire_backup(applied.backup_id)
