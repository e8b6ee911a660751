"""
Operator CLI tests for apply_fixes, rollback_fixes and validate_foundries argument handling.
"""

import json
from unittest.mock import patch

import pytest

from scripts import apply_fixes, rollback_fixes, validate_foundries
from src.core import dao


def _write_report(path, confidence="high"):
    report = {
        "meta": {"generatedAt": "2026-01-01T00:00:00Z", "totalRecords": 1, "validated": 1,
                 "errors": 0, "duration": 1, "cancelled": False},
        "summary": {"highConfidenceFixes": 1, "mediumConfidenceFixes": 0, "lowConfidenceFixes": 0},
        "autoFixPlan": [],
        "results": [{
            "slug": "acme",
            "name": "Acme",
            "url": "https://acme.example",
            "issues": [],
            "suggestions": {"founder": {"current": "Unknown", "suggested": "Jane Doe",
                                        "confidence": confidence, "reasoning": "about page"}},
            "verified": [],
            "validatedAt": "2026-01-01T00:00:00Z",
        }],
    }
    path.write_text(json.dumps(report))
    return str(path)


class TestApplyFixes:

    def test_auto_applies_and_prints_rollback(self, make_foundry, tmp_path, capsys):
        make_foundry("acme", founder="Unknown")
        report = _write_report(tmp_path / "report.json")

        assert apply_fixes.main(["--report", report, "--auto"]) == 0

        assert dao.get_foundry("acme").get("founder") == "Jane Doe"
        out = capsys.readouterr().out
        assert "python scripts/rollback_fixes.py --backup=" in out

    def test_dry_run_writes_nothing(self, make_foundry, tmp_path):
        make_foundry("acme", founder="Unknown")
        report = _write_report(tmp_path / "report.json")

        assert apply_fixes.main(["--report", report, "--dry-run"]) == 0

        assert dao.get_foundry("acme").get("founder") == "Unknown"
        assert dao.list_backups(5) == []

    def test_interactive_decline(self, make_foundry, tmp_path):
        make_foundry("acme", founder="Unknown")
        report = _write_report(tmp_path / "report.json")

        with patch("builtins.input", return_value="n"):
            assert apply_fixes.main(["--report", report]) == 0

        assert dao.get_foundry("acme").get("founder") == "Unknown"

    def test_interactive_review_each(self, make_foundry, tmp_path):
        make_foundry("acme", founder="Unknown")
        report = _write_report(tmp_path / "report.json")

        with patch("builtins.input", side_effect=["r", "y"]):
            assert apply_fixes.main(["--report", report]) == 0

        assert dao.get_foundry("acme").get("founder") == "Jane Doe"

    def test_medium_only_report_has_nothing_to_apply(self, make_foundry, tmp_path, capsys):
        make_foundry("acme", founder="Unknown")
        report = _write_report(tmp_path / "report.json", confidence="medium")

        assert apply_fixes.main(["--report", report, "--auto"]) == 0
        assert "No high-confidence fixes" in capsys.readouterr().out

    def test_missing_report(self, tmp_path):
        assert apply_fixes.main(["--report", str(tmp_path / "nope.json")]) == 1


class TestRollbackFixes:

    def test_rollback_with_yes(self, make_foundry, tmp_path):
        make_foundry("acme", founder="Unknown")
        apply_fixes.main(["--report", _write_report(tmp_path / "report.json"), "--auto"])
        backup_id = dao.list_backups(1)[0].id

        assert rollback_fixes.main(["--backup", backup_id, "--yes"]) == 0

        assert dao.get_foundry("acme").get("founder") == "Unknown"
        assert rollback_fixes.main(["--backup", backup_id, "--yes"]) == 1

    def test_list(self, capsys):
        assert rollback_fixes.main(["--list"]) == 0
        assert "No backups found." in capsys.readouterr().out

    def test_negative_expiry_is_a_usage_error(self, capsys):
        with pytest.raises(SystemExit) as exc:
            rollback_fixes.main(["--expire-older-than", "-1"])

        assert exc.value.code == 2
        assert "--expire-older-than must be >= 0" in capsys.readouterr().err


class TestValidateFoundries:

    def test_empty_slug_list_is_a_usage_error(self, capsys):
        with pytest.raises(SystemExit) as exc:
            validate_foundries.main(["--slugs=,"])

        assert exc.value.code == 2
        assert "at least one slug is required" in capsys.readouterr().err
