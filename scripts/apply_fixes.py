#!/usr/bin/env python3
"""
Apply high-confidence fixes from a validation report through a backed-up batch update.

Only high-confidence suggestions are ever applied. Medium and low ones stay in
the report for a human to handle by hand.
"""

import argparse
import json
import sys
from pathlib import Path

# Add repo root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.core.batch_update import apply_changesets
from src.core.db import init_db
from src.core.errors import FoundryDataError
from src.core.planner import changesets_from_fixes, generate_auto_fix_plan, group_fixes_by_slug
from src.validation.runner import load_report


def _format(value) -> str:
    return json.dumps(value, ensure_ascii=False)


def print_fixes(items) -> None:
    for slug, fixes in group_fixes_by_slug(items).items():
        print(f"\n{slug}")
        for fix in fixes:
            print(f"  {fix.field}: {_format(fix.current_value)} -> {_format(fix.new_value)}")
            if fix.reasoning:
                print(f"    ({fix.reasoning})")


def review_each(items):
    """Ask per foundry. Returns the approved subset of items."""
    approved = []
    for slug, fixes in group_fixes_by_slug(items).items():
        print(f"\n{slug}")
        for fix in fixes:
            print(f"  {fix.field}: {_format(fix.current_value)} -> {_format(fix.new_value)}")

        answer = input("Apply these fixes? (y/n/s to skip the rest): ").strip().lower()
        if answer == "y":
            approved.extend(fixes)
        elif answer == "s":
            break
    return approved


def print_result(result) -> None:
    print()
    print(f"Applied: {result.applied_count}")
    print(f"Failed: {result.failed_count}")
    for record in result.results:
        if not record.success:
            print(f"  FAILED {record.slug}: {record.error}")
    print(f"Backup ID: {result.backup_id}")
    if result.failed_count:
        print("Some writes failed. To undo this whole batch run:")
    else:
        print("To undo:")
    print(f"  {result.rollback_reference}")


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Apply high-confidence fixes from a validation report",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --report=reports/validation-report-20260101T120000Z.json --dry-run
  %(prog)s --report=reports/validation-report-20260101T120000Z.json          # Interactive
  %(prog)s --report=reports/validation-report-20260101T120000Z.json --auto   # No prompts

Every applied batch is preceded by a backup; the rollback command is printed
at the end.
        """
    )
    parser.add_argument("--report", required=True, help="Path to a validation report JSON file")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--dry-run", action="store_true", help="Preview changes without writing")
    mode.add_argument("--auto", action="store_true", help="Apply all high-confidence fixes without prompting")

    args = parser.parse_args(argv)

    report_path = Path(args.report)
    if not report_path.exists():
        print(f"ERROR: Report file not found: {report_path}")
        return 1

    try:
        report = load_report(str(report_path))
    except (ValueError, KeyError) as e:
        print(f"ERROR: Invalid report file: {e}")
        return 1

    items = generate_auto_fix_plan(report.results)
    if not items:
        print("No high-confidence fixes to apply.")
        return 0

    slugs = group_fixes_by_slug(items)
    print(f"Found {len(items)} high-confidence fixes for {len(slugs)} foundries:")
    print_fixes(items)
    print()

    init_db()

    try:
        if args.dry_run:
            preview = apply_changesets(changesets_from_fixes(items), dry_run=True)
            print("DRY RUN - no changes written")
            for entry in preview.preview:
                print(f"  {entry['slug']}: {', '.join(entry['changes'].keys())}")
            return 0

        if not args.auto:
            answer = input(f"Apply all {len(items)} fixes? (y/n/r to review each): ").strip().lower()
            if answer == "r":
                items = review_each(items)
            elif answer != "y":
                print("Operation cancelled by user.")
                return 0

        if not items:
            print("No fixes approved.")
            return 0

        result = apply_changesets(changesets_from_fixes(items))
    except FoundryDataError as e:
        print(f"ERROR: {e}")
        return 1

    print_result(result)
    return 0 if result.failed_count == 0 else 2


if __name__ == "__main__":
    sys.exit(main())
