#!/usr/bin/env python3
"""
List, preview and roll back batch-update backups.
"""

import argparse
import sys
from pathlib import Path

# Add repo root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.core.config import BACKUP_LIST_LIMIT
from src.core.db import init_db
from src.core.errors import FoundryDataError
from src.core.rollback import expire_backups, get_backup_details, list_backups, rollback_backup


def print_backups(limit: int) -> None:
    backups = list_backups(limit)
    if not backups:
        print("No backups found.")
        return

    print(f"{'ID':<38} {'CREATED':<22} {'STATUS':<12} {'COUNT':>5}  REASON")
    for backup in backups:
        reason = backup.reason if len(backup.reason) <= 60 else backup.reason[:57] + "..."
        print(f"{backup.id:<38} {backup.created_at:<22} {backup.status:<12} {backup.record_count:>5}  {reason}")


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Roll back a batch update from its backup snapshot",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --list                      # Recent backups, newest first
  %(prog)s --backup=<id> --dry-run     # Show what would be restored
  %(prog)s --backup=<id>               # Restore (asks for confirmation)
  %(prog)s --expire-older-than=90      # Mark old active backups as expired

A backup can be rolled back once. Expired backups cannot be rolled back.
        """
    )
    action = parser.add_mutually_exclusive_group(required=True)
    action.add_argument("--list", action="store_true", help="List recent backups")
    action.add_argument("--backup", help="Backup id to roll back")
    action.add_argument("--expire-older-than", type=int, metavar="DAYS",
                        help="Expire active backups older than DAYS days")

    parser.add_argument("--limit", type=int, default=BACKUP_LIST_LIMIT, help="Backups to list")
    parser.add_argument("--dry-run", "-n", action="store_true", help="Preview without writing")
    parser.add_argument("--yes", "-y", action="store_true", help="Skip the confirmation prompt")

    args = parser.parse_args(argv)

    if args.expire_older_than is not None and args.expire_older_than < 0:
        parser.error("--expire-older-than must be >= 0")
    if args.limit < 1:
        parser.error("--limit must be >= 1")

    init_db()

    try:
        if args.list:
            print_backups(args.limit)
            return 0

        if args.expire_older_than is not None:
            count = expire_backups(args.expire_older_than)
            print(f"Expired {count} backup(s) older than {args.expire_older_than} days")
            return 0

        backup = get_backup_details(args.backup)
        print("Backup Information:")
        print(f"  ID: {backup.id}")
        print(f"  Created: {backup.created_at}")
        print(f"  Status: {backup.status}")
        print(f"  Records: {backup.record_count}")
        print(f"  Reason: {backup.reason}")
        print()

        if args.dry_run:
            result = rollback_backup(args.backup, dry_run=True)
            print("DRY RUN - would restore:")
            for entry in result.would_restore:
                print(f"  {entry['slug']} ({entry['name']})")
            return 0

        if not args.yes:
            response = input(f"Restore {backup.record_count} foundries from this backup? (type 'yes' to continue): ")
            if response.lower() != "yes":
                print("Operation cancelled by user.")
                return 0

        result = rollback_backup(args.backup)
    except FoundryDataError as e:
        print(f"ERROR: {e}")
        return 1

    print(f"Restored: {result.restored_count}")
    print(f"Failed: {result.failed_count}")
    for record in result.results:
        if not record.success:
            print(f"  FAILED {record.slug}: {record.error}")
    return 0 if result.failed_count == 0 else 2


if __name__ == "__main__":
    sys.exit(main())
