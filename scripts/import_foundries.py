#!/usr/bin/env python3
"""
Import foundries from a JSON file into the record store. Existing slugs are skipped.
"""

import argparse
import json
import sys
from pathlib import Path

# Add repo root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.core.db import init_db
from src.core.importer import import_foundries


def main(argv=None):
    parser = argparse.ArgumentParser(description="Import foundries from JSON")
    parser.add_argument("file", help='JSON file: a list of foundries or {"foundries": [...]}')
    parser.add_argument("--dry-run", "-n", action="store_true", help="Count without inserting")
    args = parser.parse_args(argv)

    path = Path(args.file)
    if not path.exists():
        print(f"ERROR: File not found: {path}")
        return 1

    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        print(f"ERROR: Invalid JSON: {e}")
        return 1

    items = data.get("foundries", []) if isinstance(data, dict) else data
    print(f"Found {len(items)} foundries in {path}")

    init_db()
    result = import_foundries(items, dry_run=args.dry_run)

    prefix = "DRY RUN - would insert" if args.dry_run else "Inserted"
    print(f"{prefix}: {result.inserted}")
    print(f"Skipped (already exist): {result.skipped}")
    if result.errors:
        print(f"Errors: {len(result.errors)}")
        for error in result.errors:
            print(f"  - {error}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
