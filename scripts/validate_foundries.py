#!/usr/bin/env python3
"""
Validate foundry records against their websites (and optional Wikidata, Fonts In Use and MyFonts) with a local LLM.

Writes a validation report to the report directory. Apply fixes from it with
scripts/apply_fixes.py.
"""

import argparse
import sys
from pathlib import Path

# Add repo root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.core.config import REPORT_DIR, VALIDATION_DELAY_SEC, validate_config
from src.core.db import init_db
from src.core.errors import NotFoundError
from src.validation.fetcher import ContentFetcher, RenderedContentFetcher
from src.validation.runner import DEFAULT_LIMIT, RecordSelector, ValidationRunner


def build_selector(args) -> RecordSelector:
    if args.slug:
        return RecordSelector.slugs([args.slug])
    if args.slugs:
        return RecordSelector.slugs(args.slugs.split(","))
    if args.all:
        return RecordSelector.all()
    return RecordSelector.first(args.limit)


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Validate foundry data against live sources",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                          # First 5 foundries
  %(prog)s --slug=klim-type-foundry # One foundry
  %(prog)s --all --resume           # Everything, continuing an interrupted run
  %(prog)s --all --website-only     # Skip Wikidata, Fonts In Use and MyFonts
  %(prog)s --slugs=a,b --rendered   # Render JS-only sites in headless Chromium

Environment variables:
- OLLAMA_HOST / OLLAMA_MODEL (text generation)
- VALIDATION_DELAY_SEC (pause between foundries, default 1.0)
        """
    )

    selection = parser.add_mutually_exclusive_group()
    selection.add_argument("--slug", help="Validate a single foundry")
    selection.add_argument("--slugs", help="Comma-separated list of slugs")
    selection.add_argument("--all", action="store_true", help="Validate all foundries")
    selection.add_argument("--limit", type=int, default=DEFAULT_LIMIT,
                           help=f"Validate the first N foundries (default: {DEFAULT_LIMIT})")

    parser.add_argument("--website-only", action="store_true", help="Only use the foundry website")
    parser.add_argument("--no-wikidata", action="store_true", help="Skip Wikidata")
    parser.add_argument("--no-fontsinuse", action="store_true", help="Skip Fonts In Use")
    parser.add_argument("--no-myfonts", action="store_true", help="Skip MyFonts")

    parser.add_argument("--resume", action="store_true", help="Resume an interrupted run with the same selection")
    parser.add_argument("--delay", type=float, default=VALIDATION_DELAY_SEC,
                        help="Seconds to wait between foundries")
    parser.add_argument("--rendered", action="store_true",
                        help="Render pages in headless Chromium (requires playwright)")
    parser.add_argument("--report-dir", default=REPORT_DIR, help="Where to write the report")

    args = parser.parse_args(argv)

    if args.delay < 0:
        parser.error("--delay must be >= 0")
    if args.limit is not None and args.limit < 1:
        parser.error("--limit must be >= 1")
    try:
        selector = build_selector(args)
    except ValueError as e:
        parser.error(str(e))

    for issue in validate_config():
        print(f"WARNING: {issue}")

    init_db()

    fetcher = RenderedContentFetcher() if args.rendered else ContentFetcher()
    runner = ValidationRunner(
        fetcher=fetcher,
        delay_sec=args.delay,
        report_dir=args.report_dir,
        use_wikidata=not (args.website_only or args.no_wikidata),
        use_fonts_in_use=not (args.website_only or args.no_fontsinuse),
        use_myfonts=not (args.website_only or args.no_myfonts),
    )

    try:
        print(f"Validating {selector.describe()}...")
        summary = runner.run(selector, resume=args.resume)
    except NotFoundError as e:
        print(f"ERROR: {e}")
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted. Re-run with --resume to continue.")
        return 130
    finally:
        runner.close()

    counts = summary.confidence_counts
    print()
    print("VALIDATION COMPLETE" if not summary.cancelled else "VALIDATION CANCELLED")
    print(f"Foundries validated: {summary.validated}")
    print(f"Errors: {summary.errors}")
    print(f"Issues found: {summary.total_issues}")
    print(f"Suggestions: {summary.total_suggestions} "
          f"(high: {counts.get('high', 0)}, medium: {counts.get('medium', 0)}, low: {counts.get('low', 0)})")
    print(f"Report: {summary.report_path}")
    print()
    print(f"Next: python scripts/apply_fixes.py --report={summary.report_path} --dry-run")
    return 0


if __name__ == "__main__":
    sys.exit(main())
