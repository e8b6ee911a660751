"""
Load foundry records from the directory's JSON export, skipping slugs already stored.
"""

import sqlite3
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List

from . import dao
from .errors import FoundryDataError
from .schema import FOUNDRY_FIELDS
from util.logging import logger


@dataclass
class ImportResult:
    inserted: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)


def row_from_json(item: Dict[str, Any]) -> Dict[str, Any]:
    """Map one exported foundry (nested camelCase or flat columns) to a store row."""
    location = item.get("location") or {}
    social = item.get("socialMedia") or {}
    images = item.get("images") or {}

    row = {
        "slug": item.get("slug"),
        "name": item.get("name"),
        "url": item.get("url"),
        "location_city": location.get("city"),
        "location_country": location.get("country"),
        "location_country_code": location.get("countryCode"),
        "founder": item.get("founder"),
        "founded": item.get("founded"),
        "notable_typefaces": item.get("notableTypefaces"),
        "style": item.get("style"),
        "tier": item.get("tier"),
        "notes": item.get("notes"),
        "social_instagram": social.get("instagram"),
        "social_twitter": social.get("twitter"),
        "screenshot_url": images.get("screenshot"),
        "logo_url": images.get("logo"),
        "is_popular": item.get("isPopular"),
    }
    # Flat column names win over the nested export shape
    for name in FOUNDRY_FIELDS:
        if name in item:
            row[name] = item[name]

    return {k: v for k, v in row.items() if v is not None}


def import_foundries(items: Iterable[Dict[str, Any]], dry_run: bool = False) -> ImportResult:
    result = ImportResult()
    rows = [row_from_json(item) for item in items]
    existing = {r.slug for r in dao.get_foundries_by_slugs(r.get("slug") for r in rows)}

    for row in rows:
        slug = row.get("slug")
        if slug in existing:
            result.skipped += 1
            continue
        if dry_run:
            result.inserted += 1
            existing.add(slug)
            continue

        try:
            dao.insert_foundry(row)
        except (FoundryDataError, sqlite3.Error) as e:
            result.errors.append(f"{slug or row.get('name', '?')}: {e}")
            continue
        result.inserted += 1
        existing.add(slug)

    logger.log_operation("import", "success" if not result.errors else "partial", {
        "inserted": result.inserted,
        "skipped": result.skipped,
        "errors": len(result.errors),
        "dry_run": dry_run,
    })
    return result
