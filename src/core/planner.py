"""
Fix planner: turns validation results into changesets.

Pure functions only. No store access, no network.
"""

from typing import Dict, Iterable, List

from .schema import (
    CONFIDENCE_LEVELS,
    AutoFixItem,
    Changeset,
    ValidationReport,
    ValidationResult,
)

DEFAULT_FIX_REASONING = "high confidence"


def generate_auto_fix_plan(results: Iterable[ValidationResult]) -> List[AutoFixItem]:
    """Flatten high-confidence suggestions from successful results, in report order."""
    plan = []
    for result in results:
        if result.error:
            continue
        for field_name, suggestion in result.suggestions.items():
            if suggestion.confidence != "high":
                continue
            plan.append(AutoFixItem(
                slug=result.slug,
                field=field_name,
                current_value=suggestion.current,
                new_value=suggestion.suggested,
                reasoning=suggestion.reasoning,
            ))
    return plan


def count_by_confidence(results: Iterable[ValidationResult]) -> Dict[str, int]:
    counts = {level: 0 for level in CONFIDENCE_LEVELS}
    for result in results:
        for suggestion in result.suggestions.values():
            counts[suggestion.confidence] = counts.get(suggestion.confidence, 0) + 1
    return counts


def group_fixes_by_slug(items: Iterable[AutoFixItem]) -> Dict[str, List[AutoFixItem]]:
    """Group fix items by slug, keeping first-seen slug order."""
    grouped: Dict[str, List[AutoFixItem]] = {}
    for item in items:
        grouped.setdefault(item.slug, []).append(item)
    return grouped


def changesets_from_fixes(items: Iterable[AutoFixItem]) -> List[Changeset]:
    """Merge fix items into one changeset per slug.

    Later items for the same field overwrite earlier ones. The reason joins
    "<field>: <reasoning>" entries with "; ".
    """
    changesets = []
    for slug, fixes in group_fixes_by_slug(items).items():
        changes = {}
        reasons = []
        for fix in fixes:
            changes[fix.field] = fix.new_value
            reasons.append(f"{fix.field}: {fix.reasoning or DEFAULT_FIX_REASONING}")
        changesets.append(Changeset(slug=slug, changes=changes, reason="; ".join(reasons)))
    return changesets


def plan_fixes(report: ValidationReport) -> List[Changeset]:
    """Changesets for every slug with at least one high-confidence suggestion.

    Recomputed from the report results, so a hand-edited autoFixPlan is not trusted.
    """
    return changesets_from_fixes(generate_auto_fix_plan(report.results))
