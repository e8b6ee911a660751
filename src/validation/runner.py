"""
Validation runner: fetch, analyze and record each selected foundry, one at a time.

Records are processed strictly sequentially with a fixed delay between them,
since both the foundry sites and the LLM host throttle bursts. A failure on
one record is written into its result and the run moves on.
"""

import json
import os
import threading
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import requests

from ..core import dao
from ..core.config import REPORT_DIR, VALIDATION_DELAY_SEC, VALIDATION_STATE_FILE
from ..core.errors import NotFoundError
from ..core.planner import count_by_confidence, generate_auto_fix_plan
from ..core.progress import (
    JOB_CANCELLED,
    JOB_COMPLETED,
    JOB_FAILED,
    JobProgress,
    JobProgressStore,
)
from ..core.schema import FoundryRecord, ValidationReport, ValidationResult, utc_now, utc_now_iso
from .analyzer import AnalysisFailure, DiscrepancyAnalyzer
from .fetcher import ContentFetcher
from .sources import collect_sources
from util.logging import logger

DEFAULT_LIMIT = 5
RECENT_RESULTS_IN_PROGRESS = 5


@dataclass(frozen=True)
class RecordSelector:
    """Which records a run covers: the first N, all, or an explicit slug list."""
    mode: str
    limit: Optional[int] = None
    slug_list: tuple = ()

    @classmethod
    def first(cls, n: int = DEFAULT_LIMIT) -> 'RecordSelector':
        if n < 1:
            raise ValueError("limit must be >= 1")
        return cls(mode="first", limit=n)

    @classmethod
    def all(cls) -> 'RecordSelector':
        return cls(mode="all")

    @classmethod
    def slugs(cls, slugs: List[str]) -> 'RecordSelector':
        cleaned = tuple(dict.fromkeys(s.strip() for s in slugs if s and s.strip()))
        if not cleaned:
            raise ValueError("at least one slug is required")
        return cls(mode="slugs", slug_list=cleaned)

    def resolve(self) -> List[FoundryRecord]:
        """Load the selected records. Unknown slugs in an explicit list raise NotFoundError."""
        if self.mode == "first":
            return dao.list_foundries(limit=self.limit)
        if self.mode == "all":
            return dao.list_foundries()

        records = dao.get_foundries_by_slugs(self.slug_list)
        found = {r.slug for r in records}
        missing = [s for s in self.slug_list if s not in found]
        if missing:
            raise NotFoundError(f"Foundries not found: {', '.join(missing)}", missing=missing)
        return records

    def to_dict(self) -> Dict[str, Any]:
        return {"mode": self.mode, "limit": self.limit, "slugs": list(self.slug_list)}

    def describe(self) -> str:
        if self.mode == "first":
            return f"first {self.limit} foundries"
        if self.mode == "all":
            return "all foundries"
        return f"{len(self.slug_list)} selected foundries"


@dataclass
class ValidationRunSummary:
    validated: int
    errors: int
    total_issues: int
    total_suggestions: int
    report_path: Optional[str]
    cancelled: bool = False
    confidence_counts: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "validated": self.validated,
            "errors": self.errors,
            "totalIssues": self.total_issues,
            "totalSuggestions": self.total_suggestions,
            "reportPath": self.report_path,
            "cancelled": self.cancelled,
            "confidenceCounts": self.confidence_counts,
        }


def report_filename(generated_at=None) -> str:
    stamp = (generated_at or utc_now()).strftime("%Y%m%dT%H%M%SZ")
    return f"validation-report-{stamp}.json"


def write_report(report: ValidationReport, report_dir: str = REPORT_DIR) -> str:
    """Write a report with exclusive create. Existing reports are never overwritten."""
    directory = Path(report_dir)
    directory.mkdir(parents=True, exist_ok=True)

    base = report_filename()
    path = directory / base
    suffix = 1
    while True:
        try:
            with open(path, "x", encoding="utf-8") as f:
                json.dump(report.to_dict(), f, indent=2)
            return str(path)
        except FileExistsError:
            path = directory / base.replace(".json", f"-{suffix}.json")
            suffix += 1


def load_report(path: str) -> ValidationReport:
    with open(path, encoding="utf-8") as f:
        return ValidationReport.from_dict(json.load(f))


class ValidationRunner:
    """Drives one validation run. Not safe to share between concurrent runs."""

    def __init__(self, fetcher: Optional[ContentFetcher] = None, analyzer: Optional[DiscrepancyAnalyzer] = None,
                 delay_sec: float = VALIDATION_DELAY_SEC, progress_store: Optional[JobProgressStore] = None,
                 report_dir: str = REPORT_DIR, state_file: Optional[str] = VALIDATION_STATE_FILE,
                 use_wikidata: bool = True, use_fonts_in_use: bool = True, use_myfonts: bool = True,
                 sleep: Callable[[float], None] = time.sleep, session: Optional[requests.Session] = None):
        self.fetcher = fetcher or ContentFetcher()
        self.analyzer = analyzer or DiscrepancyAnalyzer()
        self.delay_sec = delay_sec
        self.progress_store = progress_store
        self.report_dir = report_dir
        self.state_file = state_file
        self.use_wikidata = use_wikidata
        self.use_fonts_in_use = use_fonts_in_use
        self.use_myfonts = use_myfonts
        self.session = session or requests.Session()
        self._sleep = sleep
        self._cancel = threading.Event()

    def cancel(self) -> None:
        """Stop before the next record. The record in flight finishes first."""
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def close(self) -> None:
        """Release the fetcher and the supplementary-source session."""
        self.fetcher.close()
        self.session.close()

    # Resume state

    def _load_state(self, selector: RecordSelector) -> List[ValidationResult]:
        if not self.state_file or not os.path.exists(self.state_file):
            return []
        try:
            with open(self.state_file, encoding="utf-8") as f:
                state = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable validation state file {self.state_file}: {e}")
            return []

        if state.get("selector") != selector.to_dict():
            logger.info("Validation state belongs to a different selection; starting fresh")
            return []
        return [ValidationResult.from_dict(r) for r in state.get("results") or []]

    def _save_state(self, selector: RecordSelector, results: List[ValidationResult], started_at: str) -> None:
        if not self.state_file:
            return
        state = {
            "selector": selector.to_dict(),
            "startedAt": started_at,
            "lastUpdated": utc_now_iso(),
            "results": [r.to_dict() for r in results],
        }
        Path(self.state_file).parent.mkdir(parents=True, exist_ok=True)
        with open(self.state_file, "w", encoding="utf-8") as f:
            json.dump(state, f, indent=2)

    def _clear_state(self) -> None:
        if self.state_file and os.path.exists(self.state_file):
            os.remove(self.state_file)

    # Progress

    def _publish(self, progress: Optional[JobProgress]) -> None:
        if self.progress_store is not None and progress is not None:
            self.progress_store.set(progress.job_id, progress)

    # Per-record work

    def validate_record(self, record: FoundryRecord) -> ValidationResult:
        """Fetch and analyze one record. Failures come back as result values."""
        result = ValidationResult(slug=record.slug, name=record.name, url=record.url)

        bundle = collect_sources(
            record,
            self.fetcher,
            use_wikidata=self.use_wikidata,
            use_fonts_in_use=self.use_fonts_in_use,
            use_myfonts=self.use_myfonts,
            session=self.session,
        )
        if not bundle.success:
            result.error = bundle.error
            result.error_kind = bundle.error_kind
            return result
        result.sources = bundle.source_names

        outcome = self.analyzer.analyze(record, bundle.combined_context)
        if isinstance(outcome, AnalysisFailure):
            result.error = outcome.error
            result.error_kind = outcome.kind
            return result

        result.issues = outcome.issues
        result.suggestions = outcome.suggestions
        result.verified = outcome.verified
        result.unrecognized_fields = outcome.unrecognized_fields
        return result

    def run(self, selector: RecordSelector, job_id: Optional[str] = None, resume: bool = False) -> ValidationRunSummary:
        """Validate the selected records and write a report.

        Raises NotFoundError before starting if an explicit slug is unknown.
        """
        job_id = job_id or str(uuid.uuid4())
        progress = JobProgress(job_id=job_id) if self.progress_store is not None else None

        try:
            records = selector.resolve()
        except Exception as e:
            if progress is not None:
                progress.status = JOB_FAILED
                progress.error = str(e)
                self._publish(progress)
            raise

        start = time.monotonic()
        started_at = utc_now_iso()
        results = self._load_state(selector) if resume else []
        done = {r.slug for r in results}
        if done:
            logger.info(f"Resuming: {len(done)} of {len(records)} foundries already validated")

        if progress is not None:
            progress.total = len(records)
            progress.processed = len(done)
            progress.errors = sum(1 for r in results if r.error)
            progress.validated = progress.processed - progress.errors
            self._publish(progress)

        logger.log_validation_run("started", {"job_id": job_id, "selection": selector.describe(), "records": len(records)})

        cancelled = False
        first = True
        for index, record in enumerate(records, start=1):
            if record.slug in done:
                continue
            if self.cancelled:
                cancelled = True
                logger.log_validation_run("cancelled", {"job_id": job_id, "processed": len(results)})
                break

            if not first and self.delay_sec > 0:
                self._sleep(self.delay_sec)
            first = False

            result = self.validate_record(record)
            results.append(result)
            done.add(record.slug)
            self._save_state(selector, results, started_at)

            status = "error" if result.error else "success"
            details = {"error_kind": result.error_kind} if result.error else {
                "issues": len(result.issues),
                "suggestions": len(result.suggestions),
            }
            logger.log_validation_record(record.slug, index, len(records), status, details)

            if progress is not None:
                progress.processed = len(results)
                progress.errors = sum(1 for r in results if r.error)
                progress.validated = progress.processed - progress.errors
                progress.current_slug = record.slug
                progress.recent = [r.to_dict() for r in results[-RECENT_RESULTS_IN_PROGRESS:]]
                self._publish(progress)

        errors = sum(1 for r in results if r.error)
        report = ValidationReport(
            generated_at=utc_now_iso(),
            total_records=len(records),
            validated=len(results) - errors,
            errors=errors,
            duration=round(time.monotonic() - start),
            results=results,
            auto_fix_plan=generate_auto_fix_plan(results),
            confidence_counts=count_by_confidence(results),
            cancelled=cancelled,
        )
        report_path = write_report(report, self.report_dir)

        # A cancelled run keeps its state so it can be resumed
        if not cancelled:
            self._clear_state()

        summary = ValidationRunSummary(
            validated=report.validated,
            errors=report.errors,
            total_issues=sum(len(r.issues) for r in results),
            total_suggestions=sum(len(r.suggestions) for r in results),
            report_path=report_path,
            cancelled=cancelled,
            confidence_counts=report.confidence_counts,
        )

        if progress is not None:
            progress.status = JOB_CANCELLED if cancelled else JOB_COMPLETED
            progress.report_path = report_path
            progress.current_slug = None
            self._publish(progress)

        logger.log_validation_run("completed" if not cancelled else "cancelled", summary.to_dict())
        return summary
