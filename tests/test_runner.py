"""
Validation runner tests: sequential processing, per-record failures, cancellation, resume, report.
"""

import json
import os
from unittest.mock import MagicMock, patch

import pytest

from src.core.errors import NotFoundError
from src.core.progress import InMemoryJobProgressStore
from src.core.schema import Suggestion
from src.validation.analyzer import ANALYSIS_PARSE_FAILURE, AnalysisFailure, AnalysisResult
from src.validation.fetcher import FETCH_UNAVAILABLE, FetchResult
from src.validation.runner import RecordSelector, ValidationRunner, load_report, write_report
from src.validation.sources import SourceData


def _ok_fetch(url):
    return FetchResult(base_url=url, success=True, content=f"Source: {url}\n\ntext", source_url=url)


def _analysis(slug_confidence="high"):
    return AnalysisResult(
        issues=["founder wrong"],
        suggestions={"founder": Suggestion(current="Unknown", suggested="Jane", confidence=slug_confidence,
                                           reasoning="about page")},
        verified=["name"],
    )


@pytest.fixture
def runner_factory(tmp_path):
    def _make(fetch=_ok_fetch, analyze=None, **kwargs):
        fetcher = MagicMock()
        fetcher.fetch.side_effect = fetch
        analyzer = MagicMock()
        analyzer.analyze.side_effect = analyze or (lambda record, text: _analysis())
        sleep = MagicMock()
        runner = ValidationRunner(
            fetcher=fetcher,
            analyzer=analyzer,
            delay_sec=kwargs.pop("delay_sec", 1.0),
            report_dir=str(tmp_path / "reports"),
            state_file=kwargs.pop("state_file", str(tmp_path / "state.json")),
            use_wikidata=False,
            use_fonts_in_use=False,
            use_myfonts=False,
            sleep=sleep,
            **kwargs
        )
        return runner, fetcher, analyzer, sleep
    return _make


class TestRecordSelector:

    def test_first_n(self, make_foundry):
        for slug in ("c", "a", "b"):
            make_foundry(slug)
        assert [r.slug for r in RecordSelector.first(2).resolve()] == ["a", "b"]

    def test_all(self, make_foundry):
        make_foundry("a")
        make_foundry("b")
        assert len(RecordSelector.all().resolve()) == 2

    def test_explicit_unknown_slug(self, make_foundry):
        make_foundry("a")
        with pytest.raises(NotFoundError) as exc:
            RecordSelector.slugs(["a", "ghost"]).resolve()
        assert exc.value.missing == ["ghost"]

    def test_invalid_inputs(self):
        with pytest.raises(ValueError):
            RecordSelector.first(0)
        with pytest.raises(ValueError):
            RecordSelector.slugs([" ", ""])


class TestValidationRunner:

    def test_successful_run_writes_report(self, make_foundry, runner_factory):
        make_foundry("a")
        make_foundry("b")
        runner, fetcher, analyzer, sleep = runner_factory()

        summary = runner.run(RecordSelector.all())

        assert summary.validated == 2
        assert summary.errors == 0
        assert summary.total_issues == 2
        assert summary.total_suggestions == 2
        assert analyzer.analyze.call_count == 2

        report = load_report(summary.report_path)
        assert report.cancelled is False
        assert [r.slug for r in report.results] == ["a", "b"]
        assert len(report.auto_fix_plan) == 2
        assert report.confidence_counts["high"] == 2

    def test_delay_between_records_only(self, make_foundry, runner_factory):
        for slug in ("a", "b", "c"):
            make_foundry(slug)
        runner, _, _, sleep = runner_factory(delay_sec=2.5)

        runner.run(RecordSelector.all())

        assert sleep.call_count == 2
        sleep.assert_called_with(2.5)

    def test_fetch_failure_recorded_and_run_continues(self, make_foundry, runner_factory):
        make_foundry("a")
        make_foundry("b")

        def fetch(url):
            if "a.example" in url:
                return FetchResult(base_url=url, success=False, error_kind=FETCH_UNAVAILABLE,
                                   attempts=[f"{url}/about: timeout"])
            return _ok_fetch(url)

        runner, _, analyzer, _ = runner_factory(fetch=fetch)
        summary = runner.run(RecordSelector.all())

        report = load_report(summary.report_path)
        a, b = report.results
        assert a.error_kind == FETCH_UNAVAILABLE
        assert a.suggestions == {}
        assert b.error is None
        assert summary.errors == 1
        assert summary.validated == 1
        assert report.validated == 1
        assert report.errors == 1
        assert report.total_records == 2
        # A failed fetch never reaches the analyzer
        assert analyzer.analyze.call_count == 1

    def test_analysis_failure_recorded_and_run_continues(self, make_foundry, runner_factory):
        make_foundry("a")
        make_foundry("b")

        def analyze(record, text):
            if record.slug == "a":
                return AnalysisFailure(kind=ANALYSIS_PARSE_FAILURE, error="No JSON object in response",
                                       raw_response="nope")
            return _analysis()

        runner, _, _, _ = runner_factory(analyze=analyze)
        summary = runner.run(RecordSelector.all())

        results = load_report(summary.report_path).results
        assert results[0].error_kind == ANALYSIS_PARSE_FAILURE
        assert results[1].suggestions["founder"].suggested == "Jane"
        assert [i.slug for i in load_report(summary.report_path).auto_fix_plan] == ["b"]

    def test_cancellation_between_records(self, make_foundry, runner_factory, tmp_path):
        for slug in ("a", "b", "c"):
            make_foundry(slug)
        runner = None

        def analyze(record, text):
            if record.slug == "a":
                runner.cancel()
            return _analysis()

        runner, _, analyzer, _ = runner_factory(analyze=analyze)
        summary = runner.run(RecordSelector.all())

        assert summary.cancelled is True
        assert summary.validated == 1
        assert analyzer.analyze.call_count == 1
        assert load_report(summary.report_path).cancelled is True
        # State is kept so the run can be resumed
        assert os.path.exists(tmp_path / "state.json")

    def test_cancel_during_last_record_completes_run(self, make_foundry, runner_factory, tmp_path):
        make_foundry("a")
        make_foundry("b")
        runner = None

        def analyze(record, text):
            if record.slug == "b":
                runner.cancel()
            return _analysis()

        runner, _, analyzer, _ = runner_factory(analyze=analyze)
        summary = runner.run(RecordSelector.all())

        assert analyzer.analyze.call_count == 2
        assert summary.cancelled is False
        assert load_report(summary.report_path).cancelled is False
        assert not os.path.exists(tmp_path / "state.json")

    def test_resume_skips_completed(self, make_foundry, runner_factory, tmp_path):
        for slug in ("a", "b", "c"):
            make_foundry(slug)
        first = None

        def cancel_after_b(record, text):
            if record.slug == "b":
                first.cancel()
            return _analysis()

        first, _, _, _ = runner_factory(analyze=cancel_after_b)
        first.run(RecordSelector.all())

        second, _, analyzer, _ = runner_factory()
        summary = second.run(RecordSelector.all(), resume=True)

        assert [c.args[0].slug for c in analyzer.analyze.call_args_list] == ["c"]
        assert summary.validated == 3
        assert not os.path.exists(tmp_path / "state.json")

    def test_resume_ignores_state_for_other_selection(self, make_foundry, runner_factory, tmp_path):
        make_foundry("a")
        make_foundry("b")
        (tmp_path / "state.json").write_text(json.dumps({
            "selector": RecordSelector.slugs(["a"]).to_dict(),
            "results": [{"slug": "a", "name": "A", "url": None}],
        }))

        runner, _, analyzer, _ = runner_factory()
        runner.run(RecordSelector.all(), resume=True)

        assert analyzer.analyze.call_count == 2

    def test_progress_published(self, make_foundry, runner_factory):
        make_foundry("a")
        make_foundry("b")
        store = InMemoryJobProgressStore(ttl_sec=60)
        runner, _, _, _ = runner_factory(progress_store=store)

        summary = runner.run(RecordSelector.all(), job_id="job-1")

        progress = store.get("job-1")
        assert progress.status == "completed"
        assert progress.total == 2
        assert progress.processed == 2
        assert progress.validated == 2
        assert progress.report_path == summary.report_path
        assert len(progress.recent) == 2

    def test_progress_counts_failures_separately(self, make_foundry, runner_factory):
        make_foundry("a")
        make_foundry("b")
        store = InMemoryJobProgressStore(ttl_sec=60)

        def fetch(url):
            if "a.example" in url:
                return FetchResult(base_url=url, success=False, error_kind=FETCH_UNAVAILABLE)
            return _ok_fetch(url)

        runner, _, _, _ = runner_factory(fetch=fetch, progress_store=store)
        runner.run(RecordSelector.all(), job_id="job-3")

        progress = store.get("job-3")
        assert progress.processed == 2
        assert progress.validated == 1
        assert progress.errors == 1

    def test_supplementary_sources_share_one_session(self, make_foundry, runner_factory):
        make_foundry("a")
        make_foundry("b")
        session = MagicMock()
        runner, fetcher, _, _ = runner_factory(session=session)
        seen = []
        runner.use_myfonts = True

        def fake_myfonts(name, session=None):
            seen.append(session)
            return SourceData(source="MyFonts", url="https://www.myfonts.com", error="HTTP 404")

        with patch("src.validation.sources.fetch_myfonts", side_effect=fake_myfonts):
            runner.run(RecordSelector.all())
        runner.close()

        assert seen == [session, session]
        session.close.assert_called_once()
        fetcher.close.assert_called_once()

    def test_unknown_slug_fails_before_run(self, make_foundry, runner_factory):
        make_foundry("a")
        store = InMemoryJobProgressStore(ttl_sec=60)
        runner, fetcher, _, _ = runner_factory(progress_store=store)

        with pytest.raises(NotFoundError):
            runner.run(RecordSelector.slugs(["ghost"]), job_id="job-2")

        fetcher.fetch.assert_not_called()
        assert store.get("job-2").status == "failed"


class TestReportFiles:

    def test_reports_never_overwrite(self, make_foundry, runner_factory, tmp_path):
        make_foundry("a")
        runner, _, _, _ = runner_factory()
        summary = runner.run(RecordSelector.all())
        report = load_report(summary.report_path)

        second = write_report(report, str(tmp_path / "reports"))
        third = write_report(report, str(tmp_path / "reports"))

        assert len({summary.report_path, second, third}) == 3
        assert os.path.basename(second).startswith("validation-report-")
