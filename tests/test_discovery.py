"""Tests for Stage 1 search discovery."""

import pytest

from conftest import FakeSearchProvider
from job_harvester.exceptions import TerminalProviderError
from job_harvester.models import ErrorDetail, PageRecord, SearchReport
from job_harvester.stages.discovery import DiscoveryStage, find_start_page
from job_harvester.storage.checkpoint import load_report, save_report
from job_harvester.storage.ledger import SEARCH_RESULT_COLUMNS, Ledger
from job_harvester.storage.runs import search_run

RUN_ID = "123456"


def _urls(start, count):
    return [f"https://company-{chr(ord('a') + i)}.example.com/careers" for i in range(start, start + count)]


def _report(config):
    return load_report(search_run(config.output.dir, RUN_ID).report_path, SearchReport)


def _ledger(config):
    return Ledger(search_run(config.output.dir, RUN_ID).ledger_path, SEARCH_RESULT_COLUMNS)


class TestFindStartPage:
    """Resume point selection."""

    def test_empty_report_starts_at_one(self):
        assert find_start_page([], 5) == 1

    def test_first_unsettled_page(self):
        pages = [PageRecord(page=1, status=True), PageRecord(page=2, status=False), PageRecord(page=3, status=False)]
        assert find_start_page(pages, 5) == 2

    def test_continues_after_last_settled(self):
        pages = [PageRecord(page=1, status=True), PageRecord(page=2, status=True)]
        assert find_start_page(pages, 5) == 3

    def test_complete(self):
        pages = [PageRecord(page=1, status=True), PageRecord(page=2, status=True)]
        assert find_start_page(pages, 2) is None


class TestDiscoveryStage:
    """Paging, checkpointing and retry caps."""

    def test_two_pages_with_cross_page_duplicates(self, make_config):
        """Test 10 + 10 results with 3 repeats yield 17 ledger rows."""
        config = make_config(max_pages=2)
        page_one = _urls(0, 10)
        page_two = page_one[:3] + _urls(10, 7)
        provider = FakeSearchProvider({1: page_one, 2: page_two, 3: []})

        stats = DiscoveryStage(config, provider).run("software engineer careers", run_id=RUN_ID)

        rows = _ledger(config).read()
        assert len(rows) == 17
        assert all(row["STATUS"] == "pending" and row["JOB_COUNT"] == "0" for row in rows)
        assert stats["total_found"] == 20
        assert stats["new_urls"] == 17
        assert stats["duplicates_skipped"] == 3
        assert provider.calls == [1, 2]

        report = _report(config)
        assert [(p.page, p.status, p.retry_count) for p in report.google_report] == [(1, True, 0), (2, True, 0)]

    def test_pages_argument_overrides_config(self, make_config):
        config = make_config(max_pages=10)
        provider = FakeSearchProvider({1: _urls(0, 2), 2: _urls(2, 2), 3: _urls(4, 2)})
        DiscoveryStage(config, provider).run("q", run_id=RUN_ID, pages=2)
        assert provider.calls == [1, 2]

    def test_provider_page_cap(self, make_config):
        config = make_config(max_pages=10)
        provider = FakeSearchProvider({1: _urls(0, 1), 2: _urls(1, 1), 3: _urls(2, 1)}, max_pages=2)
        DiscoveryStage(config, provider).run("q", run_id=RUN_ID)
        assert provider.calls == [1, 2]

    def test_empty_page_stops_pagination(self, make_config):
        config = make_config(max_pages=5)
        provider = FakeSearchProvider({1: _urls(0, 3)})

        stats = DiscoveryStage(config, provider).run("q", run_id=RUN_ID)

        assert provider.calls == [1, 2]
        assert stats["pages_fetched"] == 2
        assert [p.status for p in _report(config).google_report] == [True, True]

    def test_complete_run_makes_no_calls(self, make_config):
        config = make_config(max_pages=2)
        DiscoveryStage(config, FakeSearchProvider({1: _urls(0, 2), 2: _urls(2, 2)})).run("q", run_id=RUN_ID)

        provider = FakeSearchProvider({1: _urls(5, 2)})
        stats = DiscoveryStage(config, provider).run("q", run_id=RUN_ID)

        assert provider.calls == []
        assert stats["new_urls"] == 0
        assert len(_ledger(config).read()) == 4

    def test_failed_page_recorded_and_run_continues(self, make_config):
        config = make_config(max_pages=2)
        provider = FakeSearchProvider({1: RuntimeError("boom"), 2: _urls(0, 2)})

        stats = DiscoveryStage(config, provider).run("q", run_id=RUN_ID)

        pages = _report(config).google_report
        assert pages[0].status is False
        assert pages[0].error.message == "boom"
        assert pages[1].status is True
        assert stats["new_urls"] == 2

    def test_failed_page_resumed_next_invocation(self, make_config):
        config = make_config(max_pages=2)
        DiscoveryStage(config, FakeSearchProvider({1: RuntimeError("boom"), 2: _urls(0, 2)})).run("q", run_id=RUN_ID)

        provider = FakeSearchProvider({1: _urls(2, 2), 2: _urls(0, 2)})
        DiscoveryStage(config, provider).run("q", run_id=RUN_ID)

        assert provider.calls[0] == 1
        page_one = _report(config).google_report[0]
        assert page_one.status is True
        assert page_one.retry_count == 1
        assert page_one.error is None

    def test_retry_cap_halts_with_error_kept(self, make_config):
        config = make_config(max_pages=2)
        paths = search_run(config.output.dir, RUN_ID).ensure()
        save_report(
            paths.report_path,
            SearchReport(
                google_report=[PageRecord(page=1, status=False, retry_count=3, error=ErrorDetail(message="HTTP 500"))]
            ),
        )
        provider = FakeSearchProvider({1: _urls(0, 2)})

        stats = DiscoveryStage(config, provider).run("q", run_id=RUN_ID)

        assert stats["halted"] is True
        assert provider.calls == []
        page = _report(config).google_report[0]
        assert page.retry_count == 3
        assert page.error.message == "HTTP 500"

    def test_terminal_error_reverts_attempt(self, make_config):
        config = make_config(max_pages=2)
        paths = search_run(config.output.dir, RUN_ID).ensure()
        save_report(paths.report_path, SearchReport(google_report=[PageRecord(page=1, status=False, retry_count=1)]))
        provider = FakeSearchProvider({1: TerminalProviderError("Google API quota exceeded or invalid credentials")})

        with pytest.raises(TerminalProviderError):
            DiscoveryStage(config, provider).run("q", run_id=RUN_ID)

        page = _report(config).google_report[0]
        assert page.retry_count == 1
        assert page.status is False
        assert "quota" in page.error.message

    def test_clean_refetches_without_duplicating_rows(self, make_config):
        config = make_config(max_pages=1)
        DiscoveryStage(config, FakeSearchProvider({1: _urls(0, 3)})).run("q", run_id=RUN_ID)

        provider = FakeSearchProvider({1: _urls(0, 3)})
        stats = DiscoveryStage(config, provider).run("q", run_id=RUN_ID, clean=True)

        assert provider.calls == [1]
        assert stats["duplicates_skipped"] == 3
        assert len(_ledger(config).read()) == 3

    def test_generates_run_id(self, make_config):
        config = make_config(max_pages=1)
        stats = DiscoveryStage(config, FakeSearchProvider({1: _urls(0, 1)})).run("q")
        assert len(stats["run_id"]) == 6
        assert stats["run_id"].isdigit()
