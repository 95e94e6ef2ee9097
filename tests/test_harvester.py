"""Tests for Stage 2 link harvesting."""

from typing import Dict, List
from unittest.mock import Mock

import pytest

from conftest import FakeRenderer
from job_harvester.exceptions import ConfigurationError, ProviderApiError
from job_harvester.models import LinkReport
from job_harvester.providers.base import JobBoardProvider, LinkCollection
from job_harvester.providers.greenhouse import GreenhouseProvider
from job_harvester.providers.registry import ProviderRegistry
from job_harvester.stages.harvester import LinkHarvestStage
from job_harvester.storage.checkpoint import load_report
from job_harvester.storage.ledger import JOB_COLUMNS, SEARCH_RESULT_COLUMNS, Ledger
from job_harvester.storage.runs import links_run, search_run

SEARCH_ID = "111111"
LINKS_ID = "222222"

ACME = "https://acme.com/careers"
GLOBEX = "https://globex.com/careers"
INITECH = "https://initech.com/careers"


class CannedProvider(JobBoardProvider):
    """Returns preset links (or raises) per source page."""

    provider_id = "generic"

    def __init__(self, links: Dict[str, object]):
        self.links = links
        self.calls: List[str] = []

    def matches(self, url):
        return True

    def collect_links(self, url):
        self.calls.append(url)
        outcome = self.links.get(url, [])
        if isinstance(outcome, Exception):
            raise outcome
        return LinkCollection(
            provider_id=self.provider_id,
            job_urls=list(outcome),
            job_metadata={u: {"boardToken": "acme"} for u in outcome if "greenhouse" in u},
        )


def _seed_search_run(config, urls, status="pending"):
    ledger = Ledger(search_run(config.output.dir, SEARCH_ID).ensure().ledger_path, SEARCH_RESULT_COLUMNS)
    ledger.append({"URL": url, "STATUS": status, "JOB_COUNT": "0"} for url in urls)
    return ledger


def _stage(config, provider, renderer=None):
    return LinkHarvestStage(config, ProviderRegistry([], provider), renderer)


class TestLinkHarvestStage:
    """Source page processing and ledger bookkeeping."""

    def test_links_recorded_and_upstream_marked_done(self, make_config):
        config = make_config()
        upstream = _seed_search_run(config, [ACME, GLOBEX])
        provider = CannedProvider(
            {
                ACME: ["https://boards.greenhouse.io/acme/jobs/1111111", "https://boards.greenhouse.io/acme/jobs/2222222"],
                GLOBEX: ["https://globex.com/jobs/3333333"],
            }
        )
        renderer = FakeRenderer()

        stats = _stage(config, provider, renderer).run(SEARCH_ID, LINKS_ID)

        assert stats["pages_succeeded"] == 2
        assert stats["new_links"] == 3
        rows = {row["URL"]: row for row in upstream.read()}
        assert rows[ACME]["STATUS"] == "done"
        assert rows[ACME]["JOB_COUNT"] == "2"

        jobs = Ledger(links_run(config.output.dir, LINKS_ID).ledger_path, JOB_COLUMNS).read()
        by_url = {row["URL"]: row for row in jobs}
        assert set(by_url) == {
            "https://boards.greenhouse.io/acme/jobs/1111111",
            "https://boards.greenhouse.io/acme/jobs/2222222",
            "https://globex.com/jobs/3333333",
        }
        assert by_url["https://globex.com/jobs/3333333"]["REMARKS"] == ""
        assert by_url["https://boards.greenhouse.io/acme/jobs/1111111"]["REMARKS"] == '{"boardToken": "acme"}'
        assert all(row["STATUS"] == "pending" and row["RETRY_COUNT"] == "0" for row in jobs)
        assert renderer.released == config.crawler.concurrency

        report = load_report(links_run(config.output.dir, LINKS_ID).report_path, LinkReport)
        assert report.link_extraction_report[ACME].links_found == 2
        assert report.link_extraction_report[ACME].status is True

    def test_duplicates_skipped_across_sources(self, make_config):
        config = make_config()
        _seed_search_run(config, [ACME, GLOBEX])
        provider = CannedProvider(
            {
                ACME: ["https://acme.com/us/jobs/eng/7176975"],
                GLOBEX: ["https://acme.com/gb/jobs/eng/7176975"],
            }
        )

        stats = _stage(config, provider).run(SEARCH_ID, LINKS_ID)

        assert stats["new_links"] == 1
        assert stats["duplicates_skipped"] == 1

    def test_duplicates_skipped_across_invocations(self, make_config):
        config = make_config()
        _seed_search_run(config, [ACME])
        provider = CannedProvider({ACME: ["https://acme.com/jobs/7176975"]})
        _stage(config, provider).run(SEARCH_ID, LINKS_ID)

        stats = _stage(config, provider).run(SEARCH_ID, LINKS_ID, force=True)

        assert stats["new_links"] == 0
        assert stats["duplicates_skipped"] == 1
        jobs = Ledger(links_run(config.output.dir, LINKS_ID).ledger_path, JOB_COLUMNS).read()
        assert len(jobs) == 1

    def test_links_normalized_by_matching_provider(self, make_config):
        """Test links found on a careers page lose the ATS tracking params."""
        config = make_config()
        _seed_search_run(config, [ACME])
        job_url = "https://boards.greenhouse.io/acme/jobs/4012345"
        fallback = CannedProvider({ACME: [f"{job_url}?gh_src=abc123", f"{job_url}?utm_source=x"]})
        registry = ProviderRegistry([GreenhouseProvider(Mock())], fallback)

        stats = LinkHarvestStage(config, registry, None).run(SEARCH_ID, LINKS_ID)

        assert stats["new_links"] == 1
        assert stats["duplicates_skipped"] == 1
        jobs = Ledger(links_run(config.output.dir, LINKS_ID).ledger_path, JOB_COLUMNS).read()
        assert [row["URL"] for row in jobs] == [job_url]
        assert jobs[0]["REMARKS"] == '{"boardToken": "acme"}'

        report = load_report(links_run(config.output.dir, LINKS_ID).report_path, LinkReport)
        assert list(report.link_extraction_report[ACME].job_metadata) == [job_url]

    def test_done_sources_skipped_without_force(self, make_config):
        config = make_config()
        _seed_search_run(config, [ACME])
        provider = CannedProvider({ACME: ["https://acme.com/jobs/7176975"]})
        _stage(config, provider).run(SEARCH_ID, LINKS_ID)

        stats = _stage(config, provider).run(SEARCH_ID, LINKS_ID)

        assert stats["source_pages"] == 0
        assert provider.calls == [ACME]

    def test_failure_marks_upstream_failed(self, make_config):
        config = make_config()
        upstream = _seed_search_run(config, [ACME, INITECH])
        error = ProviderApiError("Unable to derive Lever company slug from URL", diagnostics={"attemptCount": 0})
        provider = CannedProvider({ACME: ["https://acme.com/jobs/7176975"], INITECH: error})

        stats = _stage(config, provider).run(SEARCH_ID, LINKS_ID)

        assert stats["pages_failed"] == 1
        rows = {row["URL"]: row for row in upstream.read()}
        assert rows[INITECH]["STATUS"] == "failed"
        assert rows[INITECH]["JOB_COUNT"] == "0"
        report = load_report(links_run(config.output.dir, LINKS_ID).report_path, LinkReport)
        entry = report.link_extraction_report[INITECH]
        assert entry.status is False
        assert entry.error == "Unable to derive Lever company slug from URL"
        assert entry.diagnostics == {"attemptCount": 0}

    def test_failed_sources_retried(self, make_config):
        config = make_config()
        _seed_search_run(config, [ACME], status="failed")
        provider = CannedProvider({ACME: ["https://acme.com/jobs/7176975"]})
        stats = _stage(config, provider).run(SEARCH_ID, LINKS_ID)
        assert provider.calls == [ACME]
        assert stats["pages_succeeded"] == 1

    def test_latest_upstream_run_used(self, make_config):
        config = make_config()
        _seed_search_run(config, [ACME])
        stats = _stage(config, CannedProvider({})).run(None, LINKS_ID)
        assert stats["upstream_run_id"] == SEARCH_ID

    def test_missing_upstream_run(self, make_config):
        config = make_config()
        with pytest.raises(ConfigurationError):
            _stage(config, CannedProvider({})).run("999999", LINKS_ID)
