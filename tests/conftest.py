"""Shared fixtures: temp directories, configs and fakes for network/browser."""

import tempfile
from typing import Dict, List, Optional
from unittest.mock import Mock

import pytest

from job_harvester.browser import PageRenderer, RenderedPage
from job_harvester.config import CrawlerSettings, HarvesterConfig, OutputSettings, RetrySettings
from job_harvester.models import SearchResult
from job_harvester.search.base import SearchProvider


class FakeRenderer(PageRenderer):
    """Serves canned HTML per URL and records every render call."""

    def __init__(self, pages: Optional[Dict[str, str]] = None, frames: Optional[Dict[str, Dict[str, str]]] = None):
        self.pages = dict(pages or {})
        self.frames = dict(frames or {})
        self.calls: List[str] = []
        self.released = 0

    def render(self, url, wait_until="domcontentloaded", settle_ms=None):
        self.calls.append(url)
        if url not in self.pages:
            raise RuntimeError(f"net::ERR_NAME_NOT_RESOLVED at {url}")
        return RenderedPage(
            url=url, final_url=url, html=self.pages[url], status=200, frames=self.frames.get(url, {})
        )

    def release_thread(self):
        self.released += 1


class FakeSearchProvider(SearchProvider):
    """Search provider backed by a page → results (or exception) table."""

    name = "google"

    def __init__(self, pages: Optional[Dict[int, object]] = None, max_pages: Optional[int] = 10):
        self.pages = dict(pages or {})
        self._max_pages = max_pages
        self.calls: List[int] = []

    @property
    def display_name(self):
        return "Fake Search"

    @property
    def max_pages(self):
        return self._max_pages

    def validate_config(self):
        return True, None

    def search(self, query, page):
        self.calls.append(page)
        outcome = self.pages.get(page, [])
        if isinstance(outcome, Exception):
            raise outcome
        return [SearchResult(url=url) for url in outcome]


def json_response(data, status_code=200, reason="OK"):
    """Mock requests.Response returning ``data`` from ``.json()``."""
    resp = Mock()
    resp.status_code = status_code
    resp.reason = reason
    resp.json.return_value = data
    resp.text = ""
    return resp


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def make_config(temp_dir):
    """Build a HarvesterConfig writing into the temp directory."""

    def _make(**crawler) -> HarvesterConfig:
        crawler_settings = {"concurrency": 2, "max_pages": 10}
        crawler_settings.update(crawler)
        return HarvesterConfig(
            crawler=CrawlerSettings(**crawler_settings),
            retry=RetrySettings(max_retries=1, retry_delay=0, max_retry_count=3),
            output=OutputSettings(dir=temp_dir),
        )

    return _make


@pytest.fixture
def fake_renderer():
    return FakeRenderer()
