"""
Page rendering capability.

``PlaywrightRenderer`` drives headless Chromium through the Playwright sync
API. Playwright sync objects are bound to the thread that created them, so
every worker thread lazily launches its own browser and must call
``release_thread()`` before it exits. Each ``render()`` call opens a fresh
page and always closes it.

``StaticRenderer`` fetches HTML with requests and serves environments
without a browser (``--no-browser``) as well as tests.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import sync_playwright

from job_harvester.http_client import HttpClient
from job_harvester.utils.job_links import is_ats_host

logger = logging.getLogger(__name__)

COOKIE_ACCEPT_SELECTORS = [
    "#onetrust-accept-btn-handler",
    "#CybotCookiebotDialogBodyLevelButtonLevelOptinAllowAll",
    "#CybotCookiebotDialogBodyButtonAccept",
    "#CybotCookiebotDialogBodyLevelButtonAccept",
    "#cky-consent-accept",
    ".cky-consent-container .cky-btn-accept",
    ".cmplz-accept",
    ".cc-allow",
    ".cc-accept",
    "#hs-eu-confirmation-button",
    'button[aria-label*="Accept" i][aria-label*="cookie" i]',
    'button[aria-label*="Accept all" i]',
    'button[aria-label*="Allow all" i]',
]

BLOCKED_RESOURCE_TYPES = {"image", "media", "font"}
BLOCKED_HOSTS = (
    "google-analytics.com",
    "googletagmanager.com",
    "doubleclick.net",
    "facebook.net",
    "hotjar.com",
    "segment.io",
)

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-http2",
    "--disable-blink-features=AutomationControlled",
    "--lang=en-US,en",
]


@dataclass
class RenderedPage:
    """
    Result of rendering one URL.

    Attributes:
        url: Requested URL
        final_url: URL after redirects
        html: Main document HTML
        status: HTTP status of the main document, if known
        frames: Child frame URL → HTML for embedded documents
    """

    url: str
    final_url: str
    html: str
    status: Optional[int] = None
    frames: Dict[str, str] = field(default_factory=dict)

    def ats_frames(self) -> Dict[str, str]:
        """Embedded frames served from a known ATS host."""
        return {
            frame_url: html
            for frame_url, html in self.frames.items()
            if is_ats_host(urlparse(frame_url).hostname or "")
        }


class PageRenderer(ABC):
    """Navigate to a URL and return its rendered HTML."""

    @abstractmethod
    def render(self, url: str, wait_until: str = "domcontentloaded", settle_ms: Optional[int] = None) -> RenderedPage:
        """
        Render a page.

        Args:
            url: URL to load
            wait_until: ``domcontentloaded`` (detail pages) or ``networkidle`` (listings)
            settle_ms: Extra wait after navigation, defaults to the renderer's setting

        Returns:
            RenderedPage for the loaded document.
        """

    def release_thread(self) -> None:
        """Free resources owned by the calling thread."""

    def close(self) -> None:
        """Free all resources."""


def _is_blocked(resource_type: str, url: str) -> bool:
    if resource_type in BLOCKED_RESOURCE_TYPES:
        return True
    host = (urlparse(url).hostname or "").lower()
    return any(host == blocked or host.endswith("." + blocked) for blocked in BLOCKED_HOSTS)


class _BrowserSession:
    """Playwright driver, browser and context owned by one thread."""

    def __init__(self, headless: bool, user_agent: str, block_resources: bool):
        self.playwright = sync_playwright().start()
        self.browser = self.playwright.chromium.launch(headless=headless, args=LAUNCH_ARGS)
        self.context = self.browser.new_context(
            user_agent=user_agent,
            viewport={"width": 1920, "height": 1080},
            locale="en-US",
            ignore_https_errors=True,
            extra_http_headers={"Accept-Language": "en-US,en;q=0.9"},
        )
        if block_resources:
            self.context.route("**/*", self._route)

    @staticmethod
    def _route(route) -> None:
        request = route.request
        if _is_blocked(request.resource_type, request.url):
            route.abort()
        else:
            route.continue_()

    def close(self) -> None:
        try:
            self.context.close()
            self.browser.close()
        except PlaywrightError as e:
            logger.debug(f"Browser close failed: {e}")
        finally:
            self.playwright.stop()


class PlaywrightRenderer(PageRenderer):
    """Headless Chromium renderer with one browser per worker thread."""

    def __init__(
        self,
        headless: bool = True,
        page_timeout: int = 30000,
        user_agent: str = "",
        settle_wait: int = 2000,
        block_resources: bool = True,
    ):
        """
        Initialize the renderer. Browsers are launched lazily per thread.

        Args:
            headless: Run Chromium headless
            page_timeout: Navigation timeout in milliseconds
            user_agent: User-Agent for every page
            settle_wait: Default wait after navigation in milliseconds
            block_resources: Abort image/media/font and analytics requests
        """
        self.headless = headless
        self.page_timeout = page_timeout
        self.user_agent = user_agent
        self.settle_wait = settle_wait
        self.block_resources = block_resources
        self._local = threading.local()

    def _session(self) -> _BrowserSession:
        session = getattr(self._local, "session", None)
        if session is None:
            logger.debug(f"Launching browser for thread {threading.current_thread().name}")
            session = _BrowserSession(self.headless, self.user_agent, self.block_resources)
            self._local.session = session
        return session

    def render(self, url: str, wait_until: str = "domcontentloaded", settle_ms: Optional[int] = None) -> RenderedPage:
        page = self._session().context.new_page()
        try:
            response = page.goto(url, wait_until=wait_until, timeout=self.page_timeout)
            wait = self.settle_wait if settle_ms is None else settle_ms
            if wait:
                page.wait_for_timeout(wait)
            self._accept_cookies(page)

            frames: Dict[str, str] = {}
            for frame in page.frames:
                if frame is page.main_frame or not frame.url.startswith("http"):
                    continue
                try:
                    frames[frame.url] = frame.content()
                except PlaywrightError as e:
                    logger.debug(f"Could not read frame {frame.url}: {e}")

            return RenderedPage(
                url=url,
                final_url=page.url,
                html=page.content(),
                status=response.status if response else None,
                frames=frames,
            )
        finally:
            page.close()

    @staticmethod
    def _accept_cookies(page) -> None:
        for selector in COOKIE_ACCEPT_SELECTORS:
            try:
                button = page.query_selector(selector)
                if button and button.is_visible():
                    button.click(timeout=1000)
                    page.wait_for_timeout(500)
            except PlaywrightError:
                continue

    def release_thread(self) -> None:
        session = getattr(self._local, "session", None)
        if session is not None:
            session.close()
            self._local.session = None

    def close(self) -> None:
        self.release_thread()


class StaticRenderer(PageRenderer):
    """
    Renderer that fetches raw HTML over HTTP.

    Iframes pointing at ATS hosts are fetched too, so embedded job boards
    are visible the same way they are in a browser.
    """

    def __init__(self, client: Optional[HttpClient] = None, max_frames: int = 3):
        self.client = client or HttpClient()
        self.max_frames = max_frames

    def render(self, url: str, wait_until: str = "domcontentloaded", settle_ms: Optional[int] = None) -> RenderedPage:
        resp = self.client.get(url)
        final_url = resp.url or url
        html = resp.text or ""

        frames: Dict[str, str] = {}
        for frame_url in self._ats_iframe_urls(html, final_url)[: self.max_frames]:
            frame_resp = self.client.get(frame_url)
            if frame_resp.ok:
                frames[frame_url] = frame_resp.text

        return RenderedPage(url=url, final_url=final_url, html=html, status=resp.status_code, frames=frames)

    @staticmethod
    def _ats_iframe_urls(html: str, base_url: str) -> List[str]:
        soup = BeautifulSoup(html, "html.parser")
        urls = []
        for iframe in soup.find_all("iframe", src=True):
            src = urljoin(base_url, iframe["src"])
            if is_ats_host(urlparse(src).hostname or ""):
                urls.append(src)
        return urls

    def close(self) -> None:
        self.client.close()


def create_renderer(config, client: Optional[HttpClient] = None) -> PageRenderer:
    """
    Build the renderer the configuration asks for.

    Args:
        config: HarvesterConfig
        client: HTTP client for the static renderer

    Returns:
        PlaywrightRenderer, or StaticRenderer when the browser is disabled.
    """
    crawler = config.crawler
    if not crawler.use_browser:
        logger.info("Browser disabled, fetching pages over plain HTTP")
        return StaticRenderer(client or HttpClient(timeout=crawler.page_timeout / 1000, user_agent=crawler.user_agent))
    return PlaywrightRenderer(
        headless=crawler.headless,
        page_timeout=crawler.page_timeout,
        user_agent=crawler.user_agent,
        settle_wait=crawler.settle_wait,
    )
