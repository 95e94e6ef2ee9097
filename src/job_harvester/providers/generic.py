"""
Generic browser-driven provider for careers pages without a known API.

The page is rendered with ``networkidle`` so client-side job lists load.
When a Greenhouse embed iframe is present, links are read from the frame
instead of the host page.
"""

import logging
from typing import List, Optional, Sequence

from job_harvester.browser import PageRenderer, RenderedPage
from job_harvester.config import DEFAULT_JOB_LINK_SELECTORS
from job_harvester.providers.base import JobBoardProvider, LinkCollection
from job_harvester.utils.job_links import extract_job_links
from job_harvester.utils.retry import RetryPolicy

logger = logging.getLogger(__name__)


class GenericProvider(JobBoardProvider):
    """Fallback provider: render the page and harvest job-detail anchors."""

    provider_id = "generic"

    def __init__(
        self,
        renderer: PageRenderer,
        selectors: Optional[Sequence[str]] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.renderer = renderer
        self.selectors = list(selectors or DEFAULT_JOB_LINK_SELECTORS)
        self.retry_policy = retry_policy or RetryPolicy(exponential=False)

    def matches(self, url: str) -> bool:
        return True

    def collect_links(self, url: str) -> LinkCollection:
        page = self.retry_policy.call(
            lambda: self.renderer.render(url, wait_until="networkidle"),
            description=f"rendering {url}",
        )
        return self.links_from_page(page)

    def links_from_page(self, page: RenderedPage) -> LinkCollection:
        """Extract job links from an already rendered page."""
        frames = {frame_url: html for frame_url, html in page.ats_frames().items() if "greenhouse" in frame_url}

        links: List[str] = []
        if frames:
            source = "iframe"
            for frame_url, html in frames.items():
                links.extend(u for u in extract_job_links(html, frame_url, self.selectors) if u not in links)
        else:
            source = "page"
            links = extract_job_links(page.html, page.final_url or page.url, self.selectors)

        logger.debug(f"Found {len(links)} job links on {page.url} ({source})")
        return LinkCollection(
            provider_id=self.provider_id,
            job_urls=links,
            diagnostics={"source": source, "finalUrl": page.final_url, "status": page.status},
        )
