"""
Layered detail extraction.

Layers run in order until one produces a record that passes the
validation gate:

1. Provider API (when the URL resolves to a provider context with an endpoint)
2. Structured data on the rendered page (JSON-LD, Greenhouse remix state)
3. Heuristic DOM analysis

Rejection reasons from every layer are collected. When all layers fail
and the page links to several job postings, it is reported as a listing
page so the caller can expand it instead.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from job_harvester.browser import PageRenderer, RenderedPage
from job_harvester.exceptions import ContentValidationError, ProviderApiError
from job_harvester.extractors.dom_analysis import analyze_dom
from job_harvester.extractors.structured_data import extract_structured_data
from job_harvester.extractors.validation import validate_record
from job_harvester.models import JobRecord, ProviderContext
from job_harvester.providers.base import JobBoardProvider
from job_harvester.utils.job_links import extract_job_links
from job_harvester.utils.retry import is_retryable

logger = logging.getLogger(__name__)

MIN_LISTING_LINKS = 2


@dataclass
class ExtractionOutcome:
    """
    Result of running the extraction layers on one URL.

    Exactly one of ``record`` and ``listing_links`` is set.
    """

    url: str
    record: Optional[JobRecord] = None
    listing_links: List[str] = field(default_factory=list)
    reasons: List[str] = field(default_factory=list)
    diagnostics: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_listing(self) -> bool:
        return self.record is None and bool(self.listing_links)


class DetailExtractor:
    """Run the extraction layers for a job URL."""

    def __init__(self, renderer: PageRenderer, selectors: Optional[Sequence[str]] = None):
        self.renderer = renderer
        self.selectors = list(selectors or [])

    def extract(
        self,
        url: str,
        provider: Optional[JobBoardProvider] = None,
        context: Optional[ProviderContext] = None,
    ) -> ExtractionOutcome:
        """
        Extract a validated job record.

        Args:
            url: Job posting URL
            provider: Provider resolved for the URL, if any
            context: Provider context prepared for the URL

        Returns:
            ExtractionOutcome holding a record or, for listing pages, the
            job links found on the page.

        Raises:
            ContentValidationError: Every layer was rejected and the page is
                not a listing.
            Exception: Retryable failures (timeouts, 429/5xx API answers)
                propagate so the caller's retry policy can handle them.
        """
        outcome = ExtractionOutcome(url=url)

        if provider is not None and provider.supports_detail and context is not None:
            record = self._provider_layer(provider, context, outcome)
            if record is not None:
                outcome.record = record
                return outcome

        page = self.renderer.render(url, wait_until="domcontentloaded")
        html, base_url = self._detail_document(page, outcome)

        for layer_name, layer in (("Structured data", extract_structured_data), ("Intelligent analysis", analyze_dom)):
            candidate = layer(html, url)
            if candidate is None:
                outcome.reasons.append(
                    "No structured data found"
                    if layer is extract_structured_data
                    else "Intelligent analysis returned no data (likely error page)"
                )
                continue
            validation = validate_record(candidate)
            if validation.valid:
                outcome.record = candidate
                return outcome
            outcome.reasons.append(f"{layer_name} validation failed: {validation.reason}")

        links = [link for link in extract_job_links(html, base_url, self.selectors) if link != url]
        if len(links) >= MIN_LISTING_LINKS:
            logger.info(f"{url} looks like a listing page with {len(links)} job links")
            outcome.listing_links = links
            outcome.diagnostics["listingLinks"] = len(links)
            return outcome

        raise ContentValidationError(outcome.reasons)

    def _provider_layer(
        self, provider: JobBoardProvider, context: ProviderContext, outcome: ExtractionOutcome
    ) -> Optional[JobRecord]:
        label = f"{provider.provider_id} API"
        try:
            result = provider.fetch_detail(context)
        except ProviderApiError as e:
            outcome.diagnostics.update(e.diagnostics)
            if is_retryable(e):
                raise
            outcome.reasons.append(f"{label} failed: {e}")
            return None

        outcome.diagnostics.update(result.diagnostics)
        if result.record is None:
            outcome.reasons.append(f"{label} returned no job: {result.diagnostics.get('error', 'unknown')}")
            return None

        validation = validate_record(result.record)
        if not validation.valid:
            outcome.reasons.append(f"{label} validation failed: {validation.reason}")
            return None
        return result.record

    @staticmethod
    def _detail_document(page: RenderedPage, outcome: ExtractionOutcome):
        """Pick the embedded ATS frame when the page hosts one, else the page itself."""
        outcome.diagnostics["httpStatus"] = page.status
        for frame_url, frame_html in page.ats_frames().items():
            if frame_html:
                logger.info(f"Detected iframe job board: {frame_url[:80]}")
                outcome.diagnostics["iframe"] = frame_url
                return frame_html, frame_url
        return page.html, page.final_url or page.url
