"""
Lever provider.

Uses the public postings API (``jobs.lever.co/v0/postings``). The company
slug is the first path segment on ``jobs.lever.co``, the subdomain of a
``<slug>.lever.co`` host, or mined from a careers page that embeds Lever.
"""

import logging
import re
import time
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import requests
from bs4 import BeautifulSoup

from job_harvester.exceptions import ProviderApiError
from job_harvester.http_client import HttpClient
from job_harvester.models import DetailReport, DetailStrategy, JobRecord, LinkReport, ProviderContext
from job_harvester.providers.api_collector import run_api_collector
from job_harvester.providers.base import DetailResult, JobBoardProvider, LinkCollection, fetch_api_json
from job_harvester.providers.token_cache import TokenCache
from job_harvester.utils.text import html_to_text, normalize_whitespace
from job_harvester.utils.url_utils import get_hostname, host_matches, normalize_url, strip_query_params

logger = logging.getLogger(__name__)

API_BASE = "https://jobs.lever.co/v0/postings"
PAGE_SIZE = 50
MAX_PAGES = 20
DEFAULT_TIMEOUT = 45.0

SHARED_HOSTS = ("jobs.lever.co", "apply.lever.co")
TRACKING_PARAMS = ("lever-source", "utm_source", "utm_medium", "utm_campaign")
NON_POSTING_SEGMENTS = {"apply", "jobs", "job", "opportunities"}

SLUG_PATTERNS = [
    re.compile(r"data-lever-(?:domain|job-board)=[\"']([^\"']+)[\"']"),
    re.compile(r"lever\.co/v0/postings/(\w[\w-]+)"),
    re.compile(r"accountName\s*[:=]\s*['\"](\w[\w-]+)['\"]"),
]


def parse_company_slug(url: str) -> Optional[str]:
    """Read the company slug from a Lever URL."""
    host = get_hostname(url)
    if host in SHARED_HOSTS:
        segments = [s for s in urlparse(url).path.split("/") if s]
        return segments[0] if segments else None
    if host.endswith(".lever.co"):
        subdomain = host[: -len(".lever.co")]
        if subdomain and subdomain not in ("api", "www"):
            return subdomain
    return None


def parse_posting_id(url: str) -> Optional[str]:
    """Return the last path segment that is a posting id, not a route word."""
    segments = [s for s in urlparse(url).path.split("/") if s]
    if get_hostname(url) in SHARED_HOSTS:
        segments = segments[1:]
    for segment in reversed(segments):
        if segment.lower() not in NON_POSTING_SEGMENTS:
            return segment
    return None


def find_company_slug(html: str) -> Optional[str]:
    """Mine a Lever company slug from careers page HTML."""
    if not html:
        return None

    soup = BeautifulSoup(html, "html.parser")
    for script in soup.find_all("script", src=True):
        src = script["src"]
        if "lever.co" not in src:
            continue
        slug = parse_company_slug(src)
        if slug:
            return slug
        match = re.search(r"postings/(\w[\w-]+)", src)
        if match:
            return match.group(1)

    for pattern in SLUG_PATTERNS:
        match = pattern.search(html)
        if match:
            value = match.group(1)
            # data-lever-domain may hold a full board URL
            return parse_company_slug(value) or value.strip("/")
    return None


class LeverProvider(JobBoardProvider):
    """Lever-hosted job boards."""

    provider_id = "lever"

    def __init__(
        self,
        client: Optional[HttpClient] = None,
        token_cache: Optional[TokenCache] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.client = client or HttpClient(timeout=timeout)
        self.token_cache = token_cache or TokenCache()
        self.timeout = timeout

    def matches(self, url: str) -> bool:
        return host_matches(get_hostname(url), "lever.co")

    def normalize(self, url: str) -> str:
        if self.matches(url):
            return strip_query_params(url, TRACKING_PARAMS)
        return url

    def discover_slug(self, url: str, use_cache: bool = True) -> Optional[str]:
        """Find the company slug for a careers page, fetching its HTML if needed."""
        if use_cache:
            cached = self.token_cache.get(self.provider_id, url, SHARED_HOSTS)
            if cached:
                return cached

        try:
            html = self.client.get_text(url, headers={"Accept": "text/html"}, timeout=self.timeout)
        except requests.RequestException as e:
            logger.debug(f"Could not fetch {url} for Lever slug discovery: {e}")
            return None

        slug = find_company_slug(html)
        if slug:
            self.token_cache.put(self.provider_id, url, slug, SHARED_HOSTS)
        return slug

    def _context(self, url: str, slug: str, source: str) -> ProviderContext:
        return ProviderContext(
            provider_id=self.provider_id,
            url=url,
            listing_key=slug,
            endpoint=f"{API_BASE}/{slug}",
            source=source,
        )

    def collect_links(self, url: str) -> LinkCollection:
        contexts: List[ProviderContext] = []
        slug = parse_company_slug(url)
        if slug:
            contexts.append(self._context(url, slug, "url-path"))

        cached = self.token_cache.get(self.provider_id, url, SHARED_HOSTS)
        if cached:
            contexts.append(self._context(url, cached, "cache"))

        if not contexts:
            discovered = self.discover_slug(url, use_cache=False)
            if discovered:
                contexts.append(self._context(url, discovered, "html"))

        try:
            return run_api_collector(
                self.provider_id,
                contexts,
                self._fetch_listings,
                handle_retry=self._handle_retry,
                normalize=self.normalize,
            )
        except ProviderApiError as e:
            if str(e) == "no-initial-context":
                message = "Unable to derive Lever company slug from URL"
                raise ProviderApiError(message, diagnostics={**e.diagnostics, "error": message}) from e
            raise

    def _handle_retry(self, context: ProviderContext, error: Exception) -> List[ProviderContext]:
        if not (isinstance(error, ProviderApiError) and error.not_found):
            return []
        slug = self.discover_slug(context.url, use_cache=False)
        if slug and slug != context.listing_key:
            return [self._context(context.url, slug, "html-refresh")]
        return []

    def _fetch_listings(self, context: ProviderContext) -> LinkCollection:
        slug = context.listing_key
        endpoint = f"{API_BASE}/{slug}"
        urls: List[str] = []
        metadata: Dict[str, Dict[str, Any]] = {}
        seen = set()
        pages = 0

        for page in range(MAX_PAGES):
            postings = fetch_api_json(
                self.client,
                endpoint,
                "Lever",
                params={"mode": "json", "limit": PAGE_SIZE, "skip": page * PAGE_SIZE},
                timeout=self.timeout,
                diagnostics={"companySlug": slug, "page": page + 1},
            )
            if not isinstance(postings, list):
                postings = []
            pages += 1

            for posting in postings:
                posting_id = posting.get("id")
                candidate = (
                    posting.get("hostedUrl")
                    or posting.get("applyUrl")
                    or (f"https://jobs.lever.co/{slug}/{posting_id}" if posting_id else None)
                )
                if not candidate:
                    continue
                normalized = self.normalize(candidate)
                if normalized in seen:
                    continue
                seen.add(normalized)
                urls.append(normalized)
                metadata[normalized] = {"companySlug": slug, "postingId": posting_id}

            if len(postings) < PAGE_SIZE:
                break

        self.token_cache.put(self.provider_id, context.url, slug, SHARED_HOSTS)
        return LinkCollection(
            provider_id=self.provider_id,
            job_urls=urls,
            job_metadata=metadata,
            diagnostics={"companySlug": slug, "pages": pages, "totalPostings": len(urls)},
            api=endpoint,
        )

    def prepare_context(
        self,
        url: str,
        remarks: Optional[Dict[str, Any]] = None,
        link_report: Optional[LinkReport] = None,
        detail_report: Optional[DetailReport] = None,
    ) -> ProviderContext:
        remarks = remarks or {}
        url_slug = parse_company_slug(url)
        slug = url_slug or remarks.get("companySlug")
        posting_id = (parse_posting_id(url) if url_slug else None) or remarks.get("postingId")
        source = "url" if url_slug else "remarks"

        if (not slug or not posting_id) and link_report is not None:
            lookups = {url, self.normalize(url), normalize_url(url)}
            for entry in link_report.link_extraction_report.values():
                meta = next((entry.job_metadata[u] for u in lookups if u in entry.job_metadata), None)
                if meta:
                    slug = slug or meta.get("companySlug")
                    posting_id = posting_id or meta.get("postingId")
                    source = "link-report"
                    break

        if not slug:
            cached = self.token_cache.get(self.provider_id, url, SHARED_HOSTS)
            if cached:
                slug, source = cached, "cache"

        endpoint = f"{API_BASE}/{slug}/{posting_id}" if slug and posting_id else None
        return ProviderContext(
            provider_id=self.provider_id,
            url=url,
            listing_key=slug,
            posting_id=posting_id,
            endpoint=endpoint,
            source=source,
        )

    def fetch_detail(self, context: ProviderContext) -> DetailResult:
        diagnostics: Dict[str, Any] = {
            "companySlug": context.listing_key,
            "postingId": context.posting_id,
            "endpoint": context.endpoint,
        }
        if not context.endpoint:
            diagnostics["error"] = "missing-posting-id" if context.listing_key else "missing-company-slug"
            return DetailResult(None, diagnostics)

        started = time.monotonic()
        data = fetch_api_json(
            self.client, context.endpoint, "Lever", params={"mode": "json"}, timeout=self.timeout, diagnostics=diagnostics
        )
        diagnostics["status"] = 200
        diagnostics["durationMs"] = int((time.monotonic() - started) * 1000)

        categories = data.get("categories") or {}
        title = normalize_whitespace(data.get("text") or data.get("title"))
        location = (
            normalize_whitespace(categories.get("location") or data.get("workLocation"))
            or normalize_whitespace(", ".join(categories.get("allLocations") or []))
            or "Remote / Multiple"
        )

        description = html_to_text(data.get("description")) if data.get("description") else ""
        if not description:
            description = normalize_whitespace(data.get("descriptionPlain") or data.get("descriptionText"))

        sections = []
        for name in ("opening", "descriptionBody"):
            if data.get(name):
                sections.append(html_to_text(data[name]))
        skills: List[str] = []
        for item in data.get("lists") or []:
            heading = normalize_whitespace(item.get("text"))
            body = html_to_text(item.get("content"))
            if heading and body:
                sections.append(f"{heading}:\n{body}")
            if re.search(r"skill|requirement|qualification", heading, re.IGNORECASE):
                skills.extend(line.lstrip("* ").strip() for line in body.splitlines() if line.strip())
        if data.get("additional"):
            sections.append(html_to_text(data["additional"]))

        extra = [s for s in sections if s and s not in description]
        if extra:
            description = "\n\n".join([description] + extra) if description else "\n\n".join(extra)
        diagnostics["descriptionLength"] = len(description)

        if not title:
            diagnostics["error"] = "Lever API response missing title"
            return DetailResult(None, diagnostics)

        record = JobRecord(
            url=context.url,
            title=title,
            location=location,
            description=description,
            skills=skills,
            source_strategy=DetailStrategy.LEVER_API.value,
            raw_meta={
                "commitment": categories.get("commitment"),
                "team": categories.get("team"),
                "department": categories.get("department"),
                "level": categories.get("level"),
                "workplaceType": data.get("workplaceType"),
            },
        )
        return DetailResult(record, diagnostics)
