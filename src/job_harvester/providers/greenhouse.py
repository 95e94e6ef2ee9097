"""
Greenhouse provider.

Listings and postings come from the public boards API
(``boards-api.greenhouse.io``). The board token is taken from the URL,
from the per-host cache, or mined from the careers page HTML, which
usually embeds the Greenhouse job board script.
"""

import logging
import re
import time
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import parse_qs, urlparse

import requests
from bs4 import BeautifulSoup

from job_harvester.exceptions import ProviderApiError
from job_harvester.http_client import HttpClient
from job_harvester.models import DetailReport, DetailStrategy, JobRecord, LinkReport, ProviderContext
from job_harvester.providers.api_collector import run_api_collector
from job_harvester.providers.base import DetailResult, JobBoardProvider, LinkCollection, fetch_api_json
from job_harvester.providers.token_cache import TokenCache
from job_harvester.utils.text import html_to_text, normalize_whitespace
from job_harvester.utils.url_utils import company_key, get_hostname, host_matches, normalize_url, strip_query_params

logger = logging.getLogger(__name__)

API_BASE = "https://boards-api.greenhouse.io/v1/boards"
BOARD_BASE = "https://boards.greenhouse.io"
PAGE_SIZE = 50
MAX_PAGES = 40
DEFAULT_TIMEOUT = 45.0

SHARED_HOSTS = ("boards.greenhouse.io", "job-boards.greenhouse.io")
ATS_DOMAINS = ("greenhouse.io", "grnh.se")
TRACKING_PARAMS = ("gh_src", "source", "tmsrc")

TOKEN_PATTERNS = [
    re.compile(r"greenhouse\.io/embed/(?:job_board|job_app)[^\"'>]*for=([\w-]+)"),
    re.compile(r"boards-api\.greenhouse\.io/v1/boards/([\w-]+)"),
    re.compile(r"boardToken\s*[:=]\s*['\"]([\w-]+)['\"]"),
    re.compile(r"data-gh-board=[\"']([\w-]+)[\"']"),
]
API_TOKEN_PATTERN = re.compile(r"boards/([^/]+)/(?:jobs|job)")


def _first(values: Dict[str, List[str]], name: str) -> Optional[str]:
    items = values.get(name)
    return items[0] if items and items[0] else None


def parse_url_context(url: str) -> Tuple[Optional[str], Optional[str]]:
    """
    Read the board token and job id a Greenhouse URL carries.

    Handles ``?for=<token>&token=<id>`` embeds, ``?gh_jid=<id>`` careers
    pages and ``boards.greenhouse.io/<token>/jobs/<id>`` board URLs.

    Returns:
        (board_token, job_id), either may be None.
    """
    try:
        parsed = urlparse(url)
    except ValueError:
        return None, None

    query = parse_qs(parsed.query)
    job_id = _first(query, "gh_jid") or _first(query, "token")
    token = _first(query, "for")

    if get_hostname(url) in SHARED_HOSTS:
        segments = [s for s in parsed.path.split("/") if s]
        if segments and segments[0] != "embed":
            token = token or segments[0]
        if "jobs" in segments:
            index = segments.index("jobs")
            if index + 1 < len(segments):
                job_id = job_id or segments[index + 1]

    return token, job_id


def find_board_token(html: str) -> Optional[str]:
    """
    Mine a board token from careers page HTML.

    Returns:
        The first token candidate found, or None.
    """
    if not html:
        return None

    soup = BeautifulSoup(html, "html.parser")
    for script in soup.find_all("script", src=True):
        src = script["src"]
        if not host_matches(get_hostname(src), "greenhouse.io"):
            continue
        token = _first(parse_qs(urlparse(src).query), "for")
        if token:
            return token
        match = TOKEN_PATTERNS[1].search(src)
        if match:
            return match.group(1)

    for pattern in TOKEN_PATTERNS:
        match = pattern.search(html)
        if match:
            return match.group(1)
    return None


class GreenhouseProvider(JobBoardProvider):
    """Greenhouse boards, including boards embedded on company careers pages."""

    provider_id = "greenhouse"

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
        if host_matches(get_hostname(url), *ATS_DOMAINS):
            return True
        return "gh_jid=" in (url or "").lower()

    def normalize(self, url: str) -> str:
        if host_matches(get_hostname(url), *ATS_DOMAINS):
            return strip_query_params(url, TRACKING_PARAMS, prefixes=("utm_",))
        return url

    # ------------------------------------------------------------------
    # Token discovery
    # ------------------------------------------------------------------

    def cached_token(self, url: str) -> Optional[str]:
        return self.token_cache.get(self.provider_id, url, SHARED_HOSTS)

    def remember_token(self, url: str, token: Optional[str]) -> None:
        self.token_cache.put(self.provider_id, url, token, SHARED_HOSTS)

    def discover_token(self, url: str, use_cache: bool = True) -> Optional[str]:
        """
        Find the board token for a careers page, fetching its HTML if needed.

        Args:
            url: Careers page or job URL
            use_cache: Return a cached token without fetching

        Returns:
            Board token, or None when the page has no Greenhouse hints.
        """
        if use_cache:
            cached = self.cached_token(url)
            if cached:
                return cached

        try:
            html = self.client.get_text(url, headers={"Accept": "text/html"}, timeout=self.timeout)
        except requests.RequestException as e:
            logger.debug(f"Could not fetch {url} for board token discovery: {e}")
            return None

        token = find_board_token(html)
        if token:
            logger.debug(f"Discovered Greenhouse board token '{token}' on {url}")
            self.remember_token(url, token)
        return token

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    def _context(self, url: str, token: str, source: str, job_id: Optional[str] = None) -> ProviderContext:
        return ProviderContext(
            provider_id=self.provider_id,
            url=url,
            listing_key=token,
            posting_id=job_id,
            endpoint=f"{API_BASE}/{token}/jobs",
            source=source,
        )

    def collect_links(self, url: str) -> LinkCollection:
        contexts: List[ProviderContext] = []
        token, _ = parse_url_context(url)
        if token:
            contexts.append(self._context(url, token, "url-path"))

        cached = self.cached_token(url)
        if cached:
            contexts.append(self._context(url, cached, "cache"))

        if not contexts:
            discovered = self.discover_token(url, use_cache=False)
            if discovered:
                contexts.append(self._context(url, discovered, "html"))

        return run_api_collector(
            self.provider_id,
            contexts,
            self._fetch_listings,
            handle_retry=self._handle_retry,
            normalize=self.normalize,
        )

    def _handle_retry(self, context: ProviderContext, error: Exception) -> List[ProviderContext]:
        if not (isinstance(error, ProviderApiError) and error.not_found):
            return []
        token = self.discover_token(context.url, use_cache=False)
        if token and token != context.listing_key:
            logger.info(f"Board token '{context.listing_key}' not found, retrying with '{token}'")
            return [self._context(context.url, token, "html-refresh")]
        return []

    def _fetch_listings(self, context: ProviderContext) -> LinkCollection:
        token = context.listing_key
        endpoint = f"{API_BASE}/{token}/jobs"
        urls: List[str] = []
        metadata: Dict[str, Dict[str, Any]] = {}
        seen = set()
        pages = 0

        for page in range(1, MAX_PAGES + 1):
            data = fetch_api_json(
                self.client,
                endpoint,
                "Greenhouse",
                params={"page": page, "per_page": PAGE_SIZE, "content": "false"},
                timeout=self.timeout,
                diagnostics={"boardToken": token, "page": page},
            )
            jobs = (data.get("jobs") or []) if isinstance(data, dict) else []
            pages += 1

            for job in jobs:
                job_id = job.get("id")
                candidates = [
                    job.get("absolute_url"),
                    job.get("hosted_url"),
                    job.get("application_url"),
                    f"{BOARD_BASE}/{token}/jobs/{job_id}" if job_id else None,
                ]
                for candidate in candidates:
                    if not candidate:
                        continue
                    normalized = self.normalize(candidate)
                    if normalized in seen:
                        continue
                    seen.add(normalized)
                    urls.append(normalized)
                    metadata[normalized] = {"boardToken": token, "jobId": str(job_id) if job_id else None}
                    break

            total = (data.get("meta") or {}).get("total") if isinstance(data, dict) else None
            if len(jobs) < PAGE_SIZE or (total and page * PAGE_SIZE >= total):
                break

        self.remember_token(context.url, token)
        return LinkCollection(
            provider_id=self.provider_id,
            job_urls=urls,
            job_metadata=metadata,
            diagnostics={"boardToken": token, "pages": pages, "totalJobs": len(urls)},
            api=endpoint,
        )

    # ------------------------------------------------------------------
    # Detail
    # ------------------------------------------------------------------

    def prepare_context(
        self,
        url: str,
        remarks: Optional[Dict[str, Any]] = None,
        link_report: Optional[LinkReport] = None,
        detail_report: Optional[DetailReport] = None,
    ) -> ProviderContext:
        token, job_id = parse_url_context(url)
        source = "url"
        remarks = remarks or {}

        if not token and remarks.get("boardToken"):
            token, source = str(remarks["boardToken"]), "remarks"
        if not job_id and remarks.get("jobId"):
            job_id = str(remarks["jobId"])

        if (not token or not job_id) and link_report is not None:
            report_token, report_job_id = self._context_from_link_report(url, link_report)
            if not token and report_token:
                token, source = report_token, "link-report"
            job_id = job_id or report_job_id

        if not token and detail_report is not None:
            report_token = self._token_from_detail_report(url, detail_report)
            if report_token:
                token, source = report_token, "detail-report"

        if not token:
            cached = self.cached_token(url)
            if cached:
                token, source = cached, "cache"

        endpoint = f"{API_BASE}/{token}/jobs/{job_id}" if token and job_id else None
        if token:
            self.remember_token(url, token)

        return ProviderContext(
            provider_id=self.provider_id,
            url=url,
            listing_key=token,
            posting_id=job_id,
            endpoint=endpoint,
            source=source,
        )

    @staticmethod
    def _entry_token(key: str, entry) -> Optional[str]:
        token = entry.diagnostics.get("boardToken")
        if token:
            return str(token)
        if entry.api:
            match = API_TOKEN_PATTERN.search(entry.api)
            if match:
                return match.group(1)
        segments = [s for s in urlparse(key).path.split("/") if s]
        return segments[-1] if segments else None

    def _context_from_link_report(self, url: str, report: LinkReport) -> Tuple[Optional[str], Optional[str]]:
        """Find the board token (and job id) for a URL in the Stage 2 link report."""
        lookups = {url, self.normalize(url), normalize_url(url)}
        entries = report.link_extraction_report

        for key, entry in entries.items():
            for lookup in lookups:
                meta = entry.job_metadata.get(lookup)
                if meta:
                    token = meta.get("boardToken") or self._entry_token(key, entry)
                    job_id = meta.get("jobId")
                    return token, str(job_id) if job_id else None

        candidates = [(key, entry) for key, entry in entries.items() if entry.provider == self.provider_id]
        if not candidates:
            return None, None

        slug = company_key(url)
        best_token, best_score = None, 0
        for key, entry in candidates:
            token = self._entry_token(key, entry)
            if not token:
                continue
            lowered = token.lower()
            if lowered == slug:
                score = 30
            elif slug in lowered:
                score = 20
            elif slug in key.lower():
                score = 10
            else:
                score = 1
            if score > best_score:
                best_token, best_score = token, score

        if best_score > 1 or len(candidates) == 1:
            return best_token, None
        return None, None

    @staticmethod
    def _token_from_detail_report(url: str, report: DetailReport) -> Optional[str]:
        company = report.detail_extraction_report.get(company_key(url))
        if company is None:
            return None
        for entry in company.passed_urls + company.failed_urls:
            token = (entry.diagnostics or {}).get("boardToken")
            if token:
                return str(token)
        return None

    def fetch_detail(self, context: ProviderContext) -> DetailResult:
        if not context.endpoint and context.posting_id and not context.listing_key:
            token = self.discover_token(context.url)
            if token:
                context.listing_key = token
                context.endpoint = f"{API_BASE}/{token}/jobs/{context.posting_id}"

        diagnostics: Dict[str, Any] = {
            "boardToken": context.listing_key,
            "jobId": context.posting_id,
            "endpoint": context.endpoint,
        }
        if not context.endpoint:
            diagnostics["error"] = "missing-job-id" if context.listing_key else "missing-board-token"
            return DetailResult(None, diagnostics)

        started = time.monotonic()
        data = fetch_api_json(self.client, context.endpoint, "Greenhouse", timeout=self.timeout, diagnostics=diagnostics)
        diagnostics["status"] = 200
        diagnostics["durationMs"] = int((time.monotonic() - started) * 1000)

        title = normalize_whitespace(data.get("title") or data.get("name"))
        location = normalize_whitespace((data.get("location") or {}).get("name")) or "Remote / Multiple"
        content = data.get("content") or data.get("content_html") or ""
        description = html_to_text(content) if content else ""
        if not description:
            description = normalize_whitespace(data.get("content_plain"))
        diagnostics["descriptionLength"] = len(description)

        missing = [name for name, value in (("title", title), ("description", description)) if not value]
        if missing:
            diagnostics["error"] = f"Greenhouse API response missing {', '.join(missing)}"
            return DetailResult(None, diagnostics)

        record = JobRecord(
            url=context.url,
            title=title,
            location=location,
            description=description,
            source_strategy=DetailStrategy.GREENHOUSE_API.value,
            raw_meta={
                "absoluteUrl": data.get("absolute_url"),
                "hostedUrl": data.get("hosted_url"),
                "internalJobId": data.get("internal_job_id"),
                "employmentType": data.get("employment_type"),
                "departments": [d.get("name") for d in data.get("departments") or [] if d.get("name")],
                "offices": [o.get("name") for o in data.get("offices") or [] if o.get("name")],
            },
        )
        return DetailResult(record, diagnostics)
