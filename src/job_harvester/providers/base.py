"""Base class for job-board providers."""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from job_harvester.exceptions import ProviderApiError
from job_harvester.http_client import HttpClient, decode_json
from job_harvester.models import JobRecord, ProviderContext


@dataclass
class LinkCollection:
    """
    Job links collected from one source page.

    Attributes:
        provider_id: Provider that collected the links
        job_urls: Normalized job posting URLs, in discovery order
        job_metadata: Per-URL provider metadata (board token, job id ...)
        diagnostics: Collection diagnostics stored in the link report
        api: Listing API endpoint used, if any
    """

    provider_id: str
    job_urls: List[str] = field(default_factory=list)
    job_metadata: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    diagnostics: Dict[str, Any] = field(default_factory=dict)
    api: Optional[str] = None


@dataclass
class DetailResult:
    """
    Outcome of a provider detail fetch.

    ``record`` is None when the provider could not produce a job; the
    reason is in ``diagnostics["error"]``.
    """

    record: Optional[JobRecord]
    diagnostics: Dict[str, Any] = field(default_factory=dict)


def parse_remarks(remarks: Optional[str]) -> Dict[str, Any]:
    """
    Parse the JSON metadata a ledger REMARKS cell may carry.

    Returns:
        The decoded object, or an empty dict for plain-text remarks.
    """
    text = (remarks or "").strip()
    if not (text.startswith("{") and text.endswith("}")):
        return {}
    try:
        parsed = json.loads(text)
    except ValueError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


class JobBoardProvider(ABC):
    """
    A strategy for recognizing and extracting data from one job-board platform.

    Providers that own a public API implement ``prepare_context`` and
    ``fetch_detail``; the generic provider only collects links.
    """

    provider_id: str = ""

    @abstractmethod
    def matches(self, url: str) -> bool:
        """Check whether this provider handles the URL."""

    def normalize(self, url: str) -> str:
        """Strip provider-specific tracking parameters from a job URL."""
        return url

    @abstractmethod
    def collect_links(self, url: str) -> LinkCollection:
        """
        Collect job posting links from a board or careers page.

        Raises:
            ProviderApiError: When every collection attempt failed.
        """

    def prepare_context(
        self,
        url: str,
        remarks: Optional[Dict[str, Any]] = None,
        link_report: Optional[Any] = None,
        detail_report: Optional[Any] = None,
    ) -> Optional[ProviderContext]:
        """
        Derive the API context for a job URL.

        Sources in order: the URL itself, ledger REMARKS metadata, the
        upstream link report, then this run's detail report.

        Returns:
            ProviderContext, or None if the provider has no detail API.
        """
        return None

    def fetch_detail(self, context: ProviderContext) -> DetailResult:
        """
        Fetch a job record from the provider's detail API.

        Raises:
            ProviderApiError: On an HTTP error status from the API.
        """
        return DetailResult(None, {"error": f"Provider {self.provider_id} does not support detail extraction"})

    @property
    def supports_detail(self) -> bool:
        return type(self).fetch_detail is not JobBoardProvider.fetch_detail


API_HEADERS = {"Accept": "application/json"}


def fetch_api_json(
    client: HttpClient,
    url: str,
    label: str,
    params: Optional[Dict[str, Any]] = None,
    timeout: Optional[float] = None,
    diagnostics: Optional[Dict[str, Any]] = None,
) -> Any:
    """
    GET a job-board API endpoint and decode its JSON body.

    Args:
        client: Shared HTTP client
        url: Endpoint URL
        label: Provider name used in error messages
        params: Query parameters
        timeout: Request timeout in seconds
        diagnostics: Context attached to a raised error

    Raises:
        ProviderApiError: On a 4xx/5xx response, carrying its status.
        requests.RequestException: On network failures and timeouts.
    """
    resp = client.get(url, params=params, headers=API_HEADERS, timeout=timeout)
    if resp.status_code >= 400:
        raise ProviderApiError(
            f"{label} API returned {resp.status_code} {resp.reason or ''}".strip(),
            status=resp.status_code,
            diagnostics={**(diagnostics or {}), "status": resp.status_code, "endpoint": url},
        )
    return decode_json(resp, url)
