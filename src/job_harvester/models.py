"""
Pydantic models for progress reports, search results and job records.

Field aliases keep the persisted JSON keys (``retryCount``, ``linksFound``,
``passedUrls`` ...) stable so existing run directories stay readable.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_serializer


class LedgerStatus(str, Enum):
    """
    Status of a row ledger entry.

    Lifecycle: pending → done/failed, failed → done/failed (retry++).
    DONE is terminal unless the run is explicitly cleaned or forced.
    """

    PENDING = "pending"
    DONE = "done"
    FAILED = "failed"


class DetailStrategy(str, Enum):
    """Which extraction layer produced an accepted job record."""

    STRUCTURED_DATA = "structured-data"
    INTELLIGENT_ANALYSIS = "intelligent-analysis"
    GREENHOUSE_API = "greenhouse-api"
    LEVER_API = "lever-api"
    LISTING_EXPANSION = "listing-expansion"


class ErrorDetail(BaseModel):
    """
    Error recorded against a search page.

    HTTP failures carry ``status``/``statusText``/``data``; anything else
    only carries ``message``.
    """

    model_config = ConfigDict(populate_by_name=True)

    message: Optional[str] = None
    status: Optional[int] = None
    status_text: Optional[str] = Field(default=None, alias="statusText")
    data: Optional[Any] = None


class PageRecord(BaseModel):
    """Checkpoint state for one page of search results."""

    model_config = ConfigDict(populate_by_name=True)

    page: int = Field(description="1-based page number")
    status: bool = Field(default=False, description="True once the page is settled")
    error: Optional[ErrorDetail] = None
    retry_count: int = Field(default=0, alias="retryCount")

    @model_serializer(mode="wrap")
    def _keep_error_key(self, handler):
        data = handler(self)
        data.setdefault("error", None)
        return data


class SearchReport(BaseModel):
    """Stage 1 progress report."""

    google_report: List[PageRecord] = Field(default_factory=list)
    serp_report: Dict[str, List[PageRecord]] = Field(default_factory=dict)

    @field_validator("serp_report", mode="before")
    @classmethod
    def _migrate_legacy_serp_report(cls, value: Any) -> Any:
        # Older runs stored a flat list of pages for the google engine
        if isinstance(value, list):
            return {"google": value}
        if value is None:
            return {}
        return value

    def pages_for(self, provider: str, engine: Optional[str] = None) -> List[PageRecord]:
        """
        Return the mutable page list for a provider (and SerpAPI engine).

        Args:
            provider: ``google`` or ``serp``
            engine: SerpAPI engine name, ignored for Google

        Returns:
            The list stored in the report, created if missing.
        """
        if provider == "google":
            return self.google_report
        return self.serp_report.setdefault(engine or "google", [])


class LinkReportEntry(BaseModel):
    """Stage 2 outcome for one source page."""

    model_config = ConfigDict(populate_by_name=True)

    status: bool = False
    links_found: int = Field(default=0, alias="linksFound")
    error: Optional[str] = None
    diagnostics: Dict[str, Any] = Field(default_factory=dict)
    provider: Optional[str] = None
    api: Optional[str] = None
    job_metadata: Dict[str, Dict[str, Any]] = Field(default_factory=dict, alias="jobMetadata")


class LinkReport(BaseModel):
    """Stage 2 progress report keyed by normalized source URL."""

    link_extraction_report: Dict[str, LinkReportEntry] = Field(default_factory=dict)


class DetailUrlEntry(BaseModel):
    """A URL recorded in a company's passed or failed list."""

    model_config = ConfigDict(populate_by_name=True)

    url: str
    provider: Optional[str] = None
    found_from: Optional[str] = Field(default=None, alias="foundFrom")
    reason: Optional[str] = None
    strategy: Optional[str] = None
    diagnostics: Optional[Dict[str, Any]] = None


class CompanyDetailReport(BaseModel):
    """Passed/failed URL lists for one company."""

    model_config = ConfigDict(populate_by_name=True)

    passed_urls: List[DetailUrlEntry] = Field(default_factory=list, alias="passedUrls")
    failed_urls: List[DetailUrlEntry] = Field(default_factory=list, alias="failedUrls")

    def _discard(self, url: str) -> None:
        self.passed_urls = [e for e in self.passed_urls if e.url != url]
        self.failed_urls = [e for e in self.failed_urls if e.url != url]

    def record_passed(self, entry: DetailUrlEntry) -> None:
        """Move a URL into the passed list, dropping any earlier entry."""
        self._discard(entry.url)
        self.passed_urls.append(entry)

    def record_failed(self, entry: DetailUrlEntry) -> None:
        """Move a URL into the failed list, dropping any earlier entry."""
        self._discard(entry.url)
        self.failed_urls.append(entry)


class DetailReport(BaseModel):
    """Stage 3 progress report keyed by company."""

    detail_extraction_report: Dict[str, CompanyDetailReport] = Field(default_factory=dict)

    def company(self, key: str) -> CompanyDetailReport:
        """Return the report for a company, creating it if missing."""
        return self.detail_extraction_report.setdefault(key, CompanyDetailReport())


class SearchResult(BaseModel):
    """One organic result returned by a search provider."""

    url: str
    snippet: str = ""
    logo_url: str = ""
    title: str = ""


class JobRecord(BaseModel):
    """
    Structured job posting produced by Stage 3.

    ``source_strategy`` names the extraction layer that produced it.
    """

    model_config = ConfigDict(use_enum_values=True)

    url: str
    title: str
    location: str = "N/A"
    description: str = ""
    skills: List[str] = Field(default_factory=list)
    source_strategy: str = Field(default="", description="Extraction layer that produced the record")
    raw_meta: Dict[str, Any] = Field(default_factory=dict)


@dataclass
class ProviderContext:
    """
    Ephemeral per-URL context used to reach a job-board API.

    Attributes:
        provider_id: Registry name of the provider (e.g. "greenhouse")
        url: The normalized URL the context was derived from
        listing_key: Board token or company slug
        posting_id: Individual posting identifier, if known
        endpoint: Resolved API endpoint for the listing or posting
        filters: Extra query filters (department, location ...)
        source: Where the listing key came from ("url", "cache", "html", "report")
    """

    provider_id: str
    url: str
    listing_key: Optional[str] = None
    posting_id: Optional[str] = None
    endpoint: Optional[str] = None
    filters: Dict[str, Any] = field(default_factory=dict)
    source: str = "url"
