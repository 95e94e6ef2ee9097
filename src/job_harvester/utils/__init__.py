"""URL, text, retry and deduplication helpers."""

from job_harvester.utils.dedup_cache import DuplicationCache
from job_harvester.utils.job_links import is_job_detail_page
from job_harvester.utils.retry import RetryPolicy, is_retryable
from job_harvester.utils.url_utils import canonical_key, company_key, extract_job_id, normalize_url

__all__ = [
    "DuplicationCache",
    "RetryPolicy",
    "canonical_key",
    "company_key",
    "extract_job_id",
    "is_job_detail_page",
    "is_retryable",
    "normalize_url",
]
