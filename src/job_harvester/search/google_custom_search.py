"""Google Custom Search JSON API provider."""

import logging
from typing import Any, Dict, List, Optional, Tuple

import requests

from job_harvester.exceptions import TerminalProviderError
from job_harvester.http_client import HttpClient, decode_json
from job_harvester.models import SearchResult
from job_harvester.search.base import SearchProvider
from job_harvester.utils.retry import RetryPolicy

logger = logging.getLogger(__name__)

API_URL = "https://www.googleapis.com/customsearch/v1"

# The API serves at most 100 results: start indexes 1..91
MAX_START_INDEX = 91


class GoogleCustomSearchProvider(SearchProvider):
    """Search provider backed by a Google Programmable Search Engine."""

    name = "google"

    def __init__(
        self,
        api_key: Optional[str],
        search_engine_id: Optional[str],
        client: Optional[HttpClient] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.api_key = api_key
        self.search_engine_id = search_engine_id
        self.client = client or HttpClient(timeout=10.0, retries=0)
        self.retry_policy = retry_policy or RetryPolicy(exponential=False)

    @property
    def display_name(self) -> str:
        return "Google Custom Search API"

    @property
    def max_pages(self) -> Optional[int]:
        return 10

    def validate_config(self) -> Tuple[bool, Optional[str]]:
        if not self.api_key:
            return False, "GOOGLE_API_KEY is missing from environment variables"
        if not self.search_engine_id:
            return False, "GOOGLE_SEARCH_ENGINE_ID is missing from environment variables"
        return True, None

    def search(self, query: str, page: int) -> List[SearchResult]:
        start_index = (page - 1) * 10 + 1
        if start_index > MAX_START_INDEX:
            logger.warning(f"Page {page} exceeds Google API limit (max 100 results)")
            return []

        try:
            raw = self.retry_policy.call(
                lambda: self._fetch(query, start_index), description=f"Google page {page}"
            )
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            if status == 403:
                raise TerminalProviderError(
                    "Google API quota exceeded or invalid credentials"
                ) from e
            if status == 400 and "invalid value" in _error_message(e.response).lower():
                logger.info("Reached Google API result limit (100 results)")
                return []
            raise

        return self.normalize_results(raw)

    def _fetch(self, query: str, start_index: int) -> Dict[str, Any]:
        params = {
            "key": self.api_key,
            "cx": self.search_engine_id,
            "q": query,
            "start": start_index,
            "num": 10,
            "lr": "lang_en",
            "hl": "en",
        }
        resp = self.client.get(API_URL, params=params)
        resp.raise_for_status()
        return decode_json(resp, API_URL)

    @staticmethod
    def normalize_results(raw: Dict[str, Any]) -> List[SearchResult]:
        """Map API ``items`` to SearchResult objects."""
        results = []
        for item in raw.get("items") or []:
            link = item.get("link")
            if not link:
                continue
            pagemap = item.get("pagemap") or {}
            logo_url = ""
            metatags = pagemap.get("metatags") or []
            if metatags:
                thumbnails = pagemap.get("cse_thumbnail") or [{}]
                logo_url = metatags[0].get("og:image") or thumbnails[0].get("src") or ""
            results.append(
                SearchResult(
                    url=link,
                    snippet=item.get("snippet") or "",
                    logo_url=logo_url,
                    title=item.get("title") or "",
                )
            )
        return results


def _error_message(response: Optional[requests.Response]) -> str:
    if response is None:
        return ""
    try:
        body = response.json()
    except ValueError:
        return response.text or ""
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return str(error.get("message") or "")
    return str(error or "")
