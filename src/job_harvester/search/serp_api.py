"""SerpAPI provider (Google, Bing, Yahoo, DuckDuckGo, Baidu, Yandex)."""

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from job_harvester.config import SERP_ENGINES
from job_harvester.exceptions import TerminalProviderError, TransientError
from job_harvester.http_client import HttpClient, decode_json
from job_harvester.models import SearchResult
from job_harvester.search.base import SearchProvider
from job_harvester.utils.retry import RetryPolicy

logger = logging.getLogger(__name__)

API_URL = "https://serpapi.com/search.json"

TERMINAL_ERRORS = ("run out of searches", "invalid api key")


class SerpApiProvider(SearchProvider):
    """Search provider backed by SerpAPI; one instance per engine."""

    name = "serp"

    def __init__(
        self,
        api_key: Optional[str],
        engine: str = "google",
        supported_engines: Sequence[str] = SERP_ENGINES,
        client: Optional[HttpClient] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.api_key = api_key
        self._engine = (engine or "google").lower()
        self.client = client or HttpClient(timeout=30.0, retries=0)
        self.retry_policy = retry_policy or RetryPolicy(exponential=False)

        if self._engine not in supported_engines:
            logger.warning(
                f"Search engine '{self._engine}' may not be supported. "
                f"Supported engines: {', '.join(supported_engines)}"
            )

    @property
    def display_name(self) -> str:
        return f"SerpAPI ({self._engine.capitalize()})"

    @property
    def engine(self) -> Optional[str]:
        return self._engine

    def validate_config(self) -> Tuple[bool, Optional[str]]:
        if not self.api_key:
            return False, "SERP_API_KEY is missing from environment variables"
        return True, None

    def build_params(self, query: str, page: int) -> Dict[str, Any]:
        """Build request parameters, using each engine's own offset parameter."""
        start = (page - 1) * 10
        params: Dict[str, Any] = {
            "engine": self._engine,
            "q": query,
            "api_key": self.api_key,
            "num": 10,
            "hl": "en",
            "lr": "lang_en",
        }
        if self._engine == "bing":
            params["first"] = start + 1
        elif self._engine == "yahoo":
            params["b"] = start + 1
        else:
            params["start"] = start
        return params

    def search(self, query: str, page: int) -> List[SearchResult]:
        raw = self.retry_policy.call(
            lambda: self._fetch(query, page), description=f"SerpAPI page {page}"
        )
        return self.normalize_results(raw)

    def _fetch(self, query: str, page: int) -> Dict[str, Any]:
        resp = self.client.get(API_URL, params=self.build_params(query, page))
        data = decode_json(resp, API_URL) if resp.content else {}

        error = data.get("error") if isinstance(data, dict) else None
        if error:
            if any(marker in str(error).lower() for marker in TERMINAL_ERRORS):
                raise TerminalProviderError(f"SerpAPI: {error}")
            if "hasn't returned any results" in str(error).lower():
                return {}
            resp.raise_for_status()
            raise TransientError(f"SerpAPI: {error}")
        resp.raise_for_status()
        return data

    def normalize_results(self, raw: Dict[str, Any]) -> List[SearchResult]:
        """Map engine-specific result lists to SearchResult objects."""
        items = raw.get("organic_results") or raw.get("results") or raw.get("organic") or []
        results = []
        for item in items:
            url = item.get("link") or item.get("url") or item.get("href") or ""
            if not url:
                continue
            results.append(
                SearchResult(
                    url=url,
                    snippet=item.get("snippet") or item.get("description") or item.get("displayed_link") or "",
                    logo_url=item.get("thumbnail") or item.get("favicon") or item.get("image") or item.get("icon") or "",
                    title=item.get("title") or item.get("name") or "",
                )
            )
        return results
