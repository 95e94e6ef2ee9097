"""Shared HTTP client for search APIs, job-board APIs and static page fetches."""

import json
import logging
from typing import Any, Mapping, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from job_harvester.config import DEFAULT_USER_AGENT

logger = logging.getLogger(__name__)


class HttpClient:
    """
    Thin wrapper around a ``requests.Session``.

    Mounts a urllib3 ``Retry`` for 429/5xx on idempotent methods, sets a
    default timeout and User-Agent, and offers ``get_text``.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        user_agent: str = DEFAULT_USER_AGENT,
        retries: int = 3,
        backoff_factor: float = 0.5,
    ):
        self.timeout = float(timeout)
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": user_agent})

        retry = Retry(
            total=retries,
            backoff_factor=backoff_factor,
            status_forcelist=(429, 500, 502, 503, 504),
            allowed_methods=frozenset(["GET", "HEAD"]),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry, pool_connections=10, pool_maxsize=20)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def get(
        self,
        url: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
        **kwargs: Any,
    ) -> requests.Response:
        """GET without raising on HTTP error status."""
        return self.session.get(
            url, params=params, headers=headers, timeout=timeout or self.timeout, **kwargs
        )

    def get_text(
        self,
        url: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
        **kwargs: Any,
    ) -> str:
        """GET and return decoded text, raising ``requests.HTTPError`` on 4xx/5xx."""
        resp = self.get(url, params=params, headers=headers, timeout=timeout, **kwargs)
        resp.raise_for_status()
        if not resp.encoding and resp.apparent_encoding:
            resp.encoding = resp.apparent_encoding
        return resp.text

    def close(self) -> None:
        self.session.close()


def decode_json(resp: requests.Response, url: str) -> Any:
    """
    Decode a JSON response body.

    Raises:
        ValueError: With a short body preview when the body is not JSON.
    """
    try:
        return resp.json()
    except ValueError as e:
        try:
            return json.loads(resp.text)
        except ValueError:
            preview = resp.text[:200].replace("\n", " ")
            raise ValueError(f"JSON decode failed for {url!r}; body starts: {preview!r}") from e
