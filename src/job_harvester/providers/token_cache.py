"""Per-host cache of board tokens and company slugs discovered from HTML."""

import threading
from typing import Dict, Iterable, Optional, Tuple

from job_harvester.utils.url_utils import get_hostname


class TokenCache:
    """
    Thread-safe host → listing key cache, namespaced per provider.

    Shared ATS hosts (``boards.greenhouse.io``, ``jobs.lever.co`` ...) serve
    many companies, so they are never cached.
    """

    def __init__(self):
        self._tokens: Dict[Tuple[str, str], str] = {}
        self._lock = threading.Lock()

    def get(self, namespace: str, url: str, shared_hosts: Iterable[str] = ()) -> Optional[str]:
        host = get_hostname(url)
        if not host or host in shared_hosts:
            return None
        with self._lock:
            return self._tokens.get((namespace, host))

    def put(self, namespace: str, url: str, token: Optional[str], shared_hosts: Iterable[str] = ()) -> None:
        host = get_hostname(url)
        if not token or not host or host in shared_hosts:
            return
        with self._lock:
            self._tokens[(namespace, host)] = token

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)
