"""Canonical-key set used to deduplicate URLs across a stage run."""

import logging
import threading
from typing import Any, Dict, Iterable, List

from job_harvester.utils.url_utils import canonical_key

logger = logging.getLogger(__name__)


class DuplicationCache:
    """
    Set of canonical keys already recorded by a stage.

    Seeded from the stage's ledger at startup, then updated as new URLs are
    accepted. Duplicates are counted, never stored. Safe to share across
    worker threads.

    Example:
        ```python
        cache = DuplicationCache(existing_urls)

        if cache.add("https://acme.com/us/jobs/7176975"):
            ...  # new URL, write it to the ledger
        cache.add("https://acme.com/gb/jobs/7176975")  # False, counted as duplicate
        ```
    """

    def __init__(self, urls: Iterable[str] = ()):
        """
        Initialize the cache.

        Args:
            urls: URLs already persisted (their keys are pre-loaded)
        """
        self.keys = {canonical_key(url) for url in urls if url}
        self.duplicates = 0
        self.added = 0
        self._lock = threading.Lock()

    def __contains__(self, url: str) -> bool:
        return canonical_key(url) in self.keys

    def __len__(self) -> int:
        return len(self.keys)

    def add(self, url: str) -> bool:
        """
        Record a URL if its canonical key is unseen.

        Args:
            url: URL to record

        Returns:
            True if the URL was new, False if it duplicated a known key.
        """
        key = canonical_key(url)
        with self._lock:
            if key in self.keys:
                self.duplicates += 1
                logger.debug(f"Duplicate URL skipped: {url} (key={key})")
                return False
            self.keys.add(key)
            self.added += 1
            return True

    def filter_new(self, urls: Iterable[str]) -> List[str]:
        """
        Keep only URLs with unseen keys, recording them as seen.

        Order is preserved, and duplicates within ``urls`` are dropped too.

        Args:
            urls: Candidate URLs

        Returns:
            URLs that were accepted.
        """
        return [url for url in urls if self.add(url)]

    def get_stats(self) -> Dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Dictionary with known key count, accepted and duplicate counts
        """
        return {
            "known_keys": len(self.keys),
            "added": self.added,
            "duplicates": self.duplicates,
        }

    def __repr__(self) -> str:
        """Return string representation with stats."""
        stats = self.get_stats()
        return (
            f"DuplicationCache(keys={stats['known_keys']}, "
            f"added={stats['added']}, duplicates={stats['duplicates']})"
        )
