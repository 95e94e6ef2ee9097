"""Named search targets that expand to site-restricted queries."""

from typing import List, Optional

SEARCH_TARGETS = {
    "greenhouse": 'site:"boards.greenhouse.io"',
    "lever": 'site:"jobs.lever.co"',
}


def get_search_query(key: Optional[str]) -> Optional[str]:
    """Return the query for a target name (case-insensitive), or None."""
    if not key:
        return None
    return SEARCH_TARGETS.get(key.strip().lower())


def list_search_targets() -> List[str]:
    return list(SEARCH_TARGETS)
