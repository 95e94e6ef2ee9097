"""Search-engine providers for Stage 1 discovery."""

from job_harvester.search.base import SearchProvider
from job_harvester.search.factory import create_search_provider, search_client
from job_harvester.search.google_custom_search import GoogleCustomSearchProvider
from job_harvester.search.serp_api import SerpApiProvider
from job_harvester.search.targets import get_search_query, list_search_targets

__all__ = [
    "GoogleCustomSearchProvider",
    "SearchProvider",
    "SerpApiProvider",
    "create_search_provider",
    "get_search_query",
    "list_search_targets",
    "search_client",
]
