"""Base class for search-engine providers used by Stage 1."""

from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

from job_harvester.models import SearchResult


class SearchProvider(ABC):
    """
    Abstract search provider.

    Contract: given a query and a 1-based page number, return the organic
    results on that page. An empty list means there are no more pages.
    Quota or credential failures raise ``TerminalProviderError``.
    """

    #: Registry name, also the key used in the Stage 1 report
    name: str = ""

    @property
    @abstractmethod
    def display_name(self) -> str:
        """Human-readable provider name."""

    @property
    def max_pages(self) -> Optional[int]:
        """Maximum pages the provider can serve, or None if unlimited."""
        return None

    @property
    def results_per_page(self) -> int:
        return 10

    @property
    def engine(self) -> Optional[str]:
        """Underlying search engine, for providers that proxy several."""
        return None

    @abstractmethod
    def validate_config(self) -> Tuple[bool, Optional[str]]:
        """
        Check that the provider has the credentials it needs.

        Returns:
            (valid, error message)
        """

    @abstractmethod
    def search(self, query: str, page: int) -> List[SearchResult]:
        """
        Fetch one page of results.

        Args:
            query: Search query
            page: 1-based page number

        Returns:
            Normalized results, empty when the page has none.
        """
