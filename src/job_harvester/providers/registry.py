"""Static provider table with first-match lookup."""

import logging
from typing import Dict, List, Optional

from job_harvester.browser import PageRenderer
from job_harvester.config import HarvesterConfig
from job_harvester.http_client import HttpClient
from job_harvester.providers.base import JobBoardProvider
from job_harvester.providers.generic import GenericProvider
from job_harvester.providers.greenhouse import GreenhouseProvider
from job_harvester.providers.lever import LeverProvider
from job_harvester.providers.token_cache import TokenCache
from job_harvester.utils.retry import RetryPolicy

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """
    Ordered list of API providers plus a generic fallback.

    The registry owns the token cache shared by its providers, so the
    cache lives as long as one stage run.
    """

    def __init__(
        self,
        providers: List[JobBoardProvider],
        fallback: JobBoardProvider,
        token_cache: Optional[TokenCache] = None,
    ):
        self.providers = list(providers)
        self.fallback = fallback
        self.token_cache = token_cache or TokenCache()

    def resolve(self, url: str) -> JobBoardProvider:
        """Return the first provider matching the URL, or the fallback."""
        return self.find(url) or self.fallback

    def find(self, url: str) -> Optional[JobBoardProvider]:
        """Return the first API provider matching the URL, if any."""
        for provider in self.providers:
            if provider.matches(url):
                return provider
        return None

    def get(self, provider_id: Optional[str]) -> Optional[JobBoardProvider]:
        if not provider_id:
            return None
        for provider in self.providers + [self.fallback]:
            if provider.provider_id == provider_id:
                return provider
        return None

    def normalize(self, url: str) -> str:
        """Apply the matching provider's URL normalization."""
        return self.resolve(url).normalize(url)

    def ids(self) -> List[str]:
        return [p.provider_id for p in self.providers] + [self.fallback.provider_id]


def build_registry(config: HarvesterConfig, client: HttpClient, renderer: PageRenderer) -> ProviderRegistry:
    """
    Build the default registry: Greenhouse, Lever, then the generic provider.

    Args:
        config: Loaded configuration
        client: HTTP client shared by API providers
        renderer: Page renderer for the generic provider

    Returns:
        ProviderRegistry with a fresh token cache.
    """
    token_cache = TokenCache()
    timeout = config.extraction.api_timeout
    providers: List[JobBoardProvider] = [
        GreenhouseProvider(client, token_cache, timeout=timeout),
        LeverProvider(client, token_cache, timeout=timeout),
    ]
    fallback = GenericProvider(
        renderer,
        selectors=config.selectors.job_links,
        retry_policy=RetryPolicy(
            max_retries=config.retry.max_retries,
            retry_delay=config.retry.retry_delay,
            exponential=False,
        ),
    )
    registry = ProviderRegistry(providers, fallback, token_cache)
    logger.debug(f"Provider registry: {', '.join(registry.ids())}")
    return registry
