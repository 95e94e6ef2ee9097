"""Factory for configured search providers."""

import logging
from typing import List, Optional

from job_harvester.config import HarvesterConfig
from job_harvester.exceptions import ConfigurationError
from job_harvester.http_client import HttpClient
from job_harvester.search.base import SearchProvider
from job_harvester.search.google_custom_search import GoogleCustomSearchProvider
from job_harvester.search.serp_api import SerpApiProvider
from job_harvester.utils.retry import RetryPolicy

logger = logging.getLogger(__name__)

KNOWN_PROVIDERS = ("google", "serp")


def search_client(config: HarvesterConfig) -> HttpClient:
    """
    HTTP client for search APIs.

    Transport-level retries are off: one page attempt is one request, and
    page retries go through the provider's ``RetryPolicy``.
    """
    return HttpClient(timeout=config.search.timeout, user_agent=config.crawler.user_agent, retries=0)


def configured_providers(config: HarvesterConfig) -> List[str]:
    """Names of providers whose credentials are present."""
    return config.available_search_providers()


def create_search_provider(
    config: HarvesterConfig,
    provider_name: Optional[str] = None,
    engine: Optional[str] = None,
    client: Optional[HttpClient] = None,
) -> SearchProvider:
    """
    Create a configured search provider.

    Args:
        config: Harvester configuration
        provider_name: ``google`` or ``serp``; defaults to the configured default
        engine: SerpAPI engine; defaults to the configured default engine
        client: Shared HTTP client (optional)

    Returns:
        Validated SearchProvider.

    Raises:
        ConfigurationError: Unknown provider, provider without credentials,
            or no provider configured at all.
    """
    available = configured_providers(config)
    if not available:
        raise ConfigurationError(
            "No search provider configured. Set GOOGLE_API_KEY and GOOGLE_SEARCH_ENGINE_ID, "
            "or SERP_API_KEY."
        )

    name = (provider_name or config.search.default_provider or "google").strip().lower()
    if name not in KNOWN_PROVIDERS:
        raise ConfigurationError(
            f"Unknown search provider '{name}'. Available providers: {', '.join(KNOWN_PROVIDERS)}"
        )
    if name not in available:
        raise ConfigurationError(
            f"Provider '{name}' is not configured. Missing required API key(s). "
            f"Configured providers: {', '.join(available)}"
        )

    policy = RetryPolicy(
        max_retries=config.retry.max_retries,
        retry_delay=config.retry.retry_delay,
        exponential=False,
    )
    client = client or search_client(config)

    provider: SearchProvider
    if name == "google":
        provider = GoogleCustomSearchProvider(
            config.search.google.api_key,
            config.search.google.search_engine_id,
            client=client,
            retry_policy=policy,
        )
    else:
        provider = SerpApiProvider(
            config.search.serp.api_key,
            engine=engine or config.search.serp.default_engine,
            supported_engines=config.search.serp.supported_engines,
            client=client,
            retry_policy=policy,
        )

    valid, error = provider.validate_config()
    if not valid:
        raise ConfigurationError(f"Provider '{name}' validation failed: {error}")

    logger.info(f"Using search provider: {provider.display_name}")
    return provider
