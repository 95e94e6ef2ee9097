"""
Key-based retry protocol for listing APIs.

A queue of candidate contexts (URL-derived key, cached key, key mined from
HTML) is drained one at a time. A "not found" answer lets the provider
mine the page again for an alternative key. The same key is never tried
twice, so the loop is bounded by the number of distinct keys discovered.
"""

import logging
from collections import deque
from typing import Any, Callable, Dict, List, Optional

import requests

from job_harvester.exceptions import ProviderApiError
from job_harvester.models import ProviderContext
from job_harvester.providers.base import LinkCollection

logger = logging.getLogger(__name__)

FetchListings = Callable[[ProviderContext], LinkCollection]
HandleRetry = Callable[[ProviderContext, Exception], List[ProviderContext]]


def _attempt_diagnostics(attempts: List[ProviderContext]) -> Dict[str, Any]:
    return {
        "attemptTrace": [{"key": a.listing_key, "source": a.source} for a in attempts],
        "attemptCount": len(attempts),
        "attemptedSlugs": [a.listing_key for a in attempts if a.listing_key],
    }


def run_api_collector(
    provider_id: str,
    initial_contexts: List[ProviderContext],
    fetch_listings: FetchListings,
    handle_retry: Optional[HandleRetry] = None,
    normalize: Callable[[str], str] = lambda url: url,
) -> LinkCollection:
    """
    Try candidate contexts until one listing call succeeds.

    Args:
        provider_id: Provider name used in logs and errors
        initial_contexts: Ordered candidate contexts
        fetch_listings: Performs the listing call for one context
        handle_retry: Given a failed context and its error, returns new
            contexts to enqueue (typically a key re-mined from HTML)
        normalize: Applied to every collected job URL

    Returns:
        LinkCollection from the first successful attempt, with the attempt
        trace merged into its diagnostics.

    Raises:
        ProviderApiError: If no context could be derived or every attempt failed.
    """
    queue = deque(initial_contexts)
    if not queue:
        raise ProviderApiError("no-initial-context", diagnostics={"error": "no-initial-context"})

    attempts: List[ProviderContext] = []
    attempted_keys = set()
    last_error: Optional[Exception] = None

    while queue:
        context = queue.popleft()
        if not context.listing_key or context.listing_key in attempted_keys:
            continue
        attempted_keys.add(context.listing_key)
        attempts.append(context)

        try:
            result = fetch_listings(context)
        except (ProviderApiError, requests.RequestException, ValueError) as e:
            last_error = e
            logger.debug(f"{provider_id} listing attempt with key '{context.listing_key}' failed: {e}")
            if handle_retry:
                queue.extend(c for c in handle_retry(context, e) if c)
            continue

        result.job_urls = [normalize(url) for url in result.job_urls]
        result.job_metadata = {normalize(url): meta for url, meta in result.job_metadata.items()}
        result.diagnostics = {**result.diagnostics, **_attempt_diagnostics(attempts)}
        return result

    diagnostics = _attempt_diagnostics(attempts)
    status = None
    if last_error is not None:
        diagnostics["error"] = str(last_error)
        status = getattr(last_error, "status", None)
        if status is None and isinstance(last_error, requests.RequestException) and last_error.response is not None:
            status = last_error.response.status_code
        if status is not None:
            diagnostics["status"] = status
        if isinstance(last_error, requests.Timeout):
            diagnostics["timeout"] = True
        if isinstance(last_error, ProviderApiError) and last_error.diagnostics.get("context"):
            diagnostics["context"] = last_error.diagnostics["context"]
    else:
        diagnostics["error"] = "api-collection-failed"

    raise ProviderApiError(diagnostics["error"], status=status, diagnostics=diagnostics)
