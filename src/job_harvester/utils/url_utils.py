"""URL helpers: canonical dedup keys, normalization and company keys."""

import re
from typing import Iterable, Optional
from urllib.parse import parse_qsl, urlencode, urljoin, urlparse, urlunparse

_JOB_ID_PATTERN = re.compile(r"\d{4,}")

# Query parameters that only carry tracking information
TRACKING_PARAMS = {
    "gh_src",
    "lever-source",
    "source",
    "tmsrc",
    "ref",
    "fbclid",
    "gclid",
}


def extract_job_id(url: Optional[str]) -> Optional[str]:
    """
    Extract the longest run of 4+ digits from a URL.

    When several runs share the maximum length, the rightmost one wins.

    Args:
        url: URL or any string

    Returns:
        The digit run, or None if the string has none.
    """
    if not url:
        return None

    longest: Optional[str] = None
    for match in _JOB_ID_PATTERN.findall(url):
        if longest is None or len(match) >= len(longest):
            longest = match
    return longest


def get_hostname(url: str) -> str:
    """Return the lowercased hostname with any ``www.`` prefix removed."""
    try:
        hostname = (urlparse(url).hostname or "").lower()
    except ValueError:
        return ""
    if hostname.startswith("www."):
        hostname = hostname[4:]
    return hostname


def host_matches(hostname: str, *domains: str) -> bool:
    """True if ``hostname`` is one of ``domains`` or a subdomain of one."""
    return any(hostname == domain or hostname.endswith("." + domain) for domain in domains)


def canonical_key(url: str) -> str:
    """
    Derive the deduplication key for a URL.

    URLs that carry a numeric posting id collapse to ``host:id`` so that
    locale or slug variants of the same posting compare equal. Anything
    else falls back to the lowercased URL without a trailing slash.

    Example:
        >>> canonical_key("https://www.acme.com/us/jobs/eng/7176975")
        'acme.com:7176975'
        >>> canonical_key("https://acme.com/gb/jobs/eng/7176975")
        'acme.com:7176975'

    Args:
        url: URL to key

    Returns:
        Stable dedup key. Never used for display.
    """
    job_id = extract_job_id(url)
    if job_id:
        return f"{get_hostname(url)}:{job_id}"
    return (url or "").strip().lower().rstrip("/")


def normalize_url(url: str) -> str:
    """
    Normalize a URL for use as a report key.

    Lowercases scheme and host, drops the fragment and tracking
    parameters (``utm_*`` plus a fixed list), and strips a trailing slash.

    Args:
        url: URL to normalize

    Returns:
        Normalized URL, or the stripped input when it cannot be parsed.
    """
    if not url:
        return ""

    url = url.strip()
    try:
        parsed = urlparse(url)
    except ValueError:
        return url

    if not parsed.scheme or not parsed.netloc:
        return url.rstrip("/")

    query = [
        (key, value)
        for key, value in parse_qsl(parsed.query, keep_blank_values=True)
        if not key.lower().startswith("utm_") and key.lower() not in TRACKING_PARAMS
    ]
    path = parsed.path.rstrip("/") or ""
    return urlunparse(
        (parsed.scheme.lower(), parsed.netloc.lower(), path, parsed.params, urlencode(query), "")
    )


def strip_query_params(url: str, params: Iterable[str], prefixes: Iterable[str] = ()) -> str:
    """
    Remove selected query parameters and the fragment from a URL.

    Args:
        url: URL to clean
        params: Exact parameter names to drop
        prefixes: Parameter name prefixes to drop (e.g. ``utm_``)

    Returns:
        Cleaned URL, or the input unchanged when it cannot be parsed.
    """
    try:
        parsed = urlparse(url)
    except ValueError:
        return url

    drop = set(params)
    prefixes = tuple(prefixes)
    query = [
        (key, value)
        for key, value in parse_qsl(parsed.query, keep_blank_values=True)
        if key not in drop and not (prefixes and key.startswith(prefixes))
    ]
    return urlunparse(parsed._replace(query=urlencode(query), fragment=""))


def is_valid_job_url(url: Optional[str]) -> bool:
    """Check that an href is an absolute, navigable URL."""
    if not url:
        return False
    if url.startswith(("#", "mailto:", "tel:", "javascript:")):
        return False
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return bool(parsed.scheme and parsed.netloc)


def extract_embedded_job_url(url: Optional[str]) -> Optional[str]:
    """
    Unwrap social-sharing links that embed a second ``https://`` URL.

    Args:
        url: Possibly wrapped URL

    Returns:
        The embedded URL when one parses, otherwise the input.
    """
    if not url or url.count("https://") < 2:
        return url

    first = url.find("https://")
    second = url.find("https://", first + 1)
    embedded = url[second:]
    if is_valid_job_url(embedded):
        return embedded
    return url


def resolve_link(href: str, base_url: str) -> Optional[str]:
    """
    Turn a raw href into an absolute URL relative to the page it came from.

    Args:
        href: Raw href attribute value
        base_url: URL of the page that contained the link

    Returns:
        Absolute URL, or None when the href is not navigable.
    """
    if not href:
        return None
    href = href.strip()
    if href.startswith(("#", "mailto:", "tel:", "javascript:")):
        return None
    try:
        absolute = urljoin(base_url, extract_embedded_job_url(href))
    except ValueError:
        return None
    return absolute if is_valid_job_url(absolute) else None


def company_key(url: str) -> str:
    """
    Derive the company folder name for a job URL.

    Greenhouse boards use the first path segment (the board token);
    everything else uses the second-level domain label.

    Args:
        url: Job posting URL

    Returns:
        Lowercased company key, or ``unknown``.
    """
    try:
        parsed = urlparse(url)
    except ValueError:
        return "unknown"

    hostname = (parsed.hostname or "").lower()
    if not hostname:
        return "unknown"

    if hostname.endswith("greenhouse.io"):
        segments = [s for s in parsed.path.split("/") if s]
        if segments:
            return re.sub(r"[^a-z0-9_-]", "", segments[0].lower()) or "unknown"

    labels = hostname.split(".")
    if len(labels) >= 2:
        return labels[-2]
    return labels[0] or "unknown"
