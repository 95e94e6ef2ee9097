"""
Job-detail-page heuristic used to filter harvested links.

A URL that fails this check is intentionally excluded, not an error:
career landing pages, team pages, department filters, galleries and
pagination links all look like job links to a naive selector.
"""

import re
from typing import List, Optional, Sequence
from urllib.parse import parse_qs, urlparse

from bs4 import BeautifulSoup

from job_harvester.utils.url_utils import canonical_key, extract_job_id, host_matches, resolve_link

ATS_HOSTS = (
    "greenhouse.io",
    "job-boards.greenhouse.io",
    "boards.greenhouse.io",
    "lever.co",
    "ashbyhq.com",
    "workday.com",
    "myworkdayjobs.com",
    "workdayjobs.com",
)

_CITIES = (
    "chicago|dublin|tokyo|london|munich|new-york|san-francisco|paris|reykjavik|sydney|"
    "singapore|vancouver|warsaw|nyc|sf|la|boston|seattle|austin|denver|atlanta|miami|"
    "dallas|houston|phoenix|portland|philadelphia|berlin|amsterdam|barcelona|madrid|rome|"
    "milan|stockholm|oslo|copenhagen|helsinki|zurich|vienna|brussels|lisbon|prague|"
    "budapest|toronto|montreal|melbourne|bangalore|mumbai|delhi|shanghai|beijing|"
    "hong-kong|seoul|taipei"
)

_DEPARTMENTS = (
    "business|engineering|product|internal|design|marketing|sales|support|operations|"
    "finance|legal|data|security|infrastructure|research|university-recruiting|internship"
)

EXCLUDE_PATTERNS: List[re.Pattern] = [
    re.compile(r"/careers/?$"),
    re.compile(r"/jobs/?$"),
    re.compile(r"/career/?$"),
    re.compile(r"/(faqs?|about|team|benefits|culture|life|perks|diversity|contact|early-careers)[/?]"),
    re.compile(r"life-as"),
    re.compile(r"our-entrepreneurs"),
    re.compile(r"episodes/"),
    re.compile(r"#job-board"),
    re.compile(r"open-positions/?$"),
    re.compile(r"/[a-z]{2}/.*careers/?$"),
    re.compile(r"/apply/?$"),
    re.compile(r"/(search|all|university)/?$"),
    re.compile(r"/departments?/?$"),
    re.compile(rf"/({_CITIES})/?$", re.IGNORECASE),
    re.compile(rf"/({_DEPARTMENTS})/?$", re.IGNORECASE),
    re.compile(r"job-opening-list"),
    re.compile(r"job-openings"),
    re.compile(r"\.(jpg|jpeg|png|gif|svg|webp|pdf|doc|docx)$", re.IGNORECASE),
    re.compile(r"[/?]page=", re.IGNORECASE),
    re.compile(r"/gallery", re.IGNORECASE),
    re.compile(r"/photos?", re.IGNORECASE),
]

POSITIVE_SIGNALS: List[re.Pattern] = [
    re.compile(r"\bjobs?\b"),
    re.compile(r"\bcareers?\b"),
    re.compile(r"open-positions"),
    re.compile(r"positions?"),
    re.compile(r"opportunit(y|ies)"),
]


def is_ats_host(hostname: str) -> bool:
    """Check whether a hostname belongs to a known applicant tracking system."""
    if not hostname:
        return False
    hostname = hostname.lower()
    return host_matches(hostname, *ATS_HOSTS)


def is_job_detail_page(url: str) -> bool:
    """
    Decide whether a URL points at an individual job posting.

    Args:
        url: Absolute URL

    Returns:
        True for URLs with an explicit job id (``gh_jid``), ATS job paths,
        or a numeric posting id plus a job-related path signal.
    """
    try:
        parsed = urlparse(url)
    except ValueError:
        return False

    if not parsed.scheme or not parsed.netloc:
        return False

    hostname = (parsed.hostname or "").lower()
    path = parsed.path.lower()
    search = f"?{parsed.query}".lower() if parsed.query else ""

    if "gh_jid=" in url.lower() or "gh_jid" in parse_qs(parsed.query):
        return True

    if is_ats_host(hostname) and ("/jobs/" in path or "/job/" in path or "/job_app" in path):
        return True

    for pattern in EXCLUDE_PATTERNS:
        if pattern.search(path) or pattern.search(search):
            return False

    if extract_job_id(url) is None:
        return False

    haystack = f"{path} {search}"
    return any(signal.search(haystack) for signal in POSITIVE_SIGNALS)


def extract_job_links(html: str, base_url: str, selectors: Optional[Sequence[str]] = None) -> List[str]:
    """
    Collect job-detail links from a page.

    Anchors matching ``selectors`` are used when any match; otherwise
    every anchor on the page is considered. Links are resolved against
    ``base_url``, filtered through ``is_job_detail_page`` and
    deduplicated by canonical key in document order.

    Args:
        html: Page or frame HTML
        base_url: URL the HTML was loaded from
        selectors: CSS selectors for candidate anchors

    Returns:
        Absolute job URLs.
    """
    if not html:
        return []

    soup = BeautifulSoup(html, "html.parser")
    anchors = []
    for selector in selectors or []:
        anchors.extend(soup.select(selector))
    if not anchors:
        anchors = soup.find_all("a", href=True)

    links: List[str] = []
    seen = set()
    own_key = canonical_key(base_url)
    for anchor in anchors:
        url = resolve_link(anchor.get("href", ""), base_url)
        if not url or not is_job_detail_page(url):
            continue
        key = canonical_key(url)
        if key in seen or key == own_key:
            continue
        seen.add(key)
        links.append(url)
    return links
