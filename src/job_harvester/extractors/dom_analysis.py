"""
Heuristic DOM-analysis layer.

Used when a page carries no structured job data. The title is the most
prominent heading that does not look navigational; the description is
the highest-scoring content container that is not nested inside another
candidate.
"""

import logging
import re
from typing import List, Optional, Tuple

from bs4 import BeautifulSoup, Tag

from job_harvester.models import DetailStrategy, JobRecord
from job_harvester.utils.text import clean_description, html_to_text, normalize_whitespace

logger = logging.getLogger(__name__)

NOT_SPECIFIED = "Not specified"

MIN_CONTAINER_LENGTH = 300
LISTING_PENALTY = 10000
BOUNDARY_PENALTY = 5000
LINK_DENSITY_PENALTY = 2000
MAX_LINKS_PER_100_CHARS = 2
KEYWORD_BONUS = 50

# Default rendered font sizes in px
HEADING_FONT_SIZES = {"h1": 32.0, "h2": 24.0, "h3": 18.72}
# Characters of preceding text treated as one "screen" when weighting position
POSITION_SCALE = 2000

ERROR_PAGE_PATTERNS = [
    re.compile(r"couldn't find"),
    re.compile(r"page not found"),
    re.compile(r"job posting.*closed"),
    re.compile(r"posting.*removed"),
    re.compile(r"sorry.*nothing"),
]

TITLE_EXCLUSIONS = [
    re.compile(r"current openings", re.IGNORECASE),
    re.compile(r"open roles", re.IGNORECASE),
    re.compile(r"careers at", re.IGNORECASE),
    re.compile(r"^join", re.IGNORECASE),
    re.compile(r"^about", re.IGNORECASE),
    re.compile(r"^home$", re.IGNORECASE),
    re.compile(r"^careers$", re.IGNORECASE),
    re.compile(r"^jobs$", re.IGNORECASE),
    re.compile(r"what we're looking for", re.IGNORECASE),
    re.compile(r"what you'll do", re.IGNORECASE),
    re.compile(r"who you are", re.IGNORECASE),
    re.compile(r"your role", re.IGNORECASE),
    re.compile(r"responsibilities", re.IGNORECASE),
    re.compile(r"requirements", re.IGNORECASE),
    re.compile(r"qualifications", re.IGNORECASE),
]

BOUNDARY_MARKERS = [
    "equal opportunity employer",
    "we do not discriminate",
    "privacy policy",
    "cookie policy",
    "apply now",
    "submit application",
    "have questions",
    "want to learn more",
    "by entering your email",
    "message and data rates",
    "your privacy choices",
    "terms of use",
    "cookie settings",
]

DESCRIPTION_KEYWORDS = [
    "responsibilities",
    "requirements",
    "qualifications",
    "experience",
    "you will",
    "what you'll do",
    "about the role",
    "skills",
]

NOISE_SELECTORS = [
    "nav",
    "header",
    "footer",
    "iframe",
    '[role="navigation"]',
    '[role="banner"]',
    '[role="contentinfo"]',
    '[class*="nav"]',
    '[class*="menu"]',
    '[class*="header"]',
    '[class*="footer"]',
    '[class*="sidebar"]',
    '[class*="cookie"]',
    '[class*="consent"]',
    '[aria-label*="navigation"]',
    '[aria-label*="menu"]',
    "script",
    "style",
    "noscript",
]

LOCATION_PATTERNS = [
    re.compile(r"location:\s*([^<\n]+)", re.IGNORECASE),
    re.compile(r"based in:\s*([^<\n]+)", re.IGNORECASE),
    re.compile(r"office:\s*([^<\n]+)", re.IGNORECASE),
]

SKILL_NAV_KEYWORDS = [
    "working at",
    "how to apply",
    "life in",
    "athletics",
    "business and finance",
    "human resources",
    "login",
    "sign in",
    "register",
    "home",
    "about",
    "contact",
    "careers",
    "jobs",
    "english",
    "language",
]

_FONT_SIZE = re.compile(r"font-size\s*:\s*([\d.]+)\s*(px|rem|em)", re.IGNORECASE)


def _text(element: Tag) -> str:
    return normalize_whitespace(element.get_text(" "))


def _strip_title_suffix(text: str) -> str:
    return text.split(" - ")[0].split(" | ")[0].strip()


def is_error_page(soup: BeautifulSoup) -> bool:
    """Detect 404 / removed-posting pages before analysing them."""
    page_title = (soup.title.get_text() if soup.title else "").lower()
    if "404" in page_title or "not found" in page_title or "error" in page_title:
        return True
    body = (soup.body or soup).get_text(" ").lower()
    return any(pattern.search(body) for pattern in ERROR_PAGE_PATTERNS)


def _in_navigation(element: Tag, depth: int = 5, extra_tags: Tuple[str, ...] = ()) -> bool:
    parent = element.parent
    for _ in range(depth):
        if not isinstance(parent, Tag):
            return False
        classes = " ".join(parent.get("class") or [])
        if (
            parent.name == "nav"
            or parent.get("role") == "navigation"
            or parent.name in extra_tags
            or (extra_tags and any(marker in classes for marker in ("nav", "menu", "header")))
        ):
            return True
        parent = parent.parent
    return False


def _font_size(heading: Tag) -> float:
    match = _FONT_SIZE.search(heading.get("style") or "")
    if match:
        size = float(match.group(1))
        return size * 16 if match.group(2).lower() in ("rem", "em") else size
    return HEADING_FONT_SIZES.get(heading.name, 16.0)


def _heading_offsets(soup: BeautifulSoup) -> List[Tuple[Tag, int]]:
    """Pair each h1-h3 with the amount of text that precedes it."""
    offsets = []
    consumed = 0
    for node in (soup.body or soup).descendants:
        if isinstance(node, Tag):
            if node.name in HEADING_FONT_SIZES:
                offsets.append((node, consumed))
        elif isinstance(node, str) and node.parent is not None and node.parent.name not in ("script", "style"):
            consumed += len(node.strip())
    return offsets


def extract_title(soup: BeautifulSoup) -> str:
    """
    Pick the most job-title-like text on the page.

    Order: ``og:title``, the document title (unless generic), the best
    scoring heading, then ``data-qa``/``aria-label`` title elements.
    """
    og_title = soup.find("meta", attrs={"property": "og:title"})
    if og_title and og_title.get("content"):
        cleaned = _strip_title_suffix(og_title["content"].strip())
        if 5 <= len(cleaned) <= 200:
            return cleaned

    doc_title = soup.title.get_text().strip() if soup.title else ""
    if doc_title and "careers" not in doc_title.lower() and "jobs" not in doc_title.lower():
        cleaned = _strip_title_suffix(doc_title)
        if 5 <= len(cleaned) <= 200:
            return cleaned

    best_heading, best_score = "", 0.0
    for heading, offset in _heading_offsets(soup):
        text = _text(heading)
        if len(text) < 5 or len(text) > 200:
            continue
        if any(pattern.search(text) for pattern in TITLE_EXCLUSIONS):
            continue
        if _in_navigation(heading):
            continue
        position_weight = max(1.0, 3 - offset / POSITION_SCALE)
        tag_boost = 1.5 if heading.name == "h1" else 1.0
        score = _font_size(heading) * position_weight * tag_boost
        if score > best_score:
            best_heading, best_score = text, score

    if best_heading:
        return best_heading

    for element in soup.select('[data-qa*="job-title"], [data-qa*="position"], [aria-label*="job title"]'):
        text = _text(element)
        if 5 <= len(text) <= 200:
            return text
    return ""


def _looks_like_listing(text: str) -> bool:
    view_jobs = len(re.findall(r"view job", text, re.IGNORECASE))
    if view_jobs >= 3 and len(text) / view_jobs < 400:
        return True
    lowered = text.lower()
    return any(p in lowered for p in ("related jobs", "similar jobs", "other opportunities")) and len(text) < 1500


def score_container(container: Tag) -> int:
    """Description-likeness: text length plus keyword bonus, minus penalties."""
    text = container.get_text(" ").strip()
    length = len(text)
    if length < MIN_CONTAINER_LENGTH:
        return 0

    lowered = text.lower()
    penalty = 0
    if _looks_like_listing(text):
        penalty += LISTING_PENALTY
    if any(marker in lowered for marker in BOUNDARY_MARKERS):
        penalty += BOUNDARY_PENALTY
    links = len(container.find_all("a"))
    if links / max(1, length / 100) > MAX_LINKS_PER_100_CHARS:
        penalty += LINK_DENSITY_PENALTY

    bonus = KEYWORD_BONUS * sum(1 for keyword in DESCRIPTION_KEYWORDS if keyword in lowered)
    return length + bonus - penalty


def extract_description_html(html: str) -> str:
    """Return the inner HTML of the best description container."""
    soup = BeautifulSoup(html, "html.parser")
    body = soup.body or soup
    for selector in NOISE_SELECTORS:
        for element in body.select(selector):
            element.decompose()

    main = body.select_one('main, article, [role="main"]') or body
    containers = main.find_all(["section", "article", "div"]) + [main]

    scored = [(c, score_container(c)) for c in containers]
    scored = [(c, s) for c, s in scored if s > 0]
    scored_ids = {id(c) for c, _ in scored}
    top_level = [(c, s) for c, s in scored if not any(id(p) in scored_ids for p in c.parents)]
    if not top_level:
        return main.decode_contents()

    best, _ = max(top_level, key=lambda item: item[1])
    return best.decode_contents()


def extract_location(soup: BeautifulSoup) -> str:
    body_text = (soup.body or soup).get_text("\n")
    for pattern in LOCATION_PATTERNS:
        match = pattern.search(body_text)
        if match:
            location = match.group(1).strip()
            if 2 <= len(location) <= 100:
                return location

    for element in soup.select('[itemprop="jobLocation"], [data-location], .location, [class*="location"]'):
        text = _text(element)
        if 2 <= len(text) <= 100:
            return text
    return NOT_SPECIFIED


def extract_skills(soup: BeautifulSoup) -> List[str]:
    """Collect requirement-like bullet points from content lists."""
    skills: List[str] = []
    for list_element in soup.find_all(["ul", "ol"]):
        if _in_navigation(list_element, extra_tags=("footer", "header")):
            continue

        items = list_element.find_all("li")
        short_items = [item for item in items if len(_text(item)) < 30]
        if len(short_items) > 5 and len(short_items) > len(items) * 0.7:
            continue

        for item in items:
            text = _text(item)
            if len(text) < 15 or len(text) > 500:
                continue
            lowered = text.lower()
            if any(keyword in lowered for keyword in SKILL_NAV_KEYWORDS):
                continue
            if item.find("a") and len(text) < 50:
                continue
            skills.append(text)

        if len(skills) > 3:
            break
    return skills


def analyze_dom(html: str, url: str) -> Optional[JobRecord]:
    """
    Extract a job record from the page structure.

    Args:
        html: Rendered page HTML
        url: Job URL recorded on the result

    Returns:
        JobRecord candidate, or None for detected error pages.
    """
    if not html:
        return None

    soup = BeautifulSoup(html, "html.parser")
    if is_error_page(soup):
        logger.debug(f"Error page detected at {url}")
        return None

    description = clean_description(html_to_text(extract_description_html(html)))
    return JobRecord(
        url=url,
        title=extract_title(soup),
        location=extract_location(soup),
        description=description,
        skills=extract_skills(soup),
        source_strategy=DetailStrategy.INTELLIGENT_ANALYSIS.value,
    )
