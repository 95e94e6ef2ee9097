"""Text helpers: HTML to plain text, whitespace cleanup and description trimming."""

import html
import re
from typing import List, Optional, Tuple

from bs4 import BeautifulSoup

# (pattern, minimum offset) pairs marking the end of the real job description
ENDING_MARKERS: List[Tuple[re.Pattern, int]] = [
    (re.compile(r"equal opportunity employer", re.IGNORECASE), 800),
    (re.compile(r"we (do not|don't) discriminate", re.IGNORECASE), 800),
    (re.compile(r"by entering your email", re.IGNORECASE), 500),
    (re.compile(r"message and data rates", re.IGNORECASE), 500),
    (re.compile(r"cookie settings", re.IGNORECASE), 800),
    (re.compile(r"related jobs?:", re.IGNORECASE), 500),
    (re.compile(r"similar (positions|roles|jobs):", re.IGNORECASE), 500),
    (re.compile(r"other opportunities:", re.IGNORECASE), 500),
    (re.compile(r"copyright ©", re.IGNORECASE), 800),
    (re.compile(r"all rights reserved", re.IGNORECASE), 800),
    (re.compile(r"want to learn more about (us|our company)", re.IGNORECASE), 800),
    (re.compile(r"have (we )?piqued your curiosity\?", re.IGNORECASE), 1000),
]

_BLOCK_TAGS = ["p", "div", "br", "li", "ul", "ol", "h1", "h2", "h3", "h4", "h5", "h6", "tr", "section"]


def normalize_whitespace(text: Optional[str]) -> str:
    """Collapse runs of whitespace to single spaces."""
    if not text:
        return ""
    return re.sub(r"\s+", " ", text).strip()


def html_to_text(fragment: Optional[str]) -> str:
    """
    Convert an HTML fragment (possibly entity-encoded) to readable text.

    Block elements become line breaks, list items get a ``* `` bullet,
    images and scripts are dropped and link targets are ignored.

    Args:
        fragment: HTML string; entity-encoded HTML is decoded first

    Returns:
        Plain text with at most one blank line between paragraphs.
    """
    if not fragment:
        return ""

    decoded = html.unescape(fragment)
    soup = BeautifulSoup(decoded, "html.parser")

    for element in soup(["script", "style", "img", "noscript", "svg"]):
        element.decompose()

    for item in soup.find_all("li"):
        item.insert(0, "* ")
    for element in soup.find_all(_BLOCK_TAGS):
        element.append("\n")

    text = soup.get_text()
    lines = [normalize_whitespace(line) for line in text.splitlines()]

    collapsed: List[str] = []
    for line in lines:
        if not line and (not collapsed or not collapsed[-1]):
            continue
        collapsed.append(line)
    return "\n".join(collapsed).strip()


def clean_description(description: Optional[str]) -> str:
    """
    Trim a description at the earliest end-of-content marker.

    A marker only counts when it appears past its minimum offset, so an
    early "equal opportunity" mention in the body is kept.

    Args:
        description: Raw description text

    Returns:
        Trimmed description.
    """
    if not description or not description.strip():
        return description or ""

    cutoff = len(description)
    for pattern, min_position in ENDING_MARKERS:
        match = pattern.search(description)
        if match and min_position <= match.start() < cutoff:
            cutoff = match.start()

    if cutoff < len(description):
        return description[:cutoff].strip()
    return description
