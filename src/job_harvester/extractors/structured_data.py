"""
Structured-data extraction layer.

Reads schema.org ``JobPosting`` objects from JSON-LD scripts, and falls
back to the ``window.__remixContext`` state that Greenhouse's hosted job
boards embed in the page.
"""

import json
import logging
import re
from typing import Any, Dict, Iterator, List, Optional

from bs4 import BeautifulSoup

from job_harvester.models import DetailStrategy, JobRecord
from job_harvester.utils.text import clean_description, html_to_text, normalize_whitespace

logger = logging.getLogger(__name__)

NOT_SPECIFIED = "Not specified"

_REMIX_CONTEXT = re.compile(r"window\.__remixContext\s*=\s*")


def _iter_json_ld(soup: BeautifulSoup) -> Iterator[Dict[str, Any]]:
    for script in soup.find_all("script", type="application/ld+json"):
        try:
            data = json.loads(script.string or script.get_text() or "")
        except ValueError:
            continue
        stack: List[Any] = [data]
        while stack:
            node = stack.pop(0)
            if isinstance(node, list):
                stack.extend(node)
            elif isinstance(node, dict):
                yield node
                if isinstance(node.get("@graph"), list):
                    stack.extend(node["@graph"])


def _is_job_posting(node: Dict[str, Any]) -> bool:
    node_type = node.get("@type")
    if isinstance(node_type, list):
        return "JobPosting" in node_type
    return node_type == "JobPosting"


def _location(job_location: Any) -> str:
    if isinstance(job_location, list):
        names = [_location(item) for item in job_location]
        names = [name for name in names if name and name != NOT_SPECIFIED]
        return ", ".join(dict.fromkeys(names)) or NOT_SPECIFIED
    if isinstance(job_location, str):
        return job_location.strip() or NOT_SPECIFIED
    if isinstance(job_location, dict):
        address = job_location.get("address")
        if isinstance(address, dict):
            return (
                address.get("addressLocality")
                or address.get("addressRegion")
                or job_location.get("name")
                or NOT_SPECIFIED
            )
        if isinstance(address, str) and address.strip():
            return address.strip()
        if job_location.get("name"):
            return job_location["name"]
    return NOT_SPECIFIED


def _skills(node: Dict[str, Any]) -> List[str]:
    skills: List[str] = []
    raw = node.get("skills")
    if isinstance(raw, list):
        skills.extend(s if isinstance(s, str) else s.get("name", "") for s in raw if isinstance(s, (str, dict)))
    elif isinstance(raw, str) and raw.strip():
        skills.extend(part.strip() for part in re.split(r"[,\n]", raw) if part.strip())
    occupations = node.get("relevantOccupation")
    if isinstance(occupations, list):
        skills.extend(o if isinstance(o, str) else o.get("name", "") for o in occupations if isinstance(o, (str, dict)))
    return [normalize_whitespace(s) for s in skills if s]


def _from_job_posting(node: Dict[str, Any], url: str) -> JobRecord:
    description = node.get("description") or ""
    if description:
        description = clean_description(html_to_text(description))
    return JobRecord(
        url=url,
        title=normalize_whitespace(node.get("title") or node.get("name")),
        location=normalize_whitespace(_location(node.get("jobLocation"))) or NOT_SPECIFIED,
        description=description.strip(),
        skills=_skills(node),
        source_strategy=DetailStrategy.STRUCTURED_DATA.value,
        raw_meta={
            "employmentType": node.get("employmentType"),
            "datePosted": node.get("datePosted"),
            "hiringOrganization": (node.get("hiringOrganization") or {}).get("name")
            if isinstance(node.get("hiringOrganization"), dict)
            else None,
        },
    )


def _remix_job_post(html: str) -> Optional[Dict[str, Any]]:
    match = _REMIX_CONTEXT.search(html)
    if not match:
        return None
    try:
        context, _ = json.JSONDecoder().raw_decode(html, match.end())
    except ValueError:
        logger.debug("Could not decode window.__remixContext")
        return None

    loader_data = ((context or {}).get("state") or {}).get("loaderData") or {}
    for node in loader_data.values():
        job_post = node.get("jobPost") if isinstance(node, dict) else None
        if isinstance(job_post, dict) and job_post.get("title"):
            return job_post
    return None


def extract_structured_data(html: str, url: str) -> Optional[JobRecord]:
    """
    Extract a job record from embedded structured metadata.

    Args:
        html: Rendered page HTML
        url: Job URL recorded on the result

    Returns:
        JobRecord from the first JobPosting found, or None when the page
        carries no structured job data.
    """
    if not html:
        return None

    soup = BeautifulSoup(html, "html.parser")
    for node in _iter_json_ld(soup):
        if _is_job_posting(node):
            return _from_job_posting(node, url)

    job_post = _remix_job_post(html)
    if job_post:
        combined = "\n".join(job_post.get(part) or "" for part in ("introduction", "content", "conclusion"))
        return JobRecord(
            url=url,
            title=normalize_whitespace(job_post.get("title")),
            location=normalize_whitespace(job_post.get("job_post_location")) or NOT_SPECIFIED,
            description=clean_description(html_to_text(combined)),
            source_strategy=DetailStrategy.STRUCTURED_DATA.value,
        )
    return None
