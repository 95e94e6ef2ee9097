"""
Validation gate applied to every extraction layer's candidate record.

A rejection is not a system error: the caller records the reason on the
ledger row and the URL stays eligible for a later retry.
"""

import re
from dataclasses import dataclass
from typing import Optional

from job_harvester.models import JobRecord

MIN_TITLE_LENGTH = 5
MAX_TITLE_LENGTH = 300
MIN_DESCRIPTION_LENGTH = 100

TITLE_ERROR_PATTERNS = [
    re.compile(r"404", re.IGNORECASE),
    re.compile(r"not found", re.IGNORECASE),
    re.compile(r"error", re.IGNORECASE),
    re.compile(r"current openings", re.IGNORECASE),
    re.compile(r"open roles", re.IGNORECASE),
]

COMMON_PAGE_HEADINGS = {"home", "careers", "jobs", "current openings", "open roles", "join us"}

DESCRIPTION_ERROR_PATTERNS = [
    re.compile(r"couldn't find", re.IGNORECASE),
    re.compile(r"page not found", re.IGNORECASE),
    re.compile(r"posting.*closed", re.IGNORECASE),
    re.compile(r"removed", re.IGNORECASE),
    re.compile(r"sorry.*nothing", re.IGNORECASE),
]

JOB_KEYWORDS = [
    "experience",
    "responsibilities",
    "requirements",
    "qualifications",
    "skills",
    "role",
    "position",
    "you will",
    "you have",
    "we are looking",
    "team",
    "opportunity",
]


@dataclass
class ValidationResult:
    """Outcome of the validation gate."""

    valid: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.valid


def validate_title(title: Optional[str]) -> Optional[str]:
    """Return a rejection reason for a title, or None if it is acceptable."""
    title = title or ""
    if not title.strip() or title == "N/A":
        return "Title is empty or N/A"
    if len(title) < MIN_TITLE_LENGTH:
        return f"Title too short (< {MIN_TITLE_LENGTH} characters)"
    if len(title) > MAX_TITLE_LENGTH:
        return f"Title too long (> {MAX_TITLE_LENGTH} characters)"
    if any(pattern.search(title) for pattern in TITLE_ERROR_PATTERNS):
        return "Title contains error message or page heading"
    if title.strip().lower() in COMMON_PAGE_HEADINGS:
        return "Title is a common page heading, not a job title"
    return None


def validate_description(description: Optional[str]) -> Optional[str]:
    """Return a rejection reason for a description, or None if it is acceptable."""
    description = description or ""
    if not description.strip() or description == "No description found":
        return "Description is empty or placeholder"
    if len(description) < MIN_DESCRIPTION_LENGTH:
        return f"Description too short (< {MIN_DESCRIPTION_LENGTH} characters)"
    if any(pattern.search(description) for pattern in DESCRIPTION_ERROR_PATTERNS):
        return "Description contains 404 or error message"
    lowered = description.lower()
    if not any(keyword in lowered for keyword in JOB_KEYWORDS):
        return "Description does not contain job-related keywords"
    return None


def validate_record(record: Optional[JobRecord]) -> ValidationResult:
    """
    Check a candidate record against the acceptance rules.

    Args:
        record: Candidate produced by an extraction layer

    Returns:
        ValidationResult with the first rejection reason, if any.
    """
    if record is None:
        return ValidationResult(False, "No data extracted")
    reason = validate_title(record.title) or validate_description(record.description)
    return ValidationResult(reason is None, reason)
