"""Storage handlers for extracted job records."""

import json
import logging
import re
import threading
from pathlib import Path
from typing import Dict, Union

from job_harvester.models import JobRecord

logger = logging.getLogger(__name__)

_NUMBERED_FILE = re.compile(r"^(\d+)\.(txt|json)$")


def format_job_text(record: JobRecord) -> str:
    """
    Render a job record as the plain-text report layout.

    Args:
        record: Job record to render

    Returns:
        Text with a banner, TITLE/LOCATION/URL fields, optional skills
        bullets and the description block.
    """
    lines = ["=" * 80, "JOB DETAILS", "=" * 80, ""]

    lines += [f"TITLE: {record.title}", ""]
    lines += [f"LOCATION: {record.location}", ""]
    lines += [f"URL: {record.url}", ""]

    if record.skills:
        lines.append("SKILLS/REQUIREMENTS:")
        lines.extend(f"  - {skill}" for skill in record.skills)
        lines.append("")

    lines += ["-" * 80, "DESCRIPTION:", "-" * 80, ""]
    lines += [record.description, ""]
    lines.append("=" * 80)

    return "\n".join(lines)


class JobStorage:
    """Write job records into per-company folders with sequential file numbers."""

    def __init__(self, base_dir: Union[str, Path], output_format: str = "text"):
        """
        Initialize storage.

        Args:
            base_dir: Stage 3 run directory
            output_format: ``text`` (``n.txt``) or ``json`` (``n.json``)
        """
        if output_format not in ("text", "json"):
            raise ValueError(f"Unsupported output format: {output_format}")
        self.base_dir = Path(base_dir)
        self.output_format = output_format
        self._company_locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, company: str) -> threading.Lock:
        with self._guard:
            return self._company_locks.setdefault(company, threading.Lock())

    def next_job_number(self, company: str) -> int:
        """Return one past the highest numbered record in a company folder."""
        company_dir = self.base_dir / company
        if not company_dir.is_dir():
            return 1
        numbers = [
            int(match.group(1))
            for match in (_NUMBERED_FILE.match(p.name) for p in company_dir.iterdir())
            if match
        ]
        return max(numbers) + 1 if numbers else 1

    def save(self, record: JobRecord, company: str) -> str:
        """
        Save a job record.

        Args:
            record: Job record to write
            company: Company folder name

        Returns:
            Output location relative to the run directory, e.g. ``acme/3.txt``.
        """
        with self._lock_for(company):
            company_dir = self.base_dir / company
            company_dir.mkdir(parents=True, exist_ok=True)
            number = self.next_job_number(company)

            if self.output_format == "json":
                file_name = f"{number}.json"
                with open(company_dir / file_name, "w", encoding="utf-8") as f:
                    json.dump(record.model_dump(), f, indent=2)
            else:
                file_name = f"{number}.txt"
                with open(company_dir / file_name, "w", encoding="utf-8") as f:
                    f.write(format_job_text(record))

        location = f"{company}/{file_name}"
        logger.debug(f"Saved job record {location}")
        return location
