"""
Progress report persistence.

Reports are small JSON documents rewritten whole on every checkpoint.
Loading never fails: a missing or corrupt file yields an empty report so a
damaged checkpoint cannot abort a run.
"""

import json
import logging
import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

ReportT = TypeVar("ReportT", bound=BaseModel)


def load_report(path: Union[str, Path], model: Type[ReportT]) -> ReportT:
    """
    Load a progress report, or an empty one if absent or unreadable.

    Args:
        path: Path to report.json
        model: Report model class (SearchReport, LinkReport, DetailReport)

    Returns:
        Parsed report instance.
    """
    path = Path(path)
    if not path.exists():
        return model()

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError("report root is not an object")
        return model.model_validate(data)
    except (OSError, ValueError, ValidationError) as e:
        logger.warning(f"⚠️  Ignoring unreadable report {path}: {e}")
        return model()


def save_report(path: Union[str, Path], report: BaseModel) -> None:
    """
    Overwrite a progress report with the full document.

    The file is written to a sibling temp file and renamed into place so a
    crash mid-write leaves the previous checkpoint intact.

    Args:
        path: Path to report.json
        report: Report model to persist
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = report.model_dump(mode="json", by_alias=True, exclude_none=True)

    tmp_path = path.with_name(f".{path.name}.tmp")
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)
    os.replace(tmp_path, path)


class ReportStore:
    """
    Report file shared by concurrent workers.

    Holds the in-memory report and serializes every load-merge-save through
    one lock so updates from different workers are never lost.

    Example:
        ```python
        store = ReportStore(report_path, LinkReport)
        with store.update() as report:
            report.link_extraction_report[url] = entry
        ```
    """

    def __init__(self, path: Union[str, Path], model: Type[ReportT]):
        self.path = Path(path)
        self.model = model
        self._lock = threading.Lock()
        self.report = load_report(self.path, model)

    @contextmanager
    def update(self) -> Iterator[BaseModel]:
        """Yield the report for mutation, then persist it while still locked."""
        with self._lock:
            yield self.report
            save_report(self.path, self.report)

    def save(self) -> None:
        """Persist the current report."""
        with self._lock:
            save_report(self.path, self.report)

    def reset(self) -> None:
        """Replace the report with an empty one and persist it."""
        with self._lock:
            self.report = self.model()
            save_report(self.path, self.report)
