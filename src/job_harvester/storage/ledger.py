"""
CSV row ledgers.

A ledger holds one row per discovered URL with a status column. Column
order and the ``pending``/``done``/``failed`` vocabulary are part of the
on-disk format shared between stages.
"""

import csv
import logging
import os
import threading
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Set, Union

logger = logging.getLogger(__name__)

SEARCH_RESULT_COLUMNS = ["URL", "STATUS", "JOB_COUNT", "SNIPPET", "LOGO_URL", "REMARKS"]
JOB_COLUMNS = [
    "URL",
    "PROVIDER",
    "STATUS",
    "REMARKS",
    "OUTPUT_LOCATION",
    "DETAIL_STRATEGY",
    "RETRY_COUNT",
]

Row = Dict[str, str]

_locks: Dict[str, threading.RLock] = {}
_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.RLock:
    key = str(path.resolve())
    with _locks_guard:
        if key not in _locks:
            _locks[key] = threading.RLock()
        return _locks[key]


class Ledger:
    """
    CSV ledger with a fixed column set.

    Every operation takes a per-file lock, so two ``Ledger`` objects for the
    same path (e.g. Stage 3 updating the ledger Stage 2 wrote) still
    serialize their writes.
    """

    def __init__(self, path: Union[str, Path], columns: Sequence[str]):
        """
        Initialize a ledger.

        Args:
            path: CSV file path
            columns: Column names in on-disk order; the first must be URL
        """
        self.path = Path(path)
        self.columns = list(columns)
        self.lock = _lock_for(self.path)

    def ensure(self) -> None:
        """Create the file with just a header row if it does not exist."""
        with self.lock:
            if not self.path.exists():
                self.path.parent.mkdir(parents=True, exist_ok=True)
                self._write_rows([])

    def read(self) -> List[Row]:
        """
        Read all rows.

        Returns:
            Rows as dicts keyed by column; missing cells read as "".
        """
        with self.lock:
            if not self.path.exists():
                return []
            with open(self.path, "r", newline="", encoding="utf-8") as f:
                reader = csv.DictReader(f)
                rows = []
                for raw in reader:
                    url = (raw.get("URL") or "").strip()
                    if not url:
                        continue
                    rows.append({col: (raw.get(col) or "") for col in self.columns})
                return rows

    def urls(self) -> Set[str]:
        """Return the set of URLs already in the ledger."""
        return {row["URL"] for row in self.read()}

    def write(self, rows: Iterable[Row]) -> None:
        """Replace the whole ledger with ``rows``."""
        with self.lock:
            self._write_rows(rows)

    def append(self, rows: Iterable[Row]) -> int:
        """
        Append rows to the ledger.

        Args:
            rows: Row dicts; unknown keys are ignored, missing keys written empty

        Returns:
            Number of rows appended.
        """
        rows = list(rows)
        if not rows:
            return 0
        with self.lock:
            self.ensure()
            with open(self.path, "a", newline="", encoding="utf-8") as f:
                writer = csv.DictWriter(f, fieldnames=self.columns, extrasaction="ignore", lineterminator="\n")
                for row in rows:
                    writer.writerow({col: row.get(col, "") for col in self.columns})
        return len(rows)

    def update_row(self, url: str, fields: Dict[str, object]) -> Optional[Row]:
        """
        Update columns of the row whose URL matches exactly.

        Args:
            url: URL of the row to update
            fields: Column → new value; values are stringified

        Returns:
            The updated row, or None if no row matched.
        """
        with self.lock:
            rows = self.read()
            updated: Optional[Row] = None
            for row in rows:
                if row["URL"] == url:
                    for column, value in fields.items():
                        if column in self.columns:
                            row[column] = "" if value is None else str(value)
                    updated = row
                    break

            if updated is None:
                logger.warning(f"No ledger row for {url} in {self.path.name}")
                return None

            self.write(rows)
            return updated

    def _write_rows(self, rows: Iterable[Row]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(f".{self.path.name}.tmp")
        with open(tmp_path, "w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=self.columns, extrasaction="ignore", lineterminator="\n")
            writer.writeheader()
            for row in rows:
                writer.writerow({col: row.get(col, "") for col in self.columns})
        os.replace(tmp_path, self.path)

    def __repr__(self) -> str:
        return f"Ledger({self.path})"
