"""Run identifiers and the per-run directory layout."""

import logging
import random
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from job_harvester.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

SEARCH_DIR = "job_boards"
LINKS_DIR = "job_links"
JOBS_DIR = "jobs"

REPORT_FILE = "report.json"
SEARCH_RESULTS_FILE = "search-results.csv"
JOBS_FILE = "jobs.csv"


def generate_run_id() -> str:
    """Generate a random 6-digit numeric run identifier."""
    return str(random.randint(100000, 999999))


@dataclass
class RunPaths:
    """Filesystem locations owned by one stage run."""

    run_id: str
    directory: Path
    report_path: Path
    ledger_path: Optional[Path] = None

    def ensure(self) -> "RunPaths":
        """Create the run directory."""
        self.directory.mkdir(parents=True, exist_ok=True)
        return self


def search_run(output_dir: Union[str, Path], run_id: str) -> RunPaths:
    """Paths for a Stage 1 run: ``job_boards/<id>/``."""
    directory = Path(output_dir) / SEARCH_DIR / run_id
    return RunPaths(run_id, directory, directory / REPORT_FILE, directory / SEARCH_RESULTS_FILE)


def links_run(output_dir: Union[str, Path], run_id: str) -> RunPaths:
    """Paths for a Stage 2 run: ``job_links/<id>/``."""
    directory = Path(output_dir) / LINKS_DIR / run_id
    return RunPaths(run_id, directory, directory / REPORT_FILE, directory / JOBS_FILE)


def jobs_run(output_dir: Union[str, Path], run_id: str) -> RunPaths:
    """Paths for a Stage 3 run: ``jobs/<id>/`` (records live in company subfolders)."""
    directory = Path(output_dir) / JOBS_DIR / run_id
    return RunPaths(run_id, directory, directory / REPORT_FILE)


def latest_run_id(output_dir: Union[str, Path], stage_dir: str) -> Optional[str]:
    """
    Find the most recently modified run directory for a stage.

    Args:
        output_dir: Base output directory
        stage_dir: One of ``job_boards``, ``job_links``, ``jobs``

    Returns:
        Run identifier, or None if the stage has no runs.
    """
    root = Path(output_dir) / stage_dir
    if not root.is_dir():
        return None
    runs = [p for p in root.iterdir() if p.is_dir()]
    if not runs:
        return None
    return max(runs, key=lambda p: p.stat().st_mtime).name


def resolve_upstream_run(
    output_dir: Union[str, Path], stage_dir: str, run_id: Optional[str]
) -> str:
    """
    Resolve the upstream run a stage should consume.

    Args:
        output_dir: Base output directory
        stage_dir: Upstream stage directory name
        run_id: Explicit run identifier, or None to use the latest run

    Returns:
        Existing run identifier.

    Raises:
        ConfigurationError: If the run does not exist or no run is found.
    """
    if run_id:
        if not (Path(output_dir) / stage_dir / run_id).is_dir():
            raise ConfigurationError(f"Run '{run_id}' not found in {Path(output_dir) / stage_dir}")
        return run_id

    latest = latest_run_id(output_dir, stage_dir)
    if latest is None:
        raise ConfigurationError(f"No runs found in {Path(output_dir) / stage_dir}")
    logger.info(f"Using latest {stage_dir} run: {latest}")
    return latest
