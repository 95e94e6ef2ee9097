"""Tests for job record storage."""

import json
import threading
from pathlib import Path

import pytest

from job_harvester.exceptions import ConfigurationError
from job_harvester.models import JobRecord
from job_harvester.storage.job_storage import JobStorage, format_job_text
from job_harvester.storage.runs import (
    LINKS_DIR,
    SEARCH_DIR,
    generate_run_id,
    latest_run_id,
    resolve_upstream_run,
    search_run,
)


@pytest.fixture
def sample_record():
    """Create a sample job record for testing."""
    return JobRecord(
        url="https://boards.greenhouse.io/acme/jobs/4012345",
        title="Senior Python Engineer",
        location="Remote",
        description="You will build data pipelines. Requirements: 5+ years of Python experience.",
        skills=["Python", "PostgreSQL"],
        source_strategy="greenhouse-api",
    )


class TestJobStorageInit:
    """Test JobStorage initialization."""

    def test_init_default_format(self, temp_dir):
        """Test initialization with default format."""
        storage = JobStorage(temp_dir)
        assert storage.output_format == "text"
        assert storage.base_dir == Path(temp_dir)

    def test_init_json_format(self, temp_dir):
        """Test initialization with JSON format."""
        assert JobStorage(temp_dir, "json").output_format == "json"

    def test_init_invalid_format(self, temp_dir):
        """Test unsupported formats are rejected."""
        with pytest.raises(ValueError, match="Unsupported output format"):
            JobStorage(temp_dir, "database")


class TestJobStorageSaveText:
    """Test text output."""

    def test_save_text_basic(self, temp_dir, sample_record):
        """Test the first record of a company lands in 1.txt."""
        storage = JobStorage(temp_dir)
        location = storage.save(sample_record, "acme")

        assert location == "acme/1.txt"
        content = (Path(temp_dir) / "acme" / "1.txt").read_text(encoding="utf-8")
        assert "TITLE: Senior Python Engineer" in content
        assert "LOCATION: Remote" in content
        assert "URL: https://boards.greenhouse.io/acme/jobs/4012345" in content
        assert "  - PostgreSQL" in content

    def test_numbering_continues_from_highest(self, temp_dir, sample_record):
        """Test numbering is one past the highest existing file."""
        company_dir = Path(temp_dir) / "acme"
        company_dir.mkdir()
        (company_dir / "1.txt").write_text("x")
        (company_dir / "7.txt").write_text("x")
        (company_dir / "notes.txt").write_text("x")

        assert JobStorage(temp_dir).save(sample_record, "acme") == "acme/8.txt"

    def test_concurrent_saves_get_distinct_numbers(self, temp_dir, sample_record):
        """Test parallel workers never overwrite each other's records."""
        storage = JobStorage(temp_dir)
        locations = []
        lock = threading.Lock()

        def save():
            location = storage.save(sample_record, "acme")
            with lock:
                locations.append(location)

        threads = [threading.Thread(target=save) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(locations, key=lambda loc: int(loc.split("/")[1].split(".")[0])) == [
            f"acme/{n}.txt" for n in range(1, 11)
        ]


class TestFormatJobText:
    """Test the text layout."""

    def test_layout(self, sample_record):
        text = format_job_text(sample_record)
        lines = text.splitlines()
        assert lines[0] == "=" * 80
        assert lines[1] == "JOB DETAILS"
        assert "SKILLS/REQUIREMENTS:" in lines
        assert "DESCRIPTION:" in lines
        assert lines[-1] == "=" * 80

    def test_no_skills_section_without_skills(self, sample_record):
        sample_record.skills = []
        assert "SKILLS/REQUIREMENTS:" not in format_job_text(sample_record)


class TestJobStorageSaveJSON:
    """Test JSON output."""

    def test_save_json_basic(self, temp_dir, sample_record):
        storage = JobStorage(temp_dir, "json")
        location = storage.save(sample_record, "acme")

        assert location == "acme/1.json"
        with open(Path(temp_dir) / "acme" / "1.json", "r") as f:
            data = json.load(f)
        assert data["title"] == "Senior Python Engineer"
        assert data["skills"] == ["Python", "PostgreSQL"]
        assert data["source_strategy"] == "greenhouse-api"


class TestRuns:
    """Test run identifiers and upstream resolution."""

    def test_generate_run_id(self):
        run_id = generate_run_id()
        assert len(run_id) == 6
        assert run_id.isdigit()

    def test_latest_run_id(self, temp_dir):
        assert latest_run_id(temp_dir, SEARCH_DIR) is None
        search_run(temp_dir, "111111").ensure()
        assert latest_run_id(temp_dir, SEARCH_DIR) == "111111"

    def test_resolve_explicit_missing(self, temp_dir):
        with pytest.raises(ConfigurationError, match="not found"):
            resolve_upstream_run(temp_dir, LINKS_DIR, "424242")

    def test_resolve_none_found(self, temp_dir):
        with pytest.raises(ConfigurationError, match="No runs found"):
            resolve_upstream_run(temp_dir, LINKS_DIR, None)

    def test_resolve_explicit(self, temp_dir):
        search_run(temp_dir, "123456").ensure()
        assert resolve_upstream_run(temp_dir, SEARCH_DIR, "123456") == "123456"
