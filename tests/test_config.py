"""Tests for configuration loading."""

from pathlib import Path

import pytest

from job_harvester.config import (
    DEFAULT_JOB_LINK_SELECTORS,
    apply_env_overrides,
    load_config,
    parse_bool,
    parse_int,
    parse_list,
)
from job_harvester.exceptions import ConfigurationError


class TestParsers:
    """Test environment value parsing."""

    def test_parse_bool(self):
        assert parse_bool("TRUE", False) is True
        assert parse_bool("false", True) is False
        assert parse_bool("yes", True) is False
        assert parse_bool(None, True) is True
        assert parse_bool("", False) is False

    def test_parse_int(self):
        assert parse_int("7", 5) == 7
        assert parse_int("seven", 5) == 5
        assert parse_int(None, 5) == 5

    def test_parse_list(self):
        assert parse_list("a.job, .posting a ,", ["x"]) == ["a.job", ".posting a"]
        assert parse_list("", ["x"]) == ["x"]
        assert parse_list(" , ", ["x"]) == ["x"]


class TestLoadConfig:
    """Test YAML + environment loading."""

    def test_defaults_without_file(self, temp_dir, monkeypatch):
        """Test defaults apply when no file and no env are present."""
        monkeypatch.chdir(temp_dir)
        config = load_config(env={})
        assert config.crawler.concurrency == 5
        assert config.crawler.max_pages == 10
        assert config.crawler.headless is True
        assert config.crawler.page_timeout == 30000
        assert config.retry.max_retries == 3
        assert config.retry.retry_delay == 2000
        assert config.retry.max_retry_count == 3
        assert config.output.dir == "./output"
        assert config.selectors.job_links == DEFAULT_JOB_LINK_SELECTORS
        assert config.extraction.listing_depth == 1
        assert config.extraction.listing_link_cap == 20

    def test_missing_explicit_file(self, temp_dir):
        """Test an explicitly requested file must exist."""
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(str(Path(temp_dir) / "missing.yaml"), env={})

    def test_yaml_values(self, temp_dir):
        path = Path(temp_dir) / "config.yaml"
        path.write_text(
            "crawler:\n  concurrency: 3\n  use_browser: false\n"
            "output:\n  dir: /tmp/out\n  format: json\n"
            "extraction:\n  listing_depth: 0\n",
            encoding="utf-8",
        )
        config = load_config(str(path), env={})
        assert config.crawler.concurrency == 3
        assert config.crawler.use_browser is False
        assert config.output.format == "json"
        assert config.extraction.listing_depth == 0

    def test_env_overrides_yaml(self, temp_dir):
        path = Path(temp_dir) / "config.yaml"
        path.write_text("crawler:\n  concurrency: 3\n", encoding="utf-8")
        env = {
            "CONCURRENCY": "8",
            "HEADLESS": "False",
            "MAX_RETRY_COUNT": "5",
            "OUTPUT_DIR": "/data/out",
            "GOOGLE_API_KEY": "key",
            "GOOGLE_SEARCH_ENGINE_ID": "cx",
            "SERP_API_KEY": "serp",
            "DEFAULT_SEARCH_PROVIDER": " SERP ",
            "JOB_LINK_SELECTORS": "a.job-link",
        }
        config = load_config(str(path), env=env)
        assert config.crawler.concurrency == 8
        assert config.crawler.headless is False
        assert config.retry.max_retry_count == 5
        assert config.output.dir == "/data/out"
        assert config.search.default_provider == "serp"
        assert config.selectors.job_links == ["a.job-link"]
        assert config.available_search_providers() == ["google", "serp"]

    def test_config_path_env(self, temp_dir):
        path = Path(temp_dir) / "alt.yaml"
        path.write_text("crawler:\n  max_pages: 4\n", encoding="utf-8")
        assert load_config(env={"CONFIG_PATH": str(path)}).crawler.max_pages == 4

    def test_invalid_yaml(self, temp_dir):
        path = Path(temp_dir) / "config.yaml"
        path.write_text("crawler: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_config(str(path), env={})

    def test_invalid_values(self, temp_dir):
        path = Path(temp_dir) / "config.yaml"
        path.write_text("crawler:\n  concurrency: 0\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="Invalid configuration"):
            load_config(str(path), env={})

    def test_google_needs_both_credentials(self, temp_dir, monkeypatch):
        monkeypatch.chdir(temp_dir)
        config = load_config(env={"GOOGLE_API_KEY": "key"})
        assert config.available_search_providers() == []


class TestApplyEnvOverrides:
    """Test overlaying env onto raw settings."""

    def test_creates_missing_sections(self):
        data = apply_env_overrides({}, env={"MAX_PAGES": "2"})
        assert data["crawler"]["max_pages"] == 2
        assert data["search"]["google"] == {}
