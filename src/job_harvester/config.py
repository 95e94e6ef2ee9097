"""
Configuration loading.

Settings come from ``config/config.yaml`` and are overridden by
environment variables (a ``.env`` file is loaded first). The merged result
is validated into ``HarvesterConfig``.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from job_harvester.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/config.yaml"
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0 Safari/537.36"
)
DEFAULT_JOB_LINK_SELECTORS = ['a[href*="/jobs/"]', 'a[href*="/job/"]', 'a[href*="/careers/"]']
SERP_ENGINES = ["google", "bing", "yahoo", "duckduckgo", "baidu", "yandex"]


class GoogleSearchSettings(BaseModel):
    """Google Custom Search credentials."""

    api_key: Optional[str] = None
    search_engine_id: Optional[str] = None

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.search_engine_id)


class SerpApiSettings(BaseModel):
    """SerpAPI credentials and engine selection."""

    api_key: Optional[str] = None
    default_engine: str = "google"
    supported_engines: List[str] = Field(default_factory=lambda: list(SERP_ENGINES))

    @property
    def configured(self) -> bool:
        return bool(self.api_key)


class SearchSettings(BaseModel):
    default_provider: str = "google"
    query: Optional[str] = None
    timeout: float = Field(default=30.0, description="Search API request timeout in seconds")
    google: GoogleSearchSettings = Field(default_factory=GoogleSearchSettings)
    serp: SerpApiSettings = Field(default_factory=SerpApiSettings)


class CrawlerSettings(BaseModel):
    concurrency: int = Field(default=5, ge=1)
    max_pages: int = Field(default=10, ge=1)
    headless: bool = True
    page_timeout: int = Field(default=30000, description="Navigation timeout in milliseconds")
    settle_wait: int = Field(default=2000, description="Extra wait after navigation in milliseconds")
    user_agent: str = DEFAULT_USER_AGENT
    use_browser: bool = True


class RetrySettings(BaseModel):
    max_retries: int = Field(default=3, ge=1, description="Attempts per unit of work")
    retry_delay: int = Field(default=2000, ge=0, description="Base backoff delay in milliseconds")
    max_retry_count: int = Field(default=3, ge=1, description="Cross-invocation retry cap")


class OutputSettings(BaseModel):
    dir: str = "./output"
    format: str = "text"


class SelectorSettings(BaseModel):
    job_links: List[str] = Field(default_factory=lambda: list(DEFAULT_JOB_LINK_SELECTORS))


class ExtractionSettings(BaseModel):
    listing_depth: int = Field(default=1, ge=0, description="Listing-page recursion depth")
    listing_link_cap: int = Field(default=20, ge=1, description="Links followed per listing page")
    api_timeout: float = Field(default=45.0, description="Job-board API timeout in seconds")


class HarvesterConfig(BaseModel):
    """Complete harvester configuration."""

    search: SearchSettings = Field(default_factory=SearchSettings)
    crawler: CrawlerSettings = Field(default_factory=CrawlerSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    output: OutputSettings = Field(default_factory=OutputSettings)
    selectors: SelectorSettings = Field(default_factory=SelectorSettings)
    extraction: ExtractionSettings = Field(default_factory=ExtractionSettings)

    def available_search_providers(self) -> List[str]:
        """Names of search providers whose credentials are present."""
        available = []
        if self.search.google.configured:
            available.append("google")
        if self.search.serp.configured:
            available.append("serp")
        return available


def parse_bool(value: Optional[str], default: bool) -> bool:
    """Parse ``"true"`` (any case) as True; unset keeps the default."""
    if value is None or value == "":
        return default
    return value.strip().lower() == "true"


def parse_int(value: Optional[str], default: int) -> int:
    """Parse an integer; unset or unparsable values keep the default."""
    if value is None or value == "":
        return default
    try:
        return int(value.strip())
    except ValueError:
        logger.warning(f"⚠️  Ignoring non-integer setting value: {value!r}")
        return default


def parse_list(value: Optional[str], default: List[str]) -> List[str]:
    """Parse a comma-separated list; empty values keep the default."""
    if not value:
        return default
    items = [item.strip() for item in value.split(",") if item.strip()]
    return items or default


def _section(data: Dict[str, Any], *keys: str) -> Dict[str, Any]:
    node = data
    for key in keys:
        child = node.get(key)
        if not isinstance(child, dict):
            child = {}
            node[key] = child
        node = child
    return node


def apply_env_overrides(data: Dict[str, Any], env: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """
    Overlay environment variables onto raw YAML settings.

    Args:
        data: Raw settings dict (modified in place)
        env: Environment mapping, defaults to ``os.environ``

    Returns:
        The same dict, for chaining.
    """
    env = dict(os.environ) if env is None else env

    google = _section(data, "search", "google")
    serp = _section(data, "search", "serp")
    search = _section(data, "search")
    crawler = _section(data, "crawler")
    retry = _section(data, "retry")
    output = _section(data, "output")
    selectors = _section(data, "selectors")

    if env.get("GOOGLE_API_KEY"):
        google["api_key"] = env["GOOGLE_API_KEY"]
    if env.get("GOOGLE_SEARCH_ENGINE_ID"):
        google["search_engine_id"] = env["GOOGLE_SEARCH_ENGINE_ID"]
    if env.get("SERP_API_KEY"):
        serp["api_key"] = env["SERP_API_KEY"]
    if env.get("DEFAULT_SEARCH_PROVIDER"):
        search["default_provider"] = env["DEFAULT_SEARCH_PROVIDER"].strip().lower()
    if env.get("SEARCH_QUERY"):
        search["query"] = env["SEARCH_QUERY"]

    crawler["concurrency"] = parse_int(env.get("CONCURRENCY"), crawler.get("concurrency", 5))
    crawler["max_pages"] = parse_int(env.get("MAX_PAGES"), crawler.get("max_pages", 10))
    crawler["headless"] = parse_bool(env.get("HEADLESS"), crawler.get("headless", True))
    crawler["page_timeout"] = parse_int(env.get("PAGE_TIMEOUT"), crawler.get("page_timeout", 30000))
    if env.get("USER_AGENT"):
        crawler["user_agent"] = env["USER_AGENT"]

    retry["max_retries"] = parse_int(env.get("MAX_RETRIES"), retry.get("max_retries", 3))
    retry["retry_delay"] = parse_int(env.get("RETRY_DELAY"), retry.get("retry_delay", 2000))
    retry["max_retry_count"] = parse_int(env.get("MAX_RETRY_COUNT"), retry.get("max_retry_count", 3))

    if env.get("OUTPUT_DIR"):
        output["dir"] = env["OUTPUT_DIR"]

    selectors["job_links"] = parse_list(
        env.get("JOB_LINK_SELECTORS"), selectors.get("job_links") or list(DEFAULT_JOB_LINK_SELECTORS)
    )
    return data


def load_config(config_path: Optional[str] = None, env: Optional[Dict[str, str]] = None) -> HarvesterConfig:
    """
    Load configuration from YAML plus environment overrides.

    Args:
        config_path: YAML path; defaults to ``CONFIG_PATH`` or config/config.yaml.
            A missing default file is fine, a missing explicit file is not.
        env: Environment mapping (tests); defaults to ``os.environ`` after
            loading ``.env``

    Returns:
        Validated HarvesterConfig.

    Raises:
        ConfigurationError: If the file is missing/invalid or values fail validation.
    """
    if env is None:
        load_dotenv()
        env = dict(os.environ)

    explicit = config_path is not None or bool(env.get("CONFIG_PATH"))
    path = Path(config_path or env.get("CONFIG_PATH") or DEFAULT_CONFIG_PATH)

    data: Dict[str, Any] = {}
    if path.exists():
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration root in {path} must be a mapping")
        logger.debug(f"Loaded configuration from {path}")
    elif explicit:
        raise ConfigurationError(f"Configuration file not found: {path}")

    apply_env_overrides(data, env)

    try:
        return HarvesterConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
