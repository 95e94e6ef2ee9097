"""Logging configuration and structured log helpers."""

import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

# Global configuration cache
_logging_config: Optional[Dict] = None


def _load_logging_config() -> Dict:
    """
    Load logging configuration from config/logging.yaml.

    Returns:
        Dict with logging configuration, or default config if file not found.
    """
    global _logging_config

    if _logging_config is not None:
        return _logging_config

    config_path = Path(__file__).parent.parent.parent / "config" / "logging.yaml"
    if not config_path.exists():
        config_path = Path("config") / "logging.yaml"

    if config_path.exists():
        try:
            with open(config_path, "r") as f:
                _logging_config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            print(f"⚠️  Failed to load logging config from {config_path}: {e}", file=sys.stderr)
            _logging_config = {}
    else:
        _logging_config = {}

    _logging_config.setdefault("console", {})
    _logging_config["console"].setdefault("max_url_length", 100)
    _logging_config["console"].setdefault("max_title_length", 60)

    return _logging_config


def _truncate(value: str, max_length: int) -> str:
    if max_length <= 0 or len(value) <= max_length:
        return value
    if max_length <= 3:
        return value[:max_length]
    return value[: max_length - 3] + "..."


def format_url(url: str, max_length: Optional[int] = None) -> str:
    """
    Shorten a URL for console display.

    Reports and ledgers always get the full URL; this is only for log lines.

    Args:
        url: The full URL.
        max_length: Maximum display length. If None, uses config value;
            0 or negative disables truncation.

    Returns:
        The URL, truncated with an ellipsis if needed.

    Example:
        >>> format_url("https://boards.greenhouse.io/acme/jobs/4012345", 30)
        'https://boards.greenhouse.i...'
    """
    if not url:
        return ""
    url = url.strip()
    if max_length is None:
        max_length = _load_logging_config()["console"]["max_url_length"]
    return _truncate(url, max_length)


def format_title(title: str, max_length: Optional[int] = None) -> str:
    """Shorten a job title for console display."""
    if not title:
        return ""
    title = title.strip()
    if max_length is None:
        max_length = _load_logging_config()["console"]["max_title_length"]
    return _truncate(title, max_length)


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None) -> None:
    """
    Configure console and file logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Path to log file. If None, uses logs/job_harvester.log.

    Environment Variables:
        LOG_LEVEL: Override log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        LOG_FILE: Override log file path.
        ENVIRONMENT: Environment name shown as the line prefix.
    """
    log_level = os.getenv("LOG_LEVEL", log_level).upper()
    log_file = os.getenv("LOG_FILE", log_file or "logs/job_harvester.log")
    environment = os.getenv("ENVIRONMENT", "development")

    if not hasattr(logging, log_level):
        log_level = "INFO"

    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    handlers = [
        logging.StreamHandler(sys.stdout),
        logging.FileHandler(log_file),
    ]

    log_format = f"[{environment.upper()}] %(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=getattr(logging, log_level),
        format=log_format,
        handlers=handlers,
        force=True,
    )

    # Browser and HTTP libraries are chatty at DEBUG
    for noisy in ("urllib3", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured: environment={environment}, level={log_level}, file={log_file}")


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Logger name (typically __name__).

    Returns:
        Logger instance.
    """
    return logging.getLogger(name)


def _with_details(message: str, details: Optional[Dict[str, Any]]) -> str:
    if details:
        detail_str = ", ".join(f"{k}={v}" for k, v in details.items())
        message += f" | {detail_str}"
    return message


class StructuredLogger:
    """
    Helper class for structured logging with consistent formatting.

    Provides methods for logging stage, page and URL events with context.
    """

    def __init__(self, logger: logging.Logger):
        """
        Initialize structured logger.

        Args:
            logger: Base logger instance
        """
        self.logger = logger

    def stage(self, stage: int, status: str, details: Optional[Dict[str, Any]] = None) -> None:
        """
        Log stage transitions.

        Args:
            stage: Stage number (1, 2, 3)
            status: Stage status (started, completed, halted, failed)
            details: Optional additional details
        """
        message = _with_details(f"[STAGE:{stage}] {status.upper()}", details)
        if status.lower() in ("failed", "error"):
            self.logger.error(message)
        elif status.lower() == "halted":
            self.logger.warning(message)
        else:
            self.logger.info(message)

    def page(self, page: int, status: str, details: Optional[Dict[str, Any]] = None) -> None:
        """
        Log search result page progress.

        Args:
            page: Page number
            status: Page status (fetching, settled, empty, failed, skipped)
            details: Optional additional details
        """
        message = _with_details(f"[PAGE] {page} {status.upper()}", details)
        if status.lower() == "failed":
            self.logger.warning(message)
        else:
            self.logger.info(message)

    def url_activity(self, url: str, action: str, details: Optional[Dict[str, Any]] = None) -> None:
        """
        Log per-URL activity with a truncated URL.

        Args:
            url: Full URL (truncated for display)
            action: Action being performed (COLLECT, EXTRACT, SAVED, FAILED ...)
            details: Optional additional details
        """
        message = _with_details(f"[URL] {action} - {format_url(url)}", details)
        if action.upper() == "FAILED":
            self.logger.warning(message)
        else:
            self.logger.info(message)

    def summary(self, title: str, stats: Dict[str, Any]) -> None:
        """
        Log an end-of-run summary block.

        Args:
            title: Summary heading
            stats: Counter name → value
        """
        self.logger.info("=" * 60)
        self.logger.info(title)
        self.logger.info("=" * 60)
        for key, value in stats.items():
            self.logger.info(f"  {key}: {value}")


def get_structured_logger(name: str) -> StructuredLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (typically __name__).

    Returns:
        StructuredLogger instance.
    """
    base_logger = logging.getLogger(name)
    return StructuredLogger(base_logger)
