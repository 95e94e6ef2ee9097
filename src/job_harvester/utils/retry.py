"""Shared retry/backoff policy for transient failures."""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

import requests

from job_harvester.exceptions import (
    ContentValidationError,
    ProviderApiError,
    TerminalProviderError,
    TransientError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Substrings of browser/network error messages that indicate a transient fault
RETRYABLE_MESSAGES = ("ERR_HTTP2_PROTOCOL_ERROR", "ERR_CONNECTION", "timeout", "Timeout", "Navigation")


def get_status(error: BaseException) -> Optional[int]:
    """Return the HTTP status attached to an error, if any."""
    status = getattr(error, "status", None)
    if isinstance(status, int):
        return status
    response = getattr(error, "response", None)
    if response is not None and isinstance(getattr(response, "status_code", None), int):
        return response.status_code
    return None


def is_retryable(error: BaseException) -> bool:
    """
    Classify an error as transient (worth retrying) or not.

    Terminal provider errors, validation rejections and 4xx responses other
    than 429 are never retried. Timeouts, connection failures, 429 and 5xx
    responses are.

    Args:
        error: Exception raised by the unit of work

    Returns:
        True if another attempt may succeed.
    """
    if isinstance(error, (TerminalProviderError, ContentValidationError)):
        return False
    if isinstance(error, TransientError):
        return True
    if isinstance(error, (requests.Timeout, requests.ConnectionError)):
        return True

    status = get_status(error)
    if status is not None:
        return status == 429 or 500 <= status < 600

    if isinstance(error, ProviderApiError):
        return False

    message = str(error)
    return any(pattern in message for pattern in RETRYABLE_MESSAGES)


@dataclass
class RetryPolicy:
    """
    Bounded retry policy.

    Attributes:
        max_retries: Total attempts allowed for one unit of work
        retry_delay: Base delay in milliseconds
        exponential: Double the delay per attempt instead of growing linearly
    """

    max_retries: int = 3
    retry_delay: int = 2000
    exponential: bool = True

    def should_retry(self, attempt: int, error: BaseException) -> bool:
        """
        Decide whether to try again after ``attempt`` (0-based) failed.

        Args:
            attempt: Index of the attempt that just failed
            error: The failure

        Returns:
            True if the error is transient and attempts remain.
        """
        return attempt < self.max_retries - 1 and is_retryable(error)

    def delay(self, attempt: int) -> float:
        """
        Delay in seconds before the attempt after ``attempt``.

        Exponential: ``base * 2**attempt``. Linear: ``base * (attempt + 1)``.
        """
        if self.exponential:
            millis = self.retry_delay * (2**attempt)
        else:
            millis = self.retry_delay * (attempt + 1)
        return millis / 1000.0

    def call(
        self,
        func: Callable[[], T],
        description: str = "operation",
        sleep: Callable[[float], None] = time.sleep,
    ) -> T:
        """
        Run ``func`` until it succeeds or the policy gives up.

        Args:
            func: Zero-argument callable performing one attempt
            description: Label used in log messages
            sleep: Sleep function (injectable for tests)

        Returns:
            Whatever ``func`` returns.

        Raises:
            The last error raised by ``func`` once retries are exhausted or
            the error is not retryable.
        """
        attempt = 0
        while True:
            try:
                return func()
            except Exception as e:
                if not self.should_retry(attempt, e):
                    raise
                wait = self.delay(attempt)
                logger.info(
                    f"Attempt {attempt + 1}/{self.max_retries} failed for {description}: {e} "
                    f"- retrying in {wait:.1f}s"
                )
                sleep(wait)
                attempt += 1
