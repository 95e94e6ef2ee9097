"""Tests for the retry policy and error classification."""

from unittest.mock import Mock

import pytest
import requests

from job_harvester.exceptions import (
    ContentValidationError,
    ProviderApiError,
    TerminalProviderError,
    TransientError,
)
from job_harvester.utils.retry import RetryPolicy, get_status, is_retryable


def _http_error(status):
    response = Mock()
    response.status_code = status
    return requests.HTTPError(f"{status} error", response=response)


class TestIsRetryable:
    """Test error classification."""

    @pytest.mark.parametrize(
        "error",
        [
            TransientError("network blip"),
            requests.Timeout("read timed out"),
            requests.ConnectionError("reset"),
            ProviderApiError("Greenhouse API returned 503", status=503),
            ProviderApiError("Lever API returned 429", status=429),
            RuntimeError("page.goto: Timeout 30000ms exceeded"),
            RuntimeError("net::ERR_HTTP2_PROTOCOL_ERROR"),
        ],
    )
    def test_retryable(self, error):
        assert is_retryable(error) is True

    @pytest.mark.parametrize(
        "error",
        [
            TerminalProviderError("Google API quota exceeded or invalid credentials"),
            ContentValidationError(["Title is empty or N/A"]),
            ProviderApiError("Greenhouse API returned 404", status=404),
            ProviderApiError("missing-board-token"),
            ValueError("bad value"),
        ],
    )
    def test_not_retryable(self, error):
        assert is_retryable(error) is False

    def test_http_error_status(self):
        assert get_status(_http_error(502)) == 502
        assert is_retryable(_http_error(502)) is True
        assert is_retryable(_http_error(403)) is False


class TestRetryPolicy:
    """Test backoff and attempt bounds."""

    def test_exponential_delay(self):
        policy = RetryPolicy(max_retries=3, retry_delay=2000, exponential=True)
        assert [policy.delay(n) for n in range(3)] == [2.0, 4.0, 8.0]

    def test_linear_delay(self):
        policy = RetryPolicy(max_retries=3, retry_delay=2000, exponential=False)
        assert [policy.delay(n) for n in range(3)] == [2.0, 4.0, 6.0]

    def test_call_succeeds_after_transient_failures(self):
        """Test transient failures are retried up to max_retries attempts."""
        func = Mock(side_effect=[requests.Timeout("t1"), requests.Timeout("t2"), "ok"])
        sleeps = []
        policy = RetryPolicy(max_retries=3, retry_delay=1000)

        assert policy.call(func, "fetch", sleep=sleeps.append) == "ok"
        assert func.call_count == 3
        assert sleeps == [1.0, 2.0]

    def test_call_gives_up(self):
        func = Mock(side_effect=requests.Timeout("always"))
        policy = RetryPolicy(max_retries=2, retry_delay=0)
        with pytest.raises(requests.Timeout):
            policy.call(func, sleep=lambda _: None)
        assert func.call_count == 2

    def test_non_retryable_raises_immediately(self):
        func = Mock(side_effect=TerminalProviderError("quota"))
        with pytest.raises(TerminalProviderError):
            RetryPolicy(max_retries=5).call(func, sleep=lambda _: None)
        assert func.call_count == 1
