"""Unit tests for retry logic and error classification."""
from unittest.mock import MagicMock

import pytest
import requests

from wod_sync_api.clients.retry import (
    create_retry_decorator,
    is_retryable_error,
    response_status,
    retry_sync_call,
)


def _http_error(status_code: int) -> requests.HTTPError:
    response = MagicMock()
    response.status_code = status_code
    return requests.HTTPError(f"{status_code} error", response=response)


class TestIsRetryableError:
    """Test error classification for retry decisions."""

    @pytest.mark.parametrize("status_code", [429, 500, 502, 503, 504])
    def test_rate_limit_and_server_errors_are_retryable(self, status_code):
        assert is_retryable_error(_http_error(status_code)) is True

    @pytest.mark.parametrize("status_code", [400, 401, 403, 404, 409])
    def test_client_errors_are_not_retryable(self, status_code):
        assert is_retryable_error(_http_error(status_code)) is False

    @pytest.mark.parametrize(
        "exception",
        [requests.Timeout("read timed out"), requests.ConnectionError("refused")],
    )
    def test_network_errors_are_retryable(self, exception):
        assert is_retryable_error(exception) is True

    @pytest.mark.parametrize(
        "error_message, expected",
        [
            ("Rate limit exceeded", True),
            ("Status 429: Too Many Requests", True),
            ("Request timed out", True),
            ("Connection reset by peer", True),
            ("Invalid credentials", False),
            ("duplicate of activity 123", False),
            ("503 Service Unavailable", True),
            ("activity 15003 not found", False),
            ("upload 5000123 rejected", False),
        ],
    )
    def test_message_heuristics(self, error_message, expected):
        assert is_retryable_error(Exception(error_message)) is expected


class TestRetryDecorator:
    def test_retries_then_succeeds(self):
        func = MagicMock(side_effect=[requests.ConnectionError("down"), "ok"])
        decorated = create_retry_decorator(max_attempts=3, min_wait_seconds=0, max_wait_seconds=0)(func)
        assert decorated() == "ok"
        assert func.call_count == 2

    def test_gives_up_and_reraises(self):
        func = MagicMock(side_effect=requests.ConnectionError("down"))
        decorated = create_retry_decorator(max_attempts=2, min_wait_seconds=0, max_wait_seconds=0)(func)
        with pytest.raises(requests.ConnectionError):
            decorated()
        assert func.call_count == 2

    def test_non_retryable_not_retried(self):
        func = MagicMock(side_effect=_http_error(400))
        with pytest.raises(requests.HTTPError):
            retry_sync_call(func, min_wait_seconds=0, max_wait_seconds=0)
        assert func.call_count == 1

    def test_retry_sync_call_passes_arguments(self):
        func = MagicMock(return_value=5)
        assert retry_sync_call(func, 1, key="v") == 5
        func.assert_called_once_with(1, key="v")

    def test_status_read_from_wrapped_garth_error(self):
        from garth.exc import GarthHTTPError

        wrapped = GarthHTTPError(msg="Error in request", error=_http_error(503))
        assert response_status(wrapped) == 503
        assert is_retryable_error(wrapped) is True

    def test_wrapped_client_error_not_retryable(self):
        from garth.exc import GarthHTTPError

        assert is_retryable_error(GarthHTTPError(msg="Error in request", error=_http_error(409))) is False
