"""Backoff for transient platform HTTP failures (tenacity)."""
import logging
import re
from typing import Any, Callable, Optional, TypeVar

import requests
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    before_sleep_log,
)


logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_MIN_WAIT_SECONDS = 1
DEFAULT_MAX_WAIT_SECONDS = 10

RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})
_STATUS_IN_MESSAGE = re.compile(r"\b(?:429|500|502|503|504)\b")


def response_status(exception: BaseException) -> Optional[int]:
    """
    HTTP status carried by an exception, if any.

    requests errors hold the response directly; garth wraps the underlying
    requests.HTTPError in `.error`.
    """
    for candidate in (exception, getattr(exception, "error", None)):
        status = getattr(getattr(candidate, "response", None), "status_code", None)
        if isinstance(status, int):
            return status
    return None


def is_retryable_error(exception: BaseException) -> bool:
    """
    True for failures worth another attempt: rate limiting, 5xx, timeouts
    and dropped connections.

    Credential errors, validation errors and duplicate rejections are final.
    """
    if isinstance(exception, (requests.Timeout, requests.ConnectionError)):
        return True

    status = response_status(exception)
    if status is not None:
        return status in RETRYABLE_STATUS

    # No response attached: fall back to the message text
    message = str(exception).lower()
    if "rate limit" in message or _STATUS_IN_MESSAGE.search(message):
        return True
    if "timed out" in message or "timeout" in type(exception).__name__.lower():
        return True
    return "connection" in message


def create_retry_decorator(
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    min_wait_seconds: float = DEFAULT_MIN_WAIT_SECONDS,
    max_wait_seconds: float = DEFAULT_MAX_WAIT_SECONDS,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Exponential backoff on retryable errors; the last error is re-raised."""
    return retry(
        retry=retry_if_exception(is_retryable_error),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=min_wait_seconds, max=max_wait_seconds),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


# Shared by the source and Strava request helpers
http_retry = create_retry_decorator()


def retry_sync_call(
    func: Callable[..., T],
    *args: Any,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    min_wait_seconds: float = DEFAULT_MIN_WAIT_SECONDS,
    max_wait_seconds: float = DEFAULT_MAX_WAIT_SECONDS,
    **kwargs: Any,
) -> T:
    """Call `func(*args, **kwargs)` under the retry policy, for callables not decorated up front."""
    decorator = create_retry_decorator(max_attempts, min_wait_seconds, max_wait_seconds)
    return decorator(func)(*args, **kwargs)
