"""Clients for the source and destination platforms."""
from .base import AuthError, PlatformClient, PollResult, SourceClient, UploadError, UploadHandle
from .retry import create_retry_decorator, http_retry, is_retryable_error, retry_sync_call

__all__ = [
    "AuthError",
    "PlatformClient",
    "PollResult",
    "SourceClient",
    "UploadError",
    "UploadHandle",
    "create_retry_decorator",
    "http_retry",
    "is_retryable_error",
    "retry_sync_call",
]
