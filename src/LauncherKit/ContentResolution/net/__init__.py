"""HTTP client construction and retry policy shared by providers and sync."""

from .client import build_http_client
from .retry import build_retrying, is_retryable

__all__ = ["build_http_client", "build_retrying", "is_retryable"]
