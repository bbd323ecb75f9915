"""
Error taxonomy for the schema generation pipeline.
"""
from __future__ import annotations
from typing import Optional


class PageSchemaError(Exception):
    """Base class for pipeline errors."""


class NetworkError(PageSchemaError):
    """Fetching a page failed (connection problem, timeout or bad HTTP status)."""

    def __init__(self, message: str, url: str = "", status: Optional[int] = None, retryable: bool = True):
        super().__init__(message)
        self.url = url
        self.status = status
        self.retryable = retryable


class ParseError(PageSchemaError):
    """Raised by the page parser when it is handed something that is not HTML text."""


class CircuitOpenError(PageSchemaError):
    """A call was rejected because the circuit for its key is open."""

    def __init__(self, key: str, retry_after: float = 0.0):
        super().__init__(f"Circuit breaker is open for {key}")
        self.key = key
        self.retry_after = retry_after


def is_retryable(error: BaseException) -> bool:
    """Only network-level failures are worth retrying."""
    if isinstance(error, NetworkError):
        return error.retryable
    return isinstance(error, (TimeoutError, ConnectionError))
