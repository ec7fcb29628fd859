"""
Exception hierarchy for the FreeScout assist package.

Only the API client raises; analysis and rendering are total over their input.
Every error carries a ``retryable`` flag consulted by the retry policy.
"""

from typing import Optional


class FreeScoutError(Exception):
    """Base exception for all freescout_assist errors."""
    retryable: bool = False
    # Set by the retry loop once the error propagates.
    attempts: int = 1

    def __init__(self, message: str, retryable: Optional[bool] = None):
        super().__init__(message)
        if retryable is not None:
            self.retryable = retryable


class ConfigurationError(FreeScoutError):
    """Raised when settings are missing or invalid."""
    pass


class TicketInputError(FreeScoutError, ValueError):
    """Raised when a ticket identifier cannot be extracted from user input."""

    def __init__(self, raw_input: str):
        self.raw_input = raw_input
        super().__init__(f"Could not extract ticket ID from input: {raw_input}")


class FreeScoutAPIError(FreeScoutError):
    """Raised when the FreeScout API answers with a non-2xx status."""

    def __init__(self, message: str, status_code: int, response_text: str = "", retryable: Optional[bool] = None):
        self.status_code = status_code
        self.response_text = response_text
        super().__init__(message, retryable=retryable)


class FreeScoutRateLimitError(FreeScoutAPIError):
    """HTTP 429 from the API."""
    retryable = True


class FreeScoutServerError(FreeScoutAPIError):
    """HTTP 5xx from the API."""
    retryable = True


class FreeScoutTimeoutError(FreeScoutError):
    """A single request attempt exceeded the configured timeout."""
    retryable = True

    def __init__(self, timeout_ms: int):
        self.timeout_ms = timeout_ms
        super().__init__(f"FreeScout API timeout after {timeout_ms}ms")


class FreeScoutConnectionError(FreeScoutError):
    """Transport-level failure (DNS, refused or reset connection, protocol error)."""
    pass


class FreeScoutResponseError(FreeScoutError):
    """A successful response carried a body that could not be decoded as JSON."""
    pass
