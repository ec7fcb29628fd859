"""
Retry policy for outbound calls.

``execute_with_retry`` wraps any coroutine factory with exponential backoff and
jitter; which failures are transient is decided by a pluggable predicate.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from .exceptions import FreeScoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Substrings that mark a transport failure as transient.
TRANSIENT_ERROR_MARKERS = ("ECONNRESET", "ETIMEDOUT", "429", "502", "503", "Connection reset")
JITTER_SECONDS = 1.0


class RetryPolicy(BaseModel):
    """Retry and timeout tuning. Delays are in milliseconds."""
    model_config = ConfigDict(frozen=True)

    max_retries: int = Field(default=3, ge=0, description="Retries after the first attempt.")
    initial_delay: int = Field(default=1000, ge=0)
    max_delay: int = Field(default=10000, ge=0)
    timeout_ms: int = Field(default=30000, gt=0, description="Per-attempt timeout.")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000


def is_retryable_error(error: BaseException) -> bool:
    """
    Default predicate. Package errors decide through their ``retryable`` flag;
    foreign exceptions are transient when their message carries a marker.
    """
    if isinstance(error, FreeScoutError):
        return error.retryable
    message = str(error)
    return any(marker in message for marker in TRANSIENT_ERROR_MARKERS)


async def execute_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    is_retryable: Callable[[BaseException], bool] = is_retryable_error,
    sleep: Optional[Callable[[float], Awaitable[None]]] = None,
) -> T:
    """
    Run ``operation`` until it succeeds, fails permanently, or uses up
    ``policy.max_retries`` retries. The last error is re-raised as is; a
    ``FreeScoutError`` also records how many attempts were made.

    Backoff before retry ``n`` (0-based) is
    ``min(initial_delay * 2**n + uniform(0, 1s), max_delay)``.
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=wait_exponential_jitter(
            multiplier=policy.initial_delay / 1000,
            max=policy.max_delay / 1000,
            jitter=JITTER_SECONDS,
        ),
        retry=retry_if_exception(is_retryable),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
        sleep=sleep or asyncio.sleep,
    )

    # tenacity awaits only coroutine functions, not factories returning coroutines.
    async def attempt() -> T:
        return await operation()

    try:
        return await retrying(attempt)
    except FreeScoutError as e:
        e.attempts = retrying.statistics.get("attempt_number", 1)
        raise
