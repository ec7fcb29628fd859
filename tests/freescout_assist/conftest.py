from typing import Any, Dict, Optional
from unittest.mock import AsyncMock

import pytest

from freescout_assist.client import FreeScoutClient
from freescout_assist.retry import RetryPolicy

from .factories import API_KEY, BASE_URL


@pytest.fixture
def customer() -> Dict[str, Any]:
    return {"id": 10, "email": "jane@example.com", "first_name": "Jane", "last_name": "Doe"}


@pytest.fixture
def fast_sleep() -> AsyncMock:
    """Stands in for asyncio.sleep so backoff never waits."""
    return AsyncMock()


@pytest.fixture
def retry_policy() -> RetryPolicy:
    return RetryPolicy(max_retries=3, initial_delay=10, max_delay=50, timeout_ms=500)


@pytest.fixture
def make_client(fast_sleep, retry_policy):
    def _make(policy: Optional[RetryPolicy] = None) -> FreeScoutClient:
        return FreeScoutClient(BASE_URL + "/", API_KEY, retry_policy=policy or retry_policy, sleep=fast_sleep)
    return _make
