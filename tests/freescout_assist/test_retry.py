import warnings
from unittest.mock import AsyncMock

import pytest

from freescout_assist.exceptions import (
    FreeScoutAPIError,
    FreeScoutConnectionError,
    FreeScoutRateLimitError,
    FreeScoutServerError,
    FreeScoutTimeoutError,
)
from freescout_assist.retry import RetryPolicy, execute_with_retry, is_retryable_error


def server_errors(count):
    return [FreeScoutServerError(f"failure {i}", status_code=503) for i in range(count)]


@pytest.mark.asyncio
@pytest.mark.parametrize("failures", [0, 1, 2, 3])
async def test_succeeds_within_retry_budget(failures, fast_sleep):
    operation = AsyncMock(side_effect=server_errors(failures) + ["ok"])

    result = await execute_with_retry(operation, RetryPolicy(max_retries=3), sleep=fast_sleep)

    assert result == "ok"
    assert operation.await_count == failures + 1
    assert fast_sleep.await_count == failures


@pytest.mark.asyncio
async def test_gives_up_after_max_retries_with_last_error(fast_sleep):
    errors = server_errors(4)
    operation = AsyncMock(side_effect=errors + ["never reached"])

    with pytest.raises(FreeScoutServerError) as exc_info:
        await execute_with_retry(operation, RetryPolicy(max_retries=3), sleep=fast_sleep)

    assert exc_info.value is errors[-1]
    assert exc_info.value.attempts == 4
    assert operation.await_count == 4
    assert fast_sleep.await_count == 3


@pytest.mark.asyncio
async def test_permanent_error_is_not_retried(fast_sleep):
    error = FreeScoutAPIError("FreeScout API error: 404 - Not found", status_code=404)
    operation = AsyncMock(side_effect=error)

    with pytest.raises(FreeScoutAPIError) as exc_info:
        await execute_with_retry(operation, RetryPolicy(), sleep=fast_sleep)

    assert exc_info.value is error
    assert exc_info.value.attempts == 1
    assert operation.await_count == 1
    fast_sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_zero_retries_means_single_attempt(fast_sleep):
    operation = AsyncMock(side_effect=server_errors(1))
    with pytest.raises(FreeScoutServerError):
        await execute_with_retry(operation, RetryPolicy(max_retries=0), sleep=fast_sleep)
    assert operation.await_count == 1


@pytest.mark.asyncio
async def test_backoff_grows_exponentially_with_jitter(fast_sleep):
    operation = AsyncMock(side_effect=server_errors(4))
    policy = RetryPolicy(max_retries=3, initial_delay=1000, max_delay=10000)

    with pytest.raises(FreeScoutServerError):
        await execute_with_retry(operation, policy, sleep=fast_sleep)

    delays = [call.args[0] for call in fast_sleep.await_args_list]
    assert len(delays) == 3
    assert 1.0 <= delays[0] <= 2.0
    assert 2.0 <= delays[1] <= 3.0
    assert 4.0 <= delays[2] <= 5.0


@pytest.mark.asyncio
async def test_backoff_is_capped(fast_sleep):
    operation = AsyncMock(side_effect=server_errors(4))
    policy = RetryPolicy(max_retries=3, initial_delay=1000, max_delay=1500)

    with pytest.raises(FreeScoutServerError):
        await execute_with_retry(operation, policy, sleep=fast_sleep)

    assert all(call.args[0] <= 1.5 for call in fast_sleep.await_args_list)


@pytest.mark.asyncio
async def test_custom_predicate(fast_sleep):
    operation = AsyncMock(side_effect=[KeyError("flaky"), "ok"])
    result = await execute_with_retry(
        operation,
        RetryPolicy(),
        is_retryable=lambda error: isinstance(error, KeyError),
        sleep=fast_sleep,
    )
    assert result == "ok"


@pytest.mark.asyncio
async def test_plain_factory_is_awaited_and_retried(fast_sleep):
    outcomes = server_errors(2) + ["ok"]
    calls = []

    async def fetch(value):
        calls.append(value)
        outcome = outcomes[len(calls) - 1]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    result = await execute_with_retry(lambda: fetch("mailboxes"), RetryPolicy(max_retries=3), sleep=fast_sleep)

    assert result == "ok"
    assert calls == ["mailboxes"] * 3
    assert fast_sleep.await_count == 2


@pytest.mark.asyncio
async def test_plain_factory_propagates_permanent_error(fast_sleep):
    error = FreeScoutAPIError("FreeScout API error: 404 - Not found", status_code=404)

    async def fetch():
        raise error

    with pytest.raises(FreeScoutAPIError) as exc_info:
        await execute_with_retry(lambda: fetch(), RetryPolicy(), sleep=fast_sleep)

    assert exc_info.value is error
    fast_sleep.assert_not_awaited()


class TestIsRetryableError:

    @pytest.mark.parametrize("error", [
        FreeScoutRateLimitError("rate limited", status_code=429),
        FreeScoutServerError("bad gateway", status_code=502),
        FreeScoutTimeoutError(30000),
        FreeScoutConnectionError("reset", retryable=True),
        OSError("read ECONNRESET"),
        ConnectionError("Connection reset by peer"),
        RuntimeError("upstream said 503"),
    ])
    def test_transient(self, error):
        assert is_retryable_error(error) is True

    @pytest.mark.parametrize("error", [
        FreeScoutAPIError("FreeScout API error: 404 - status 503 in body", status_code=404),
        FreeScoutConnectionError("Name or service not known"),
        ValueError("bad input"),
    ])
    def test_permanent(self, error):
        assert is_retryable_error(error) is False


@pytest.mark.asyncio
async def test_backoff_configuration_emits_no_deprecation_warning(fast_sleep):
    operation = AsyncMock(side_effect=server_errors(1) + ["ok"])
    with warnings.catch_warnings():
        warnings.simplefilter("error", DeprecationWarning)
        result = await execute_with_retry(operation, RetryPolicy(initial_delay=250), sleep=fast_sleep)
    assert result == "ok"


def test_policy_derived_values():
    policy = RetryPolicy(max_retries=2, timeout_ms=1500)
    assert policy.max_attempts == 3
    assert policy.timeout_seconds == 1.5
