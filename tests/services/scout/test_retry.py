"""Unit tests for the retry controller.

Tests cover:
- Attempt bounds (success on k-th attempt, exhaustion, non-retryable)
- Exponential backoff with cap and the connection-reset cooldown
- Marker matching by kind, class name and message
- Observer notification and cancellation
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.app.services.scout.exceptions import (
    ConnectionResetException,
    InvalidQueryException,
    RequestBlockedException,
    ScoutException,
    ScoutTimeoutException,
)
from src.app.services.scout.retry import RetryPolicy, run_with_retry


# =============================================================================
# FIXTURES
# =============================================================================
@pytest.fixture
def policy() -> RetryPolicy:
    return RetryPolicy(max_attempts=4, initial_backoff=5.0, backoff_multiplier=2.0, max_backoff=12.0)


@pytest.fixture
def sleep() -> AsyncMock:
    return AsyncMock()


def failing_then(result: object, failures: list[Exception]) -> AsyncMock:
    """Operation raising ``failures`` in order, then returning ``result``."""
    return AsyncMock(side_effect=[*failures, result])


# =============================================================================
# POLICY
# =============================================================================
class TestRetryPolicy:
    """Tests for RetryPolicy validation and matching."""

    def test_defaults(self) -> None:
        policy = RetryPolicy()
        assert policy.max_attempts == 5
        assert policy.initial_backoff == 5.0
        assert policy.backoff_multiplier == 2.0
        assert policy.max_backoff == 60.0
        assert policy.extra_delay_on_reset == 45.0

    def test_rejects_zero_attempts(self) -> None:
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)

    def test_rejects_negative_backoff(self) -> None:
        with pytest.raises(ValueError):
            RetryPolicy(initial_backoff=-1)

    def test_from_settings(self, test_settings) -> None:
        policy = RetryPolicy.from_settings(test_settings)
        assert policy.max_attempts == test_settings.SCOUT_RETRY_MAX_ATTEMPTS
        assert policy.retryable_errors == tuple(test_settings.SCOUT_RETRY_ERRORS)

    def test_matches_by_kind(self) -> None:
        assert RetryPolicy().is_retryable(ScoutTimeoutException("slow"))
        assert not RetryPolicy().is_retryable(InvalidQueryException("blank"))

    def test_matches_by_message(self) -> None:
        """Unclassified errors still match when their message names a marker."""
        error = RuntimeError("net::ERR_CONNECTION_RESET while loading")
        assert RetryPolicy().is_reset(error)

    def test_matches_by_class_name(self) -> None:
        class ConnectionResetWrapper(Exception):
            pass

        assert RetryPolicy().is_retryable(ConnectionResetWrapper("boom"))

    def test_plain_error_not_retryable(self) -> None:
        assert not RetryPolicy().is_retryable(ValueError("bad"))


# =============================================================================
# ATTEMPT BOUNDS
# =============================================================================
class TestRunWithRetryAttempts:
    """Attempt count is 1 + retries, bounded by max_attempts."""

    @pytest.mark.asyncio
    async def test_success_first_attempt(self, policy: RetryPolicy, sleep: AsyncMock) -> None:
        operation = AsyncMock(return_value="ok")

        assert await run_with_retry(operation, policy, sleep=sleep) == "ok"
        assert operation.await_count == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_success_on_third_attempt(self, policy: RetryPolicy, sleep: AsyncMock) -> None:
        operation = failing_then("ok", [ScoutTimeoutException("t1"), RequestBlockedException("b2")])

        assert await run_with_retry(operation, policy, sleep=sleep) == "ok"
        assert operation.await_count == 3
        assert sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_exhaustion_raises_last_error(self, policy: RetryPolicy, sleep: AsyncMock) -> None:
        errors = [ScoutTimeoutException(f"t{i}") for i in range(policy.max_attempts)]
        operation = AsyncMock(side_effect=errors)

        with pytest.raises(ScoutTimeoutException) as exc_info:
            await run_with_retry(operation, policy, sleep=sleep)

        assert exc_info.value is errors[-1]
        assert operation.await_count == policy.max_attempts
        assert sleep.await_count == policy.max_attempts - 1

    @pytest.mark.asyncio
    async def test_non_retryable_raises_immediately(self, policy: RetryPolicy, sleep: AsyncMock) -> None:
        operation = AsyncMock(side_effect=InvalidQueryException("blank"))

        with pytest.raises(InvalidQueryException):
            await run_with_retry(operation, policy, sleep=sleep)

        assert operation.await_count == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_internal_error_not_retried(self, policy: RetryPolicy, sleep: AsyncMock) -> None:
        operation = AsyncMock(side_effect=ScoutException("bug"))

        with pytest.raises(ScoutException):
            await run_with_retry(operation, policy, sleep=sleep)

        assert operation.await_count == 1

    @pytest.mark.asyncio
    async def test_single_attempt_policy(self, sleep: AsyncMock) -> None:
        operation = AsyncMock(side_effect=ScoutTimeoutException("t"))

        with pytest.raises(ScoutTimeoutException):
            await run_with_retry(operation, RetryPolicy(max_attempts=1), sleep=sleep)

        assert operation.await_count == 1
        sleep.assert_not_awaited()


# =============================================================================
# BACKOFF
# =============================================================================
class TestRunWithRetryBackoff:
    """Waits grow geometrically and are capped."""

    @pytest.mark.asyncio
    async def test_exponential_backoff_capped(self, policy: RetryPolicy, sleep: AsyncMock) -> None:
        operation = AsyncMock(side_effect=[ScoutTimeoutException("t")] * 4)

        with pytest.raises(ScoutTimeoutException):
            await run_with_retry(operation, policy, sleep=sleep)

        waits = [call.args[0] for call in sleep.await_args_list]
        assert waits == [5.0, 10.0, 12.0]

    @pytest.mark.asyncio
    async def test_reset_waits_at_least_extra_delay(self, sleep: AsyncMock) -> None:
        policy = RetryPolicy(max_attempts=2, initial_backoff=5.0, extra_delay_on_reset=45.0)
        operation = failing_then("ok", [ConnectionResetException("Connection reset: ERR_CONNECTION_CLOSED")])

        assert await run_with_retry(operation, policy, sleep=sleep) == "ok"
        sleep.assert_awaited_once_with(45.0)

    @pytest.mark.asyncio
    async def test_reset_keeps_larger_backoff(self, sleep: AsyncMock) -> None:
        policy = RetryPolicy(max_attempts=2, initial_backoff=50.0, max_backoff=60.0, extra_delay_on_reset=45.0)
        operation = failing_then("ok", [ConnectionResetException("reset")])

        await run_with_retry(operation, policy, sleep=sleep)
        sleep.assert_awaited_once_with(50.0)


# =============================================================================
# OBSERVER AND CANCELLATION
# =============================================================================
class TestRunWithRetryObserver:
    """Tests for on_retry and cancellation."""

    @pytest.mark.asyncio
    async def test_observer_called_before_each_wait(self, policy: RetryPolicy, sleep: AsyncMock) -> None:
        first, second = ScoutTimeoutException("t1"), ScoutTimeoutException("t2")
        operation = failing_then("ok", [first, second])
        observer = MagicMock()

        await run_with_retry(operation, policy, on_retry=observer, sleep=sleep)

        assert [call.args for call in observer.call_args_list] == [(1, first), (2, second)]

    @pytest.mark.asyncio
    async def test_observer_errors_ignored(self, policy: RetryPolicy, sleep: AsyncMock) -> None:
        operation = failing_then("ok", [ScoutTimeoutException("t")])
        observer = MagicMock(side_effect=RuntimeError("observer broke"))

        assert await run_with_retry(operation, policy, on_retry=observer, sleep=sleep) == "ok"

    @pytest.mark.asyncio
    async def test_cancellation_not_retried(self, policy: RetryPolicy, sleep: AsyncMock) -> None:
        operation = AsyncMock(side_effect=asyncio.CancelledError())

        with pytest.raises(asyncio.CancelledError):
            await run_with_retry(operation, policy, sleep=sleep)

        assert operation.await_count == 1
