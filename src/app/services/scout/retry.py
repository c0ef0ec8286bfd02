"""Backoff/retry controller.

Retries one unit of work with exponential backoff. Errors are classified by
markers: a marker matches when it equals the error's ``kind``, occurs in the
error class name, or occurs in the error message. Connection-reset class
failures wait at least ``extra_delay_on_reset`` seconds.

Usage:
    policy = RetryPolicy.from_settings(settings)
    result = await run_with_retry(lambda: fetch(url), policy, on_retry=log_attempt)
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeVar

from .exceptions import ErrorKind, ScoutException

if TYPE_CHECKING:
    from src.app.core.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

RetryObserver = Callable[[int, BaseException], None]
SleepFunc = Callable[[float], Awaitable[None]]

DEFAULT_RETRYABLE_ERRORS = (
    ErrorKind.TIMEOUT.value,
    ErrorKind.NETWORK_ERROR.value,
    ErrorKind.CONNECTION_RESET.value,
    ErrorKind.BLOCKED.value,
    ErrorKind.ELEMENT_NOT_FOUND.value,
    ErrorKind.SESSION_CRASHED.value,
)

DEFAULT_RESET_MARKERS = (
    ErrorKind.CONNECTION_RESET.value,
    "CONNECTION_CLOSED",
    "ERR_CONNECTION_CLOSED",
    "ERR_CONNECTION_RESET",
)


@dataclass(frozen=True)
class RetryPolicy:
    """Retry configuration. All durations in seconds."""

    max_attempts: int = 5
    initial_backoff: float = 5.0
    backoff_multiplier: float = 2.0
    max_backoff: float = 60.0
    retryable_errors: tuple[str, ...] = field(default=DEFAULT_RETRYABLE_ERRORS)
    reset_markers: tuple[str, ...] = field(default=DEFAULT_RESET_MARKERS)
    extra_delay_on_reset: float = 45.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.initial_backoff < 0 or self.max_backoff < 0 or self.extra_delay_on_reset < 0:
            raise ValueError("Backoff durations must be non-negative")

    @classmethod
    def from_settings(cls, settings: "Settings") -> "RetryPolicy":
        return cls(
            max_attempts=settings.SCOUT_RETRY_MAX_ATTEMPTS,
            initial_backoff=settings.SCOUT_RETRY_INITIAL_BACKOFF,
            backoff_multiplier=settings.SCOUT_RETRY_BACKOFF_MULTIPLIER,
            max_backoff=settings.SCOUT_RETRY_MAX_BACKOFF,
            retryable_errors=tuple(settings.SCOUT_RETRY_ERRORS),
            reset_markers=tuple(settings.SCOUT_RETRY_RESET_MARKERS),
            extra_delay_on_reset=settings.SCOUT_RETRY_RESET_DELAY,
        )

    def is_retryable(self, error: BaseException) -> bool:
        return _matches_any(error, self.retryable_errors)

    def is_reset(self, error: BaseException) -> bool:
        return _matches_any(error, self.reset_markers)


def _matches_any(error: BaseException, markers: tuple[str, ...]) -> bool:
    kind = error.kind.value if isinstance(error, ScoutException) else None
    class_name = type(error).__name__
    message = str(error)

    for marker in markers:
        if marker == kind or marker in class_name or marker in message:
            return True
    return False


async def run_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    on_retry: RetryObserver | None = None,
    sleep: SleepFunc = asyncio.sleep,
) -> T:
    """Run ``operation`` until it succeeds or the policy gives up.

    Args:
        operation: Zero-argument coroutine factory; called once per attempt
        policy: Retry configuration
        on_retry: Observer called with ``(attempt, error)`` before each wait.
            Exceptions it raises are logged and ignored.
        sleep: Awaitable used for waits (injectable for tests)

    Returns:
        The operation's result

    Raises:
        The last error, unchanged, once it is non-retryable or attempts run out
    """
    backoff = policy.initial_backoff

    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await operation()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if attempt >= policy.max_attempts:
                logger.error(f"All {policy.max_attempts} attempts failed: {str(e)[:200]}")
                raise

            if not policy.is_retryable(e):
                logger.debug(f"Error is not retryable: {type(e).__name__}: {str(e)[:200]}")
                raise

            wait = min(backoff, policy.max_backoff)
            if policy.is_reset(e):
                wait = max(wait, policy.extra_delay_on_reset)
                logger.warning(f"Connection reset by peer, extending cooldown to {wait:.1f}s")

            logger.warning(
                f"Attempt {attempt}/{policy.max_attempts} failed: {str(e)[:100]} "
                f"(retrying in {wait:.1f}s)"
            )

            if on_retry is not None:
                try:
                    on_retry(attempt, e)
                except Exception as observer_error:
                    logger.debug(f"Retry observer raised, ignoring: {observer_error}")

            await sleep(wait)
            backoff *= policy.backoff_multiplier

    # max_attempts >= 1 guarantees the loop returns or raises
    raise RuntimeError("unreachable")


__all__ = [
    "DEFAULT_RESET_MARKERS",
    "DEFAULT_RETRYABLE_ERRORS",
    "RetryPolicy",
    "run_with_retry",
]
