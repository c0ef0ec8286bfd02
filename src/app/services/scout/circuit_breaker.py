"""Circuit breaker for the search unit of work.

State machine:
    CLOSED --(threshold consecutive failures)--> OPEN
    OPEN   --(cooldown elapsed)--> one trial admitted
    trial succeeds --> CLOSED (counter reset)
    trial fails    --> OPEN again immediately, cooldown restarts

While OPEN, and while a trial is in flight, calls are rejected with
``CircuitOpenException``. The breaker wraps the retry controller: one run that
exhausts its retries counts as a single failure.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, TypeVar

from .exceptions import CircuitOpenException

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"


class CircuitBreaker:
    """Async circuit breaker with a single-trial recovery window.

    Counters are mutated only under ``self._lock``; the wrapped operation runs
    outside the lock so concurrent calls in CLOSED state proceed in parallel.
    """

    def __init__(
        self,
        threshold: int = 3,
        cooldown: float = 120.0,
        clock: Callable[[], float] = time.monotonic,
        name: str = "search",
    ) -> None:
        if threshold < 1:
            raise ValueError(f"threshold must be >= 1, got {threshold}")
        self.threshold = threshold
        self.cooldown = cooldown
        self.name = name
        self._clock = clock
        self._lock = asyncio.Lock()

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: float | None = None
        self._trial_in_flight = False

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    async def call(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation`` if the breaker admits it.

        Raises:
            CircuitOpenException: Breaker is open or a trial is already running
        """
        is_trial = await self._admit()

        try:
            result = await operation()
        except asyncio.CancelledError:
            if is_trial:
                async with self._lock:
                    self._trial_in_flight = False
            raise
        except Exception:
            await self._record_failure(is_trial)
            raise

        await self._record_success(is_trial)
        return result

    async def _admit(self) -> bool:
        """Decide whether a call may proceed. Returns True for a trial call."""
        async with self._lock:
            if self._state is CircuitState.CLOSED:
                return False

            elapsed = self._clock() - (self._last_failure_time or 0.0)
            if self._trial_in_flight or elapsed < self.cooldown:
                retry_after = max(self.cooldown - elapsed, 0.0)
                raise CircuitOpenException(
                    f"Circuit breaker '{self.name}' is open, retry after {retry_after:.1f}s",
                    retry_after=retry_after,
                    breaker=self.name,
                )

            self._trial_in_flight = True
            logger.info(f"Circuit breaker '{self.name}' cooldown elapsed, admitting trial")
            return True

    async def _record_success(self, is_trial: bool) -> None:
        async with self._lock:
            if is_trial:
                self._trial_in_flight = False
                self._state = CircuitState.CLOSED
                logger.info(f"Circuit breaker '{self.name}' closed after successful trial")
            self._failure_count = 0

    async def _record_failure(self, is_trial: bool) -> None:
        async with self._lock:
            self._failure_count += 1
            self._last_failure_time = self._clock()

            if is_trial:
                self._trial_in_flight = False
                self._state = CircuitState.OPEN
                logger.warning(f"Circuit breaker '{self.name}' trial failed, re-opened")
                return

            if self._state is CircuitState.CLOSED and self._failure_count >= self.threshold:
                self._state = CircuitState.OPEN
                logger.warning(f"Circuit breaker '{self.name}' opened after {self._failure_count} failures")

    def reset(self) -> None:
        """Force the breaker back to CLOSED (for operators and tests)."""
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time = None
        self._trial_in_flight = False

    def snapshot(self) -> dict[str, Any]:
        retry_after = None
        if self._state is CircuitState.OPEN and self._last_failure_time is not None:
            retry_after = round(max(self.cooldown - (self._clock() - self._last_failure_time), 0.0), 1)

        return {
            "name": self.name,
            "state": self._state.value,
            "failure_count": self._failure_count,
            "threshold": self.threshold,
            "cooldown_seconds": self.cooldown,
            "retry_after_seconds": retry_after,
        }


__all__ = ["CircuitBreaker", "CircuitState"]
