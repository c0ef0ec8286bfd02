"""Human-like spacing between searches.

Each ``throttle()`` waits a random min/max delay since the previous search,
and at most ``burst_limit`` searches start per ``burst_period``. Callers are
serialized so concurrent requests queue up instead of bursting together.
"""

import asyncio
import logging
import random
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from src.app.core.config import Settings

logger = logging.getLogger(__name__)


class RateLimiter:
    def __init__(
        self,
        min_delay: float = 5.0,
        max_delay: float = 15.0,
        burst_limit: int | None = 3,
        burst_period: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        if max_delay < min_delay:
            raise ValueError(f"max_delay ({max_delay}) must be >= min_delay ({min_delay})")
        self.min_delay = min_delay
        self.max_delay = max_delay
        self.burst_limit = burst_limit
        self.burst_period = burst_period
        self._clock = clock
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._lock = asyncio.Lock()

        self._last_request_time: float | None = None
        self._request_count = 0
        self._burst_start: float | None = None

    @classmethod
    def from_settings(cls, settings: "Settings") -> "RateLimiter":
        return cls(
            min_delay=settings.SCOUT_RATE_LIMIT_MIN_DELAY,
            max_delay=settings.SCOUT_RATE_LIMIT_MAX_DELAY,
            burst_limit=settings.SCOUT_RATE_LIMIT_BURST,
            burst_period=settings.SCOUT_RATE_LIMIT_PERIOD,
        )

    async def throttle(self) -> float:
        """Wait until the next search may start. Returns seconds waited."""
        async with self._lock:
            waited = 0.0
            now = self._clock()

            if self._burst_start is None or now - self._burst_start > self.burst_period:
                self._request_count = 0
                self._burst_start = now

            if self.burst_limit and self._request_count >= self.burst_limit:
                wait = self._burst_start + self.burst_period - now
                if wait > 0:
                    logger.info(f"Rate limit: waiting {wait:.1f}s (burst limit reached)")
                    await self._sleep(wait)
                    waited += wait
                self._request_count = 0
                self._burst_start = self._clock()

            if self._last_request_time is not None:
                delay = self._rng.uniform(self.min_delay, self.max_delay)
                remaining = delay - (self._clock() - self._last_request_time)
                if remaining > 0:
                    logger.debug(f"Rate limit: waiting {remaining:.1f}s before search")
                    await self._sleep(remaining)
                    waited += remaining

            self._last_request_time = self._clock()
            self._request_count += 1
            return waited

    def reset(self) -> None:
        self._last_request_time = None
        self._request_count = 0
        self._burst_start = None

    def get_stats(self) -> dict[str, Any]:
        time_until_reset = None
        if self._burst_start is not None:
            time_until_reset = max(self._burst_start + self.burst_period - self._clock(), 0.0)
        return {
            "request_count": self._request_count,
            "burst_limit": self.burst_limit,
            "time_until_reset_seconds": time_until_reset,
        }


__all__ = ["RateLimiter"]
