"""Interaction simulator.

Randomized pointer movement, pauses and scrolling around navigation. Purely
best-effort realism: every failure is logged at DEBUG and swallowed.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from .config import BehaviorConfig, DelayRange

if TYPE_CHECKING:
    from .browser import BrowserSession

logger = logging.getLogger(__name__)


class InteractionSimulator:
    """Issues pre/post-navigation actions against one open session."""

    def __init__(
        self,
        session: "BrowserSession",
        config: BehaviorConfig | None = None,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.session = session
        self.config = config or BehaviorConfig()
        self._rng = rng or random.Random()
        self._sleep = sleep

    async def simulate_pre_navigation(self) -> None:
        """Maybe move the pointer, then maybe idle."""
        try:
            if self._chance(self.config.chance_of_mouse_move):
                await self._move_pointer()
            if self._chance(self.config.chance_of_pause):
                await self._pause(self.config.idle_pause)
        except Exception as e:
            logger.debug(f"Pre-navigation simulation skipped: {e}")

    async def simulate_post_navigation(self) -> None:
        """Wait for the page to settle, then maybe scroll a few steps."""
        try:
            await self._pause(self.config.page_load_wait)
            if self._chance(self.config.chance_of_scroll):
                await self._scroll()
        except Exception as e:
            logger.debug(f"Post-navigation simulation skipped: {e}")

    async def _move_pointer(self) -> None:
        viewport = await self.session.viewport_size()
        margin = self.config.viewport_margin_px
        jitter = self.config.mouse_jitter_px

        x = self._coordinate(viewport.width, margin) + self._rng.uniform(-jitter, jitter)
        y = self._coordinate(viewport.height, margin) + self._rng.uniform(-jitter, jitter)
        steps = self._rng.randint(self.config.mouse_move_steps.min, self.config.mouse_move_steps.max)

        await self.session.move_pointer(max(x, 0), max(y, 0), steps=steps)
        await self._pause(self.config.click_delay)

    async def _scroll(self) -> None:
        steps = self._rng.randint(self.config.scroll_step_count.min, self.config.scroll_step_count.max)
        amount = self.config.scroll_amount_px

        for _ in range(steps):
            await self.session.scroll_by(0, self._rng.randint(amount.min, amount.max))
            await self._pause(self.config.scroll_delay)

    def _coordinate(self, extent: int, margin: int) -> float:
        # Small viewports: ignore the margin instead of producing an empty range
        if extent <= 2 * margin:
            return self._rng.uniform(0, extent)
        return self._rng.uniform(margin, extent - margin)

    def _chance(self, probability: float) -> bool:
        return self._rng.random() < probability

    async def _pause(self, delay: DelayRange) -> None:
        await self._sleep(self._rng.uniform(delay.min, delay.max))


__all__ = ["InteractionSimulator"]
