"""Cookie-consent interstitials.

Regions under GDPR get a consent wall in front of the results page. The
handler clicks through it: known button selectors first, then any button whose
label matches one of the configured texts. Missing consent UI is the normal
case and is not an error.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from .config import DetectionConfig

if TYPE_CHECKING:
    from .browser import BrowserSession

logger = logging.getLogger(__name__)


class ConsentHandler:
    def __init__(
        self,
        config: DetectionConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config or DetectionConfig()
        self._sleep = sleep

    async def handle(self, session: "BrowserSession") -> bool:
        """Accept a consent dialog if one is shown. Never raises.

        Returns True when a consent button was clicked.
        """
        candidates: list[tuple[str, list[str] | None]] = [
            (selector, None) for selector in self.config.consent_selectors
        ]
        if self.config.consent_button_texts:
            candidates.append((self.config.consent_text_selector, self.config.consent_button_texts))

        for selector, labels in candidates:
            try:
                clicked = await session.click(selector, labels)
            except Exception as e:
                logger.debug(f"Consent click failed for '{selector}': {e}")
                continue

            if clicked:
                logger.info(f"Accepted cookie consent via '{selector}'")
                await self._sleep(self.config.consent_settle_seconds)
                return True

        return False


__all__ = ["ConsentHandler"]
