"""Block/CAPTCHA detection.

Checks run in order and stop at the first positive:
1. DOM indicator selectors (challenge widgets)
2. Page title against block phrases (case-insensitive)
3. Page text against the same phrases

Phrase checks are skipped on a rendered results page (``results_selector``
present): titles echo the query and snippets quote arbitrary text.
"""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from .config import DetectionConfig
from .exceptions import RequestBlockedException

if TYPE_CHECKING:
    from .browser import BrowserSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Detection:
    """What triggered a positive detection."""

    challenge_type: str  # captcha_element, title, body_text
    marker: str


class BlockDetector:
    def __init__(self, config: DetectionConfig | None = None, screenshot_dir: str | Path | None = None) -> None:
        self.config = config or DetectionConfig()
        self.screenshot_dir = Path(screenshot_dir) if screenshot_dir else None
        self._phrases = [phrase.lower() for phrase in self.config.block_phrases]

    async def detect(self, session: "BrowserSession") -> bool:
        return await self.inspect(session) is not None

    async def inspect(self, session: "BrowserSession") -> Detection | None:
        """Return the first matching marker, or None for a clean page."""
        for selector in self.config.indicator_selectors:
            if await session.has_element(selector):
                return Detection(challenge_type="captcha_element", marker=selector)

        results_selector = self.config.results_selector
        if results_selector and await session.has_element(results_selector):
            return None

        title = (await session.title()).lower()
        phrase = self._match_phrase(title)
        if phrase:
            return Detection(challenge_type="title", marker=phrase)

        text = (await session.body_text()).lower()
        phrase = self._match_phrase(text)
        if phrase:
            return Detection(challenge_type="body_text", marker=phrase)

        return None

    async def ensure_not_blocked(self, session: "BrowserSession") -> None:
        """Raise ``RequestBlockedException`` when the page is a challenge.

        A positive detection is logged with title and URL, and a full-page
        screenshot is saved for offline diagnosis.
        """
        detection = await self.inspect(session)
        if detection is None:
            return

        title = await session.title()
        url = await session.current_url()
        logger.warning(f"Block detected ({detection.challenge_type}: {detection.marker}) title={title!r} url={url}")

        screenshot_path = await self._capture(session)
        raise RequestBlockedException(
            "CAPTCHA or challenge page detected",
            url=url,
            challenge_type=detection.challenge_type,
            marker=detection.marker,
            screenshot_path=screenshot_path,
        )

    async def _capture(self, session: "BrowserSession") -> str | None:
        if not self.config.screenshot_on_block or self.screenshot_dir is None:
            return None

        path = self.screenshot_dir / f"captcha-{int(time.time() * 1000)}.png"
        try:
            await session.screenshot(path)
        except Exception as e:
            logger.warning(f"Failed to capture block screenshot: {e}")
            return None

        logger.info(f"Block screenshot saved to {path}")
        return str(path)

    def _match_phrase(self, text: str) -> str | None:
        for phrase in self._phrases:
            if phrase in text:
                return phrase
        return None


__all__ = ["BlockDetector", "Detection"]
