"""Session fingerprint randomization.

A fingerprint (viewport + User-Agent) is drawn once per session and never
changed while that session lives.
"""

import random
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.app.core.config import Settings

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


@dataclass(frozen=True)
class Viewport:
    width: int
    height: int

    def as_window_size(self) -> str:
        """Format for the ``--window-size`` browser flag."""
        return f"{self.width},{self.height}"


DEFAULT_VIEWPORT = Viewport(width=1920, height=1080)


@dataclass(frozen=True)
class Fingerprint:
    """Identity presented by one browsing session."""

    viewport: Viewport
    user_agent: str


class FingerprintRandomizer:
    """Draws viewports and User-Agents uniformly from fixed pools."""

    def __init__(
        self,
        viewports: Sequence[Viewport] | None = None,
        user_agents: Sequence[str] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.viewports = list(viewports) if viewports else [DEFAULT_VIEWPORT]
        self.user_agents = list(user_agents) if user_agents else [DEFAULT_USER_AGENT]
        self._rng = rng or random.Random()

    @classmethod
    def from_settings(cls, settings: "Settings", rng: random.Random | None = None) -> "FingerprintRandomizer":
        viewports = [Viewport(width=int(v["width"]), height=int(v["height"])) for v in settings.SCOUT_VIEWPORTS]
        return cls(viewports=viewports, user_agents=settings.SCOUT_USER_AGENTS, rng=rng)

    def pick_viewport(self) -> Viewport:
        return self._rng.choice(self.viewports)

    def pick_user_agent(self) -> str:
        return self._rng.choice(self.user_agents)

    def pick(self) -> Fingerprint:
        """Draw a complete fingerprint for a new session."""
        return Fingerprint(viewport=self.pick_viewport(), user_agent=self.pick_user_agent())


__all__ = [
    "DEFAULT_USER_AGENT",
    "DEFAULT_VIEWPORT",
    "Fingerprint",
    "FingerprintRandomizer",
    "Viewport",
]
