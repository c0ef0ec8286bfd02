"""Scout engine configuration tables.

Behavior timings, detection heuristics and extraction selectors are data, not
code: they live in pydantic models with sensible defaults and can be replaced
from a JSON file (``SCOUT_CONFIG_FILE``) without touching control flow.

Usage:
    from .config import ConfigLoader

    config = ConfigLoader.default()
    config.detection.block_phrases

    config = ConfigLoader.from_file("scout.json")
    config = ConfigLoader.merge(config, {"behavior": {"chance_of_scroll": 0.0}})
"""

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, model_validator

logger = logging.getLogger(__name__)


class DelayRange(BaseModel):
    """Closed interval of seconds a random delay is drawn from."""

    min: float = Field(ge=0)
    max: float = Field(ge=0)

    @model_validator(mode="after")
    def _check_order(self) -> "DelayRange":
        if self.max < self.min:
            raise ValueError(f"max ({self.max}) must be >= min ({self.min})")
        return self


class StepRange(BaseModel):
    """Closed interval of whole steps."""

    min: int = Field(ge=0)
    max: int = Field(ge=0)

    @model_validator(mode="after")
    def _check_order(self) -> "StepRange":
        if self.max < self.min:
            raise ValueError(f"max ({self.max}) must be >= min ({self.min})")
        return self


class BehaviorConfig(BaseModel):
    """Interaction simulator timings and probabilities."""

    # Reserved for flows that type into the page
    typing_delay: DelayRange = Field(default_factory=lambda: DelayRange(min=0.05, max=0.15))
    # Pause after a pointer move
    click_delay: DelayRange = Field(default_factory=lambda: DelayRange(min=0.1, max=0.5))
    scroll_delay: DelayRange = Field(default_factory=lambda: DelayRange(min=0.3, max=1.0))
    page_load_wait: DelayRange = Field(default_factory=lambda: DelayRange(min=1.0, max=3.0))
    idle_pause: DelayRange = Field(default_factory=lambda: DelayRange(min=0.5, max=1.5))

    mouse_jitter_px: int = Field(default=10, ge=0)
    mouse_move_steps: StepRange = Field(default_factory=lambda: StepRange(min=5, max=15))
    viewport_margin_px: int = Field(default=100, ge=0)
    scroll_step_count: StepRange = Field(default_factory=lambda: StepRange(min=2, max=5))
    scroll_amount_px: StepRange = Field(default_factory=lambda: StepRange(min=100, max=400))

    chance_of_mouse_move: float = Field(default=0.7, ge=0, le=1)
    chance_of_pause: float = Field(default=0.3, ge=0, le=1)
    chance_of_scroll: float = Field(default=0.6, ge=0, le=1)


class DetectionConfig(BaseModel):
    """Block and CAPTCHA signatures."""

    indicator_selectors: list[str] = Field(
        default_factory=lambda: [
            'iframe[src*="recaptcha"]',
            'iframe[src*="recaptcha/api"]',
            'iframe[src*="hcaptcha"]',
            'div[id*="captcha"]',
            'div[class*="captcha"]',
            'form[action*="captcha"]',
            '[id*="recaptcha"]',
            '[class*="recaptcha"]',
            ".g-recaptcha",
            "#recaptcha",
        ]
    )

    # Matched case-insensitively against title, then body text
    block_phrases: list[str] = Field(
        default_factory=lambda: [
            "unusual traffic",
            "solve the captcha",
            "complete the captcha",
            "enter the characters you see",
            "verify you are human",
            "please complete the security check",
            "this page is protected by",
        ]
    )
    # When present, phrase checks are skipped: result snippets may quote any phrase
    results_selector: str | None = "div#search"

    screenshot_on_block: bool = True

    # Consent interstitials: exact selectors first, then buttons matched by label
    consent_selectors: list[str] = Field(
        default_factory=lambda: [
            "button#L2AGLb",
            'button[aria-label="Accept all"]',
            'button[aria-label="Accept"]',
            'button[aria-label="I agree"]',
            'div[role="button"][aria-label="Accept all"]',
        ]
    )
    consent_text_selector: str = 'button, div[role="button"], input[type="submit"]'
    consent_button_texts: list[str] = Field(
        default_factory=lambda: [
            "Accept all",
            "I agree",
            "Accept",
            "Agree",
            "Alle akzeptieren",
            "Tout accepter",
            "Aceptar todo",
            "Accetta tutto",
            "Alles accepteren",
            "Zaakceptuj wszystko",
            "Aceitar tudo",
            "接受所有",
            "同意",
            "同意所有",
            "すべて同意",
        ]
    )
    consent_settle_seconds: float = Field(default=1.0, ge=0)


class ContainerSelectors(BaseModel):
    """Selectors used by the container strategy."""

    containers: list[str] = Field(default_factory=lambda: ["div.g", "div.MjjYud", "div[data-hveid]"])
    title: str = "h3"
    link: str = "a[href]"
    snippet: list[str] = Field(
        default_factory=lambda: [
            "div.VwiC3b",
            'div[style*="-webkit-line-clamp"]',
            "span.aCOpRe",
            'div[data-sncf="1"]',
        ]
    )
    display_url: list[str] = Field(default_factory=lambda: ["cite", "div.wwWE2c"])


class ExtractionConfig(BaseModel):
    """Extraction strategy tables."""

    container: ContainerSelectors = Field(default_factory=ContainerSelectors)
    heading_tag: str = "h3"
    # Outbound-link strategy only; anchor text shorter than this is page chrome
    min_title_length: int = Field(default=3, ge=1)


class ScoutConfig(BaseModel):
    """Complete engine configuration tables."""

    version: str = "1.0.0"
    behavior: BehaviorConfig = Field(default_factory=BehaviorConfig)
    detection: DetectionConfig = Field(default_factory=DetectionConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)


class ConfigLoader:
    """Loads ``ScoutConfig`` from files or dicts with validation."""

    @classmethod
    def from_file(cls, path: str | Path) -> ScoutConfig:
        """Load configuration from a JSON file.

        Raises:
            FileNotFoundError: If file not found
            ValueError: If JSON invalid or fails validation
        """
        path = Path(path)

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in configuration file: {e}") from e

        logger.info(f"Loaded scout configuration from {path}")
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScoutConfig:
        # Keys starting with _ are comments
        clean_data = {k: v for k, v in data.items() if not k.startswith("_")}

        try:
            return ScoutConfig.model_validate(clean_data)
        except Exception as e:
            raise ValueError(f"Configuration validation failed: {e}") from e

    @classmethod
    def default(cls) -> ScoutConfig:
        return ScoutConfig()

    @classmethod
    def merge(cls, base: ScoutConfig, overrides: dict[str, Any]) -> ScoutConfig:
        """Return a new config with ``overrides`` deep-merged into ``base``."""
        base_dict = base.model_dump()
        cls._deep_merge(base_dict, overrides)
        return cls.from_dict(base_dict)

    @staticmethod
    def _deep_merge(base: dict, overrides: dict) -> None:
        for key, value in overrides.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                ConfigLoader._deep_merge(base[key], value)
            else:
                base[key] = value


__all__ = [
    "BehaviorConfig",
    "ConfigLoader",
    "ContainerSelectors",
    "DelayRange",
    "DetectionConfig",
    "ExtractionConfig",
    "ScoutConfig",
    "StepRange",
]
