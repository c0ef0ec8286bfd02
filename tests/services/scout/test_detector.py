"""Unit tests for block/CAPTCHA detection.

Tests cover:
- Indicator selectors, title phrases and body phrases (in that order)
- Clean pages
- Screenshot capture and its failure handling
"""

from pathlib import Path

import pytest

from src.app.services.scout.config import DetectionConfig
from src.app.services.scout.detector import BlockDetector
from src.app.services.scout.exceptions import RequestBlockedException


def page(title: str = "Results", body: str = "<p>hello</p>") -> str:
    return f"<html><head><title>{title}</title></head><body>{body}</body></html>"


# =============================================================================
# DETECTION
# =============================================================================
class TestBlockDetection:
    """Tests for inspect/detect."""

    @pytest.mark.asyncio
    async def test_recaptcha_iframe(self, make_session, recaptcha_html: str) -> None:
        detection = await BlockDetector().inspect(make_session(recaptcha_html))

        assert detection is not None
        assert detection.challenge_type == "captcha_element"
        assert "recaptcha" in detection.marker

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            '<div class="g-recaptcha" data-sitekey="x"></div>',
            '<iframe src="https://hcaptcha.com/checkbox"></iframe>',
            '<form action="/sorry/captcha"><input name="q"></form>',
        ],
    )
    async def test_indicator_elements(self, make_session, body: str) -> None:
        assert await BlockDetector().detect(make_session(page(body=body)))

    @pytest.mark.asyncio
    async def test_title_phrase_case_insensitive(self, make_session) -> None:
        detection = await BlockDetector().inspect(make_session(page(title="Verify You Are Human")))

        assert detection is not None
        assert detection.challenge_type == "title"
        assert detection.marker == "verify you are human"

    @pytest.mark.asyncio
    async def test_body_phrase(self, make_session) -> None:
        html = page(body="<p>Our systems have detected Unusual Traffic from your computer network.</p>")
        detection = await BlockDetector().inspect(make_session(html))

        assert detection is not None
        assert detection.challenge_type == "body_text"
        assert detection.marker == "unusual traffic"

    @pytest.mark.asyncio
    async def test_clean_page(self, make_session, html_results) -> None:
        assert await BlockDetector().inspect(make_session(html_results(5))) is None

    @pytest.mark.asyncio
    async def test_results_quoting_block_phrases(self, make_session) -> None:
        """A query about CAPTCHAs renders a results page full of block phrases."""
        html = page(
            title="captcha unusual traffic - Search",
            body=(
                '<div id="search"><div class="g"><h3>How to solve the CAPTCHA</h3>'
                "<p>Google says it detected unusual traffic; verify you are human.</p></div></div>"
            ),
        )

        assert await BlockDetector().inspect(make_session(html)) is None

    @pytest.mark.asyncio
    async def test_bare_captcha_word_not_blocked(self, make_session) -> None:
        html = page(title="reCAPTCHA docs", body="<p>Learn how captcha widgets work.</p>")

        assert await BlockDetector().inspect(make_session(html)) is None

    @pytest.mark.asyncio
    async def test_results_container_does_not_hide_widgets(self, make_session) -> None:
        html = page(body='<div id="search"></div><div class="g-recaptcha"></div>')

        assert await BlockDetector().detect(make_session(html))

    @pytest.mark.asyncio
    async def test_custom_phrases(self, make_session) -> None:
        detector = BlockDetector(DetectionConfig(indicator_selectors=[], block_phrases=["Access Denied"]))
        assert await detector.detect(make_session(page(title="access denied")))


# =============================================================================
# ENSURE NOT BLOCKED
# =============================================================================
class TestEnsureNotBlocked:
    """Tests for the raising entry point used by the engine."""

    @pytest.mark.asyncio
    async def test_clean_page_passes(self, make_session, html_results, tmp_path: Path) -> None:
        session = make_session(html_results(3))

        await BlockDetector(screenshot_dir=tmp_path).ensure_not_blocked(session)

        assert session.screenshots == []

    @pytest.mark.asyncio
    async def test_raises_with_screenshot(self, make_session, recaptcha_html: str, tmp_path: Path) -> None:
        session = make_session(recaptcha_html)

        with pytest.raises(RequestBlockedException) as exc_info:
            await BlockDetector(screenshot_dir=tmp_path).ensure_not_blocked(session)

        error = exc_info.value
        assert error.retryable is True
        assert error.challenge_type == "captcha_element"
        assert error.screenshot_path is not None
        assert Path(error.screenshot_path).name.startswith("captcha-")
        assert Path(error.screenshot_path).exists()

    @pytest.mark.asyncio
    async def test_screenshot_failure_still_raises_blocked(
        self, make_session, recaptcha_html: str, tmp_path: Path
    ) -> None:
        session = make_session(recaptcha_html, screenshot_error=RuntimeError("no target"))

        with pytest.raises(RequestBlockedException) as exc_info:
            await BlockDetector(screenshot_dir=tmp_path).ensure_not_blocked(session)

        assert exc_info.value.screenshot_path is None

    @pytest.mark.asyncio
    async def test_no_screenshot_without_directory(self, make_session, recaptcha_html: str) -> None:
        session = make_session(recaptcha_html)

        with pytest.raises(RequestBlockedException):
            await BlockDetector().ensure_not_blocked(session)

        assert session.screenshots == []
