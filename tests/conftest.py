from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

import pytest
from bs4 import BeautifulSoup

from src.app.core.config import Settings, settings
from src.app.services.scout.browser import BrowserSession, SessionLauncher
from src.app.services.scout.circuit_breaker import CircuitBreaker
from src.app.services.scout.config import BehaviorConfig
from src.app.services.scout.cookie_store import CookieStore
from src.app.services.scout.detector import BlockDetector
from src.app.services.scout.engine import SearchEngine
from src.app.services.scout.exceptions import ScoutTimeoutException
from src.app.services.scout.fingerprint import DEFAULT_USER_AGENT, DEFAULT_VIEWPORT, Fingerprint, Viewport
from src.app.services.scout.metrics import SearchMetrics
from src.app.services.scout.retry import RetryPolicy


# =============================================================================
# FAKE BROWSER
# =============================================================================
class FakeSession(BrowserSession):
    """In-memory ``BrowserSession`` serving a fixed HTML document.

    Selector checks run through BeautifulSoup, so detection and extraction see
    the same markup a real browser would hand back from ``content()``.
    """

    def __init__(
        self,
        html: str = "<html><body></body></html>",
        fingerprint: Fingerprint | None = None,
        cookies: list[dict[str, Any]] | None = None,
        navigate_error: Exception | None = None,
        add_cookies_error: Exception | None = None,
        screenshot_error: Exception | None = None,
        html_after_click: str | None = None,
    ) -> None:
        super().__init__(fingerprint or Fingerprint(viewport=DEFAULT_VIEWPORT, user_agent=DEFAULT_USER_AGENT))
        self.html = html
        self.url = "about:blank"
        self.navigate_error = navigate_error
        self.add_cookies_error = add_cookies_error
        self.screenshot_error = screenshot_error
        self.html_after_click = html_after_click

        self.jar: list[dict[str, Any]] = list(cookies or [])
        self.restored_cookies: list[dict[str, Any]] = []
        self.visited: list[str] = []
        self.pointer_moves: list[tuple[float, float, int]] = []
        self.scrolls: list[tuple[int, int]] = []
        self.screenshots: list[Path | None] = []
        self.clicks: list[tuple[str, list[str] | None]] = []
        self.close_calls = 0

    @property
    def soup(self) -> BeautifulSoup:
        return BeautifulSoup(self.html, "html.parser")

    @property
    def closed(self) -> bool:
        return self.close_calls > 0

    async def navigate(self, url: str, wait_condition: str = "load", timeout: float = 30.0) -> None:
        self.visited.append(url)
        if self.navigate_error is not None:
            raise self.navigate_error
        self.url = url

    async def evaluate(self, script: str, *args: Any) -> Any:
        return None

    async def wait_for_selector(self, selector: str, timeout: float = 10.0) -> None:
        if self.soup.select_one(selector) is None:
            raise ScoutTimeoutException(f"Selector not found: {selector}", timeout_seconds=timeout, phase="selector")

    async def cookies(self) -> list[dict[str, Any]]:
        return list(self.jar)

    async def add_cookies(self, records: list[dict[str, Any]]) -> None:
        if self.add_cookies_error is not None:
            raise self.add_cookies_error
        self.restored_cookies.extend(records)
        self.jar.extend(records)

    async def screenshot(self, path: str | Path | None = None) -> bytes:
        if self.screenshot_error is not None:
            raise self.screenshot_error
        image = b"\x89PNG\r\n\x1a\nfake"
        if path is not None:
            target = Path(path)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(image)
        self.screenshots.append(Path(path) if path else None)
        return image

    async def move_pointer(self, x: float, y: float, steps: int = 10) -> None:
        self.pointer_moves.append((x, y, steps))

    async def current_url(self) -> str:
        return self.url

    async def close(self) -> None:
        self.close_calls += 1

    # Evaluate-backed helpers answered from the parsed document
    async def title(self) -> str:
        soup = self.soup
        return soup.title.get_text(strip=True) if soup.title else ""

    async def body_text(self) -> str:
        soup = self.soup
        return soup.body.get_text(" ", strip=True) if soup.body else ""

    async def content(self) -> str:
        return self.html

    async def has_element(self, selector: str) -> bool:
        return self.soup.select_one(selector) is not None

    async def viewport_size(self) -> Viewport:
        return self.fingerprint.viewport

    async def scroll_by(self, dx: int, dy: int) -> None:
        self.scrolls.append((dx, dy))

    async def click(self, selector: str, labels: list[str] | None = None) -> bool:
        """Click the first match; ``html_after_click`` replaces the document."""
        wanted = [label.strip().lower() for label in labels] if labels else None
        for element in self.soup.select(selector):
            if wanted is None or element.get_text(" ", strip=True).lower() in wanted:
                self.clicks.append((selector, labels))
                if self.html_after_click is not None:
                    self.html = self.html_after_click
                return True
        return False


class FakeLauncher(SessionLauncher):
    """Hands out one session per launch, built by ``factory``."""

    def __init__(self, factory: Callable[[Fingerprint], FakeSession], launch_error: Exception | None = None) -> None:
        self.factory = factory
        self.launch_error = launch_error
        self.sessions: list[FakeSession] = []
        self.fingerprints: list[Fingerprint] = []

    @classmethod
    def serving(cls, html: str, **session_kwargs: Any) -> "FakeLauncher":
        return cls(lambda fingerprint: FakeSession(html, fingerprint=fingerprint, **session_kwargs))

    @classmethod
    def sequence(cls, sessions: Iterable[FakeSession]) -> "FakeLauncher":
        """Serve ``sessions`` in order; the last one is reused once they run out."""
        queue = list(sessions)

        def factory(fingerprint: Fingerprint) -> FakeSession:
            session = queue.pop(0) if len(queue) > 1 else queue[0]
            session.fingerprint = fingerprint
            return session

        return cls(factory)

    @property
    def launch_count(self) -> int:
        return len(self.fingerprints)

    async def launch(self, fingerprint: Fingerprint) -> BrowserSession:
        self.fingerprints.append(fingerprint)
        if self.launch_error is not None:
            raise self.launch_error
        session = self.factory(fingerprint)
        self.sessions.append(session)
        return session


async def no_sleep(seconds: float) -> None:
    return None


# =============================================================================
# HTML FIXTURES
# =============================================================================
def results_page(count: int = 5, host: str = "www.google.co.jp") -> str:
    """Result page in the engine's canonical container markup."""
    blocks = "\n".join(
        f"""
        <div class="g">
          <div class="yuRUbf">
            <a href="https://{host}/url?q=https://site{i}.example.com/page{i}%3Futm_source%3Dserp&amp;sa=U">
              <h3>Result title {i}</h3>
            </a>
            <cite>site{i}.example.com &rsaquo; page{i}</cite>
          </div>
          <div class="VwiC3b">Snippet text for result {i}.</div>
        </div>
        """
        for i in range(1, count + 1)
    )
    return f"""
    <html>
      <head><title>typescript tutorial - Search</title></head>
      <body>
        <div id="search"><div id="rso">{blocks}</div></div>
      </body>
    </html>
    """


RECAPTCHA_PAGE = """
<html>
  <head><title>https://www.google.com/search?q=typescript</title></head>
  <body>
    <div id="main">
      <iframe src="https://www.google.com/recaptcha/api2/anchor?k=abc" title="widget"></iframe>
    </div>
  </body>
</html>
"""


# =============================================================================
# FIXTURES
# =============================================================================
@pytest.fixture(autouse=True)
def reset_metrics() -> None:
    """The metrics collector is process-wide; start every test from zero."""
    SearchMetrics.reset()


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    return settings.model_copy(
        update={
            "SCOUT_DEFAULT_REGION": "US",
            "SCOUT_GEO_ENABLED": False,
            "SCOUT_COOKIE_DIR": str(tmp_path / "cookies"),
            "SCOUT_SCREENSHOT_DIR": str(tmp_path / "screenshots"),
            "SCOUT_CONFIG_FILE": None,
            "SCOUT_BREAKER_THRESHOLD": 3,
            "SCOUT_BREAKER_COOLDOWN": 120.0,
            "SCOUT_RATE_LIMIT_ENABLED": False,
        }
    )


@pytest.fixture
def quiet_behavior() -> BehaviorConfig:
    """Behavior config with every optional action disabled."""
    return BehaviorConfig(chance_of_mouse_move=0.0, chance_of_pause=0.0, chance_of_scroll=0.0)


@pytest.fixture
def fast_policy() -> RetryPolicy:
    """Three attempts, no waiting."""
    return RetryPolicy(max_attempts=3, initial_backoff=0.0, max_backoff=0.0, extra_delay_on_reset=0.0)


@pytest.fixture
def make_session() -> Callable[..., FakeSession]:
    return FakeSession


@pytest.fixture
def fake_launcher_cls() -> type[FakeLauncher]:
    return FakeLauncher


@pytest.fixture
def html_results() -> Callable[..., str]:
    return results_page


@pytest.fixture
def recaptcha_html() -> str:
    return RECAPTCHA_PAGE


@pytest.fixture
def make_engine(
    test_settings: Settings,
    tmp_path: Path,
    quiet_behavior: BehaviorConfig,
    fast_policy: RetryPolicy,
) -> Callable[..., SearchEngine]:
    """Build a SearchEngine over a FakeLauncher with zero-wait timings."""

    def _make(launcher: SessionLauncher, **overrides: Any) -> SearchEngine:
        kwargs: dict[str, Any] = {
            "launcher": launcher,
            "geo_resolver": None,
            "cookie_store": CookieStore(tmp_path / "cookies"),
            "breaker": CircuitBreaker(threshold=3, cooldown=120.0),
            "detector": BlockDetector(screenshot_dir=tmp_path / "screenshots"),
            "behavior_config": quiet_behavior,
            "retry_policy": fast_policy,
            "sleep": no_sleep,
        }
        kwargs.update(overrides)
        return SearchEngine(test_settings, **kwargs)

    return _make
