"""Browser automation adapter.

``BrowserSession`` is the capability surface the engine consumes: navigate,
evaluate a script, wait for a selector, cookie access, screenshots, pointer
movement, clicks (consent interstitials only) and close. ``NodriverLauncher`` /
``NodriverSession`` implement it over nodriver (async CDP, no webdriver binary).

Every driver failure leaving this module is a classified ``ScoutException``.
Every CDP round trip is bounded: navigation and selector waits by their own
timeouts, everything else by ``command_timeout``.

Usage:
    launcher = NodriverLauncher.from_settings(settings)
    async with await launcher.launch(fingerprint) as session:
        await session.navigate(url, "load", timeout=30)
        html = await session.content()
"""

import asyncio
import base64
import json
import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Awaitable
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar

import nodriver as uc
from nodriver import cdp

from .exceptions import (
    ConnectionResetException,
    NetworkErrorException,
    ScoutException,
    ScoutTimeoutException,
    SessionCrashedException,
)
from .fingerprint import Fingerprint, Viewport

if TYPE_CHECKING:
    from src.app.core.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_COMMAND_TIMEOUT = 10.0

# Clicks the first element matching the selector, optionally restricted to the given labels
CLICK_SCRIPT = """(selector, labels) => {
  const wanted = labels ? labels.map((label) => label.trim().toLowerCase()) : null;
  for (const el of document.querySelectorAll(selector)) {
    const text = (el.innerText || el.value || el.textContent || '').trim().toLowerCase();
    if (wanted === null || wanted.includes(text)) {
      el.click();
      return true;
    }
  }
  return false;
}"""

# Chrome net error codes that mean the peer dropped us
RESET_ERROR_CODES = frozenset(
    {
        "ERR_CONNECTION_CLOSED",
        "ERR_CONNECTION_RESET",
        "ERR_EMPTY_RESPONSE",
        "ERR_HTTP2_PROTOCOL_ERROR",
    }
)
NET_ERROR_REGEX = re.compile(r"\b(ERR_[A-Z0-9_]+)\b")

READY_STATES = {
    "domcontentloaded": ("interactive", "complete"),
    "load": ("complete",),
    "networkidle": ("complete",),
}
READY_POLL_INTERVAL = 0.1
NETWORK_IDLE_GRACE = 0.5

# Keys accepted by CDP Network.CookieParam
COOKIE_PARAM_KEYS = frozenset(
    {
        "name",
        "value",
        "url",
        "domain",
        "path",
        "secure",
        "httpOnly",
        "sameSite",
        "expires",
        "priority",
        "sameParty",
        "sourceScheme",
        "sourcePort",
    }
)


def classify_driver_error(error: BaseException, url: str | None = None, phase: str | None = None) -> ScoutException:
    """Map a raw driver exception onto the classified error kinds."""
    if isinstance(error, ScoutException):
        return error

    error_msg = str(error)
    error_lower = error_msg.lower()

    match = NET_ERROR_REGEX.search(error_msg)
    if match and match.group(1) in RESET_ERROR_CODES:
        return ConnectionResetException(f"Connection reset: {match.group(1)}", url=url)

    if isinstance(error, (asyncio.TimeoutError, TimeoutError)) or any(
        x in error_lower for x in ["timeout", "timed out"]
    ):
        return ScoutTimeoutException(f"Timeout: {error_msg}", url=url, phase=phase)

    if isinstance(error, ConnectionResetError) or "connection reset" in error_lower:
        return ConnectionResetException(f"Connection reset: {error_msg}", url=url)

    if match or any(x in error_lower for x in ["no such host", "name not resolved", "dns", "connection refused"]):
        return NetworkErrorException(f"Network error: {error_msg}", url=url)

    if any(x in error_lower for x in ["crash", "died", "killed", "terminated", "connection closed", "websocket"]):
        return SessionCrashedException(f"Browser crash: {error_msg}", url=url)

    return ScoutException(f"Browser error: {error_msg}", url=url)


class BrowserSession(ABC):
    """One isolated browsing context with a fixed fingerprint.

    Subclasses implement the primitives; the helpers below are built on
    ``evaluate`` and may be overridden when a cheaper path exists.
    """

    def __init__(self, fingerprint: Fingerprint) -> None:
        self.fingerprint = fingerprint

    # ============================================
    # Primitives
    # ============================================

    @abstractmethod
    async def navigate(self, url: str, wait_condition: str = "load", timeout: float = 30.0) -> None:
        """Load ``url`` and wait for ``wait_condition``."""

    @abstractmethod
    async def evaluate(self, script: str, *args: Any) -> Any:
        """Run a read-only script against the loaded document.

        With ``args`` the script must be a function expression; it is called
        with the JSON-serialized arguments.
        """

    @abstractmethod
    async def wait_for_selector(self, selector: str, timeout: float = 10.0) -> None:
        """Raises ScoutTimeoutException when ``selector`` does not appear in time."""

    @abstractmethod
    async def cookies(self) -> list[dict[str, Any]]:
        pass

    @abstractmethod
    async def add_cookies(self, records: list[dict[str, Any]]) -> None:
        pass

    @abstractmethod
    async def screenshot(self, path: str | Path | None = None) -> bytes:
        """Capture a full-page PNG, optionally writing it to ``path``."""

    @abstractmethod
    async def move_pointer(self, x: float, y: float, steps: int = 10) -> None:
        pass

    @abstractmethod
    async def current_url(self) -> str:
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release the session and its process. Idempotent."""

    # ============================================
    # Evaluate-backed helpers
    # ============================================

    async def title(self) -> str:
        return await self.evaluate("document.title") or ""

    async def body_text(self) -> str:
        return await self.evaluate("document.body ? document.body.innerText : ''") or ""

    async def content(self) -> str:
        return await self.evaluate("document.documentElement.outerHTML") or ""

    async def has_element(self, selector: str) -> bool:
        return bool(await self.evaluate("(s) => document.querySelector(s) !== null", selector))

    async def viewport_size(self) -> Viewport:
        size = await self.evaluate("({width: window.innerWidth, height: window.innerHeight})")
        if not size:
            return self.fingerprint.viewport
        return Viewport(width=int(size["width"]), height=int(size["height"]))

    async def scroll_by(self, dx: int, dy: int) -> None:
        await self.evaluate("(x, y) => window.scrollBy(x, y)", dx, dy)

    async def click(self, selector: str, labels: list[str] | None = None) -> bool:
        """Click the first element matching ``selector`` whose text is one of ``labels``.

        Without ``labels`` the first match is clicked. Returns False when
        nothing matched.
        """
        return bool(await self.evaluate(CLICK_SCRIPT, selector, labels))

    @staticmethod
    def build_expression(script: str, args: tuple[Any, ...]) -> str:
        if not args:
            return script
        encoded = ", ".join(json.dumps(arg) for arg in args)
        return f"({script})({encoded})"

    async def __aenter__(self) -> "BrowserSession":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


class SessionLauncher(ABC):
    """Creates a new, independent session per unit of work."""

    @abstractmethod
    async def launch(self, fingerprint: Fingerprint) -> BrowserSession:
        pass


class NodriverSession(BrowserSession):
    """``BrowserSession`` over one nodriver browser process and tab."""

    def __init__(
        self,
        browser: Any,
        tab: Any,
        fingerprint: Fingerprint,
        command_timeout: float = DEFAULT_COMMAND_TIMEOUT,
    ) -> None:
        super().__init__(fingerprint)
        self._browser = browser
        self._tab = tab
        self.command_timeout = command_timeout
        self._closed = False

    async def _bounded(self, awaitable: Awaitable[T], phase: str) -> T:
        """Await one CDP round trip under ``command_timeout``."""
        try:
            return await asyncio.wait_for(awaitable, timeout=self.command_timeout)
        except asyncio.TimeoutError as e:
            raise ScoutTimeoutException(
                f"Browser command timed out: {phase}",
                timeout_seconds=self.command_timeout,
                phase=phase,
            ) from e
        except ScoutException:
            raise
        except Exception as e:
            raise classify_driver_error(e, phase=phase) from e

    async def navigate(self, url: str, wait_condition: str = "load", timeout: float = 30.0) -> None:
        logger.debug(f"[NODRIVER] Navigating to: {url}")
        try:
            await asyncio.wait_for(self._navigate(url, wait_condition), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise ScoutTimeoutException(
                "Navigation timed out",
                url=url,
                timeout_seconds=timeout,
                phase="navigation",
            ) from e
        except ScoutException:
            raise
        except Exception as e:
            raise classify_driver_error(e, url=url, phase="navigation") from e

        # Chrome renders network failures as an internal error page
        current = await self.current_url()
        if current.startswith("chrome-error://"):
            text = await self.body_text()
            match = NET_ERROR_REGEX.search(text)
            code = match.group(1) if match else "ERR_FAILED"
            if code in RESET_ERROR_CODES:
                raise ConnectionResetException(f"Connection reset: {code}", url=url)
            raise NetworkErrorException(f"Navigation failed: {code}", url=url)

    async def _navigate(self, url: str, wait_condition: str) -> None:
        accepted = READY_STATES.get(wait_condition, READY_STATES["load"])
        await self._tab.get(url)

        while True:
            state = await self.evaluate("document.readyState")
            if state in accepted:
                break
            await asyncio.sleep(READY_POLL_INTERVAL)

        if wait_condition == "networkidle":
            await asyncio.sleep(NETWORK_IDLE_GRACE)

    async def evaluate(self, script: str, *args: Any) -> Any:
        expression = self.build_expression(script, args)
        remote_object, exception_details = await self._bounded(
            self._tab.send(
                cdp.runtime.evaluate(
                    expression=expression,
                    return_by_value=True,
                    await_promise=True,
                    user_gesture=True,
                )
            ),
            phase="evaluate",
        )

        if exception_details:
            raise ScoutException(f"Script evaluation failed: {exception_details.text}")
        return remote_object.value if remote_object else None

    async def wait_for_selector(self, selector: str, timeout: float = 10.0) -> None:
        try:
            await asyncio.wait_for(self._tab.select(selector, timeout=timeout), timeout=timeout + 1)
        except asyncio.TimeoutError as e:
            raise ScoutTimeoutException(
                f"Selector not found: {selector}",
                timeout_seconds=timeout,
                phase="selector",
            ) from e
        except Exception as e:
            raise classify_driver_error(e, phase="selector") from e

    async def cookies(self) -> list[dict[str, Any]]:
        cookies = await self._bounded(self._browser.cookies.get_all(), phase="cookies")
        return [cookie.to_json() for cookie in cookies]

    async def add_cookies(self, records: list[dict[str, Any]]) -> None:
        params = [cdp.network.CookieParam.from_json(_to_cookie_param(record)) for record in records]
        await self._bounded(self._browser.cookies.set_all(params), phase="cookies")

    async def screenshot(self, path: str | Path | None = None) -> bytes:
        data = await self._bounded(
            self._tab.send(cdp.page.capture_screenshot(format_="png", capture_beyond_viewport=True)),
            phase="screenshot",
        )

        image = base64.b64decode(data)
        if path is not None:
            target = Path(path)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(image)
        return image

    async def move_pointer(self, x: float, y: float, steps: int = 10) -> None:
        await self._bounded(self._tab.mouse_move(x, y, steps=steps), phase="pointer")

    async def current_url(self) -> str:
        try:
            href = await self.evaluate("window.location.href")
        except ScoutException:
            href = None
        return href or getattr(self._tab, "url", "") or ""

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        _stop_browser(self._browser)


def _stop_browser(browser: Any) -> None:
    try:
        browser.stop()
        logger.debug("[NODRIVER] Browser stopped")
    except Exception as e:
        logger.warning(f"[NODRIVER] Error stopping browser: {e}")


def _to_cookie_param(record: dict[str, Any]) -> dict[str, Any]:
    param = {k: v for k, v in record.items() if k in COOKIE_PARAM_KEYS}
    # Session cookies report expires=-1
    if isinstance(param.get("expires"), (int, float)) and param["expires"] < 0:
        del param["expires"]
    return param


class NodriverLauncher(SessionLauncher):
    """Launches one nodriver browser process per session."""

    def __init__(
        self,
        headless: bool = True,
        browser_executable_path: str | None = None,
        browser_args: list[str] | None = None,
        lang: str = "en-US",
        launch_timeout: float = 30.0,
        command_timeout: float = DEFAULT_COMMAND_TIMEOUT,
    ) -> None:
        self.headless = headless
        self.browser_executable_path = browser_executable_path
        self.browser_args = list(browser_args or [])
        self.lang = lang
        self.launch_timeout = launch_timeout
        self.command_timeout = command_timeout

    @classmethod
    def from_settings(cls, settings: "Settings") -> "NodriverLauncher":
        return cls(
            headless=settings.SCOUT_HEADLESS,
            browser_executable_path=settings.SCOUT_BROWSER_EXECUTABLE_PATH,
            browser_args=settings.SCOUT_BROWSER_ARGS,
            lang=settings.SCOUT_BROWSER_LANG,
            launch_timeout=settings.SCOUT_LAUNCH_TIMEOUT,
            command_timeout=settings.SCOUT_EVALUATE_TIMEOUT,
        )

    async def launch(self, fingerprint: Fingerprint) -> BrowserSession:
        browser_args = [
            *self.browser_args,
            f"--user-agent={fingerprint.user_agent}",
            f"--window-size={fingerprint.viewport.as_window_size()}",
        ]

        try:
            browser = await asyncio.wait_for(
                uc.start(
                    headless=self.headless,
                    browser_executable_path=self.browser_executable_path,
                    lang=self.lang,
                    browser_args=browser_args,
                ),
                timeout=self.launch_timeout,
            )
        except asyncio.TimeoutError as e:
            raise ScoutTimeoutException(
                "Browser launch timed out",
                timeout_seconds=self.launch_timeout,
                phase="launch",
            ) from e
        except Exception as e:
            raise SessionCrashedException(f"Failed to launch browser: {e}") from e

        # The process is ours until the session exists; stop it on every other exit, cancellation included
        opened = False
        try:
            tab = await asyncio.wait_for(browser.get("about:blank"), timeout=self.launch_timeout)
            opened = True
        except asyncio.TimeoutError as e:
            raise ScoutTimeoutException(
                "Opening the first tab timed out",
                timeout_seconds=self.launch_timeout,
                phase="launch",
            ) from e
        except Exception as e:
            raise SessionCrashedException(f"Failed to open tab: {e}") from e
        finally:
            if not opened:
                _stop_browser(browser)

        logger.debug(
            f"[NODRIVER] Browser started (viewport={fingerprint.viewport.as_window_size()}, "
            f"headless={self.headless})"
        )
        return NodriverSession(browser, tab, fingerprint, command_timeout=self.command_timeout)


__all__ = [
    "BrowserSession",
    "NodriverLauncher",
    "NodriverSession",
    "SessionLauncher",
    "classify_driver_error",
]
