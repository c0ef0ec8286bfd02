"""Scout Custom Exceptions.

Hierarchy:
    ScoutException (base, kind=Internal)
    ├── InvalidQueryException      - Empty/blank query (fatal)
    ├── ScoutTimeoutException      - Navigation, selector wait or lookup deadline exceeded
    ├── NetworkErrorException      - DNS failure, refused connection, chrome error page
    │   └── ConnectionResetException - Peer closed/reset the connection (long cooldown)
    ├── RequestBlockedException    - CAPTCHA / challenge page detected
    ├── ElementNotFoundException   - Expected element missing (layout drift)
    ├── SessionCrashedException    - Browser process died or became unresponsive
    └── CircuitOpenException       - Breaker is open; caller must wait and retry later

Every exception carries ``kind`` and ``retryable``; ``to_error_detail()`` is the
only shape exposed to callers.
"""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Classified error kinds exposed to callers."""

    INVALID_QUERY = "InvalidQuery"
    TIMEOUT = "Timeout"
    NETWORK_ERROR = "NetworkError"
    CONNECTION_RESET = "ConnectionReset"
    BLOCKED = "Blocked"
    ELEMENT_NOT_FOUND = "ElementNotFound"
    SESSION_CRASHED = "SessionCrashed"
    CIRCUIT_OPEN = "CircuitOpen"
    INTERNAL = "Internal"


class ScoutException(Exception):
    """Base exception for all Scout errors."""

    kind: ErrorKind = ErrorKind.INTERNAL
    retryable: bool = False

    def __init__(self, message: str, url: str | None = None) -> None:
        self.message = message
        self.url = url
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.url:
            return f"{self.message} (URL: {self.url})"
        return self.message

    def to_error_detail(self) -> dict[str, Any]:
        """User-visible error shape (no stack, no session details)."""
        return {
            "kind": self.kind.value,
            "message": self.message,
            "retryable": self.retryable,
        }


class InvalidQueryException(ScoutException):
    """Raised when the search query is empty or blank. Never retried."""

    kind = ErrorKind.INVALID_QUERY
    retryable = False


class ScoutTimeoutException(ScoutException):
    """Raised when a bounded suspend point exceeds its deadline."""

    kind = ErrorKind.TIMEOUT
    retryable = True

    def __init__(
        self,
        message: str,
        url: str | None = None,
        timeout_seconds: float | None = None,
        phase: str | None = None,
    ) -> None:
        super().__init__(message, url)
        self.timeout_seconds = timeout_seconds
        self.phase = phase  # "launch", "navigation", "selector", "geo"

    def __str__(self) -> str:
        parts = [self.message]
        if self.timeout_seconds:
            parts.append(f"timeout={self.timeout_seconds}s")
        if self.phase:
            parts.append(f"phase={self.phase}")
        if self.url:
            parts.append(f"url={self.url}")
        return " | ".join(parts)


class NetworkErrorException(ScoutException):
    """Raised when the page could not be fetched for network reasons."""

    kind = ErrorKind.NETWORK_ERROR
    retryable = True


class ConnectionResetException(NetworkErrorException):
    """Raised when the remote peer closed or reset the connection.

    Retried with an elevated cooldown (see ``RetryPolicy.extra_delay_on_reset``).
    """

    kind = ErrorKind.CONNECTION_RESET


class RequestBlockedException(ScoutException):
    """Raised when a CAPTCHA or challenge page is detected."""

    kind = ErrorKind.BLOCKED
    retryable = True

    def __init__(
        self,
        message: str,
        url: str | None = None,
        challenge_type: str | None = None,
        marker: str | None = None,
        screenshot_path: str | None = None,
    ) -> None:
        super().__init__(message, url)
        self.challenge_type = challenge_type  # "captcha_element", "title", "body_text"
        self.marker = marker  # The selector or phrase that matched
        self.screenshot_path = screenshot_path

    def __str__(self) -> str:
        parts = [self.message]
        if self.challenge_type:
            parts.append(f"challenge={self.challenge_type}")
        if self.marker:
            parts.append(f"marker={self.marker}")
        if self.url:
            parts.append(f"url={self.url}")
        return " | ".join(parts)


class ElementNotFoundException(ScoutException):
    """Raised when an element required to continue is missing."""

    kind = ErrorKind.ELEMENT_NOT_FOUND
    retryable = True

    def __init__(self, message: str, url: str | None = None, selector: str | None = None) -> None:
        super().__init__(message, url)
        self.selector = selector

    def __str__(self) -> str:
        base = super().__str__()
        if self.selector:
            return f"{base} (selector={self.selector})"
        return base


class SessionCrashedException(ScoutException):
    """Raised when the browser process crashes or cannot be launched.

    Process-level failure, not a page-level error.
    """

    kind = ErrorKind.SESSION_CRASHED
    retryable = True


class CircuitOpenException(ScoutException):
    """Raised when the circuit breaker rejects a call.

    Retryable for the caller (after ``retry_after`` seconds), never retried
    internally.
    """

    kind = ErrorKind.CIRCUIT_OPEN
    retryable = True

    def __init__(self, message: str, retry_after: float = 0.0, breaker: str | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after
        self.breaker = breaker

    def __str__(self) -> str:
        return f"{self.message} | retry_after={self.retry_after:.1f}s"

    def to_error_detail(self) -> dict[str, Any]:
        detail = super().to_error_detail()
        detail["retry_after"] = round(self.retry_after, 1)
        return detail


__all__ = [
    "CircuitOpenException",
    "ConnectionResetException",
    "ElementNotFoundException",
    "ErrorKind",
    "InvalidQueryException",
    "NetworkErrorException",
    "RequestBlockedException",
    "ScoutException",
    "ScoutTimeoutException",
    "SessionCrashedException",
]
