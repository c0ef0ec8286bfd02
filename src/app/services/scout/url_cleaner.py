"""Result URL cleaning.

Unwraps the search engine's redirect relay links (``/url?q=<dest>``) and strips
click-tracking parameters. Never raises: malformed input is returned as-is.
"""

import re
from urllib.parse import parse_qs, unquote_plus, urlsplit, urlunsplit

ENGINE_HOST_REGEX = re.compile(r"(^|\.)google\.[a-z.]+$", re.IGNORECASE)
REDIRECT_PATHS = ("/url", "/local/url")
# Checked in order; first non-empty wins
RELAY_PARAMS = ("url", "q", "target")

TRACKING_PARAMS = frozenset({"gclid", "fbclid", "msclkid"})
TRACKING_PREFIXES = ("utm_",)


def is_tracking_param(name: str) -> bool:
    lowered = name.lower()
    return lowered in TRACKING_PARAMS or lowered.startswith(TRACKING_PREFIXES)


def clean_url(url: str) -> str:
    """Return the real destination of ``url`` without tracking parameters.

    Examples:
        >>> clean_url("https://www.google.com/url?q=https://example.com/&sa=U")
        'https://example.com/'
        >>> clean_url("https://example.com/?utm_source=x&id=1")
        'https://example.com/?id=1'
    """
    if not url:
        return ""

    try:
        parts = urlsplit(url)
    except ValueError:
        return url

    if not parts.scheme or not parts.netloc:
        return url

    host = parts.hostname or ""
    if ENGINE_HOST_REGEX.search(host) and parts.path in REDIRECT_PATHS:
        params = parse_qs(parts.query)
        for name in RELAY_PARAMS:
            values = params.get(name)
            if values and values[0]:
                return _strip_tracking(values[0])

    return _strip_tracking(url)


def _strip_tracking(url: str) -> str:
    try:
        parts = urlsplit(url)
    except ValueError:
        return url

    if not parts.query:
        return url

    # Untouched pairs keep their original encoding and order
    pieces = parts.query.split("&")
    kept = [piece for piece in pieces if not is_tracking_param(unquote_plus(piece.partition("=")[0]))]
    if len(kept) == len(pieces):
        return url

    return urlunsplit(parts._replace(query="&".join(kept)))


def is_valid_result_url(url: str | None) -> bool:
    """True for absolute http(s) URLs with a host."""
    if not url:
        return False
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    return parts.scheme.lower() in ("http", "https") and bool(parts.netloc)


def extract_domain(url: str) -> str:
    try:
        return urlsplit(url).hostname or ""
    except ValueError:
        return ""


def normalize_url(url: str) -> str:
    """Prefix ``https://`` when the URL has no http(s) scheme."""
    if not url:
        return ""
    if url.startswith(("http://", "https://")):
        return url
    return f"https://{url}"


__all__ = [
    "clean_url",
    "extract_domain",
    "is_tracking_param",
    "is_valid_result_url",
    "normalize_url",
]
