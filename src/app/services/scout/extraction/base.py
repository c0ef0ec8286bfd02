"""
Scout Extraction - Base Strategy Abstract Class

Every extraction strategy scans a parsed result page and returns raw
candidates. Strategies are pure: no I/O, no mutation of the document. The
chain (see ``chain.py``) validates, ranks and cleans what they return.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from ....schemas.search import SearchResult

REJECTED_SCHEMES = ("javascript:", "data:", "mailto:", "tel:")
WHITESPACE_REGEX = re.compile(r"\s+")


@dataclass(frozen=True)
class Candidate:
    """Unvalidated result unit found by a strategy."""

    title: str
    link: str
    display_url: str = ""
    snippet: str = ""


@dataclass
class ExtractionStrategyResult:
    """Outcome of running one strategy through the chain."""

    strategy: str
    results: list[SearchResult] = field(default_factory=list)
    success: bool = False
    candidates_found: int = 0


class ExtractionStrategy(ABC):
    """
    Abstract base class for extraction strategies.

    Strategies are ordered from most to least structurally specific; the
    chain accepts the first one that yields a valid result.
    """

    NAME: str = "base"

    @abstractmethod
    def find_candidates(self, soup: BeautifulSoup, base_url: str | None = None) -> list[Candidate]:
        """
        Scan ``soup`` for result units in document order.

        Args:
            soup: Parsed result page
            base_url: URL the page was loaded from (resolves relative hrefs)

        Returns:
            Candidates, unvalidated and possibly duplicated
        """
        raise NotImplementedError


def text_of(element: Tag | None) -> str:
    """Visible text with whitespace collapsed."""
    if element is None:
        return ""
    return WHITESPACE_REGEX.sub(" ", element.get_text(" ", strip=True)).strip()


def resolve_href(href: str | None, base_url: str | None) -> str:
    """Absolute URL for ``href`` the way ``a.href`` resolves it in a browser.

    Returns "" for script/data links and for relative links without a base.
    """
    if not href:
        return ""
    href = href.strip()
    if href.lower().startswith(REJECTED_SCHEMES):
        return ""
    if href.startswith(("http://", "https://")):
        return href
    if not base_url:
        return ""
    try:
        return urljoin(base_url, href)
    except ValueError:
        return ""


def first_match(scope: Tag | None, selectors: list[str]) -> Tag | None:
    """First element under ``scope`` matching any selector, in selector order."""
    if scope is None:
        return None
    for selector in selectors:
        found = scope.select_one(selector)
        if found is not None:
            return found
    return None


__all__ = [
    "Candidate",
    "ExtractionStrategy",
    "ExtractionStrategyResult",
    "first_match",
    "resolve_href",
    "text_of",
]
