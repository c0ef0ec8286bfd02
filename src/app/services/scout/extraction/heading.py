"""Heading strategy: every result-level heading anchors one result.

Tolerates markup drift better than the container strategy, but is noisier.
For each heading the nearest qualifying link, snippet and citation are looked
up in the enclosing anchor, then in widening ancestor scopes (and each scope's
next sibling). Widening stops at the first ancestor that holds another
heading, so one result never borrows fields from its neighbour.
"""

from collections.abc import Iterator

from bs4 import BeautifulSoup, Tag

from ..config import ContainerSelectors
from .base import Candidate, ExtractionStrategy, first_match, resolve_href, text_of

MAX_ANCESTOR_DEPTH = 4


class HeadingStrategy(ExtractionStrategy):
    NAME = "heading"

    def __init__(self, heading_tag: str = "h3", selectors: ContainerSelectors | None = None) -> None:
        self.heading_tag = heading_tag
        self.selectors = selectors or ContainerSelectors()

    def find_candidates(self, soup: BeautifulSoup, base_url: str | None = None) -> list[Candidate]:
        candidates = []
        for heading in soup.find_all(self.heading_tag):
            scopes = list(self._scopes(heading))
            candidates.append(
                Candidate(
                    title=text_of(heading),
                    link=self._find_link(heading, scopes, base_url),
                    display_url=text_of(self._first_in_scopes(scopes, self.selectors.display_url)),
                    snippet=text_of(self._first_in_scopes(scopes, self.selectors.snippet)),
                )
            )
        return candidates

    def _find_link(self, heading: Tag, scopes: list[Tag], base_url: str | None) -> str:
        anchor = heading.find_parent("a", href=True)
        if anchor is not None:
            link = resolve_href(anchor.get("href"), base_url)
            if link:
                return link

        for scope in scopes:
            for anchor in scope.select("a[href]"):
                link = resolve_href(anchor.get("href"), base_url)
                if link:
                    return link
        return ""

    def _scopes(self, heading: Tag) -> Iterator[Tag]:
        node = heading
        for _ in range(MAX_ANCESTOR_DEPTH):
            parent = node.parent
            if parent is None or parent.name in ("body", "html", "[document]"):
                return
            if len(parent.find_all(self.heading_tag, limit=2)) > 1:
                return

            yield parent
            sibling = parent.find_next_sibling()
            if sibling is not None and sibling.find(self.heading_tag) is None:
                yield sibling
            node = parent

    @staticmethod
    def _first_in_scopes(scopes: list[Tag], selectors: list[str]) -> Tag | None:
        for scope in scopes:
            found = first_match(scope, selectors)
            if found is not None:
                return found
        return None


__all__ = ["HeadingStrategy"]
