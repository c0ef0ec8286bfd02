"""Container strategy: canonical result blocks located by attribute pattern."""

from bs4 import BeautifulSoup

from ..config import ContainerSelectors
from .base import Candidate, ExtractionStrategy, first_match, resolve_href, text_of


class ContainerStrategy(ExtractionStrategy):
    """Finds result containers and descends into known sub-selectors.

    Container selectors are tried in order; the first one whose containers
    yield any candidate is used. Nested containers are handled by letting each
    title element be claimed once, by the first container that reaches it.
    """

    NAME = "container"

    def __init__(self, selectors: ContainerSelectors | None = None) -> None:
        self.selectors = selectors or ContainerSelectors()

    def find_candidates(self, soup: BeautifulSoup, base_url: str | None = None) -> list[Candidate]:
        for container_selector in self.selectors.containers:
            candidates = self._scan(soup, container_selector, base_url)
            if candidates:
                return candidates
        return []

    def _scan(self, soup: BeautifulSoup, container_selector: str, base_url: str | None) -> list[Candidate]:
        candidates: list[Candidate] = []
        claimed: set[int] = set()

        for container in soup.select(container_selector):
            title_el = container.select_one(self.selectors.title)
            if title_el is None or id(title_el) in claimed:
                continue
            claimed.add(id(title_el))

            link_el = title_el.find_parent("a", href=True) or container.select_one(self.selectors.link)
            link = resolve_href(link_el.get("href") if link_el else None, base_url)

            candidates.append(
                Candidate(
                    title=text_of(title_el),
                    link=link,
                    display_url=text_of(first_match(container, self.selectors.display_url)),
                    snippet=text_of(first_match(container, self.selectors.snippet)),
                )
            )

        return candidates


__all__ = ["ContainerStrategy"]
