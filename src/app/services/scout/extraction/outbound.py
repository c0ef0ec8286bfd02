"""Outbound-link strategy: titled anchors that leave the search engine.

Least structurally specific; last resort before declaring "no results".
"""

from bs4 import BeautifulSoup

from ..url_cleaner import ENGINE_HOST_REGEX, clean_url, extract_domain
from .base import Candidate, ExtractionStrategy, resolve_href, text_of

# Page chrome, never results
SKIPPED_ANCESTORS = ["header", "footer", "nav", "form"]


class OutboundLinkStrategy(ExtractionStrategy):
    NAME = "outbound"

    def __init__(self, min_title_length: int = 3) -> None:
        self.min_title_length = min_title_length

    def find_candidates(self, soup: BeautifulSoup, base_url: str | None = None) -> list[Candidate]:
        candidates = []
        for anchor in soup.select("a[href]"):
            if anchor.find_parent(SKIPPED_ANCESTORS) is not None:
                continue

            link = resolve_href(anchor.get("href"), base_url)
            if not link:
                continue

            # Relay links count as outbound once unwrapped
            domain = extract_domain(clean_url(link))
            if not domain or ENGINE_HOST_REGEX.search(domain):
                continue

            heading = anchor.find(["h1", "h2", "h3", "h4"])
            title = text_of(heading) if heading is not None else text_of(anchor)
            if len(title) < self.min_title_length:
                continue

            candidates.append(Candidate(title=title, link=link, display_url=domain))
        return candidates


__all__ = ["OutboundLinkStrategy"]
