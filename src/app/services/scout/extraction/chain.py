"""Extraction strategy chain.

Strategies run in priority order; the first one producing at least one valid
candidate wins. Results are never merged across strategies.

Validation per candidate: non-empty title, absolute http(s) link. Accepted
candidates keep document order, are de-duplicated by cleaned link, truncated to
the limit and ranked 1..n.
"""

import logging
import time
from typing import Any

from bs4 import BeautifulSoup

from ....schemas.search import SearchResult
from ..config import ExtractionConfig
from ..url_cleaner import clean_url, is_valid_result_url
from .base import ExtractionStrategy, ExtractionStrategyResult, text_of
from .container import ContainerStrategy
from .heading import HeadingStrategy
from .outbound import OutboundLinkStrategy

logger = logging.getLogger(__name__)

HTML_PARSER = "html.parser"
SAMPLE_SIZE = 5


def parse_document(document: str | BeautifulSoup) -> BeautifulSoup:
    if isinstance(document, BeautifulSoup):
        return document
    return BeautifulSoup(document or "", HTML_PARSER)


class ExtractionChain:
    """Ordered list of strategies, most structurally specific first.

    Usage:
        chain = ExtractionChain.from_config(config.extraction)
        results = chain.extract(html, limit=10, base_url=page_url)
    """

    def __init__(self, strategies: list[ExtractionStrategy] | None = None) -> None:
        self.strategies = strategies if strategies is not None else self.default_strategies()

    @staticmethod
    def default_strategies(config: ExtractionConfig | None = None) -> list[ExtractionStrategy]:
        config = config or ExtractionConfig()
        return [
            ContainerStrategy(config.container),
            HeadingStrategy(config.heading_tag, config.container),
            OutboundLinkStrategy(config.min_title_length),
        ]

    @classmethod
    def from_config(cls, config: ExtractionConfig) -> "ExtractionChain":
        return cls(cls.default_strategies(config))

    def extract(self, document: str | BeautifulSoup, limit: int, base_url: str | None = None) -> list[SearchResult]:
        return self.run(document, limit, base_url).results

    def run(self, document: str | BeautifulSoup, limit: int, base_url: str | None = None) -> ExtractionStrategyResult:
        """Evaluate the chain and report which strategy won.

        On exhaustion the document structure is logged for diagnosis and an
        unsuccessful result with no results is returned.
        """
        start_time = time.time()
        soup = parse_document(document)

        for strategy in self.strategies:
            result = self._run_strategy(strategy, soup, limit, base_url)
            if result.success:
                logger.info(
                    f"Extracted {len(result.results)} results with '{strategy.NAME}' strategy "
                    f"({result.candidates_found} candidates, {(time.time() - start_time) * 1000:.0f}ms)"
                )
                return result
            logger.debug(f"Strategy '{strategy.NAME}' produced no valid results")

        logger.warning(f"No results extracted, page structure: {describe_document(soup)}")
        return ExtractionStrategyResult(strategy="none", results=[], success=False)

    def _run_strategy(
        self,
        strategy: ExtractionStrategy,
        soup: BeautifulSoup,
        limit: int,
        base_url: str | None,
    ) -> ExtractionStrategyResult:
        try:
            candidates = strategy.find_candidates(soup, base_url)
        except Exception as e:
            logger.warning(f"Strategy '{strategy.NAME}' failed: {e}")
            return ExtractionStrategyResult(strategy=strategy.NAME)

        results: list[SearchResult] = []
        seen_links: set[str] = set()

        for candidate in candidates:
            if len(results) >= limit:
                break

            title = candidate.title.strip()
            if not title or not is_valid_result_url(candidate.link):
                continue

            link = clean_url(candidate.link)
            if not is_valid_result_url(link) or link in seen_links:
                continue
            seen_links.add(link)

            results.append(
                SearchResult(
                    rank=len(results) + 1,
                    title=title,
                    link=link,
                    display_url=candidate.display_url,
                    snippet=candidate.snippet,
                )
            )

        return ExtractionStrategyResult(
            strategy=strategy.NAME,
            results=results,
            success=bool(results),
            candidates_found=len(candidates),
        )


def describe_document(document: str | BeautifulSoup) -> dict[str, Any]:
    """Structure summary logged when every strategy comes up empty."""
    soup = parse_document(document)

    potential_classes = sorted(
        {" ".join(div.get("class", [])) for div in soup.find_all("div") if "Mjj" in " ".join(div.get("class", []))}
    )

    headings = soup.find_all("h3")
    heading_samples = [
        {
            "text": text_of(h3)[:50],
            "parent_class": " ".join(h3.parent.get("class", [])) if h3.parent else "",
            "grandparent_class": (
                " ".join(h3.parent.parent.get("class", [])) if h3.parent and h3.parent.parent else ""
            ),
        }
        for h3 in headings[:SAMPLE_SIZE]
    ]

    link_samples = [
        {
            "href": (a.get("href") or "")[:50],
            "text": text_of(a)[:30],
            "parent_class": " ".join(a.parent.get("class", [])) if a.parent else "",
        }
        for a in soup.select('a[href*="http"]')[:SAMPLE_SIZE]
    ]

    title = soup.title.string if soup.title and soup.title.string else ""
    return {
        "title": title.strip(),
        "potential_classes": potential_classes,
        "heading_count": len(headings),
        "heading_samples": heading_samples,
        "link_count": len(soup.find_all("a", href=True)),
        "link_samples": link_samples,
        "body_class": " ".join(soup.body.get("class", [])) if soup.body else "",
    }


__all__ = ["ExtractionChain", "describe_document", "parse_document"]
