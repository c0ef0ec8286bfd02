"""
Scout Extraction - ordered strategy chain over a parsed result page.

Strategies (most to least structurally specific):
    ContainerStrategy     - canonical result containers + known sub-selectors
    HeadingStrategy       - heading-anchored, ancestor/sibling search
    OutboundLinkStrategy  - titled anchors leaving the search engine

Add a strategy by subclassing ExtractionStrategy and appending it to the
chain's list.
"""

from .base import Candidate, ExtractionStrategy, ExtractionStrategyResult
from .chain import ExtractionChain, describe_document, parse_document
from .container import ContainerStrategy
from .heading import HeadingStrategy
from .outbound import OutboundLinkStrategy

__all__ = [
    "Candidate",
    "ContainerStrategy",
    "ExtractionChain",
    "ExtractionStrategy",
    "ExtractionStrategyResult",
    "HeadingStrategy",
    "OutboundLinkStrategy",
    "describe_document",
    "parse_document",
]
