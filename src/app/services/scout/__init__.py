# ============================================
# SCOUT - Resilient Search Result Extraction
# ============================================
#
# Drives a scripted browser session against a localized search results
# page and returns structured results, withstanding bot countermeasures.
#
# Layers (outermost first):
#   CircuitBreaker -> run_with_retry -> one browser session per attempt
#
# Per attempt:
#   fingerprint -> cookies -> behavior -> navigate -> detect -> extract
# ============================================

from .circuit_breaker import CircuitBreaker, CircuitState
from .consent import ConsentHandler
from .engine import SearchEngine, scout_search
from .exceptions import (
    CircuitOpenException,
    ConnectionResetException,
    ElementNotFoundException,
    ErrorKind,
    InvalidQueryException,
    NetworkErrorException,
    RequestBlockedException,
    ScoutException,
    ScoutTimeoutException,
    SessionCrashedException,
)
from .extraction import ExtractionChain
from .retry import RetryPolicy, run_with_retry

__all__ = [
    # Engine
    "SearchEngine",
    "scout_search",
    "ConsentHandler",
    # Resilience
    "CircuitBreaker",
    "CircuitState",
    "RetryPolicy",
    "run_with_retry",
    # Extraction
    "ExtractionChain",
    # Exceptions
    "ErrorKind",
    "ScoutException",
    "InvalidQueryException",
    "ScoutTimeoutException",
    "NetworkErrorException",
    "ConnectionResetException",
    "RequestBlockedException",
    "ElementNotFoundException",
    "SessionCrashedException",
    "CircuitOpenException",
]
