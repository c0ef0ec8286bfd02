"""
Scout Search Engine - resilient search result extraction orchestrator.

One search is one sequential unit of work over its own browser session:

    launch session (fresh fingerprint) -> restore cookies
    -> pre-navigation behavior -> navigate -> post-navigation behavior
    -> accept cookie consent (if shown)
    -> block detection -> wait for results container -> extract
    -> save cookies -> close session

The unit of work runs inside the retry controller, and the retry controller
runs inside the circuit breaker: a run that exhausts its retries counts as a
single breaker failure.

Design Principles:
- Every collaborator is injected; ``from_settings`` wires the defaults
- Sessions are never shared; each is closed on every exit path
- Only the breaker and the geo cache are shared between concurrent searches
- Callers only ever see classified ``ScoutException``s
"""

import asyncio
import logging
import random
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from ...schemas.search import ResponseMeta, SearchRequest, SearchResponse
from .behavior import InteractionSimulator
from .browser import BrowserSession, NodriverLauncher, SessionLauncher
from .circuit_breaker import CircuitBreaker
from .config import BehaviorConfig, ConfigLoader, ScoutConfig
from .consent import ConsentHandler
from .cookie_store import CookieStore
from .detector import BlockDetector
from .exceptions import ErrorKind, InvalidQueryException, ScoutException, ScoutTimeoutException
from .extraction import ExtractionChain, ExtractionStrategyResult
from .fingerprint import FingerprintRandomizer
from .geo import GeoResolver
from .metrics import SearchMetrics, log_search_operation
from .regions import RegionMapping, build_search_url, cookie_domain, get_region_mapping, is_country_supported
from .retry import RetryPolicy, run_with_retry

if TYPE_CHECKING:
    from ...core.config import Settings

logger = logging.getLogger(__name__)

AUTO_REGION = "auto"

STATUS_BY_KIND = {
    ErrorKind.INVALID_QUERY: "invalid",
    ErrorKind.BLOCKED: "blocked",
    ErrorKind.TIMEOUT: "timeout",
    ErrorKind.CIRCUIT_OPEN: "circuit_open",
}


@dataclass
class PageCapture:
    """Output of one successful unit of work."""

    extraction: ExtractionStrategyResult
    page_url: str
    raw_html: str | None = None
    cookies_restored: bool = False


class SearchEngine:
    """Main orchestrator for Scout searches.

    Usage:
        engine = SearchEngine.from_settings(settings)
        response = await engine.search(SearchRequest(query="typescript tutorial", region="JP"))
        await engine.shutdown()
    """

    def __init__(
        self,
        settings: "Settings",
        launcher: SessionLauncher,
        geo_resolver: GeoResolver | None = None,
        cookie_store: CookieStore | None = None,
        breaker: CircuitBreaker | None = None,
        detector: BlockDetector | None = None,
        consent: ConsentHandler | None = None,
        extractor: ExtractionChain | None = None,
        fingerprints: FingerprintRandomizer | None = None,
        behavior_config: BehaviorConfig | None = None,
        retry_policy: RetryPolicy | None = None,
        metrics: SearchMetrics | None = None,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the engine.

        Args:
            settings: Application settings
            launcher: Creates one browser session per unit of work
            geo_resolver: Resolves the caller's region; None = always use the default region
            cookie_store: Cookie snapshot persistence; None = no cookie reuse
            breaker: Circuit breaker (built from settings when omitted)
            detector: Block detector (default signatures when omitted)
            consent: Consent interstitial handler (built from the detector config when
                omitted and SCOUT_HANDLE_CONSENT is on)
            extractor: Extraction chain (default strategies when omitted)
            fingerprints: Fingerprint pools (built from settings when omitted)
            behavior_config: Interaction simulator timings
            retry_policy: Retry policy (built from settings when omitted)
            metrics: Metrics collector (process-wide one when omitted)
            rng: Random source for behavior simulation
            sleep: Awaitable used for every deliberate wait
        """
        self.settings = settings
        self.launcher = launcher
        self.geo_resolver = geo_resolver
        self.cookie_store = cookie_store
        self.breaker = breaker or CircuitBreaker(
            threshold=settings.SCOUT_BREAKER_THRESHOLD,
            cooldown=settings.SCOUT_BREAKER_COOLDOWN,
        )
        self.detector = detector or BlockDetector()
        if consent is None and settings.SCOUT_HANDLE_CONSENT:
            consent = ConsentHandler(self.detector.config, sleep=sleep)
        self.consent = consent
        self.extractor = extractor or ExtractionChain()
        self.fingerprints = fingerprints or FingerprintRandomizer.from_settings(settings)
        self.behavior_config = behavior_config or BehaviorConfig()
        self.retry_policy = retry_policy or RetryPolicy.from_settings(settings)
        self.metrics = metrics or SearchMetrics()
        self._rng = rng or random.Random()
        self._sleep = sleep

        self._active_sessions: set[BrowserSession] = set()
        self._shutdown = False

    @classmethod
    def from_settings(
        cls,
        settings: "Settings",
        launcher: SessionLauncher | None = None,
        config: ScoutConfig | None = None,
    ) -> "SearchEngine":
        """Wire every collaborator from settings and the config tables."""
        if config is None:
            if settings.SCOUT_CONFIG_FILE:
                config = ConfigLoader.from_file(settings.SCOUT_CONFIG_FILE)
            else:
                config = ConfigLoader.default()

        geo_resolver = None
        if settings.SCOUT_GEO_ENABLED:
            geo_resolver = GeoResolver(
                ttl=settings.SCOUT_GEO_CACHE_TTL,
                timeout=settings.SCOUT_GEO_TIMEOUT,
                default_region=settings.SCOUT_DEFAULT_REGION,
            )

        return cls(
            settings,
            launcher=launcher or NodriverLauncher.from_settings(settings),
            geo_resolver=geo_resolver,
            cookie_store=CookieStore(settings.SCOUT_COOKIE_DIR),
            detector=BlockDetector(config.detection, screenshot_dir=settings.SCOUT_SCREENSHOT_DIR),
            extractor=ExtractionChain.from_config(config.extraction),
            behavior_config=config.behavior,
        )

    # ============================================
    # Public API
    # ============================================

    async def search(self, request: SearchRequest) -> SearchResponse:
        """Run one search.

        Returns:
            SearchResponse; an empty result list is a valid "no results" outcome

        Raises:
            InvalidQueryException: Blank query (never retried)
            CircuitOpenException: Breaker open; retry after ``retry_after``
            ScoutException: Any other classified failure after retries
        """
        self._ensure_running()

        operation_id = uuid.uuid4().hex
        start_time = time.time()
        query = (request.query or "").strip()

        if not query:
            error = InvalidQueryException("Query is required")
            self._log_failure(operation_id, request.query, request.region or "", None, start_time, 0, error)
            raise error

        mapping = await self.resolve_region(request.region)
        target_url = build_search_url(query, mapping)
        limit = max(1, min(request.limit, self.settings.SCOUT_MAX_RESULTS))

        logger.info(f"Search [{operation_id[:8]}] '{query}' region={mapping.country_code} limit={limit}")

        attempts = 0

        async def unit_of_work() -> PageCapture:
            nonlocal attempts
            attempts += 1
            return await self._fetch_page(target_url, mapping, limit, request.include_raw_html)

        def on_retry(attempt: int, error: BaseException) -> None:
            logger.warning(
                f"Search [{operation_id[:8]}] attempt {attempt}/{self.retry_policy.max_attempts} failed: {error}"
            )

        try:
            capture = await self.breaker.call(
                lambda: run_with_retry(unit_of_work, self.retry_policy, on_retry=on_retry, sleep=self._sleep)
            )
        except ScoutException as e:
            self._log_failure(operation_id, query, mapping.country_code, target_url, start_time, attempts, e)
            raise
        except Exception as e:
            logger.exception(f"Search [{operation_id[:8]}] failed unexpectedly: {e}")
            error = ScoutException("Search failed due to an internal error", url=target_url)
            self._log_failure(operation_id, query, mapping.country_code, target_url, start_time, attempts, error)
            raise error from e

        latency_ms = (time.time() - start_time) * 1000
        results = capture.extraction.results

        log_search_operation(
            operation_id=operation_id,
            query=query,
            region=mapping.country_code,
            success=True,
            execution_time_ms=latency_ms,
            target_url=target_url,
            attempts=attempts,
            result_count=len(results),
            strategy=capture.extraction.strategy if capture.extraction.success else None,
            cookies_restored=capture.cookies_restored,
            metrics=self.metrics,
        )

        return SearchResponse(
            success=True,
            meta=ResponseMeta(
                region_code=mapping.country_code,
                region_name=mapping.country_name,
                target_url=target_url,
                latency_ms=round(latency_ms, 2),
                timestamp=datetime.now(UTC).isoformat(),
                result_count=len(results),
                attempts=attempts,
                strategy=capture.extraction.strategy if capture.extraction.success else None,
            ),
            results=results,
            raw_html=capture.raw_html,
        )

    async def resolve_region(self, region: str | None) -> RegionMapping:
        """Caller-supplied region, else geo lookup, else the default. Never raises."""
        default = self.settings.SCOUT_DEFAULT_REGION

        if region and region.lower() != AUTO_REGION:
            if not is_country_supported(region):
                logger.warning(f"Unsupported region '{region}', falling back to {default}")
            return get_region_mapping(region, default=default)

        if self.geo_resolver is not None:
            geo = await self.geo_resolver.resolve()
            return get_region_mapping(geo.country_code, default=default)

        return get_region_mapping(default, default=default)

    async def shutdown(self) -> None:
        """Close any sessions still open. Idempotent."""
        if self._shutdown:
            return
        self._shutdown = True

        sessions = list(self._active_sessions)
        self._active_sessions.clear()
        if sessions:
            logger.info(f"Closing {len(sessions)} in-flight browser sessions")
            results = await asyncio.gather(*(session.close() for session in sessions), return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    logger.error(f"Error closing session during shutdown: {result}")

        logger.info("SearchEngine shutdown complete")

    def _ensure_running(self) -> None:
        if self._shutdown:
            raise ScoutException("Search engine is shut down")

    def get_metrics(self) -> dict[str, Any]:
        return {
            **self.metrics.get_summary(),
            "breaker": self.breaker.snapshot(),
            "geo_cache_size": self.geo_resolver.cache_size if self.geo_resolver else 0,
            "active_sessions": len(self._active_sessions),
        }

    # ============================================
    # Unit of work
    # ============================================

    async def _fetch_page(
        self,
        target_url: str,
        mapping: RegionMapping,
        limit: int,
        include_raw_html: bool,
    ) -> PageCapture:
        # Retries of an in-flight search must not outlive shutdown
        self._ensure_running()
        fingerprint = self.fingerprints.pick()
        session = await self.launcher.launch(fingerprint)
        self._active_sessions.add(session)

        try:
            self._ensure_running()
            domain = cookie_domain(mapping)
            cookies_restored = False
            if self.cookie_store is not None:
                cookies_restored = await self.cookie_store.load_latest(session, domain)

            simulator = InteractionSimulator(session, self.behavior_config, rng=self._rng, sleep=self._sleep)
            await simulator.simulate_pre_navigation()

            await session.navigate(
                target_url,
                wait_condition=self.settings.SCOUT_WAIT_CONDITION.value,
                timeout=self.settings.SCOUT_NAVIGATION_TIMEOUT,
            )
            await simulator.simulate_post_navigation()

            if self.consent is not None:
                await self.consent.handle(session)

            await self.detector.ensure_not_blocked(session)

            try:
                await session.wait_for_selector(
                    self.settings.SCOUT_RESULTS_SELECTOR,
                    timeout=self.settings.SCOUT_SELECTOR_TIMEOUT,
                )
            except ScoutTimeoutException:
                logger.warning(
                    f"Results container '{self.settings.SCOUT_RESULTS_SELECTOR}' not found, extracting anyway"
                )

            html = await session.content()
            page_url = await session.current_url() or target_url
            # Parsing is CPU-bound; keep the event loop serving other searches
            extraction = await asyncio.to_thread(self.extractor.run, html, limit, base_url=page_url)

            if self.cookie_store is not None:
                await self._persist_cookies(session, domain)

            return PageCapture(
                extraction=extraction,
                page_url=page_url,
                raw_html=html if include_raw_html else None,
                cookies_restored=cookies_restored,
            )
        finally:
            self._active_sessions.discard(session)
            await session.close()

    async def _persist_cookies(self, session: BrowserSession, domain: str) -> None:
        try:
            await self.cookie_store.save(session, domain)
            self.cookie_store.prune(domain, keep=self.settings.SCOUT_COOKIE_KEEP)
        except Exception as e:
            logger.warning(f"Failed to persist cookies for {domain}: {e}")

    def _log_failure(
        self,
        operation_id: str,
        query: str,
        region: str,
        target_url: str | None,
        start_time: float,
        attempts: int,
        error: ScoutException,
    ) -> None:
        log_search_operation(
            operation_id=operation_id,
            query=query,
            region=region,
            success=False,
            status=STATUS_BY_KIND.get(error.kind, "failed"),
            execution_time_ms=(time.time() - start_time) * 1000,
            target_url=target_url,
            attempts=attempts,
            error_kind=error.kind.value,
            error_message=error.message,
            metrics=self.metrics,
        )


# ============================================
# Convenience Function for Direct Use
# ============================================


async def scout_search(request: SearchRequest, settings: "Settings") -> SearchResponse:
    """One-off search: builds an engine, runs the search and shuts down.

    For repeated use, create a SearchEngine instance instead.
    """
    engine = SearchEngine.from_settings(settings)
    try:
        return await engine.search(request)
    finally:
        await engine.shutdown()


__all__ = ["PageCapture", "SearchEngine", "scout_search"]
