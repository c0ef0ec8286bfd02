"""Scout Metrics and Structured Logging Module.

Provides:
- Structured JSON logging for search operations
- Metrics collection for monitoring (Prometheus-compatible)
- Error kind, retry and breaker rejection tracking

Usage:
    from .metrics import SearchMetrics, log_search_operation

    log_search_operation(
        operation_id="3f2a...",
        query="typescript tutorial",
        region="JP",
        success=True,
        execution_time_ms=8400.0,
        result_count=10,
    )

    summary = SearchMetrics().get_summary()
"""

import json
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import UTC, datetime
from threading import Lock
from typing import Any

logger = logging.getLogger("scout.metrics")

MAX_TIMING_SAMPLES = 10000


@dataclass
class OperationLog:
    """Structured log entry for one search."""

    timestamp: str
    operation_id: str
    query: str
    region: str
    target_url: str | None
    success: bool
    status: str  # success, empty, blocked, failed, timeout, circuit_open, invalid
    execution_time_ms: float
    attempts: int = 1
    result_count: int = 0
    strategy: str | None = None
    error_kind: str | None = None
    error_message: str | None = None
    cookies_restored: bool = False

    def to_json(self) -> str:
        return json.dumps(self.__dict__, default=str, ensure_ascii=False)

    def to_dict(self) -> dict[str, Any]:
        return self.__dict__.copy()


class SearchMetrics:
    """Thread-safe metrics collector for the search engine.

    Tracks:
    - Searches, successes, failures (by error kind)
    - Retries and circuit breaker rejections
    - Block (CAPTCHA) encounters
    - Winning extraction strategy
    - Latency percentiles
    """

    _instance = None
    _lock = Lock()

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialize()
        return cls._instance

    def _initialize(self):
        self._lock = Lock()
        self._start_time = datetime.now(UTC)

        # Counters
        self.searches_total = 0
        self.success_total = 0
        self.empty_total = 0
        self.failure_total = 0
        self.retries_total = 0
        self.blocked_total = 0
        self.breaker_rejections_total = 0
        self.cookies_restored_total = 0
        self.errors_by_kind = defaultdict(int)
        self.searches_by_region = defaultdict(int)
        self.results_by_strategy = defaultdict(int)

        self.execution_times: list[float] = []

    def record_operation(self, log: OperationLog) -> None:
        with self._lock:
            self.searches_total += 1
            self.searches_by_region[log.region] += 1
            self.retries_total += max(log.attempts - 1, 0)

            if log.success:
                self.success_total += 1
                if log.result_count == 0:
                    self.empty_total += 1
                if log.strategy:
                    self.results_by_strategy[log.strategy] += 1
            else:
                self.failure_total += 1
                if log.error_kind:
                    self.errors_by_kind[log.error_kind] += 1

            if log.status == "blocked":
                self.blocked_total += 1
            if log.status == "circuit_open":
                self.breaker_rejections_total += 1
            if log.cookies_restored:
                self.cookies_restored_total += 1

            self.execution_times.append(log.execution_time_ms)
            if len(self.execution_times) > MAX_TIMING_SAMPLES:
                self.execution_times = self.execution_times[-MAX_TIMING_SAMPLES:]

    def get_summary(self) -> dict[str, Any]:
        with self._lock:
            success_rate = (self.success_total / self.searches_total * 100) if self.searches_total > 0 else 0

            return {
                "uptime_seconds": (datetime.now(UTC) - self._start_time).total_seconds(),
                "searches": {
                    "total": self.searches_total,
                    "success": self.success_total,
                    "empty": self.empty_total,
                    "failure": self.failure_total,
                    "success_rate_pct": round(success_rate, 2),
                    "by_region": dict(self.searches_by_region),
                    "by_strategy": dict(self.results_by_strategy),
                },
                "errors": {
                    "by_kind": dict(self.errors_by_kind),
                    "retries": self.retries_total,
                    "blocked": self.blocked_total,
                    "breaker_rejections": self.breaker_rejections_total,
                },
                "cookies": {
                    "restored": self.cookies_restored_total,
                },
                "timing": self._calculate_timing_stats(),
            }

    def _calculate_timing_stats(self) -> dict[str, Any]:
        if not self.execution_times:
            return {"samples": 0}

        sorted_times = sorted(self.execution_times)
        count = len(sorted_times)

        return {
            "samples": count,
            "min_ms": round(sorted_times[0], 2),
            "max_ms": round(sorted_times[-1], 2),
            "mean_ms": round(sum(sorted_times) / count, 2),
            "p50_ms": round(sorted_times[count // 2], 2),
            "p90_ms": round(sorted_times[int(count * 0.9)], 2),
            "p99_ms": (round(sorted_times[int(count * 0.99)], 2) if count >= 100 else None),
        }

    def to_prometheus(self) -> str:
        """Export metrics in Prometheus text format."""
        lines = [
            f"scout_searches_total {self.searches_total}",
            f"scout_success_total {self.success_total}",
            f"scout_empty_total {self.empty_total}",
            f"scout_failure_total {self.failure_total}",
            f"scout_retries_total {self.retries_total}",
            f"scout_blocked_total {self.blocked_total}",
            f"scout_breaker_rejections_total {self.breaker_rejections_total}",
        ]

        for kind, count in self.errors_by_kind.items():
            lines.append(f'scout_errors_by_kind{{kind="{kind}"}} {count}')

        for strategy, count in self.results_by_strategy.items():
            lines.append(f'scout_results_by_strategy{{strategy="{strategy}"}} {count}')

        return "\n".join(lines)

    @classmethod
    def reset(cls) -> None:
        """Reset all metrics (for testing)."""
        if cls._instance:
            cls._instance._initialize()


def log_search_operation(
    operation_id: str,
    query: str,
    region: str,
    success: bool,
    execution_time_ms: float,
    status: str | None = None,
    target_url: str | None = None,
    attempts: int = 1,
    result_count: int = 0,
    strategy: str | None = None,
    error_kind: str | None = None,
    error_message: str | None = None,
    cookies_restored: bool = False,
    metrics: SearchMetrics | None = None,
) -> OperationLog:
    """Record a search in the metrics collector and emit one JSON log line.

    Args:
        operation_id: Unique ID for this search
        query: Search query
        region: Resolved region code
        success: Whether the search completed (an empty result set is a success)
        execution_time_ms: Total execution time including retries
        status: Final status; derived from success/result_count when omitted
        target_url: Result page URL
        attempts: Browser sessions used
        result_count: Number of results returned
        strategy: Winning extraction strategy
        error_kind: Error kind (for failures)
        error_message: Error message (for failures)
        cookies_restored: Whether a cookie snapshot was restored
        metrics: Collector to record into (defaults to the process-wide one)

    Returns:
        The OperationLog that was recorded
    """
    if status is None:
        if success:
            status = "success" if result_count else "empty"
        else:
            status = "failed"

    log = OperationLog(
        timestamp=datetime.now(UTC).isoformat(),
        operation_id=operation_id,
        query=query,
        region=region,
        target_url=target_url,
        success=success,
        status=status,
        execution_time_ms=round(execution_time_ms, 2),
        attempts=attempts,
        result_count=result_count,
        strategy=strategy,
        error_kind=error_kind,
        error_message=error_message,
        cookies_restored=cookies_restored,
    )

    (metrics or SearchMetrics()).record_operation(log)

    if success:
        logger.info(log.to_json())
    else:
        logger.warning(log.to_json())

    return log


def get_metrics_summary() -> dict[str, Any]:
    return SearchMetrics().get_summary()


def get_prometheus_metrics() -> str:
    return SearchMetrics().to_prometheus()


__all__ = [
    "OperationLog",
    "SearchMetrics",
    "get_metrics_summary",
    "get_prometheus_metrics",
    "log_search_operation",
]
