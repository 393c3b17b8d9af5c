"""
Matching Metrics

Per-request metrics for the batch path and an injectable sink that collects
them. The in-memory sink keeps the most recent records, aggregates latency
percentiles, cache hit rates and category distribution, and runs a simple
health check. Metrics are for observability only and never affect scores.
"""

import logging
import math
import threading
from collections import deque
from typing import Dict, List, Literal, Optional, Protocol, Sequence

from pydantic import BaseModel, ConfigDict, Field

from .constants import (
    HEALTH_MAX_AVG_LATENCY_MS,
    HEALTH_MAX_CATEGORY_SHARE,
    HEALTH_MIN_CACHE_HIT_RATE,
    MAX_STORED_METRICS,
    MatchCategory,
)
from .selectivity import is_high_achiever

logger = logging.getLogger(__name__)


def _empty_distribution() -> Dict[MatchCategory, int]:
    return {cat: 0 for cat in MatchCategory}


class MatchingMetrics(BaseModel):
    """Metrics for one matching request."""
    model_config = ConfigDict(frozen=True)

    # Latency
    latency_ms: float
    filter_time_ms: Optional[float] = None
    match_time_ms: Optional[float] = None

    # Candidates
    total_programs: int
    candidates_evaluated: int
    reduction_ratio: float

    # Cache
    cache_hits: Optional[int] = None
    cache_misses: Optional[int] = None
    cache_hit_rate: Optional[float] = None

    # Results
    results_returned: int
    category_distribution: Dict[MatchCategory, int] = Field(default_factory=_empty_distribution)

    # Student context
    student_points: int
    is_high_achiever: bool
    path: Literal["direct", "optimized"] = "direct"
    features_enabled: List[str] = Field(default_factory=list)


class AggregatedMetrics(BaseModel):
    request_count: int = 0
    avg_latency_ms: float = 0.0
    p50_latency_ms: float = 0.0
    p95_latency_ms: float = 0.0
    p99_latency_ms: float = 0.0
    avg_candidates_evaluated: float = 0.0
    avg_cache_hit_rate: float = 0.0
    category_totals: Dict[MatchCategory, int] = Field(default_factory=_empty_distribution)
    high_achiever_requests: int = 0
    optimized_requests: int = 0


class HealthCheck(BaseModel):
    ok: bool
    value: float
    threshold: float
    details: str = ""


class HealthCheckResult(BaseModel):
    healthy: bool
    latency: HealthCheck
    cache_hit_rate: HealthCheck
    category_balance: HealthCheck


def create_matching_metrics(
    latency_ms: float,
    total_programs: int,
    candidates_evaluated: int,
    results_returned: int,
    student_points: int,
    category_distribution: Optional[Dict[MatchCategory, int]] = None,
    filter_time_ms: Optional[float] = None,
    match_time_ms: Optional[float] = None,
    cache_hits: Optional[int] = None,
    cache_misses: Optional[int] = None,
    path: str = "direct",
    features_enabled: Sequence[str] = ()
) -> MatchingMetrics:
    """
    Build a metrics record, deriving reduction ratio, hit rate and the
    high-achiever flag.
    """
    cache_total = (cache_hits or 0) + (cache_misses or 0)
    distribution = _empty_distribution()
    distribution.update(category_distribution or {})

    return MatchingMetrics(
        latency_ms=latency_ms,
        filter_time_ms=filter_time_ms,
        match_time_ms=match_time_ms,
        total_programs=total_programs,
        candidates_evaluated=candidates_evaluated,
        reduction_ratio=total_programs / max(1, candidates_evaluated),
        cache_hits=cache_hits,
        cache_misses=cache_misses,
        cache_hit_rate=(cache_hits or 0) / cache_total if cache_total > 0 else None,
        results_returned=results_returned,
        category_distribution=distribution,
        student_points=student_points,
        is_high_achiever=is_high_achiever(student_points),
        path=path,
        features_enabled=list(features_enabled),
    )


def percentile(sorted_values: Sequence[float], p: float) -> float:
    """Nearest-rank percentile of an ascending sequence."""
    if not sorted_values:
        return 0.0
    index = math.ceil(p / 100 * len(sorted_values)) - 1
    return sorted_values[max(0, index)]


def _average(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


class MetricsSink(Protocol):
    """Anything that accepts matching metrics."""

    def record(self, metrics: MatchingMetrics) -> None:
        ...


class InMemoryMetricsSink:
    """
    Keeps the most recent metrics records in memory.

    Suitable for development, tests and a single-process health endpoint.
    """

    def __init__(self, max_stored: int = MAX_STORED_METRICS, log_metrics: bool = False):
        self._records: deque = deque(maxlen=max_stored)
        self._lock = threading.Lock()
        self.log_metrics = log_metrics

    def record(self, metrics: MatchingMetrics) -> None:
        with self._lock:
            self._records.append(metrics)

        if self.log_metrics:
            logger.debug(
                "matching_metrics latency_ms=%.2f candidates=%d total_programs=%d "
                "reduction_ratio=%.2f cache_hit_rate=%s results=%d path=%s",
                metrics.latency_ms,
                metrics.candidates_evaluated,
                metrics.total_programs,
                metrics.reduction_ratio,
                f"{metrics.cache_hit_rate:.2f}" if metrics.cache_hit_rate is not None else "n/a",
                metrics.results_returned,
                metrics.path,
            )

    def records(self) -> List[MatchingMetrics]:
        with self._lock:
            return list(self._records)

    def reset(self) -> None:
        with self._lock:
            self._records.clear()

    def aggregate(self) -> AggregatedMetrics:
        """Aggregate every stored record."""
        records = self.records()
        if not records:
            return AggregatedMetrics()

        latencies = sorted(m.latency_ms for m in records)
        hit_rates = [m.cache_hit_rate for m in records if m.cache_hit_rate is not None]

        category_totals = _empty_distribution()
        for m in records:
            for category, count in m.category_distribution.items():
                category_totals[category] += count

        return AggregatedMetrics(
            request_count=len(records),
            avg_latency_ms=_average(latencies),
            p50_latency_ms=percentile(latencies, 50),
            p95_latency_ms=percentile(latencies, 95),
            p99_latency_ms=percentile(latencies, 99),
            avg_candidates_evaluated=_average([m.candidates_evaluated for m in records]),
            avg_cache_hit_rate=_average(hit_rates),
            category_totals=category_totals,
            high_achiever_requests=sum(1 for m in records if m.is_high_achiever),
            optimized_requests=sum(1 for m in records if m.path == "optimized"),
        )

    def check_health(
        self,
        max_avg_latency_ms: float = HEALTH_MAX_AVG_LATENCY_MS,
        min_cache_hit_rate: float = HEALTH_MIN_CACHE_HIT_RATE
    ) -> HealthCheckResult:
        """
        Check average latency, cache hit rate and category balance.

        Category balance fails when any single category holds more than 80%
        of all categorized results.
        """
        agg = self.aggregate()

        latency_ok = agg.avg_latency_ms <= max_avg_latency_ms
        cache_ok = agg.avg_cache_hit_rate >= min_cache_hit_rate

        total = sum(agg.category_totals.values())
        balance_ok = True
        details = "balanced"
        largest_share = 0.0
        if total > 0:
            details = ", ".join(
                f"{cat.value}:{count / total * 100:.0f}%" for cat, count in agg.category_totals.items()
            )
            largest_share = max(agg.category_totals.values()) / total
            balance_ok = largest_share <= HEALTH_MAX_CATEGORY_SHARE

        return HealthCheckResult(
            healthy=latency_ok and cache_ok and balance_ok,
            latency=HealthCheck(ok=latency_ok, value=agg.avg_latency_ms, threshold=max_avg_latency_ms),
            cache_hit_rate=HealthCheck(ok=cache_ok, value=agg.avg_cache_hit_rate, threshold=min_cache_hit_rate),
            category_balance=HealthCheck(
                ok=balance_ok,
                value=largest_share,
                threshold=HEALTH_MAX_CATEGORY_SHARE,
                details=details,
            ),
        )
