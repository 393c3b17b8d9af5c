"""
Engine Runner

Thin wrappers around the matching engine for callers that want:
1. Cached results (external key/value result cache, JSON values)
2. Feature-flagged paths (optimized batch, enhanced results, selectivity boost)
3. Per-request metrics sent to a sink

This is a pure orchestration layer - NO scoring logic. Cache or metrics
failures never fail a request; the runner falls back to direct computation.
"""

import hashlib
import logging
import threading
import time
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from pydantic import TypeAdapter, ValidationError

from ..config import (
    FLAG_ENHANCED_RESULTS,
    FLAG_PERFORMANCE,
    FLAG_SELECTIVITY_BOOST,
    MatchingSettings,
    enabled_features,
    get_settings,
    is_feature_enabled,
)
from .aggregator import resolve_weights
from .classifier import get_category_counts
from .contracts import (
    EnhancedMatchResult,
    MatchResult,
    ProgramRequirements,
    StudentProfile,
    WeightConfig,
)
from .constants import MatchingMode
from .engine import MatchingEngine
from .memo_cache import MemoCache
from .metrics import InMemoryMetricsSink, MetricsSink, create_matching_metrics
from .output_assembler import enhance_results

logger = logging.getLogger(__name__)

_RESULT = TypeAdapter(MatchResult)
_RESULTS = TypeAdapter(List[MatchResult])
_ENHANCED_RESULTS = TypeAdapter(List[EnhancedMatchResult])


class ResultCache(Protocol):
    """Key/value store for serialized match results (Redis-like)."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str, ttl: int) -> None:
        ...

    def delete(self, *keys: str) -> int:
        ...

    def keys(self, prefix: str) -> List[str]:
        ...


class InMemoryResultCache:
    """
    Process-local ResultCache with per-entry TTL.

    `clock` is injectable so tests can expire entries without sleeping.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def _expired(self, expires_at: Optional[float]) -> bool:
        return expires_at is not None and self._clock() >= expires_at

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._expired(expires_at):
                del self._data[key]
                return None
            return value

    def set(self, key: str, value: str, ttl: int) -> None:
        expires_at = self._clock() + ttl if ttl > 0 else None
        with self._lock:
            self._data[key] = (value, expires_at)

    def delete(self, *keys: str) -> int:
        with self._lock:
            return sum(1 for key in keys if self._data.pop(key, None) is not None)

    def keys(self, prefix: str) -> List[str]:
        with self._lock:
            return [
                key for key, (_, expires_at) in self._data.items()
                if key.startswith(prefix) and not self._expired(expires_at)
            ]


def hash_weights(weights: WeightConfig) -> str:
    return f"{weights.academic:.2f}_{weights.location:.2f}_{weights.field:.2f}"


def match_cache_key(student_key: str, program_id: str, weights: WeightConfig) -> str:
    return f"match:{student_key}:{program_id}:{hash_weights(weights)}"


def catalog_digest(program_ids: Iterable[str]) -> str:
    """Order-independent digest of a set of program IDs."""
    joined = "\n".join(sorted(program_ids))
    return hashlib.sha1(joined.encode("utf-8")).hexdigest()[:16]


def batch_cache_key(student_key: str, weights: WeightConfig, program_ids: Sequence[str]) -> str:
    return f"matches:{student_key}:{hash_weights(weights)}:{len(program_ids)}:{catalog_digest(program_ids)}"


class MatchingRunner:
    """
    Cached, flag-aware entry points for the matching engine.

    Usage:
        runner = MatchingRunner(result_cache=InMemoryResultCache())
        results = runner.score_many_cached("student-1", student, programs)
    """

    def __init__(
        self,
        result_cache: Optional[ResultCache] = None,
        metrics_sink: Optional[MetricsSink] = None,
        settings: Optional[MatchingSettings] = None,
        memo_cache: Optional[MemoCache] = None
    ):
        """
        Args:
            result_cache: External result cache. If None, nothing is cached.
            metrics_sink: Receives one metrics record per batch request.
            settings: Runtime settings (read from the environment if None)
            memo_cache: Memo cache shared by every engine this runner builds.
                If None, one is created from the settings.
        """
        self.settings = settings or get_settings()
        self.result_cache = result_cache
        self.metrics_sink = metrics_sink if metrics_sink is not None else InMemoryMetricsSink(
            log_metrics=self.settings.metrics_log
        )
        self.memo_cache = memo_cache if memo_cache is not None else MemoCache(
            max_size=self.settings.memo_cache_size,
            ttl_seconds=self.settings.memo_cache_ttl,
        )

    def _engine(self, student_key: str) -> MatchingEngine:
        return MatchingEngine(
            memo_cache=self.memo_cache,
            points_margin=self.settings.points_margin,
            min_candidates=self.settings.min_candidates,
            index_min_catalog=self.settings.index_min_catalog,
            apply_selectivity=is_feature_enabled(FLAG_SELECTIVITY_BOOST, student_key, self.settings),
        )

    # =========================================================================
    # CACHE ACCESS (faults are logged, never raised)
    # =========================================================================

    def _cache_get(self, key: str) -> Optional[str]:
        if self.result_cache is None:
            return None
        try:
            return self.result_cache.get(key)
        except Exception:
            logger.exception(f"Result cache read failed for {key}, computing directly")
            return None

    def _cache_set(self, key: str, value: str) -> None:
        if self.result_cache is None:
            return
        try:
            self.result_cache.set(key, value, self.settings.result_cache_ttl)
        except Exception:
            logger.exception(f"Result cache write failed for {key}")

    def _record_metrics(self, **kwargs) -> None:
        try:
            self.metrics_sink.record(create_matching_metrics(**kwargs))
        except Exception:
            logger.exception("Failed to record matching metrics")

    # =========================================================================
    # ENTRY POINTS
    # =========================================================================

    def score_one_cached(
        self,
        student_key: str,
        student: StudentProfile,
        program: ProgramRequirements,
        mode: Optional[MatchingMode] = None,
        weights: Optional[WeightConfig] = None
    ) -> MatchResult:
        """
        Score one program, reading and writing the result cache.

        Args:
            student_key: Stable student identifier used in cache keys
            student: Student profile
            program: Program requirements
            mode: Named weight mode
            weights: Explicit weights (override mode)

        Returns:
            MatchResult (cached or freshly computed)
        """
        key = match_cache_key(student_key, program.program_id, resolve_weights(mode, weights))

        cached = self._cache_get(key)
        if cached is not None:
            try:
                result = _RESULT.validate_json(cached)
                logger.debug(f"Match cache hit: {key}")
                return result
            except ValidationError:
                logger.warning(f"Discarding unreadable cached match {key}")

        logger.debug(f"Match cache miss: {key}")
        result = self._engine(student_key).score_one(student, program, mode=mode, weights=weights)
        self._cache_set(key, _RESULT.dump_json(result).decode())
        return result

    def _read_cached_batch(self, key: str, enhanced: bool) -> Optional[List[MatchResult]]:
        cached = self._cache_get(key)
        if cached is None:
            return None
        try:
            if enhanced:
                return list(_ENHANCED_RESULTS.validate_json(cached))
            return list(_RESULTS.validate_json(cached))
        except ValidationError:
            # Stored by a request with different flags
            logger.debug(f"Cached batch {key} has a different shape, recomputing")
            return None

    def score_many_cached(
        self,
        student_key: str,
        student: StudentProfile,
        programs: Sequence[ProgramRequirements],
        mode: Optional[MatchingMode] = None,
        weights: Optional[WeightConfig] = None
    ) -> List[MatchResult]:
        """
        Rank many programs, reading and writing the result cache.

        The optimized path is used when the performance flag is on for this
        student, the direct path otherwise. When the enhanced-results flag is
        on, results carry category, confidence and fit quality.

        Args:
            student_key: Stable student identifier used in cache keys
            student: Student profile
            programs: Programs to rank
            mode: Named weight mode
            weights: Explicit weights (override mode)

        Returns:
            Ranked results (EnhancedMatchResult when enhanced)
        """
        start_time = time.perf_counter()
        enhanced = is_feature_enabled(FLAG_ENHANCED_RESULTS, student_key, self.settings)
        key = batch_cache_key(student_key, resolve_weights(mode, weights), [p.program_id for p in programs])

        cached = self._read_cached_batch(key, enhanced)
        if cached is not None:
            logger.debug(f"Batch matches cache hit: {key} ({len(cached)} results)")
            return cached

        logger.debug(f"Batch matches cache miss: {key}")
        engine = self._engine(student_key)
        optimized = is_feature_enabled(FLAG_PERFORMANCE, student_key, self.settings)

        stats = None
        if optimized:
            output = engine.rank_optimized(student, programs, mode=mode, weights=weights)
            results: List[MatchResult] = list(output.results)
            stats = output.stats
        else:
            results = engine.score_many(student, programs, mode=mode, weights=weights)

        distribution = None
        if enhanced:
            results = enhance_results(results, student, programs)
            distribution = get_category_counts([r.category.category for r in results])

        adapter = _ENHANCED_RESULTS if enhanced else _RESULTS
        self._cache_set(key, adapter.dump_json(results).decode())

        latency_ms = (time.perf_counter() - start_time) * 1000
        self._record_metrics(
            latency_ms=latency_ms,
            total_programs=len(programs),
            candidates_evaluated=stats.candidates_after_filter if stats else len(programs),
            results_returned=len(results),
            student_points=student.total_points,
            category_distribution=distribution,
            filter_time_ms=stats.filter_time_ms if stats else None,
            match_time_ms=stats.match_time_ms if stats else None,
            cache_hits=stats.cache_hits if stats else None,
            cache_misses=stats.cache_misses if stats else None,
            path="optimized" if optimized else "direct",
            features_enabled=enabled_features(student_key, self.settings),
        )

        logger.info(
            f"✅ Matched {len(results)} programs for {student_key} "
            f"({'optimized' if optimized else 'direct'}, {latency_ms:.1f}ms)"
        )
        return results

    # =========================================================================
    # INVALIDATION
    # =========================================================================

    def _delete_matching(self, prefixes: Sequence[str], predicate=None) -> int:
        if self.result_cache is None:
            return 0
        try:
            keys = [key for prefix in prefixes for key in self.result_cache.keys(prefix)]
            if predicate is not None:
                keys = [key for key in keys if predicate(key)]
            if not keys:
                return 0
            return self.result_cache.delete(*keys)
        except Exception:
            logger.exception(f"Result cache invalidation failed for {list(prefixes)}")
            return 0

    def invalidate_student(self, student_key: str) -> int:
        """Drop every cached single and batch result of a student."""
        deleted = self._delete_matching((f"match:{student_key}:", f"matches:{student_key}:"))
        if deleted:
            logger.info(f"🧹 Student cache invalidated: {student_key} ({deleted} keys)")
        return deleted

    def invalidate_program(self, program_id: str) -> int:
        """Drop cached single results of a program."""
        deleted = self._delete_matching(
            ("match:",),
            predicate=lambda key: key.split(":")[2:3] == [program_id],
        )
        if deleted:
            logger.info(f"🧹 Program cache invalidated: {program_id} ({deleted} keys)")
        return deleted

    def clear_all(self) -> int:
        deleted = self._delete_matching(("match:", "matches:"))
        logger.info(f"🧹 All match cache cleared ({deleted} keys)")
        return deleted

    def cache_stats(self) -> Dict[str, int]:
        if self.result_cache is None:
            return {"match_keys": 0, "batch_keys": 0, "total_keys": 0}
        try:
            match_keys = len(self.result_cache.keys("match:"))
            batch_keys = len(self.result_cache.keys("matches:"))
        except Exception:
            logger.exception("Failed to read result cache stats")
            return {"match_keys": 0, "batch_keys": 0, "total_keys": 0}
        return {"match_keys": match_keys, "batch_keys": batch_keys, "total_keys": match_keys + batch_keys}
