"""
Matching Engine

Main orchestrator for scoring one student against one or many programs.
This is the primary entry point of the matching core.

Two batch paths produce the same ranking for the same candidate set:
- Direct: score every program with list scans, no index, no memoization
- Optimized: capability vector, program index shortlist, memoized subject
  lookups
"""

import logging
import time
from typing import List, Optional, Sequence, Tuple, Union

from .aggregator import calculate_match
from .capability_vector import CapabilityVector
from .contracts import (
    BatchMatchOutput,
    BatchStats,
    CandidateFilters,
    MatchResult,
    ProgramRequirements,
    StudentProfile,
    WeightConfig,
)
from .constants import (
    DEFAULT_MEMO_CACHE_SIZE,
    DEFAULT_POINTS_MARGIN,
    INDEX_MIN_CATALOG_SIZE,
    MINIMUM_CANDIDATES,
    MatchingMode,
    RELAXED_POINTS_MARGIN,
    WIDE_POINTS_MARGIN,
)
from .memo_cache import MemoCache
from .program_index import ProgramIndex
from .ranker import rank_results

logger = logging.getLogger(__name__)

Catalog = Union[ProgramIndex, Sequence[ProgramRequirements]]


class MatchingEngine:
    """
    Matching engine that orchestrates the scoring pipeline.

    Pipeline flow:
    1. Capability Vector - Precompute the student's subject lookups
    2. Candidate Filtering - Shortlist programs from the index (with fallback)
    3. Scoring - Academic, location and field components, weighted
    4. Adjustment - Selectivity boost, penalties and caps
    5. Ranking - Score descending, program ID ascending
    """

    def __init__(
        self,
        memo_cache: Optional[MemoCache] = None,
        points_margin: int = DEFAULT_POINTS_MARGIN,
        min_candidates: int = MINIMUM_CANDIDATES,
        index_min_catalog: int = INDEX_MIN_CATALOG_SIZE,
        memo_cache_size: int = DEFAULT_MEMO_CACHE_SIZE,
        apply_selectivity: bool = True
    ):
        """
        Initialize the matching engine.

        Args:
            memo_cache: Shared memo cache. If None, each optimized batch uses its own.
            points_margin: Points margin for the first filter tier
            min_candidates: Candidates required before filters are relaxed
            index_min_catalog: Catalogs this size or smaller skip the index
            memo_cache_size: Size of per-batch memo caches
            apply_selectivity: Add the high-achiever selectivity boost
        """
        self.memo_cache = memo_cache
        self.points_margin = points_margin
        self.min_candidates = min_candidates
        self.index_min_catalog = index_min_catalog
        self.memo_cache_size = memo_cache_size
        self.apply_selectivity = apply_selectivity

    def score_one(
        self,
        student: StudentProfile,
        program: ProgramRequirements,
        mode: Optional[MatchingMode] = None,
        weights: Optional[WeightConfig] = None
    ) -> MatchResult:
        """Score a single program for a student (direct path)."""
        return calculate_match(
            student,
            program,
            mode=mode,
            weights=weights,
            apply_selectivity=self.apply_selectivity,
        )

    def score_many(
        self,
        student: StudentProfile,
        programs: Sequence[ProgramRequirements],
        mode: Optional[MatchingMode] = None,
        weights: Optional[WeightConfig] = None
    ) -> List[MatchResult]:
        """
        Score every program directly and rank the results.

        Args:
            student: Student profile
            programs: Programs to score, in any order
            mode: Named weight mode
            weights: Explicit weights (override mode)

        Returns:
            Ranked list of MatchResult
        """
        results = [self.score_one(student, program, mode, weights) for program in programs]
        return rank_results(results)

    def default_filters(self, student: StudentProfile) -> CandidateFilters:
        return CandidateFilters(
            student_points=student.total_points,
            points_margin=self.points_margin,
            field_ids=student.interested_fields,
            country_ids=student.preferred_countries,
        )

    def filter_with_fallback(
        self,
        index: ProgramIndex,
        filters: CandidateFilters
    ) -> Tuple[List[str], int]:
        """
        Progressively relax filters until enough candidates survive.

        Tiers:
        1. All filters
        2. Points margin widened to 20
        3. Country filter dropped
        4. Field filter dropped (country kept)
        5. Points only, margin 30
        6. Whole catalog

        Returns:
            (candidate IDs in catalog order, tier used)
        """
        candidates = index.filter_candidates(filters)
        if len(candidates) >= self.min_candidates:
            return candidates, 1

        relaxed = filters.model_copy(update={"points_margin": RELAXED_POINTS_MARGIN})
        candidates = index.filter_candidates(relaxed)
        if len(candidates) >= self.min_candidates:
            return candidates, 2

        if filters.country_ids:
            candidates = index.filter_candidates(relaxed.model_copy(update={"country_ids": ()}))
            if len(candidates) >= self.min_candidates:
                return candidates, 3

        if filters.field_ids:
            candidates = index.filter_candidates(relaxed.model_copy(update={"field_ids": ()}))
            if len(candidates) >= self.min_candidates:
                return candidates, 4

        points_only = CandidateFilters(
            student_points=filters.student_points,
            points_margin=WIDE_POINTS_MARGIN,
        )
        candidates = index.filter_candidates(points_only)
        if len(candidates) >= self.min_candidates:
            return candidates, 5

        return index.all_program_ids(), 6

    def rank_optimized(
        self,
        student: StudentProfile,
        catalog: Catalog,
        filters: Optional[CandidateFilters] = None,
        mode: Optional[MatchingMode] = None,
        weights: Optional[WeightConfig] = None,
        use_index: bool = True,
        use_cache: bool = True
    ) -> BatchMatchOutput:
        """
        Rank a catalog through the optimized path.

        Args:
            student: Student profile
            catalog: Prebuilt ProgramIndex or a list of programs
            filters: Candidate filters (derived from the student if None)
            mode: Named weight mode
            weights: Explicit weights (override mode)
            use_index: Shortlist candidates through the index
            use_cache: Memoize subject and OR-group matches

        Returns:
            BatchMatchOutput with ranked results and stats
        """
        start_time = time.perf_counter()

        # Step 1: Capability vector
        vector = CapabilityVector.from_student(student)

        # Step 2: Candidate filtering
        filter_start = time.perf_counter()
        if isinstance(catalog, ProgramIndex):
            index = catalog
            programs = list(index.programs.values())
        else:
            index = None
            programs = list(catalog)

        candidates = programs
        fallback_tier = 1
        if use_index and len(programs) > self.index_min_catalog:
            if index is None:
                index = ProgramIndex(programs)
            candidate_ids, fallback_tier = self.filter_with_fallback(
                index, filters or self.default_filters(student)
            )
            candidates = [index.programs[pid] for pid in candidate_ids]
        filter_time = time.perf_counter() - filter_start

        # Step 3: Scoring
        match_start = time.perf_counter()
        memo = None
        if use_cache:
            memo = self.memo_cache if self.memo_cache is not None else MemoCache(max_size=self.memo_cache_size)
        hits_before = memo.hits if memo is not None else 0
        misses_before = memo.misses if memo is not None else 0

        results = [
            calculate_match(
                student,
                program,
                mode=mode,
                weights=weights,
                courses=vector,
                memo=memo,
                apply_selectivity=self.apply_selectivity,
            )
            for program in candidates
        ]
        match_time = time.perf_counter() - match_start

        # Step 4: Ranking
        ranked = rank_results(results)

        total_time = time.perf_counter() - start_time
        stats = BatchStats(
            total_programs=len(programs),
            candidates_after_filter=len(candidates),
            reduction_ratio=len(programs) / max(1, len(candidates)),
            total_time_ms=round(total_time * 1000, 3),
            filter_time_ms=round(filter_time * 1000, 3),
            match_time_ms=round(match_time * 1000, 3),
            fallback_tier=fallback_tier,
            cache_hits=(memo.hits - hits_before) if memo is not None else 0,
            cache_misses=(memo.misses - misses_before) if memo is not None else 0,
        )

        logger.debug(
            "Optimized ranking: %d/%d candidates (tier %d) in %.2fms",
            stats.candidates_after_filter,
            stats.total_programs,
            fallback_tier,
            stats.total_time_ms,
        )

        return BatchMatchOutput(results=tuple(ranked), stats=stats)

    def score_many_optimized(
        self,
        student: StudentProfile,
        catalog: Catalog,
        filters: Optional[CandidateFilters] = None,
        mode: Optional[MatchingMode] = None,
        weights: Optional[WeightConfig] = None
    ) -> List[MatchResult]:
        """Ranked results of the optimized path, without stats."""
        return list(self.rank_optimized(student, catalog, filters, mode, weights).results)


# Convenience functions for simple usage
def score_one(
    student: StudentProfile,
    program: ProgramRequirements,
    weights: Optional[WeightConfig] = None,
    mode: Optional[MatchingMode] = None
) -> MatchResult:
    """
    Score one student against one program.

    Args:
        student: Student profile
        program: Program requirements
        weights: Explicit weights
        mode: Named weight mode

    Returns:
        MatchResult
    """
    return MatchingEngine().score_one(student, program, mode=mode, weights=weights)


def score_many(
    student: StudentProfile,
    programs: Sequence[ProgramRequirements],
    mode: Optional[MatchingMode] = None,
    weights: Optional[WeightConfig] = None
) -> List[MatchResult]:
    """Score and rank many programs through the direct path."""
    return MatchingEngine().score_many(student, programs, mode=mode, weights=weights)


def score_many_optimized(
    student: StudentProfile,
    catalog: Catalog,
    filters: Optional[CandidateFilters] = None,
    weights: Optional[WeightConfig] = None,
    mode: Optional[MatchingMode] = None
) -> List[MatchResult]:
    """Score and rank a catalog through the indexed, memoized path."""
    return MatchingEngine().score_many_optimized(student, catalog, filters, mode=mode, weights=weights)
