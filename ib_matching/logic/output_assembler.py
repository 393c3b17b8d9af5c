"""
Output Assembler

Turns core MatchResults into enhanced, display-ready results (category,
confidence and points fit breakdown) and serializes them for transport.
Enhancement never changes the overall score.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict

from .classifier import categorize_match, get_category_counts
from .confidence import confidence_for_match
from .contracts import (
    CategorizationResult,
    ConfidenceResult,
    EnhancedMatchResult,
    FitQualityBreakdown,
    MatchResult,
    ProgramRequirements,
    StudentProfile,
)
from .constants import (
    CATEGORY_INFO,
    ConfidenceLevel,
    DEFAULT_REQUIRED_POINTS,
    FitQualityCategory,
    MatchCategory,
)
from .fit_quality import calculate_points_fit_quality, fit_quality_category
from .ranker import group_by_category, rank_results
from .selectivity import calculate_selectivity_tier, selectivity_tier_name

logger = logging.getLogger(__name__)


class EnhanceOptions(BaseModel):
    """Which enhancements to compute, and the reference time for staleness checks."""
    model_config = ConfigDict(frozen=True)

    include_category: bool = True
    include_confidence: bool = True
    include_fit_quality: bool = True
    now: Optional[datetime] = None


def _placeholder_category() -> CategorizationResult:
    info = CATEGORY_INFO[MatchCategory.MATCH]
    return CategorizationResult(
        category=MatchCategory.MATCH,
        label=info["label"],
        description=info["description"],
        indicator="medium",
    )


def build_fit_quality(
    result: MatchResult,
    student: StudentProfile,
    program: ProgramRequirements
) -> FitQualityBreakdown:
    """
    Points fit breakdown for display.

    Required points default to 30 when the program publishes none.
    """
    required = program.min_points if program.min_points is not None else DEFAULT_REQUIRED_POINTS
    tier = calculate_selectivity_tier(program.min_points)
    return FitQualityBreakdown(
        points_fit_score=calculate_points_fit_quality(student.total_points, required),
        points_fit_category=fit_quality_category(student.total_points, required),
        selectivity_tier=tier,
        tier_name=selectivity_tier_name(tier),
        selectivity_boost=result.adjustments.selectivity_boost,
    )


def enhance_match_result(
    result: MatchResult,
    student: StudentProfile,
    program: ProgramRequirements,
    options: Optional[EnhanceOptions] = None
) -> EnhancedMatchResult:
    """
    Add category, confidence and fit quality to a match result.

    Args:
        result: Core match result
        student: Student the result was computed for
        program: Program the result was computed for
        options: Enhancement switches (all on by default)

    Returns:
        EnhancedMatchResult carrying the same scores as the input
    """
    options = options or EnhanceOptions()

    if options.include_category:
        category = categorize_match(
            result.overall_score,
            student.total_points,
            program.min_points,
            result.academic_match,
        )
    else:
        category = _placeholder_category()

    if options.include_confidence:
        confidence = confidence_for_match(student, program, now=options.now)
    else:
        confidence = ConfidenceResult(score=1.0, level=ConfidenceLevel.HIGH)

    if options.include_fit_quality:
        fit_quality = build_fit_quality(result, student, program)
    else:
        fit_quality = FitQualityBreakdown(
            points_fit_score=1.0,
            points_fit_category=FitQualityCategory.OPTIMAL,
            selectivity_tier=4,
            tier_name=selectivity_tier_name(4),
        )

    base = {name: getattr(result, name) for name in MatchResult.model_fields}
    return EnhancedMatchResult(
        **base,
        category=category,
        confidence=confidence,
        fit_quality=fit_quality,
    )


def enhance_results(
    results: Sequence[MatchResult],
    student: StudentProfile,
    programs: Sequence[ProgramRequirements],
    options: Optional[EnhanceOptions] = None
) -> List[EnhancedMatchResult]:
    """
    Enhance a ranked batch, keeping its order.

    Results whose program is not in `programs` are skipped.
    """
    by_id = {program.program_id: program for program in programs}
    enhanced = []
    for result in results:
        program = by_id.get(result.program_id)
        if program is None:
            logger.warning("No program %s for result, skipping enhancement", result.program_id)
            continue
        enhanced.append(enhance_match_result(result, student, program, options))
    return enhanced


def summarize_results(results: Sequence[EnhancedMatchResult]) -> Dict[str, Any]:
    """
    Category distribution and score summary of an enhanced batch.
    """
    ranked = rank_results(results)
    categories = {r.program_id: r.category.category for r in ranked}
    grouped = group_by_category(ranked, categories)
    counts = get_category_counts(list(categories.values()))

    return {
        "total": len(ranked),
        "average_score": round(sum(r.overall_score for r in ranked) / len(ranked), 3) if ranked else 0.0,
        "by_category": {cat.value: counts[cat] for cat in MatchCategory},
        "top_by_category": {
            cat.value: [r.program_id for r in grouped[cat][:3]] for cat in MatchCategory
        },
    }


def serialize_result(result: MatchResult) -> Dict[str, Any]:
    """JSON-ready dict of a (possibly enhanced) match result."""
    return result.model_dump(mode="json")


def serialize_results(results: Sequence[MatchResult]) -> List[Dict[str, Any]]:
    return [serialize_result(r) for r in results]
