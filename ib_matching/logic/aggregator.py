"""
Weighted Score Aggregator

Combines the academic, location and field components into one score for a
student/program pair, then hands it to the penalty engine.

    M = w_G * G_M + w_L * L_M + w_F * F_M
"""

from typing import Optional

from .academic_matcher import calculate_academic_match
from .contracts import MatchResult, ProgramRequirements, StudentProfile, WeightConfig
from .constants import DEFAULT_MODE, MatchingMode, WEIGHT_MODES
from .errors import ContractViolationError
from .memo_cache import MemoCache
from .penalties import apply_penalties_and_caps
from .preference_scorers import score_field_match, score_location_match
from .selectivity import calculate_selectivity_tier, selectivity_boost, selectivity_tier_name
from .subject_matcher import CourseSource


def resolve_weights(
    mode: Optional[MatchingMode] = None,
    weights: Optional[WeightConfig] = None
) -> WeightConfig:
    """
    Resolve the weights for a match.

    Explicit weights win over a mode and are normalized to sum to 1.

    Raises:
        ContractViolationError: if explicit weights do not sum to a positive value
    """
    if weights is not None:
        total = weights.academic + weights.location + weights.field
        if total <= 0:
            raise ContractViolationError("Weights must sum to a positive value", field="weights")
        if abs(total - 1.0) > 1e-9:
            return weights.normalized()
        return weights

    return WeightConfig(**WEIGHT_MODES[MatchingMode(mode) if mode else DEFAULT_MODE])


def redistribute_weights(weights: WeightConfig, student: StudentProfile) -> WeightConfig:
    """
    Drop the location weight for students with no country preference.

    The academic and field weights are rescaled so their ratio is kept.
    """
    if student.preferred_countries:
        return weights

    remaining = weights.academic + weights.field
    if remaining <= 0:
        return weights

    factor = 1 / remaining
    return WeightConfig(
        academic=weights.academic * factor,
        location=0.0,
        field=weights.field * factor,
    )


def calculate_match(
    student: StudentProfile,
    program: ProgramRequirements,
    mode: Optional[MatchingMode] = None,
    weights: Optional[WeightConfig] = None,
    courses: Optional[CourseSource] = None,
    memo: Optional[MemoCache] = None,
    apply_selectivity: bool = True
) -> MatchResult:
    """
    Score one student against one program.

    Args:
        student: Student profile
        program: Program requirements
        mode: Named weight mode (ignored when weights are given)
        weights: Explicit weights
        courses: Course source override (a CapabilityVector on the batch path)
        memo: Optional memo cache for subject lookups
        apply_selectivity: Add the high-achiever selectivity boost before caps

    Returns:
        MatchResult with component scores and adjustments
    """
    final_weights = redistribute_weights(resolve_weights(mode, weights), student)

    field_match = score_field_match(student.interested_fields, program.field_id)
    location_match = score_location_match(student.preferred_countries, program.country_id)
    academic_match = calculate_academic_match(student, program, courses=courses, memo=memo)

    raw_score = min(1.0, (
        final_weights.academic * academic_match.score
        + final_weights.location * location_match.score
        + final_weights.field * field_match.score
    ))

    boost = 0.0
    boost_reason = None
    if apply_selectivity:
        tier = calculate_selectivity_tier(program.min_points)
        boost = selectivity_boost(student.total_points, tier)
        boost_reason = f"Selectivity boost: +{boost:.2f} ({selectivity_tier_name(tier)} program)"

    adjustments = apply_penalties_and_caps(
        raw_score,
        academic_match,
        location_match.score,
        field_match.score,
        final_weights,
        boost=boost,
        boost_reason=boost_reason,
    )

    return MatchResult(
        program_id=program.program_id,
        overall_score=adjustments.final_score,
        academic_match=academic_match,
        location_match=location_match,
        field_match=field_match,
        weights_used=final_weights,
        adjustments=adjustments,
    )
