"""
Penalty and Cap Engine

Single-pass adjustment of the weighted score. All applicable adjustments are
first collected as Adjustment records, then reduced once in a fixed order:

1. Multiple-requirements penalty (only with 2+ requirements)
2. Non-academic floor (location/field contribution)
3. Absolute cap (tightest of the unmet-requirement caps)
4. Minimum guarantee for students who meet the points requirement

The cap is determined before anything is applied and is never exceeded by
the floor. Only the floor and the guarantee can raise the score.
"""

import logging
from typing import Dict, List, Optional

from .contracts import (
    AcademicMatchScore,
    Adjustment,
    MatchAdjustments,
    WeightConfig,
)
from .constants import (
    AdjustmentKind,
    CAP_VALUES,
    CapKind,
    MINIMUM_GUARANTEE_SCORE,
    MULTIPLE_REQUIREMENTS_MIN,
    MatchStatus,
    NEAR_MISS_MIN_SCORE,
    NON_ACADEMIC_FLOOR_FACTOR,
    PARTIAL_PENALTY_WEIGHT,
    PENALTY_STRENGTH,
)

logger = logging.getLogger(__name__)


def determine_cap(academic: AcademicMatchScore) -> Optional[Adjustment]:
    """
    Pick the tightest absolute cap for the academic outcome.

    Precedence: missing critical (0.45), missing non-critical (0.70),
    critical near-miss (0.80), any unmet requirement (0.90).
    """
    if academic.missing_critical_count > 0:
        kind = CapKind.MISSING_CRITICAL_SUBJECT
        reason = f"Missing {academic.missing_critical_count} critical subject(s) - capped at {CAP_VALUES[kind]:.2f}"
    elif academic.missing_non_critical_count > 0:
        kind = CapKind.MISSING_NON_CRITICAL_SUBJECT
        reason = f"Missing {academic.missing_non_critical_count} non-critical subject(s) - capped at {CAP_VALUES[kind]:.2f}"
    elif has_critical_near_miss(academic):
        kind = CapKind.CRITICAL_NEAR_MISS
        reason = f"Critical subject near-miss - capped at {CAP_VALUES[kind]:.2f}"
    elif not academic.meets_points and academic.points_shortfall > 0:
        kind = CapKind.UNMET_REQUIREMENTS
        reason = f"{academic.points_shortfall} IB points below requirement - capped at {CAP_VALUES[kind]:.2f}"
    elif not academic.meets_points or not academic.meets_all_subjects:
        kind = CapKind.UNMET_REQUIREMENTS
        reason = f"Unmet requirements - capped at {CAP_VALUES[kind]:.2f}"
    else:
        return None

    return Adjustment(
        kind=AdjustmentKind.CAP,
        value=CAP_VALUES[kind],
        reason=reason,
        cap_kind=kind,
    )


def has_critical_near_miss(academic: AcademicMatchScore) -> bool:
    """A critical requirement partially met with a score of at least 0.75."""
    return any(
        match.critical
        and match.status == MatchStatus.PARTIAL_MATCH
        and match.score >= NEAR_MISS_MIN_SCORE
        for match in academic.subject_matches
    )


def multiple_requirements_penalty(academic: AcademicMatchScore) -> float:
    """missing/total + 0.5 * partial/total, or 0 with fewer than 2 requirements."""
    total = len(academic.subject_matches)
    if total < MULTIPLE_REQUIREMENTS_MIN:
        return 0.0

    missing = sum(1 for m in academic.subject_matches if m.status == MatchStatus.NO_MATCH)
    partial = sum(1 for m in academic.subject_matches if m.status == MatchStatus.PARTIAL_MATCH)
    return missing / total + PARTIAL_PENALTY_WEIGHT * (partial / total)


def non_academic_floor(location_score: float, field_score: float, weights: WeightConfig) -> float:
    return (
        weights.location * location_score * NON_ACADEMIC_FLOOR_FACTOR
        + weights.field * field_score * NON_ACADEMIC_FLOOR_FACTOR
    )


def collect_adjustments(
    academic: AcademicMatchScore,
    location_score: float,
    field_score: float,
    weights: WeightConfig
) -> Dict[AdjustmentKind, Adjustment]:
    """
    Gather every candidate adjustment without applying any.

    Returns:
        At most one record per AdjustmentKind
    """
    collected: Dict[AdjustmentKind, Adjustment] = {}

    cap = determine_cap(academic)
    if cap is not None:
        collected[AdjustmentKind.CAP] = cap

    penalty = multiple_requirements_penalty(academic)
    if penalty > 0:
        factor = 1 - PENALTY_STRENGTH * penalty
        collected[AdjustmentKind.PENALTY] = Adjustment(
            kind=AdjustmentKind.PENALTY,
            value=penalty,
            reason=f"Multiple unmet requirements penalty: {penalty * 100:.0f}% → adjustment factor {factor:.2f}",
        )

    floor = non_academic_floor(location_score, field_score, weights)
    collected[AdjustmentKind.FLOOR] = Adjustment(
        kind=AdjustmentKind.FLOOR,
        value=floor,
        reason=f"Non-academic floor applied: {floor:.2f} (from location/field match)",
    )

    if academic.meets_points:
        collected[AdjustmentKind.GUARANTEE] = Adjustment(
            kind=AdjustmentKind.GUARANTEE,
            value=MINIMUM_GUARANTEE_SCORE,
            reason=f"Minimum guarantee: meets points requirement → floor at {MINIMUM_GUARANTEE_SCORE}",
        )

    return collected


def apply_penalties_and_caps(
    raw_score: float,
    academic: AcademicMatchScore,
    location_score: float,
    field_score: float,
    weights: WeightConfig,
    boost: float = 0.0,
    boost_reason: Optional[str] = None
) -> MatchAdjustments:
    """
    Reduce the collected adjustments over the weighted score.

    Args:
        raw_score: Weighted score before any adjustment
        academic: Academic match details (drives caps and penalty)
        location_score: Location match score
        field_score: Field match score
        weights: Weights actually used (drives the non-academic floor)
        boost: Selectivity boost added to the raw score before adjustment
        boost_reason: Reason recorded when a boost is added

    Returns:
        MatchAdjustments with the final score and every applied adjustment
    """
    collected = collect_adjustments(academic, location_score, field_score, weights)
    cap = collected.get(AdjustmentKind.CAP)
    penalty = collected.get(AdjustmentKind.PENALTY)
    floor = collected[AdjustmentKind.FLOOR]
    guarantee = collected.get(AdjustmentKind.GUARANTEE)

    start = min(1.0, raw_score + boost)
    effective_boost = round(max(0.0, min(boost, 1.0 - raw_score)), 10)
    score = start
    applied: List[Adjustment] = []

    if penalty is not None:
        adjusted = score * (1 - PENALTY_STRENGTH * penalty.value)
        if adjusted < score:
            score = adjusted
            applied.append(penalty)

    if score < floor.value:
        score = floor.value
        applied.append(floor)

    # Recorded only when it lowers the score; the cap reason leads
    if cap is not None and score > cap.value:
        applied.insert(0, cap)
        score = cap.value

    guarantee_applied = None
    if guarantee is not None and score < guarantee.value:
        score = guarantee.value
        guarantee_applied = guarantee.value
        applied.append(guarantee)

    reasons = [a.reason for a in applied]
    if effective_boost > 0 and boost_reason:
        reasons.insert(0, boost_reason)

    if cap is not None:
        logger.debug("Cap %s at %.2f (start %.3f, final %.3f)", cap.cap_kind.value, cap.value, start, score)

    return MatchAdjustments(
        raw_score=raw_score,
        selectivity_boost=effective_boost,
        final_score=max(0.0, min(1.0, score)),
        caps={cap.cap_kind: cap.value} if cap is not None else {},
        penalty_factor=penalty.value if penalty is not None else None,
        non_academic_floor=floor.value,
        minimum_guarantee=guarantee_applied,
        reasons=tuple(reasons),
        applied=tuple(applied),
    )
