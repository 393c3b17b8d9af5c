"""
Points Fit Quality

Continuous scoring of how a student's IB points sit against a program's
requirement. A small surplus is the best fit; an exact match is slightly
lower and a large surplus decays gently.

Zones:
- Under-qualified: 0.90 decaying linearly to 0.30 at the diploma minimum
- Optimal (required .. required+3): 0.95 rising to 1.00
- Over-qualified: 1.00 decaying linearly to 0.80 at 45 points
"""

from .constants import (
    EXACT_MATCH_SCORE,
    FAR_ABOVE_MARGIN,
    FAR_BELOW_MARGIN,
    FitQualityCategory,
    IB_MAX_POINTS,
    IB_MIN_DIPLOMA,
    OPTIMAL_BUFFER,
    OPTIMAL_MATCH_SCORE,
    OVER_QUALIFIED_FLOOR,
    UNDER_QUALIFIED_CEILING,
    UNDER_QUALIFIED_FLOOR,
)


def _clamp_points(points: int) -> int:
    return max(IB_MIN_DIPLOMA, min(IB_MAX_POINTS, points))


def calculate_points_fit_quality(student_points: int, required_points: int) -> float:
    """
    Score the points fit between a student and a requirement.

    Both values are clamped to the diploma range first. A requirement of
    zero or less means any points fit perfectly.

    Args:
        student_points: Student's total IB points
        required_points: Program's minimum points

    Returns:
        Fit score between 0.30 and 1.00
    """
    if required_points <= 0:
        return OPTIMAL_MATCH_SCORE

    student = _clamp_points(student_points)
    required = _clamp_points(required_points)
    optimal = required + OPTIMAL_BUFFER

    if student < required:
        return _under_qualified_score(student, required)
    if student <= optimal:
        return _optimal_zone_score(student, required)
    return _over_qualified_score(student, optimal)


def _under_qualified_score(student: int, required: int) -> float:
    deficit = required - student
    max_deficit = required - IB_MIN_DIPLOMA
    if max_deficit <= 0:
        return UNDER_QUALIFIED_FLOOR

    decay_rate = (UNDER_QUALIFIED_CEILING - UNDER_QUALIFIED_FLOOR) / max_deficit
    return max(UNDER_QUALIFIED_FLOOR, UNDER_QUALIFIED_CEILING - deficit * decay_rate)


def _optimal_zone_score(student: int, required: int) -> float:
    surplus = student - required
    score = EXACT_MATCH_SCORE + (surplus / OPTIMAL_BUFFER) * (OPTIMAL_MATCH_SCORE - EXACT_MATCH_SCORE)
    return min(OPTIMAL_MATCH_SCORE, score)


def _over_qualified_score(student: int, optimal: int) -> float:
    over = student - optimal
    max_over = IB_MAX_POINTS - optimal
    if max_over <= 0:
        return OPTIMAL_MATCH_SCORE

    decay_rate = (OPTIMAL_MATCH_SCORE - OVER_QUALIFIED_FLOOR) / max_over
    return max(OVER_QUALIFIED_FLOOR, OPTIMAL_MATCH_SCORE - over * decay_rate)


def fit_quality_category(student_points: int, required_points: int) -> FitQualityCategory:
    """Bucket the points margin for display."""
    if student_points < required_points - FAR_BELOW_MARGIN:
        return FitQualityCategory.FAR_BELOW
    if student_points < required_points:
        return FitQualityCategory.BELOW
    if student_points <= required_points + OPTIMAL_BUFFER:
        return FitQualityCategory.OPTIMAL
    if student_points <= required_points + FAR_ABOVE_MARGIN:
        return FitQualityCategory.ABOVE
    return FitQualityCategory.FAR_ABOVE
