"""
Classifier

Classifies match results into admission likelihood categories:
- Safety (exceeds requirements)
- Match (meets requirements)
- Reach (aspirational)
- Unlikely (significant gaps)

Categories are ordered in both score and points margin: a higher category
never needs a lower score or a smaller margin than the one below it.
"""

from typing import Dict, List, Optional

from .contracts import AcademicMatchScore, CategorizationFactor, CategorizationResult, MatchResult
from .constants import (
    CATEGORY_INFO,
    DEFAULT_REQUIRED_POINTS,
    MATCH_MIN_MARGIN,
    MATCH_MIN_SCORE,
    MatchCategory,
    REACH_MIN_MARGIN,
    REACH_MIN_SCORE,
    REACH_NEAR_MISS_SCORE,
    SAFETY_MIN_MARGIN,
    SAFETY_MIN_SCORE,
    MatchStatus,
)


def points_margin(student_points: int, required_points: Optional[int]) -> int:
    """Student points minus required points (30 assumed when there is no minimum)."""
    if required_points is None:
        required_points = DEFAULT_REQUIRED_POINTS
    return student_points - required_points


def get_match_category(
    match_score: float,
    margin: int,
    meets_all_subjects: bool,
    has_missing_critical: bool = False
) -> MatchCategory:
    """
    Pick the first category whose thresholds hold.

    Args:
        match_score: Final overall score
        margin: Points margin (student - required)
        meets_all_subjects: Every subject requirement is a full match
        has_missing_critical: Any critical requirement is missing

    Returns:
        MatchCategory enum value
    """
    if (
        match_score >= SAFETY_MIN_SCORE
        and margin >= SAFETY_MIN_MARGIN
        and meets_all_subjects
        and not has_missing_critical
    ):
        return MatchCategory.SAFETY

    if match_score >= MATCH_MIN_SCORE and margin >= MATCH_MIN_MARGIN and meets_all_subjects:
        return MatchCategory.MATCH

    if match_score >= REACH_MIN_SCORE or (margin >= REACH_MIN_MARGIN and match_score >= REACH_NEAR_MISS_SCORE):
        return MatchCategory.REACH

    return MatchCategory.UNLIKELY


def _score_factor(match_score: float) -> CategorizationFactor:
    percent = f"{match_score * 100:.0f}%"
    if match_score >= SAFETY_MIN_SCORE:
        return CategorizationFactor(type="SCORE", contribution="positive", description=f"Excellent match score ({percent})")
    if match_score >= MATCH_MIN_SCORE:
        return CategorizationFactor(type="SCORE", contribution="positive", description=f"Good match score ({percent})")
    if match_score >= REACH_MIN_SCORE:
        return CategorizationFactor(type="SCORE", contribution="neutral", description=f"Moderate match score ({percent})")
    return CategorizationFactor(type="SCORE", contribution="negative", description=f"Low match score ({percent})")


def _points_factor(margin: int) -> CategorizationFactor:
    if margin >= MATCH_MIN_MARGIN:
        description = "Meets points requirement" if margin == 0 else f"{margin} points above requirement"
        return CategorizationFactor(type="POINTS", contribution="positive", description=description)
    contribution = "neutral" if margin >= REACH_MIN_MARGIN else "negative"
    return CategorizationFactor(type="POINTS", contribution=contribution, description=f"{abs(margin)} points below requirement")


def _subject_factors(academic: AcademicMatchScore) -> List[CategorizationFactor]:
    factors: List[CategorizationFactor] = []
    has_missing_critical = academic.missing_critical_count > 0

    if has_missing_critical:
        factors.append(CategorizationFactor(
            type="CRITICAL",
            contribution="negative",
            description=f"Missing {academic.missing_critical_count} critical subject(s)",
        ))

    if academic.meets_all_subjects:
        factors.append(CategorizationFactor(
            type="SUBJECTS", contribution="positive", description="All subject requirements met",
        ))
    elif not has_missing_critical and academic.missing_non_critical_count > 0:
        factors.append(CategorizationFactor(
            type="SUBJECTS",
            contribution="neutral",
            description=f"{academic.missing_non_critical_count} non-critical subject(s) not met",
        ))
    elif any(m.status == MatchStatus.PARTIAL_MATCH for m in academic.subject_matches):
        factors.append(CategorizationFactor(
            type="SUBJECTS", contribution="neutral", description="Some subjects partially match requirements",
        ))

    return factors


def categorize_match(
    match_score: float,
    student_points: int,
    required_points: Optional[int],
    academic: AcademicMatchScore
) -> CategorizationResult:
    """
    Categorize a match and explain the decision.

    Args:
        match_score: Final overall score
        student_points: Student's total IB points
        required_points: Program minimum points (None when unpublished)
        academic: Academic match details

    Returns:
        CategorizationResult with label, description, factors and indicator
    """
    margin = points_margin(student_points, required_points)
    has_missing_critical = academic.missing_critical_count > 0

    factors = [_score_factor(match_score), _points_factor(margin)]
    factors.extend(_subject_factors(academic))

    category = get_match_category(match_score, margin, academic.meets_all_subjects, has_missing_critical)

    negative_count = sum(1 for f in factors if f.contribution == "negative")
    if category in (MatchCategory.SAFETY, MatchCategory.MATCH):
        indicator = "high" if negative_count == 0 else "medium"
    else:
        indicator = "medium" if negative_count <= 1 else "low"

    info = CATEGORY_INFO[category]
    return CategorizationResult(
        category=category,
        label=info["label"],
        description=info["description"],
        indicator=indicator,
        factors=tuple(factors),
    )


def categorize_result(result: MatchResult, student_points: int, required_points: Optional[int]) -> CategorizationResult:
    return categorize_match(result.overall_score, student_points, required_points, result.academic_match)


def get_category_counts(categories: List[MatchCategory]) -> Dict[MatchCategory, int]:
    """
    Count results in each category.
    """
    counts = {cat: 0 for cat in MatchCategory}
    for category in categories:
        counts[category] += 1
    return counts
