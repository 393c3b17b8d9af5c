"""
Confidence Scoring

Rates how reliable a match prediction is, independent of the score itself.
Confidence starts at 1.0 and is reduced by data-completeness signals on both
the student side (predicted grades, missing subjects) and the program side
(unverified or stale requirements). It never changes the overall score.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional

from .contracts import ConfidenceFactor, ConfidenceResult, ProgramRequirements, StudentProfile
from .constants import (
    CONFIDENCE_IMPACTS,
    ConfidenceLevel,
    EXPECTED_SUBJECT_COUNT,
    HIGH_CONFIDENCE_THRESHOLD,
    MEDIUM_CONFIDENCE_THRESHOLD,
    REQUIREMENTS_MAX_AGE_DAYS,
)


def get_confidence_level(score: float) -> ConfidenceLevel:
    if score >= HIGH_CONFIDENCE_THRESHOLD:
        return ConfidenceLevel.HIGH
    if score >= MEDIUM_CONFIDENCE_THRESHOLD:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW


def _is_outdated(updated_at: Optional[datetime], now: datetime) -> bool:
    if updated_at is None:
        return False
    if updated_at.tzinfo is None:
        updated_at = updated_at.replace(tzinfo=timezone.utc)
    return updated_at < now - timedelta(days=REQUIREMENTS_MAX_AGE_DAYS)


def calculate_confidence(
    grades_are_final: bool,
    total_subjects_entered: int,
    has_complete_profile: bool,
    requirements_verified: bool,
    has_points_requirement: bool,
    subject_requirement_count: int,
    requirements_updated_at: Optional[datetime] = None,
    now: Optional[datetime] = None
) -> ConfidenceResult:
    """
    Calculate the confidence of a match from data-quality signals.

    Args:
        grades_are_final: Final IB results rather than predicted grades
        total_subjects_entered: Courses the student has entered (out of 6)
        has_complete_profile: All required profile fields are filled
        requirements_verified: Program requirements were verified
        has_points_requirement: Program publishes a points minimum
        subject_requirement_count: Standalone plus OR-group requirements
        requirements_updated_at: Last update of the program requirements
        now: Reference time (defaults to the current UTC time)

    Returns:
        ConfidenceResult with score, level and contributing factors
    """
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    factors: List[ConfidenceFactor] = []

    def deduct(factor_type: str, description: str, impact: Optional[float] = None):
        factors.append(ConfidenceFactor(
            type=factor_type,
            impact=CONFIDENCE_IMPACTS[factor_type] if impact is None else impact,
            description=description,
        ))

    if not grades_are_final:
        deduct("PREDICTED_GRADES", "Grades are predicted, not final IB results")

    missing_subjects = max(0, EXPECTED_SUBJECT_COUNT - total_subjects_entered)
    if missing_subjects > 0:
        deduct(
            "MISSING_SUBJECT_GRADES",
            f"{missing_subjects} subject grade(s) not entered",
            impact=missing_subjects * CONFIDENCE_IMPACTS["MISSING_SUBJECT_GRADES"],
        )

    if not has_complete_profile:
        deduct("INCOMPLETE_PROFILE", "Student profile is incomplete")

    if not requirements_verified:
        deduct("UNVERIFIED_REQUIREMENTS", "Program requirements have not been verified")

    if _is_outdated(requirements_updated_at, now):
        deduct("OUTDATED_REQUIREMENTS", "Program requirements may be outdated (>1 year old)")

    if not has_points_requirement:
        deduct("MISSING_POINTS_REQUIREMENT", "Program has no published points requirement")

    if subject_requirement_count == 0 and not has_points_requirement:
        deduct("FEW_DATA_POINTS", "Limited program requirements data available")

    score = max(0.0, min(1.0, 1.0 - sum(f.impact for f in factors)))

    return ConfidenceResult(
        score=score,
        level=get_confidence_level(score),
        factors=tuple(factors),
    )


def confidence_for_match(
    student: StudentProfile,
    program: ProgramRequirements,
    now: Optional[datetime] = None
) -> ConfidenceResult:
    """Confidence for a student/program pair, reading signals off the value types."""
    return calculate_confidence(
        grades_are_final=student.grades_are_final,
        total_subjects_entered=len(student.courses),
        has_complete_profile=student.has_complete_profile,
        requirements_verified=program.requirements_verified,
        has_points_requirement=program.has_points_requirement,
        subject_requirement_count=program.requirement_count,
        requirements_updated_at=program.requirements_updated_at,
        now=now,
    )
