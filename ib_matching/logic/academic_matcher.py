"""
Academic Match (G_M) Calculator

Combines subject requirements and total IB points into one academic score.
Branches on the program type:
- FULL_REQUIREMENTS: subject mean, scaled down when points are unmet
- POINTS_ONLY: proportional points score
- SUBJECTS_ONLY: subject mean only
"""

from typing import List, Optional, Tuple

from .contracts import (
    AcademicMatchScore,
    ProgramRequirements,
    StudentProfile,
    SubjectMatchDetail,
)
from .constants import (
    MatchStatus,
    POINTS_NEAR_MISS_DEFICIT,
    POINTS_NEAR_MISS_FACTOR,
    POINTS_ONLY_CEILING,
    POINTS_ONLY_FLOOR,
    POINTS_PENALTY_FLOOR,
    ProgramType,
)
from .memo_cache import MemoCache
from .subject_matcher import CourseSource, match_or_group, match_subject


def calculate_academic_match(
    student: StudentProfile,
    program: ProgramRequirements,
    courses: Optional[CourseSource] = None,
    memo: Optional[MemoCache] = None
) -> AcademicMatchScore:
    """
    Calculate the academic match score for a student/program pair.

    Args:
        student: Student's academic profile
        program: Program's requirements
        courses: Course source override (a CapabilityVector on the batch path)
        memo: Optional memo cache for subject lookups

    Returns:
        AcademicMatchScore with the score and per-requirement details
    """
    if courses is None:
        courses = student.courses

    meets_points = not program.min_points or student.total_points >= program.min_points
    points_shortfall = max(0, program.min_points - student.total_points) if program.min_points else 0

    if program.program_type == ProgramType.POINTS_ONLY:
        return _points_only_match(program, meets_points, points_shortfall)
    if program.program_type == ProgramType.SUBJECTS_ONLY:
        return _subjects_only_match(program, courses, memo)
    return _full_requirements_match(program, courses, memo, meets_points, points_shortfall)


def _points_only_match(
    program: ProgramRequirements,
    meets_points: bool,
    points_shortfall: int
) -> AcademicMatchScore:
    score = 1.0
    if not meets_points:
        raw = 1 - points_shortfall / program.min_points
        score = max(POINTS_ONLY_FLOOR, min(raw, POINTS_ONLY_CEILING))

    return AcademicMatchScore(
        score=score,
        subjects_score=1.0,
        meets_points=meets_points,
        points_shortfall=points_shortfall,
    )


def _subjects_only_match(
    program: ProgramRequirements,
    courses: CourseSource,
    memo: Optional[MemoCache]
) -> AcademicMatchScore:
    matches = evaluate_requirements(program, courses, memo)
    subjects_score = subjects_mean(matches)
    missing_critical, missing_non_critical = count_missing(matches)

    return AcademicMatchScore(
        score=subjects_score,
        subjects_score=subjects_score,
        meets_points=True,
        points_shortfall=0,
        subject_matches=tuple(matches),
        missing_critical_count=missing_critical,
        missing_non_critical_count=missing_non_critical,
    )


def _full_requirements_match(
    program: ProgramRequirements,
    courses: CourseSource,
    memo: Optional[MemoCache],
    meets_points: bool,
    points_shortfall: int
) -> AcademicMatchScore:
    matches = evaluate_requirements(program, courses, memo)
    subjects_score = subjects_mean(matches)
    missing_critical, missing_non_critical = count_missing(matches)

    score = subjects_score
    if not meets_points:
        score = subjects_score * points_penalty_factor(points_shortfall, program.min_points)

    return AcademicMatchScore(
        score=score,
        subjects_score=subjects_score,
        meets_points=meets_points,
        points_shortfall=points_shortfall,
        subject_matches=tuple(matches),
        missing_critical_count=missing_critical,
        missing_non_critical_count=missing_non_critical,
    )


def points_penalty_factor(deficit: int, min_points: int) -> float:
    """Near miss (up to 3 points) keeps 80%; larger gaps scale down to a 0.5 floor."""
    if deficit <= POINTS_NEAR_MISS_DEFICIT:
        return POINTS_NEAR_MISS_FACTOR
    return max(POINTS_PENALTY_FLOOR, 1 - deficit / min_points)


def evaluate_requirements(
    program: ProgramRequirements,
    courses: CourseSource,
    memo: Optional[MemoCache] = None
) -> List[SubjectMatchDetail]:
    """Standalone requirements first, then OR-groups, each in declared order."""
    matches = [match_subject(req, courses, memo) for req in program.required_subjects]
    matches.extend(match_or_group(group, courses, memo) for group in program.or_groups)
    return matches


def subjects_mean(matches: List[SubjectMatchDetail]) -> float:
    # No requirements is vacuously a full match
    if not matches:
        return 1.0
    return sum(m.score for m in matches) / len(matches)


def count_missing(matches: List[SubjectMatchDetail]) -> Tuple[int, int]:
    """Count NO_MATCH requirements split into (critical, non-critical)."""
    missing_critical = 0
    missing_non_critical = 0
    for match in matches:
        if match.status != MatchStatus.NO_MATCH:
            continue
        if match.critical:
            missing_critical += 1
        else:
            missing_non_critical += 1
    return missing_critical, missing_non_critical
