"""
Subject Requirement Matching

Scores how well a student's courses meet one subject requirement or one
OR-group of alternatives.

Handles:
- Full matches (level covered and grade met)
- Grade shortfalls (subject taken, grade below requirement)
- Level mismatches (SL taken where HL is required)
- OR-groups (best option wins, first full match stops the search)

Course lookups accept either the raw course list or a CapabilityVector; both
resolve a subject with the same rule so the results are identical.
"""

from typing import Optional, Sequence, Union

from .capability_vector import CapabilityVector
from .contracts import (
    CourseRecord,
    ORGroupRequirement,
    SubjectMatchDetail,
    SubjectRequirement,
)
from .constants import (
    CourseLevel,
    LevelRelation,
    MatchStatus,
    ONE_GRADE_BELOW_CRITICAL,
    ONE_GRADE_BELOW_NON_CRITICAL,
    SHORTFALL_FLOOR,
    SHORTFALL_SCALE,
    SL_FOR_HL_EQUIVALENT_SCORE,
    SL_FOR_HL_MISMATCH_FACTOR,
    SL_FOR_HL_STRONG_SCORE,
    SL_TO_HL_GRADE_OFFSET,
)
from .memo_cache import MemoCache


CourseSource = Union[Sequence[CourseRecord], CapabilityVector]


def find_course(courses: Sequence[CourseRecord], subject_id: str) -> Optional[CourseRecord]:
    """
    Find the course a student took for a subject.

    Returns the HL entry when the subject is listed at both levels,
    otherwise the first listed entry.
    """
    first = None
    for course in courses:
        if course.subject_id != subject_id:
            continue
        if course.level == CourseLevel.HL:
            return course
        if first is None:
            first = course
    return first


def _resolve_course(source: CourseSource, subject_id: str) -> Optional[CourseRecord]:
    if isinstance(source, CapabilityVector):
        return source.best_course(subject_id)
    return find_course(source, subject_id)


def _fingerprint(source: CourseSource):
    if isinstance(source, CapabilityVector):
        return source.fingerprint
    return tuple(source)


def compare_levels(student_level: CourseLevel, required_level: CourseLevel) -> LevelRelation:
    """Same level or HL covering SL is EXACT_OR_HIGHER; SL for HL is not."""
    if student_level == required_level or student_level == CourseLevel.HL:
        return LevelRelation.EXACT_OR_HIGHER
    return LevelRelation.SL_FOR_HL


def grade_shortfall_score(grade_gap: int, required_grade: int, critical: bool) -> float:
    """
    Partial credit for a grade below the requirement at a covered level.

    One point below: 0.85 critical, 0.78 otherwise. Larger gaps scale
    proportionally with a floor of 0.25.
    """
    if grade_gap == 1:
        return ONE_GRADE_BELOW_CRITICAL if critical else ONE_GRADE_BELOW_NON_CRITICAL

    base = 1 - grade_gap / (required_grade - 1)
    return max(SHORTFALL_FLOOR, base * SHORTFALL_SCALE)


def sl_for_hl_score(student_grade: int, required_grade: int) -> float:
    """
    Partial credit when the student took SL but HL is required.

    SL 7 for HL<=6 and SL 6 for HL<=5 get 0.8. Otherwise SL counts as two
    grades lower than HL.
    """
    if student_grade == 7 and required_grade <= 6:
        return SL_FOR_HL_STRONG_SCORE
    if student_grade == 6 and required_grade <= 5:
        return SL_FOR_HL_STRONG_SCORE

    hl_equivalent = max(1, student_grade - SL_TO_HL_GRADE_OFFSET)
    if hl_equivalent >= required_grade:
        return SL_FOR_HL_EQUIVALENT_SCORE

    gap = required_grade - hl_equivalent
    base = grade_shortfall_score(gap, required_grade, critical=False)
    return max(SHORTFALL_FLOOR, base * SL_FOR_HL_MISMATCH_FACTOR)


def _score_subject(requirement: SubjectRequirement, source: CourseSource) -> SubjectMatchDetail:
    course = _resolve_course(source, requirement.subject_id)

    if course is None:
        return SubjectMatchDetail(
            requirement=requirement,
            score=0.0,
            status=MatchStatus.NO_MATCH,
            reason="Subject not taken",
        )

    relation = compare_levels(course.level, requirement.level)

    if relation == LevelRelation.SL_FOR_HL:
        return SubjectMatchDetail(
            requirement=requirement,
            score=sl_for_hl_score(course.grade, requirement.min_grade),
            status=MatchStatus.PARTIAL_MATCH,
            reason=f"Level mismatch: SL instead of HL (grade {course.grade})",
        )

    if course.grade >= requirement.min_grade:
        return SubjectMatchDetail(
            requirement=requirement,
            score=1.0,
            status=MatchStatus.FULL_MATCH,
        )

    gap = requirement.min_grade - course.grade
    return SubjectMatchDetail(
        requirement=requirement,
        score=grade_shortfall_score(gap, requirement.min_grade, requirement.critical),
        status=MatchStatus.PARTIAL_MATCH,
        reason=f"Grade {gap} point{'s' if gap > 1 else ''} below requirement",
    )


def match_subject(
    requirement: SubjectRequirement,
    courses: CourseSource,
    memo: Optional[MemoCache] = None
) -> SubjectMatchDetail:
    """
    Score one subject requirement against a student's courses.

    Args:
        requirement: The subject requirement
        courses: The student's course list or capability vector
        memo: Optional memo cache for repeated lookups within a batch

    Returns:
        SubjectMatchDetail with score 0-1 and match status
    """
    if memo is None:
        return _score_subject(requirement, courses)
    key = ("subject", _fingerprint(courses), requirement)
    return memo.get_or_compute(key, lambda: _score_subject(requirement, courses))


def _score_or_group(
    or_group: ORGroupRequirement,
    source: CourseSource,
    memo: Optional[MemoCache]
) -> SubjectMatchDetail:
    best = SubjectMatchDetail(
        requirement=or_group,
        score=0.0,
        status=MatchStatus.NO_MATCH,
        reason="None of the OR options met",
    )

    # Declaration order matters: a later option only wins with a strictly higher score
    for option in or_group.options:
        match = match_subject(option, source, memo)

        if match.score > best.score:
            best = SubjectMatchDetail(
                requirement=or_group,
                score=match.score,
                status=match.status,
                reason=f"Best match via {option.subject_name or option.subject_id}: {match.reason or 'Fully met'}",
                matched_subject_id=option.subject_id,
                matched_subject_name=option.subject_name,
            )

        if match.score == 1.0:
            break

    return best


def match_or_group(
    or_group: ORGroupRequirement,
    courses: CourseSource,
    memo: Optional[MemoCache] = None
) -> SubjectMatchDetail:
    """
    Score an OR-group as the best of its options.

    Options are evaluated in declared order and the search stops at the
    first full match. An empty group is a NO_MATCH with score 0.
    """
    if memo is None:
        return _score_or_group(or_group, courses, None)
    key = ("or_group", _fingerprint(courses), or_group)
    return memo.get_or_compute(key, lambda: _score_or_group(or_group, courses, memo))
