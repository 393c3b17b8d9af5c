"""
Tests for preference, subject and OR-group matching.
"""

import pytest

from ib_matching.logic.capability_vector import CapabilityVector
from ib_matching.logic.constants import CourseLevel, MatchStatus
from ib_matching.logic.contracts import CourseRecord, ORGroupRequirement, SubjectRequirement
from ib_matching.logic.memo_cache import MemoCache
from ib_matching.logic.preference_scorers import score_field_match, score_location_match
from ib_matching.logic.subject_matcher import (
    find_course,
    grade_shortfall_score,
    match_or_group,
    match_subject,
    sl_for_hl_score,
)

HL = CourseLevel.HL
SL = CourseLevel.SL


def course(subject_id, level, grade, name=""):
    return CourseRecord(subject_id=subject_id, subject_name=name, level=level, grade=grade)


def requirement(subject_id, level, min_grade, critical=False, name=""):
    return SubjectRequirement(subject_id=subject_id, subject_name=name, level=level, min_grade=min_grade, critical=critical)


# =============================================================================
# FIELD / LOCATION
# =============================================================================

def test_field_match_scores():
    assert score_field_match([], "X").score == 0.5
    assert score_field_match([], "X").no_preferences is True
    assert score_field_match(["X"], "X").score == 1.0
    assert score_field_match(["Y"], "X").score == 0.0


def test_location_match_scores():
    assert score_location_match([], "X").score == 1.0
    assert score_location_match([], "X").no_preferences is True
    assert score_location_match(["X", "Z"], "X").is_match is True
    assert score_location_match(["Y"], "X").score == 0.0


def test_preference_ids_are_case_sensitive():
    assert score_field_match(["medicine"], "Medicine").score == 0.0


# =============================================================================
# SUBJECT MATCHER
# =============================================================================

def test_exact_match_is_full():
    match = match_subject(requirement("bio", HL, 5), [course("bio", HL, 7)])
    assert match.status == MatchStatus.FULL_MATCH
    assert match.score == 1.0


def test_hl_covers_sl_requirement():
    match = match_subject(requirement("bio", SL, 5), [course("bio", HL, 5)])
    assert match.status == MatchStatus.FULL_MATCH


def test_one_grade_below_critical_and_non_critical():
    courses = [course("math", HL, 6)]
    assert match_subject(requirement("math", HL, 7, critical=True), courses).score == 0.85
    assert match_subject(requirement("math", HL, 7, critical=False), courses).score == 0.78


def test_larger_grade_gaps_scale_with_floor():
    gap_three = match_subject(requirement("math", HL, 7), [course("math", HL, 4)])
    assert gap_three.status == MatchStatus.PARTIAL_MATCH
    assert gap_three.score == pytest.approx(0.45)
    assert gap_three.reason == "Grade 3 points below requirement"

    assert grade_shortfall_score(6, 7, critical=False) == 0.25


def test_missing_subject_is_no_match():
    match = match_subject(requirement("physics", HL, 5), [course("bio", HL, 7)])
    assert match.status == MatchStatus.NO_MATCH
    assert match.score == 0.0
    assert match.reason == "Subject not taken"


@pytest.mark.parametrize("grade, required, expected", [
    (7, 6, 0.8),   # SL7 for HL<=6
    (6, 5, 0.8),   # SL6 for HL<=5
    (6, 4, 0.8),
    (5, 3, 0.75),  # HL equivalent 3 meets 3
    (7, 7, 0.42),  # HL equivalent 5, gap 2: 0.6 * 0.7
    (5, 6, 0.252),  # HL equivalent 3, gap 3: 0.36 * 0.7
    (2, 7, 0.25),  # floor
])
def test_sl_for_hl_scores(grade, required, expected):
    assert sl_for_hl_score(grade, required) == pytest.approx(expected)
    match = match_subject(requirement("chem", HL, required), [course("chem", SL, grade)])
    assert match.status == MatchStatus.PARTIAL_MATCH
    assert match.score == pytest.approx(expected)


def test_subject_listed_at_both_levels_uses_hl():
    courses = [course("math", SL, 7), course("math", HL, 5)]
    assert find_course(courses, "math").level == HL

    match = match_subject(requirement("math", HL, 5), courses)
    assert match.status == MatchStatus.FULL_MATCH


def test_capability_vector_resolves_like_list_scan():
    courses = [course("math", SL, 7), course("math", HL, 5), course("bio", SL, 6), course("bio", SL, 4)]
    vector = CapabilityVector(courses, total_points=38)

    for subject_id in ("math", "bio", "chem"):
        assert vector.best_course(subject_id) == find_course(courses, subject_id)

    assert vector.grade_for("math", SL) == 7
    assert vector.best_grade("bio") == 6
    assert vector.has_subject("chem") is False
    assert vector.max_grade == 7
    assert vector.course_count == 4
    assert vector.hl_count == 1

    req = requirement("math", HL, 6, critical=True)
    assert match_subject(req, vector) == match_subject(req, courses)


# =============================================================================
# OR-GROUPS
# =============================================================================

def test_or_group_picks_matching_option():
    group = ORGroupRequirement(options=(
        requirement("biology", HL, 5, critical=True, name="Biology"),
        requirement("computer_science", HL, 5, critical=True, name="Computer Science"),
        requirement("economics", HL, 5, critical=True, name="Economics"),
    ))
    match = match_or_group(group, [course("computer_science", HL, 6)])

    assert group.critical is True
    assert match.status == MatchStatus.FULL_MATCH
    assert match.score == 1.0
    assert match.matched_subject_id == "computer_science"
    assert match.matched_subject_name == "Computer Science"
    assert match.reason == "Best match via Computer Science: Fully met"


def test_or_group_first_full_match_wins():
    group = ORGroupRequirement(options=(
        requirement("physics", HL, 5),
        requirement("chemistry", HL, 5),
    ))
    courses = [course("chemistry", HL, 7), course("physics", HL, 6)]

    memo = MemoCache()
    match = match_or_group(group, courses, memo)

    assert match.matched_subject_id == "physics"
    # The group plus its first option only: the search stopped at the full match
    assert memo.misses == 2
    assert len(memo) == 2


def test_or_group_equal_partial_scores_keep_first_option():
    group = ORGroupRequirement(options=(
        requirement("physics", HL, 7),
        requirement("chemistry", HL, 7),
    ))
    match = match_or_group(group, [course("chemistry", HL, 6), course("physics", HL, 6)])

    assert match.status == MatchStatus.PARTIAL_MATCH
    assert match.score == 0.78
    assert match.matched_subject_id == "physics"


def test_or_group_later_option_wins_with_higher_score():
    group = ORGroupRequirement(options=(
        requirement("physics", HL, 7),
        requirement("chemistry", HL, 7),
    ))
    match = match_or_group(group, [course("chemistry", HL, 7), course("physics", HL, 5)])
    assert match.matched_subject_id == "chemistry"
    assert match.score == 1.0


def test_empty_or_group_is_no_match():
    match = match_or_group(ORGroupRequirement(options=()), [course("bio", HL, 7)])
    assert match.status == MatchStatus.NO_MATCH
    assert match.score == 0.0
    assert match.critical is False
