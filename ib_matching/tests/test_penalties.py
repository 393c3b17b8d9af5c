"""
Tests for the penalty and cap engine.
"""

import pytest

from ib_matching.logic.aggregator import calculate_match
from ib_matching.logic.constants import AdjustmentKind, CapKind, CourseLevel, MatchStatus
from ib_matching.logic.contracts import (
    AcademicMatchScore,
    CourseRecord,
    ProgramRequirements,
    StudentProfile,
    SubjectMatchDetail,
    SubjectRequirement,
    WeightConfig,
)
from ib_matching.logic.penalties import (
    apply_penalties_and_caps,
    determine_cap,
    multiple_requirements_penalty,
    non_academic_floor,
)

HL = CourseLevel.HL
BALANCED = WeightConfig(academic=0.6, location=0.3, field=0.1)


def detail(status, score, critical=False, subject_id="s"):
    return SubjectMatchDetail(
        requirement=SubjectRequirement(subject_id=subject_id, level=HL, min_grade=5, critical=critical),
        score=score,
        status=status,
    )


def academic(*matches, meets_points=True, shortfall=0):
    missing_critical = sum(1 for m in matches if m.status == MatchStatus.NO_MATCH and m.critical)
    missing_non_critical = sum(1 for m in matches if m.status == MatchStatus.NO_MATCH and not m.critical)
    mean = sum(m.score for m in matches) / len(matches) if matches else 1.0
    return AcademicMatchScore(
        score=mean,
        subjects_score=mean,
        meets_points=meets_points,
        points_shortfall=shortfall,
        subject_matches=tuple(matches),
        missing_critical_count=missing_critical,
        missing_non_critical_count=missing_non_critical,
    )


# =============================================================================
# CAP PRECEDENCE
# =============================================================================

def test_missing_critical_caps_high_raw_score():
    result = apply_penalties_and_caps(
        0.95, academic(detail(MatchStatus.NO_MATCH, 0.0, critical=True)), 1.0, 1.0, BALANCED
    )
    assert result.final_score <= 0.45
    assert result.final_score == 0.45
    assert result.caps == {CapKind.MISSING_CRITICAL_SUBJECT: 0.45}
    assert result.reasons[0] == "Missing 1 critical subject(s) - capped at 0.45"


def test_cap_precedence_order():
    assert determine_cap(academic(
        detail(MatchStatus.NO_MATCH, 0.0, critical=True),
        detail(MatchStatus.NO_MATCH, 0.0),
    )).cap_kind == CapKind.MISSING_CRITICAL_SUBJECT
    assert determine_cap(academic(
        detail(MatchStatus.NO_MATCH, 0.0),
        detail(MatchStatus.PARTIAL_MATCH, 0.85, critical=True),
    )).cap_kind == CapKind.MISSING_NON_CRITICAL_SUBJECT
    assert determine_cap(academic(
        detail(MatchStatus.PARTIAL_MATCH, 0.85, critical=True),
    )).cap_kind == CapKind.CRITICAL_NEAR_MISS
    assert determine_cap(academic(
        detail(MatchStatus.PARTIAL_MATCH, 0.5, critical=True),
    )).cap_kind == CapKind.UNMET_REQUIREMENTS
    assert determine_cap(academic(detail(MatchStatus.FULL_MATCH, 1.0))) is None


def test_points_shortfall_cap_reason():
    cap = determine_cap(academic(meets_points=False, shortfall=3))
    assert cap.value == 0.9
    assert cap.reason == "3 IB points below requirement - capped at 0.90"


def test_critical_near_miss_cap():
    result = apply_penalties_and_caps(
        0.95, academic(detail(MatchStatus.PARTIAL_MATCH, 0.85, critical=True)), 1.0, 1.0, BALANCED
    )
    assert result.final_score == 0.8
    assert result.reasons == ("Critical subject near-miss - capped at 0.80",)


# =============================================================================
# PENALTY / FLOOR / GUARANTEE
# =============================================================================

def test_multiple_requirements_penalty():
    assert multiple_requirements_penalty(academic(detail(MatchStatus.NO_MATCH, 0.0))) == 0.0
    penalty = multiple_requirements_penalty(academic(
        detail(MatchStatus.NO_MATCH, 0.0),
        detail(MatchStatus.PARTIAL_MATCH, 0.5),
        detail(MatchStatus.PARTIAL_MATCH, 0.5),
        detail(MatchStatus.FULL_MATCH, 1.0),
    ))
    assert penalty == pytest.approx(0.5)


def test_floor_raises_low_score():
    result = apply_penalties_and_caps(0.1, academic(meets_points=False, shortfall=10), 1.0, 1.0, BALANCED)

    assert non_academic_floor(1.0, 1.0, BALANCED) == pytest.approx(0.32)
    assert result.final_score == pytest.approx(0.32)
    assert result.reasons == ("Non-academic floor applied: 0.32 (from location/field match)",)
    # Determined but not binding
    assert result.caps == {CapKind.UNMET_REQUIREMENTS: 0.9}
    assert result.minimum_guarantee is None


def test_minimum_guarantee_when_points_met():
    weights = WeightConfig(academic=1.0, location=0.0, field=0.0)
    result = apply_penalties_and_caps(
        0.05, academic(detail(MatchStatus.NO_MATCH, 0.0, critical=True)), 0.0, 0.0, weights
    )
    assert result.final_score == 0.15
    assert result.minimum_guarantee == 0.15
    assert [a.kind for a in result.applied] == [AdjustmentKind.GUARANTEE]
    assert result.reasons[-1] == "Minimum guarantee: meets points requirement → floor at 0.15"


def test_penalty_then_cap_reason_order():
    matches = academic(
        detail(MatchStatus.NO_MATCH, 0.0, critical=True, subject_id="a"),
        detail(MatchStatus.FULL_MATCH, 1.0, subject_id="b"),
    )
    result = apply_penalties_and_caps(0.9, matches, 1.0, 1.0, BALANCED)

    kinds = [a.kind for a in result.applied]
    assert kinds == [AdjustmentKind.CAP, AdjustmentKind.PENALTY]
    assert result.penalty_factor == pytest.approx(0.5)
    assert result.final_score == 0.45


def test_cap_not_reported_when_penalty_already_below_it():
    matches = academic(
        detail(MatchStatus.PARTIAL_MATCH, 0.78, subject_id="a"),
        detail(MatchStatus.PARTIAL_MATCH, 0.78, subject_id="b"),
    )
    weights = WeightConfig(academic=1.0, location=0.0, field=0.0)
    result = apply_penalties_and_caps(0.95, matches, 0.0, 0.0, weights)

    # 0.95 * (1 - 0.4 * 0.5) = 0.76, under the 0.90 cap
    assert result.final_score == pytest.approx(0.76)
    assert result.caps == {CapKind.UNMET_REQUIREMENTS: 0.9}
    assert [a.kind for a in result.applied] == [AdjustmentKind.PENALTY]
    assert not any("capped at 0.90" in reason for reason in result.reasons)


@pytest.mark.parametrize("raw", [0.0, 0.1, 0.33, 0.5, 0.72, 0.9, 1.0])
def test_pipeline_never_increases_except_floor_and_guarantee(raw):
    matches = academic(
        detail(MatchStatus.PARTIAL_MATCH, 0.6, subject_id="a"),
        detail(MatchStatus.NO_MATCH, 0.0, subject_id="b"),
        detail(MatchStatus.FULL_MATCH, 1.0, subject_id="c"),
    )
    result = apply_penalties_and_caps(raw, matches, 0.0, 1.0, BALANCED)
    raised_to = max(raw, result.non_academic_floor, result.minimum_guarantee or 0.0)

    assert 0.0 <= result.final_score <= 1.0
    assert result.final_score <= raised_to + 1e-12
    assert result.final_score <= 0.7


# =============================================================================
# SELECTIVITY BOOST ORDERING
# =============================================================================

def _boost_case(missing_critical):
    student = StudentProfile(
        total_points=42,
        courses=(CourseRecord(subject_id="biology", level=HL, grade=7),),
        interested_fields=("medicine",),
        preferred_countries=("USA",),
    )
    program = ProgramRequirements(
        program_id="prog-boost",
        min_points=40,
        required_subjects=(
            SubjectRequirement(subject_id="physics", level=HL, min_grade=6, critical=missing_critical),
            SubjectRequirement(subject_id="biology", level=HL, min_grade=6),
        ),
        field_id="medicine",
        country_id="USA",
    )
    return student, program


def test_selectivity_boost_is_applied_before_penalties_and_caps():
    student, program = _boost_case(missing_critical=False)

    boosted = calculate_match(student, program)
    unboosted = calculate_match(student, program, apply_selectivity=False)

    # raw 0.70; boosted 0.75 * 0.8 penalty = 0.60, unboosted 0.70 * 0.8 = 0.56
    assert boosted.adjustments.raw_score == pytest.approx(0.7)
    assert boosted.adjustments.selectivity_boost == pytest.approx(0.05)
    assert boosted.overall_score == pytest.approx(0.6)
    assert unboosted.overall_score == pytest.approx(0.56)
    assert boosted.adjustments.reasons[0] == "Selectivity boost: +0.05 (Highly Selective program)"


def test_boost_never_lifts_score_over_cap():
    student, program = _boost_case(missing_critical=True)
    result = calculate_match(student, program)

    assert result.overall_score == 0.45
    assert result.adjustments.reasons[0].startswith("Selectivity boost")
    assert result.adjustments.reasons[1] == "Missing 1 critical subject(s) - capped at 0.45"
