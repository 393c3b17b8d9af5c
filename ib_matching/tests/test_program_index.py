"""
Tests for the candidate index.
"""

from ib_matching.logic.constants import DEFAULT_POINTS_MARGIN, CourseLevel
from ib_matching.logic.contracts import CandidateFilters, ORGroupRequirement, SubjectRequirement
from ib_matching.logic.program_index import ProgramIndex, calculate_reduction_ratio, points_bucket


def _index(make_program):
    return ProgramIndex([
        make_program("p-low", min_points=24, field_id="law", country_id="UK"),
        make_program("p-mid", min_points=32, field_id="medicine", country_id="USA"),
        make_program("p-high", min_points=42, field_id="medicine", country_id="UK"),
        make_program("p-none", min_points=None, field_id="economics", country_id="NL"),
        make_program(
            "p-or",
            min_points=36,
            field_id="engineering",
            country_id="USA",
            required_subjects=(SubjectRequirement(subject_id="math", level=CourseLevel.HL, min_grade=6),),
            or_groups=(ORGroupRequirement(options=(
                SubjectRequirement(subject_id="physics", level=CourseLevel.HL, min_grade=5),
                SubjectRequirement(subject_id="chemistry", level=CourseLevel.HL, min_grade=5),
            )),),
        ),
    ])


def test_points_bucket():
    assert points_bucket(37) == 35
    assert points_bucket(40) == 40
    assert points_bucket(None) == 0


def test_filter_by_points_includes_programs_without_minimum(make_program):
    index = _index(make_program)
    assert index.filter_by_points(35, margin=5) == {"p-mid", "p-or", "p-high", "p-none"}
    assert index.filter_by_points(24, margin=0) == {"p-low", "p-none"}


def test_empty_filters_return_catalog_order(make_program):
    index = _index(make_program)
    assert index.filter_candidates(CandidateFilters()) == ["p-low", "p-mid", "p-high", "p-none", "p-or"]


def test_filters_intersect(make_program):
    index = _index(make_program)
    filters = CandidateFilters(student_points=40, field_ids=("medicine", "engineering"), country_ids=("USA",))
    assert index.filter_candidates(filters) == ["p-mid", "p-or"]

    narrow = CandidateFilters(student_points=40, points_margin=2, field_ids=("medicine",))
    assert index.filter_candidates(narrow) == ["p-high"]


def test_filter_by_subject_includes_or_options(make_program):
    index = _index(make_program)
    assert index.filter_by_subject("math") == {"p-or"}
    assert index.filter_by_subject("chemistry") == {"p-or"}
    assert index.filter_by_subject("history") == set()


def test_reduction_ratio(make_program):
    index = _index(make_program)
    assert index.reduction_ratio(2) == 2.5
    assert calculate_reduction_ratio(100, 0) == 100.0


def test_invalidate_and_rebuild(make_program):
    index = _index(make_program)
    index.invalidate()
    assert len(index) == 0
    assert index.filter_candidates(CandidateFilters(student_points=30)) == []

    index.rebuild([make_program("p-new", min_points=30)])
    assert index.get("p-new").program_id == "p-new"
    assert index.stats()["total_programs"] == 1


def test_filters_default_to_standard_margin():
    assert CandidateFilters(student_points=30).points_margin == DEFAULT_POINTS_MARGIN
