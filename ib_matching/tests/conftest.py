"""
Shared fixtures for the matching engine tests.
"""

from typing import List

import pytest

from ib_matching.config import (
    FLAG_ENHANCED_RESULTS,
    FLAG_FULL,
    FLAG_PERFORMANCE,
    FLAG_SELECTIVITY_BOOST,
    FeatureFlag,
    MatchingSettings,
)
from ib_matching.logic.contracts import (
    CourseRecord,
    ORGroupRequirement,
    ProgramRequirements,
    StudentProfile,
    SubjectRequirement,
)
from ib_matching.logic.constants import CourseLevel, ProgramType

HL = CourseLevel.HL
SL = CourseLevel.SL

SUBJECTS = ["biology", "chemistry", "physics", "math", "economics", "computer_science", "english", "history"]
FIELDS = ["medicine", "engineering", "economics", "law"]
COUNTRIES = ["USA", "UK", "NL", "CA"]


@pytest.fixture
def e2e_student() -> StudentProfile:
    """42-point student aiming at medicine in the USA."""
    return StudentProfile(
        student_id="student-e2e",
        total_points=42,
        courses=(
            CourseRecord(subject_id="biology", subject_name="Biology", level=HL, grade=7),
            CourseRecord(subject_id="chemistry", subject_name="Chemistry", level=HL, grade=7),
            CourseRecord(subject_id="math", subject_name="Mathematics", level=HL, grade=6),
            CourseRecord(subject_id="english", subject_name="English", level=SL, grade=7),
            CourseRecord(subject_id="spanish", subject_name="Spanish", level=SL, grade=6),
            CourseRecord(subject_id="economics", subject_name="Economics", level=SL, grade=6),
        ),
        interested_fields=("medicine",),
        preferred_countries=("USA",),
    )


@pytest.fixture
def medicine_program() -> ProgramRequirements:
    return ProgramRequirements(
        program_id="prog-med",
        program_name="Medicine",
        program_type=ProgramType.FULL_REQUIREMENTS,
        min_points=40,
        required_subjects=(
            SubjectRequirement(subject_id="biology", subject_name="Biology", level=HL, min_grade=6, critical=True),
        ),
        field_id="medicine",
        country_id="USA",
    )


@pytest.fixture
def make_program():
    """Factory for programs with sensible defaults."""
    def _make(program_id: str, **overrides) -> ProgramRequirements:
        values = {
            "program_id": program_id,
            "program_type": ProgramType.FULL_REQUIREMENTS,
            "min_points": 30,
            "field_id": "medicine",
            "country_id": "USA",
        }
        values.update(overrides)
        return ProgramRequirements(**values)
    return _make


def build_catalog(size: int) -> List[ProgramRequirements]:
    types = [ProgramType.FULL_REQUIREMENTS, ProgramType.POINTS_ONLY, ProgramType.SUBJECTS_ONLY]
    programs = []
    for i in range(size):
        program_type = types[i % 3]
        subject = SUBJECTS[i % len(SUBJECTS)]
        alternative = SUBJECTS[(i * 3 + 1) % len(SUBJECTS)]

        required = ()
        if program_type != ProgramType.POINTS_ONLY:
            required = (
                SubjectRequirement(
                    subject_id=subject,
                    level=HL if i % 2 == 0 else SL,
                    min_grade=4 + i % 4,
                    critical=i % 5 == 0,
                ),
            )

        or_groups = ()
        if program_type == ProgramType.FULL_REQUIREMENTS and i % 4 == 0:
            or_groups = (
                ORGroupRequirement(options=(
                    SubjectRequirement(subject_id=alternative, level=HL, min_grade=5),
                    SubjectRequirement(subject_id="physics", level=HL, min_grade=5, critical=True),
                )),
            )

        programs.append(ProgramRequirements(
            program_id=f"prog-{i:03d}",
            program_name=f"Program {i}",
            program_type=program_type,
            min_points=None if program_type == ProgramType.SUBJECTS_ONLY else 24 + (i * 7) % 22,
            required_subjects=required,
            or_groups=or_groups,
            field_id=FIELDS[i % len(FIELDS)],
            country_id=COUNTRIES[(i // 4) % len(COUNTRIES)],
        ))
    return programs


@pytest.fixture
def catalog() -> List[ProgramRequirements]:
    """120 generated programs, large enough for the indexed path."""
    return build_catalog(120)


@pytest.fixture
def catalog_student() -> StudentProfile:
    return StudentProfile(
        student_id="student-catalog",
        total_points=39,
        courses=(
            CourseRecord(subject_id="biology", level=HL, grade=6),
            CourseRecord(subject_id="chemistry", level=SL, grade=7),
            CourseRecord(subject_id="math", level=HL, grade=5),
            CourseRecord(subject_id="math", level=SL, grade=7),
            CourseRecord(subject_id="economics", level=SL, grade=6),
            CourseRecord(subject_id="english", level=SL, grade=6),
        ),
        interested_fields=("medicine", "economics"),
        preferred_countries=("USA", "NL"),
    )


def flag_settings(**enabled) -> MatchingSettings:
    """Settings with every flag given explicitly (True/False)."""
    names = {
        "selectivity": FLAG_SELECTIVITY_BOOST,
        "performance": FLAG_PERFORMANCE,
        "enhanced": FLAG_ENHANCED_RESULTS,
        "full": FLAG_FULL,
    }
    flags = {
        flag: FeatureFlag(enabled=bool(enabled.get(key)), rollout_percentage=100 if enabled.get(key) else 0)
        for key, flag in names.items()
    }
    return MatchingSettings(flags=flags)


@pytest.fixture
def settings_factory():
    return flag_settings
