"""
Data Adapter for the Matching Engine

Transforms persisted student and program records (plain mappings, as
produced by an ORM or API layer) into the engine's value types.

This is a pure TRANSFORM + VALIDATE layer:
- NO scoring logic
- NO ranking/classification
- NO I/O

Domain-invalid values (grade outside 1-7, unknown level, points outside
0-45) are rejected here with ContractViolationError so the core can assume
they never occur.
"""

import logging
from collections import OrderedDict
from datetime import date, datetime, timezone
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from pydantic import ValidationError

from .contracts import (
    CourseRecord,
    ORGroupRequirement,
    PreferenceIssue,
    PreferenceValidationResult,
    ProgramRequirements,
    StudentProfile,
    SubjectRequirement,
)
from .constants import (
    CORE_GRADES,
    CourseLevel,
    IB_MAX_POINTS,
    MAX_COUNTRY_PREFERENCES,
    MAX_FIELD_PREFERENCES,
    MAX_GRADE,
    MIN_GRADE,
    ProgramType,
)
from .errors import ContractViolationError

logger = logging.getLogger(__name__)


def _safe_get(data: Optional[Mapping], *keys, default=None):
    """Safely traverse nested mappings."""
    if data is None:
        return default
    result = data
    for key in keys:
        if isinstance(result, Mapping):
            result = result.get(key)
        else:
            return default
        if result is None:
            return default
    return result


def _first(data: Mapping, *keys, default=None):
    """Value of the first key present (snake_case or camelCase records)."""
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return default


def _ref_id(value: Any) -> str:
    """ID of a reference that is either a plain ID or a nested {id: ...} record."""
    if isinstance(value, Mapping):
        value = value.get("id")
    if value is None:
        return ""
    return str(value)


def _ref_ids(values: Optional[Iterable[Any]]) -> tuple:
    ids = (_ref_id(v) for v in (values or ()))
    return tuple(i for i in ids if i)


def _parse_level(value: Any, field: str) -> CourseLevel:
    if isinstance(value, CourseLevel):
        return value
    if isinstance(value, str) and value.strip().upper() in CourseLevel.__members__:
        return CourseLevel(value.strip().upper())
    raise ContractViolationError(f"Unrecognized course level: {value!r}", field=field)


def _parse_grade(value: Any, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not MIN_GRADE <= value <= MAX_GRADE:
        raise ContractViolationError(f"Grade must be an integer {MIN_GRADE}-{MAX_GRADE}, got {value!r}", field=field)
    return value


def _parse_points(value: Any, field: str) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= IB_MAX_POINTS:
        raise ContractViolationError(f"IB points must be an integer 0-{IB_MAX_POINTS}, got {value!r}", field=field)
    return value


def _parse_core_grade(value: Any, field: str) -> Optional[str]:
    if value is None or value == "":
        return None
    grade = str(value).strip().upper()
    if grade not in CORE_GRADES:
        raise ContractViolationError(f"Core grade must be one of {', '.join(CORE_GRADES)}, got {value!r}", field=field)
    return grade


def _parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO timestamp or date; unparseable values count as unknown."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Unparseable requirements timestamp %r, treating as unknown", value)
        return None


# =============================================================================
# STUDENTS
# =============================================================================

def transform_course(record: Mapping[str, Any], position: int = 0) -> CourseRecord:
    """Transform one course record ({ib_course: {id, name}, level, grade})."""
    course_ref = _first(record, "ib_course", "ibCourse", default={})
    subject_id = _first(record, "subject_id", "subjectId", "course_id", "courseId") or _ref_id(course_ref)
    if not subject_id:
        raise ContractViolationError("Course has no subject ID", field=f"courses[{position}]")

    return CourseRecord(
        subject_id=str(subject_id),
        subject_name=_first(record, "subject_name", "subjectName") or _safe_get(course_ref, "name", default=""),
        level=_parse_level(record.get("level"), f"courses[{position}].level"),
        grade=_parse_grade(record.get("grade"), f"courses[{position}].grade"),
    )


def transform_student(record: Mapping[str, Any]) -> StudentProfile:
    """
    Transform a student record into a StudentProfile.

    Args:
        record: Student mapping with courses and preference relations

    Returns:
        Validated StudentProfile

    Raises:
        ContractViolationError: on any domain-invalid value
    """
    courses = [
        transform_course(course, position)
        for position, course in enumerate(record.get("courses") or ())
    ]
    points = _parse_points(_first(record, "total_ib_points", "totalIBPoints", "total_points"), "total_ib_points")

    try:
        return StudentProfile(
            student_id=_ref_id(_first(record, "student_id", "id")) or None,
            total_points=points if points is not None else 0,
            courses=tuple(courses),
            tok_grade=_parse_core_grade(_first(record, "tok_grade", "tokGrade"), "tok_grade"),
            ee_grade=_parse_core_grade(_first(record, "ee_grade", "eeGrade"), "ee_grade"),
            interested_fields=_ref_ids(_first(record, "preferred_fields", "preferredFields", "interested_fields")),
            preferred_countries=_ref_ids(_first(record, "preferred_countries", "preferredCountries")),
            grades_are_final=bool(_first(record, "grades_are_final", "gradesAreFinal", default=True)),
            has_complete_profile=bool(_first(record, "has_complete_profile", "hasCompleteProfile", default=True)),
        )
    except ValidationError as e:
        raise ContractViolationError(f"Invalid student record: {e}", field="student") from e


# =============================================================================
# PROGRAMS
# =============================================================================

def derive_program_type(has_points: bool, has_subjects: bool) -> ProgramType:
    if has_points and has_subjects:
        return ProgramType.FULL_REQUIREMENTS
    if has_points:
        return ProgramType.POINTS_ONLY
    return ProgramType.SUBJECTS_ONLY


def transform_requirement(record: Mapping[str, Any], position: int = 0) -> SubjectRequirement:
    """Transform one course requirement ({ib_course, required_level, min_grade, is_critical})."""
    field = f"course_requirements[{position}]"
    course_ref = _first(record, "ib_course", "ibCourse", default={})
    subject_id = _first(record, "subject_id", "subjectId", "course_id", "courseId") or _ref_id(course_ref)
    if not subject_id:
        raise ContractViolationError("Requirement has no subject ID", field=field)

    return SubjectRequirement(
        subject_id=str(subject_id),
        subject_name=_first(record, "subject_name", "subjectName") or _safe_get(course_ref, "name", default=""),
        level=_parse_level(_first(record, "required_level", "requiredLevel", "level"), f"{field}.level"),
        min_grade=_parse_grade(_first(record, "min_grade", "minGrade"), f"{field}.min_grade"),
        critical=bool(_first(record, "is_critical", "isCritical", "critical", default=False)),
    )


def transform_program(record: Mapping[str, Any]) -> ProgramRequirements:
    """
    Transform a program record into ProgramRequirements.

    Requirements sharing an `or_group_id` become one OR-group (options in
    declared order, groups in order of first appearance). The program type
    is derived from which requirements are present.

    Args:
        record: Program mapping with university, field and requirement relations

    Returns:
        Validated ProgramRequirements

    Raises:
        ContractViolationError: on any domain-invalid value
    """
    program_id = _ref_id(_first(record, "program_id", "id"))
    if not program_id:
        raise ContractViolationError("Program has no ID", field="id")

    standalone: List[SubjectRequirement] = []
    groups: "OrderedDict[str, List[SubjectRequirement]]" = OrderedDict()
    for position, raw in enumerate(_first(record, "course_requirements", "courseRequirements", default=())):
        requirement = transform_requirement(raw, position)
        group_id = _first(raw, "or_group_id", "orGroupId")
        if group_id is None:
            standalone.append(requirement)
        else:
            groups.setdefault(str(group_id), []).append(requirement)

    min_points = _parse_points(_first(record, "min_ib_points", "minIBPoints", "min_points"), "min_ib_points")
    university = _first(record, "university", default={})
    country = _first(record, "country_id", "countryId") or _safe_get(university, "country")

    try:
        return ProgramRequirements(
            program_id=program_id,
            program_name=_first(record, "program_name", "name", default=""),
            university_id=_ref_id(university) or _ref_id(_first(record, "university_id", "universityId")),
            university_name=_safe_get(university, "name", default="") or _first(record, "university_name", default=""),
            program_type=derive_program_type(min_points is not None, bool(standalone or groups)),
            field_id=_ref_id(_first(record, "field_id", "fieldId", "field_of_study", "fieldOfStudy")),
            country_id=_ref_id(country),
            min_points=min_points,
            required_subjects=tuple(standalone),
            or_groups=tuple(ORGroupRequirement(options=tuple(options)) for options in groups.values()),
            requirements_verified=bool(_first(record, "requirements_verified", "requirementsVerified", default=False)),
            requirements_updated_at=_parse_datetime(_first(record, "requirements_updated_at", "requirementsUpdatedAt", "updated_at")),
        )
    except ValidationError as e:
        raise ContractViolationError(f"Invalid program record {program_id}: {e}", field="program") from e


def transform_programs(records: Iterable[Mapping[str, Any]], skip_invalid: bool = False) -> List[ProgramRequirements]:
    """
    Transform a batch of program records.

    Args:
        records: Program mappings
        skip_invalid: Log and drop invalid records instead of raising

    Returns:
        Programs in input order
    """
    programs = []
    for record in records:
        try:
            programs.append(transform_program(record))
        except ContractViolationError as e:
            if not skip_invalid:
                raise
            logger.warning("Skipping invalid program %s: %s", record.get("id"), e)
    return programs


# =============================================================================
# PREFERENCES
# =============================================================================

def validate_preferences(
    preferred_fields: Sequence[str],
    preferred_countries: Sequence[str],
    open_to_all_fields: bool = False,
    open_to_all_locations: bool = False
) -> PreferenceValidationResult:
    """
    Check a student's preference settings for contradictions.

    Specific preferences combined with "open to all" are errors. Empty
    preferences without the flag, and very long lists, are warnings.
    Validation never affects scores.
    """
    errors: List[PreferenceIssue] = []
    warnings: List[PreferenceIssue] = []

    checks = (
        ("fields", "field", preferred_fields, open_to_all_fields, MAX_FIELD_PREFERENCES),
        ("locations", "location", preferred_countries, open_to_all_locations, MAX_COUNTRY_PREFERENCES),
    )
    for key, noun, preferences, open_to_all, limit in checks:
        if not preferences and not open_to_all:
            warnings.append(PreferenceIssue(
                field=key,
                code="IMPLICIT_OPEN_TO_ALL",
                message=f'No {noun} preferences set and not explicitly open to all. '
                        f'Consider setting preferences or marking "open to all {key}".',
            ))
        if preferences and open_to_all:
            errors.append(PreferenceIssue(
                field=key,
                code="BOTH_PREFS_AND_FLAG",
                message=f'Cannot have both specific {noun} preferences and "open to all {key}" enabled.',
            ))
        if len(preferences) > limit:
            warnings.append(PreferenceIssue(
                field=key,
                code="TOO_MANY_PREFERENCES",
                message=f'Many {noun} preferences selected. Consider narrowing your focus or using "open to all".',
            ))

    return PreferenceValidationResult(errors=tuple(errors), warnings=tuple(warnings))
