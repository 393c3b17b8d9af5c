"""
Data Contracts for the Matching Engine

Defines Pydantic models for the student profile and program requirements
(input), the per-component match details, and the MatchResult (output).
These contracts are the API boundary for the matching engine. All models are
frozen: they are built once per request and never mutated.
"""

from datetime import datetime
from typing import Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field

from .constants import (
    AdjustmentKind,
    CapKind,
    ConfidenceLevel,
    CourseLevel,
    DEFAULT_POINTS_MARGIN,
    FitQualityCategory,
    MatchCategory,
    MatchStatus,
    ProgramType,
)


class FrozenModel(BaseModel):
    """Immutable, hashable base for all value types."""
    model_config = ConfigDict(frozen=True)


# =============================================================================
# INPUT CONTRACTS
# =============================================================================

class CourseRecord(FrozenModel):
    """One IB course a student has taken, with its grade."""
    subject_id: str
    subject_name: str = ""
    level: CourseLevel
    grade: int = Field(ge=1, le=7)


class StudentProfile(FrozenModel):
    """
    Input contract for the matching engine.
    Represents a student's IB results and preferences.
    """
    # Identity (optional, for tracking and cache keys)
    student_id: Optional[str] = None

    # Academic record
    total_points: int = Field(ge=0, le=45)
    courses: Tuple[CourseRecord, ...] = ()
    tok_grade: Optional[Literal["A", "B", "C", "D", "E"]] = None
    ee_grade: Optional[Literal["A", "B", "C", "D", "E"]] = None

    # Preferences (IDs, compared by exact equality)
    interested_fields: Tuple[str, ...] = ()
    preferred_countries: Tuple[str, ...] = ()

    # Data quality signals (used by confidence scoring only)
    grades_are_final: bool = True
    has_complete_profile: bool = True


class SubjectRequirement(FrozenModel):
    """A single subject/level/grade requirement."""
    kind: Literal["subject"] = "subject"
    subject_id: str
    subject_name: str = ""
    level: CourseLevel
    min_grade: int = Field(ge=1, le=7)
    critical: bool = False


class ORGroupRequirement(FrozenModel):
    """A requirement met by any one of its options (e.g. Physics HL 5 OR Chemistry HL 5)."""
    kind: Literal["or_group"] = "or_group"
    options: Tuple[SubjectRequirement, ...] = ()

    @computed_field  # type: ignore[misc]
    @property
    def critical(self) -> bool:
        return any(option.critical for option in self.options)


Requirement = Union[SubjectRequirement, ORGroupRequirement]


class ProgramRequirements(FrozenModel):
    """A university program and what it asks of applicants."""
    program_id: str
    program_name: str = ""
    university_id: str = ""
    university_name: str = ""

    program_type: ProgramType = ProgramType.FULL_REQUIREMENTS
    field_id: str = ""
    country_id: str = ""

    min_points: Optional[int] = Field(default=None, ge=0, le=45)
    required_subjects: Tuple[SubjectRequirement, ...] = ()
    or_groups: Tuple[ORGroupRequirement, ...] = ()

    # Data quality signals (used by confidence scoring only)
    requirements_verified: bool = False
    requirements_updated_at: Optional[datetime] = None

    @property
    def has_points_requirement(self) -> bool:
        return bool(self.min_points)

    @property
    def requirement_count(self) -> int:
        return len(self.required_subjects) + len(self.or_groups)


class WeightConfig(FrozenModel):
    """Relative weights of the academic, location and field components."""
    academic: float = Field(ge=0.0)
    location: float = Field(ge=0.0)
    field: float = Field(ge=0.0)

    def normalized(self) -> "WeightConfig":
        total = self.academic + self.location + self.field
        return WeightConfig(
            academic=self.academic / total,
            location=self.location / total,
            field=self.field / total,
        )


class CandidateFilters(FrozenModel):
    """Student-derived filters used to shortlist programs from the index."""
    student_points: Optional[int] = None
    points_margin: int = DEFAULT_POINTS_MARGIN
    field_ids: Tuple[str, ...] = ()
    country_ids: Tuple[str, ...] = ()


# =============================================================================
# COMPONENT SCORES
# =============================================================================

class PreferenceMatch(FrozenModel):
    """Field (F_M) or location (L_M) membership score."""
    score: float = Field(ge=0.0, le=1.0)
    is_match: bool
    no_preferences: bool


class SubjectMatchDetail(FrozenModel):
    """How well one requirement (standalone or OR-group) is met."""
    requirement: Requirement = Field(discriminator="kind")
    score: float = Field(ge=0.0, le=1.0)
    status: MatchStatus
    reason: Optional[str] = None
    # The option that produced the best score (OR-groups only)
    matched_subject_id: Optional[str] = None
    matched_subject_name: Optional[str] = None

    @property
    def critical(self) -> bool:
        return self.requirement.critical


class AcademicMatchScore(FrozenModel):
    """Academic match (G_M): subjects plus points."""
    score: float = Field(ge=0.0, le=1.0)
    subjects_score: float = Field(ge=0.0, le=1.0)
    meets_points: bool
    points_shortfall: int = 0
    subject_matches: Tuple[SubjectMatchDetail, ...] = ()
    missing_critical_count: int = 0
    missing_non_critical_count: int = 0

    @property
    def meets_all_subjects(self) -> bool:
        return all(m.status == MatchStatus.FULL_MATCH for m in self.subject_matches)


# =============================================================================
# OUTPUT CONTRACTS
# =============================================================================

class Adjustment(FrozenModel):
    """One cap, penalty, floor or guarantee applied by the penalty engine."""
    kind: AdjustmentKind
    value: float
    reason: str
    cap_kind: Optional[CapKind] = None


class MatchAdjustments(FrozenModel):
    """Everything the penalty engine did to the raw weighted score."""
    raw_score: float
    selectivity_boost: float = 0.0
    final_score: float = Field(ge=0.0, le=1.0)
    caps: Dict[CapKind, float] = Field(default_factory=dict)
    penalty_factor: Optional[float] = None
    non_academic_floor: float = 0.0
    minimum_guarantee: Optional[float] = None
    reasons: Tuple[str, ...] = ()
    applied: Tuple[Adjustment, ...] = ()


class MatchResult(FrozenModel):
    """Complete match result for one student/program pair."""
    program_id: str
    overall_score: float = Field(ge=0.0, le=1.0)
    academic_match: AcademicMatchScore
    location_match: PreferenceMatch
    field_match: PreferenceMatch
    weights_used: WeightConfig
    adjustments: MatchAdjustments

    @property
    def academic_score(self) -> float:
        return self.academic_match.score

    @property
    def location_score(self) -> float:
        return self.location_match.score

    @property
    def field_score(self) -> float:
        return self.field_match.score


# =============================================================================
# ENHANCED RESULT CONTRACTS
# =============================================================================

class CategorizationFactor(FrozenModel):
    """A signal that pushed the category up or down."""
    type: Literal["SCORE", "POINTS", "SUBJECTS", "CRITICAL"]
    contribution: Literal["positive", "neutral", "negative"]
    description: str


class CategorizationResult(FrozenModel):
    category: MatchCategory
    label: str
    description: str
    indicator: Literal["high", "medium", "low"]
    factors: Tuple[CategorizationFactor, ...] = ()


class ConfidenceFactor(FrozenModel):
    """A data-quality signal and how much it lowered confidence."""
    type: str
    impact: float
    description: str


class ConfidenceResult(FrozenModel):
    score: float = Field(ge=0.0, le=1.0)
    level: ConfidenceLevel
    factors: Tuple[ConfidenceFactor, ...] = ()


class FitQualityBreakdown(FrozenModel):
    points_fit_score: float
    points_fit_category: FitQualityCategory
    selectivity_tier: int = Field(ge=1, le=4)
    tier_name: str
    selectivity_boost: float = 0.0


class EnhancedMatchResult(MatchResult):
    """MatchResult plus category, confidence and fit-quality breakdown."""
    category: CategorizationResult
    confidence: ConfidenceResult
    fit_quality: FitQualityBreakdown


# =============================================================================
# BATCH OUTPUT
# =============================================================================

class BatchStats(FrozenModel):
    """Timing and candidate counts for one batch ranking."""
    total_programs: int = 0
    candidates_after_filter: int = 0
    reduction_ratio: float = 1.0
    total_time_ms: float = 0.0
    filter_time_ms: float = 0.0
    match_time_ms: float = 0.0
    fallback_tier: int = 1
    cache_hits: int = 0
    cache_misses: int = 0


class BatchMatchOutput(FrozenModel):
    """Ranked results of a batch run with its stats."""
    results: Tuple[MatchResult, ...] = ()
    stats: BatchStats = Field(default_factory=BatchStats)

    def program_ids(self) -> List[str]:
        return [r.program_id for r in self.results]


# =============================================================================
# BOUNDARY VALIDATION
# =============================================================================

class PreferenceIssue(FrozenModel):
    field: Literal["fields", "locations"]
    code: str
    message: str


class PreferenceValidationResult(FrozenModel):
    """Outcome of checking a student's preference settings."""
    errors: Tuple[PreferenceIssue, ...] = ()
    warnings: Tuple[PreferenceIssue, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.errors
