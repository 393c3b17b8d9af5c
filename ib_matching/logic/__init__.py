"""
Matching Logic Module

Provides the deterministic scoring engine for IB student / program matching.
"""

from .contracts import (
    CourseRecord,
    StudentProfile,
    SubjectRequirement,
    ORGroupRequirement,
    ProgramRequirements,
    WeightConfig,
    CandidateFilters,
    MatchResult,
    EnhancedMatchResult,
    BatchMatchOutput,
)
from .engine import MatchingEngine, score_one, score_many, score_many_optimized
from .constants import CourseLevel, MatchCategory, MatchingMode, ProgramType
from .errors import MatchingError, ContractViolationError

__all__ = [
    # Main engine
    "MatchingEngine",
    "score_one",
    "score_many",
    "score_many_optimized",

    # Contracts
    "CourseRecord",
    "StudentProfile",
    "SubjectRequirement",
    "ORGroupRequirement",
    "ProgramRequirements",
    "WeightConfig",
    "CandidateFilters",
    "MatchResult",
    "EnhancedMatchResult",
    "BatchMatchOutput",

    # Enums
    "CourseLevel",
    "MatchCategory",
    "MatchingMode",
    "ProgramType",

    # Errors
    "MatchingError",
    "ContractViolationError",
]
