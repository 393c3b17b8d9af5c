"""
Matching Engine Constants

Defines all enums, weight modes, thresholds and curve parameters used by the
matching engine. All values are deterministic with no AI/ML components.
"""

from enum import Enum
from typing import Dict


# =============================================================================
# ENUMS
# =============================================================================

class CourseLevel(str, Enum):
    """IB course level."""
    HL = "HL"  # Higher Level
    SL = "SL"  # Standard Level


class ProgramType(str, Enum):
    """Which kinds of requirements a program publishes."""
    FULL_REQUIREMENTS = "FULL_REQUIREMENTS"  # points and subjects
    POINTS_ONLY = "POINTS_ONLY"
    SUBJECTS_ONLY = "SUBJECTS_ONLY"


class MatchStatus(str, Enum):
    """Outcome of matching one subject requirement."""
    FULL_MATCH = "FULL_MATCH"
    PARTIAL_MATCH = "PARTIAL_MATCH"
    NO_MATCH = "NO_MATCH"


class LevelRelation(str, Enum):
    """How a student's course level relates to a required level."""
    EXACT_OR_HIGHER = "EXACT_OR_HIGHER"  # same level, or HL covering SL
    SL_FOR_HL = "SL_FOR_HL"


class MatchingMode(str, Enum):
    """Predefined weight configurations."""
    BALANCED = "BALANCED"
    ACADEMIC_FOCUSED = "ACADEMIC_FOCUSED"
    LOCATION_FOCUSED = "LOCATION_FOCUSED"


class CapKind(str, Enum):
    """Absolute caps, listed from tightest to loosest."""
    MISSING_CRITICAL_SUBJECT = "missing_critical_subject"
    MISSING_NON_CRITICAL_SUBJECT = "missing_non_critical_subject"
    CRITICAL_NEAR_MISS = "critical_near_miss"
    UNMET_REQUIREMENTS = "unmet_requirements"


class AdjustmentKind(str, Enum):
    """Kinds of records produced by the penalty engine."""
    CAP = "CAP"
    PENALTY = "PENALTY"
    FLOOR = "FLOOR"
    GUARANTEE = "GUARANTEE"


class MatchCategory(str, Enum):
    """Admission likelihood categories, most to least likely."""
    SAFETY = "SAFETY"
    MATCH = "MATCH"
    REACH = "REACH"
    UNLIKELY = "UNLIKELY"


class ConfidenceLevel(str, Enum):
    """Reliability of a match prediction."""
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class FitQualityCategory(str, Enum):
    """Where the student's points sit relative to the requirement."""
    FAR_BELOW = "FAR_BELOW"
    BELOW = "BELOW"
    OPTIMAL = "OPTIMAL"
    ABOVE = "ABOVE"
    FAR_ABOVE = "FAR_ABOVE"


# =============================================================================
# IB SCALE
# =============================================================================

IB_MIN_DIPLOMA = 24  # Minimum points to be awarded the Diploma
IB_MAX_POINTS = 45
MIN_GRADE = 1
MAX_GRADE = 7
CORE_GRADES = ("A", "B", "C", "D", "E")  # TOK / Extended Essay

# =============================================================================
# WEIGHT MODES
# =============================================================================

# (academic, location, field) per mode, each sums to 1.0
WEIGHT_MODES: Dict[MatchingMode, Dict[str, float]] = {
    MatchingMode.BALANCED: {"academic": 0.6, "location": 0.3, "field": 0.1},
    MatchingMode.ACADEMIC_FOCUSED: {"academic": 0.8, "location": 0.1, "field": 0.1},
    MatchingMode.LOCATION_FOCUSED: {"academic": 0.4, "location": 0.5, "field": 0.1},
}

DEFAULT_MODE = MatchingMode.BALANCED

# =============================================================================
# PREFERENCE SCORES
# =============================================================================

FIELD_NO_PREFERENCE_SCORE = 0.5
LOCATION_NO_PREFERENCE_SCORE = 1.0  # Neutral-optimistic, unlike fields
PREFERENCE_MATCH_SCORE = 1.0
PREFERENCE_MISMATCH_SCORE = 0.0

MAX_FIELD_PREFERENCES = 10
MAX_COUNTRY_PREFERENCES = 15

# =============================================================================
# SUBJECT SCORING
# =============================================================================

ONE_GRADE_BELOW_CRITICAL = 0.85
ONE_GRADE_BELOW_NON_CRITICAL = 0.78
SHORTFALL_SCALE = 0.9
SHORTFALL_FLOOR = 0.25

SL_FOR_HL_STRONG_SCORE = 0.8  # SL7 for HL<=6, SL6 for HL<=5
SL_FOR_HL_EQUIVALENT_SCORE = 0.75  # SL grade minus 2 still meets HL requirement
SL_TO_HL_GRADE_OFFSET = 2
SL_FOR_HL_MISMATCH_FACTOR = 0.7

# =============================================================================
# ACADEMIC AGGREGATION
# =============================================================================

POINTS_ONLY_FLOOR = 0.3
POINTS_ONLY_CEILING = 0.9
POINTS_NEAR_MISS_DEFICIT = 3
POINTS_NEAR_MISS_FACTOR = 0.8
POINTS_PENALTY_FLOOR = 0.5

# =============================================================================
# FIT QUALITY CURVE
# =============================================================================

OPTIMAL_BUFFER = 3  # Points above required for maximum fit
UNDER_QUALIFIED_FLOOR = 0.3
UNDER_QUALIFIED_CEILING = 0.9
OVER_QUALIFIED_FLOOR = 0.8
EXACT_MATCH_SCORE = 0.95
OPTIMAL_MATCH_SCORE = 1.0
FAR_BELOW_MARGIN = 5
FAR_ABOVE_MARGIN = 10

# Required points assumed for display breakdowns when a program has none
DEFAULT_REQUIRED_POINTS = 30

# =============================================================================
# SELECTIVITY
# =============================================================================

HIGH_ACHIEVER_THRESHOLD = 38

# (minimum points, tier), checked in order; anything lower is tier 4
SELECTIVITY_TIER_THRESHOLDS = (
    (40, 1),  # Highly Selective
    (36, 2),  # Selective
    (32, 3),  # Moderately Selective
)
STANDARD_TIER = 4

TIER_BOOSTS: Dict[int, float] = {
    1: 0.05,
    2: 0.03,
    3: 0.01,
    4: 0.0,
}

TIER_NAMES: Dict[int, str] = {
    1: "Highly Selective",
    2: "Selective",
    3: "Moderately Selective",
    4: "Standard",
}

# =============================================================================
# PENALTIES AND CAPS
# =============================================================================

CAP_VALUES: Dict[CapKind, float] = {
    CapKind.MISSING_CRITICAL_SUBJECT: 0.45,
    CapKind.MISSING_NON_CRITICAL_SUBJECT: 0.70,
    CapKind.CRITICAL_NEAR_MISS: 0.80,
    CapKind.UNMET_REQUIREMENTS: 0.90,
}

NEAR_MISS_MIN_SCORE = 0.75
MULTIPLE_REQUIREMENTS_MIN = 2
PARTIAL_PENALTY_WEIGHT = 0.5
PENALTY_STRENGTH = 0.4
NON_ACADEMIC_FLOOR_FACTOR = 0.8
MINIMUM_GUARANTEE_SCORE = 0.15

# =============================================================================
# CATEGORIZATION THRESHOLDS
# =============================================================================

SAFETY_MIN_SCORE = 0.92
MATCH_MIN_SCORE = 0.78
REACH_MIN_SCORE = 0.55
REACH_NEAR_MISS_SCORE = 0.45

SAFETY_MIN_MARGIN = 5
MATCH_MIN_MARGIN = 0
REACH_MIN_MARGIN = -3

CATEGORY_INFO: Dict[MatchCategory, Dict[str, str]] = {
    MatchCategory.SAFETY: {
        "label": "Safety",
        "description": "You exceed the requirements. High likelihood of admission.",
    },
    MatchCategory.MATCH: {
        "label": "Match",
        "description": "You meet the requirements. Good chance of admission.",
    },
    MatchCategory.REACH: {
        "label": "Reach",
        "description": "Aspirational choice. You may need to strengthen your application in other areas.",
    },
    MatchCategory.UNLIKELY: {
        "label": "Unlikely",
        "description": "Significant gaps exist. Consider this as a backup or for future planning.",
    },
}

# =============================================================================
# CONFIDENCE
# =============================================================================

CONFIDENCE_IMPACTS: Dict[str, float] = {
    "PREDICTED_GRADES": 0.08,
    "MISSING_SUBJECT_GRADES": 0.05,  # Per missing subject
    "INCOMPLETE_PROFILE": 0.10,
    "UNVERIFIED_REQUIREMENTS": 0.12,
    "OUTDATED_REQUIREMENTS": 0.08,
    "MISSING_POINTS_REQUIREMENT": 0.05,
    "FEW_DATA_POINTS": 0.15,
}

EXPECTED_SUBJECT_COUNT = 6
REQUIREMENTS_MAX_AGE_DAYS = 365
HIGH_CONFIDENCE_THRESHOLD = 0.85
MEDIUM_CONFIDENCE_THRESHOLD = 0.65

# =============================================================================
# INDEXING AND BATCHING
# =============================================================================

POINTS_BUCKET_WIDTH = 5
NO_POINTS_BUCKET = 0
DEFAULT_POINTS_MARGIN = 10
RELAXED_POINTS_MARGIN = 20
WIDE_POINTS_MARGIN = 30
MINIMUM_CANDIDATES = 10
INDEX_MIN_CATALOG_SIZE = 50

DEFAULT_MEMO_CACHE_SIZE = 1000
RESULT_CACHE_TTL_SECONDS = 1800

# =============================================================================
# METRICS
# =============================================================================

MAX_STORED_METRICS = 1000
HEALTH_MAX_AVG_LATENCY_MS = 100.0
HEALTH_MIN_CACHE_HIT_RATE = 0.5
HEALTH_MAX_CATEGORY_SHARE = 0.8
