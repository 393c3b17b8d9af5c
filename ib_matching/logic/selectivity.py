"""
Selectivity Tiers

Classifies programs by competitiveness (from their minimum points) and
rewards high achievers who aim at competitive programs with a small additive
boost. Students below the high-achiever threshold are never boosted.
"""

from typing import Optional

from .constants import (
    HIGH_ACHIEVER_THRESHOLD,
    SELECTIVITY_TIER_THRESHOLDS,
    STANDARD_TIER,
    TIER_BOOSTS,
    TIER_NAMES,
)


def calculate_selectivity_tier(required_points: Optional[int]) -> int:
    """Tier 1 (>=40) to 4 (<32 or no minimum)."""
    if required_points is None:
        return STANDARD_TIER
    for min_points, tier in SELECTIVITY_TIER_THRESHOLDS:
        if required_points >= min_points:
            return tier
    return STANDARD_TIER


def selectivity_tier_name(tier: int) -> str:
    return TIER_NAMES[tier]


def is_high_achiever(student_points: int) -> bool:
    return student_points >= HIGH_ACHIEVER_THRESHOLD


def selectivity_boost(student_points: int, tier: int) -> float:
    """Boost amount a student would receive on a program of this tier."""
    if not is_high_achiever(student_points):
        return 0.0
    return TIER_BOOSTS[tier]


def apply_selectivity_boost(base_score: float, student_points: int, tier: int) -> float:
    """
    Add the tier boost to a base score for high achievers.

    Args:
        base_score: Score before the boost
        student_points: Student's total IB points
        tier: Program selectivity tier (1-4)

    Returns:
        Boosted score, capped at 1.0
    """
    boost = selectivity_boost(student_points, tier)
    if not boost:
        return base_score
    return min(1.0, base_score + boost)
