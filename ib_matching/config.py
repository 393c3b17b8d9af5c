"""
Matching configuration.

Settings come from the environment (a local .env file is loaded first).
Feature flags support a percentage rollout with stable per-user buckets, so a
given user always lands on the same side of a partial rollout.
"""

import os
from typing import Dict, List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

from .logic.constants import (
    DEFAULT_POINTS_MARGIN,
    INDEX_MIN_CATALOG_SIZE,
    MINIMUM_CANDIDATES,
    RESULT_CACHE_TTL_SECONDS,
)

load_dotenv()

FLAG_SELECTIVITY_BOOST = "MATCHING_SELECTIVITY_BOOST"
FLAG_PERFORMANCE = "MATCHING_PERFORMANCE"
FLAG_ENHANCED_RESULTS = "MATCHING_ENHANCED_RESULTS"
# Turns every other flag on (with its own rollout)
FLAG_FULL = "MATCHING_FULL"

MATCHING_FLAGS = (FLAG_SELECTIVITY_BOOST, FLAG_PERFORMANCE, FLAG_ENHANCED_RESULTS)

# Flags that are on unless switched off in the environment
FLAG_DEFAULTS = {
    FLAG_SELECTIVITY_BOOST: True,
    FLAG_PERFORMANCE: False,
    FLAG_ENHANCED_RESULTS: True,
    FLAG_FULL: False,
}

_TRUE_VALUES = ("true", "1", "yes", "on")


class FeatureFlag(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    rollout_percentage: int = Field(default=0, ge=0, le=100)


class MatchingSettings(BaseModel):
    """Runtime settings of the matching core and runner."""
    model_config = ConfigDict(frozen=True)

    result_cache_ttl: int = RESULT_CACHE_TTL_SECONDS
    memo_cache_size: int = Field(default=5000, ge=1)
    memo_cache_ttl: float = 0
    points_margin: int = DEFAULT_POINTS_MARGIN
    min_candidates: int = MINIMUM_CANDIDATES
    index_min_catalog: int = INDEX_MIN_CATALOG_SIZE
    metrics_log: bool = False
    flags: Dict[str, FeatureFlag] = Field(default_factory=lambda: _default_flags())

    def flag(self, name: str) -> FeatureFlag:
        return self.flags.get(name, FeatureFlag())


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _default_flags() -> Dict[str, FeatureFlag]:
    return {
        name: FeatureFlag(enabled=on, rollout_percentage=100 if on else 0)
        for name, on in FLAG_DEFAULTS.items()
    }


def _flag_from_env(name: str) -> FeatureFlag:
    enabled = _env_bool(name, FLAG_DEFAULTS.get(name, False))
    # Enabled without an explicit rollout means everyone
    rollout = _env_int(f"{name}_ROLLOUT", 100 if enabled else 0)
    return FeatureFlag(enabled=enabled, rollout_percentage=min(100, max(0, rollout)))


def get_settings() -> MatchingSettings:
    """Build settings from the current environment."""
    return MatchingSettings(
        result_cache_ttl=_env_int("MATCHING_RESULT_CACHE_TTL", RESULT_CACHE_TTL_SECONDS),
        memo_cache_size=max(1, _env_int("MATCHING_MEMO_CACHE_SIZE", 5000)),
        memo_cache_ttl=_env_float("MATCHING_MEMO_CACHE_TTL", 0),
        points_margin=_env_int("MATCHING_POINTS_MARGIN", DEFAULT_POINTS_MARGIN),
        min_candidates=_env_int("MATCHING_MIN_CANDIDATES", MINIMUM_CANDIDATES),
        index_min_catalog=_env_int("MATCHING_INDEX_MIN_CATALOG", INDEX_MIN_CATALOG_SIZE),
        metrics_log=_env_bool("MATCHING_METRICS_LOG"),
        flags={name: _flag_from_env(name) for name in MATCHING_FLAGS + (FLAG_FULL,)},
    )


def stable_hash(value: str) -> int:
    """
    Non-negative 32-bit string hash (h = 31*h + c over UTF-16 code units).

    Stable across processes, unlike the built-in hash().
    """
    h = 0
    encoded = value.encode("utf-16-le")
    for i in range(0, len(encoded), 2):
        h = (h * 31 + int.from_bytes(encoded[i:i + 2], "little")) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)


def rollout_bucket(user_id: Optional[str]) -> int:
    return stable_hash(user_id or "default") % 100


def _in_rollout(percentage: int, user_id: Optional[str]) -> bool:
    if percentage >= 100:
        return True
    if percentage <= 0:
        return False
    return rollout_bucket(user_id) < percentage


def is_feature_enabled(
    flag: str,
    user_id: Optional[str] = None,
    settings: Optional[MatchingSettings] = None
) -> bool:
    """
    Whether a feature flag is on for a user.

    Args:
        flag: Flag name, e.g. MATCHING_PERFORMANCE
        user_id: User (or student) ID used for the rollout bucket
        settings: Settings to read flags from (current environment if None)

    Returns:
        True when the flag (or the full-rollout flag) is enabled and the
        user's bucket falls inside its rollout percentage
    """
    settings = settings or get_settings()

    if flag != FLAG_FULL:
        full = settings.flag(FLAG_FULL)
        if full.enabled:
            return _in_rollout(full.rollout_percentage, user_id)

    config = settings.flag(flag)
    if not config.enabled:
        return False
    return _in_rollout(config.rollout_percentage, user_id)


def enabled_features(user_id: Optional[str] = None, settings: Optional[MatchingSettings] = None) -> List[str]:
    settings = settings or get_settings()
    return [flag for flag in MATCHING_FLAGS if is_feature_enabled(flag, user_id, settings)]
