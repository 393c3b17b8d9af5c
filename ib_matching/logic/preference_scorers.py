"""
Preference Scorers

Field and location membership scoring. Both return a PreferenceMatch with a
score of 1.0 on membership and 0.0 otherwise; they differ only in what an
empty preference list means. IDs compare by exact equality.
"""

from typing import Iterable

from .contracts import PreferenceMatch
from .constants import (
    FIELD_NO_PREFERENCE_SCORE,
    LOCATION_NO_PREFERENCE_SCORE,
    PREFERENCE_MATCH_SCORE,
    PREFERENCE_MISMATCH_SCORE,
)


def _membership_score(
    preferences: Iterable[str],
    candidate_id: str,
    no_preference_score: float
) -> PreferenceMatch:
    preferences = tuple(preferences)
    if not preferences:
        return PreferenceMatch(
            score=no_preference_score,
            is_match=False,
            no_preferences=True,
        )

    is_match = candidate_id in preferences
    return PreferenceMatch(
        score=PREFERENCE_MATCH_SCORE if is_match else PREFERENCE_MISMATCH_SCORE,
        is_match=is_match,
        no_preferences=False,
    )


def score_field_match(interested_fields: Iterable[str], field_id: str) -> PreferenceMatch:
    """
    Score a program's field against the student's interested fields.

    A student with no field interests gets a neutral 0.5.
    """
    return _membership_score(interested_fields, field_id, FIELD_NO_PREFERENCE_SCORE)


def score_location_match(preferred_countries: Iterable[str], country_id: str) -> PreferenceMatch:
    """
    Score a program's country against the student's preferred countries.

    A student with no country preference is open to anywhere and gets 1.0.
    """
    return _membership_score(preferred_countries, country_id, LOCATION_NO_PREFERENCE_SCORE)
