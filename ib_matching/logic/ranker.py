"""
Ranker

Orders match results into a total, deterministic ranking: overall score
descending, ties broken by ascending program ID.
"""

from typing import Dict, Iterable, List, Optional

from .contracts import MatchResult
from .constants import MatchCategory


def ranking_key(result: MatchResult):
    return (-result.overall_score, result.program_id)


def rank_results(results: Iterable[MatchResult]) -> List[MatchResult]:
    """
    Rank results by overall score (descending), then program ID.

    Args:
        results: Match results in any order

    Returns:
        New sorted list; identical inputs always give identical output
    """
    return sorted(results, key=ranking_key)


def top_results(results: Iterable[MatchResult], limit: Optional[int] = None) -> List[MatchResult]:
    ranked = rank_results(results)
    if limit is None:
        return ranked
    return ranked[:limit]


def group_by_category(
    ranked: List[MatchResult],
    categories: Dict[str, MatchCategory]
) -> Dict[MatchCategory, List[MatchResult]]:
    """
    Split a ranked list by category, keeping rank order within each group.

    Args:
        ranked: Ranked results
        categories: program_id -> category

    Returns:
        Dict with every category as a key
    """
    grouped: Dict[MatchCategory, List[MatchResult]] = {cat: [] for cat in MatchCategory}
    for result in ranked:
        grouped[categories[result.program_id]].append(result)
    return grouped
