"""
Program Index

Multi-key index over the program catalog used to shortlist candidates before
scoring. Programs are indexed by points bucket (width 5), field ID, country ID
and required subject ID. Filtering intersects the active filters; it is a
performance shortcut only and never changes how a program is scored.
"""

import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Set

from .contracts import CandidateFilters, ProgramRequirements
from .constants import DEFAULT_POINTS_MARGIN, NO_POINTS_BUCKET, POINTS_BUCKET_WIDTH

logger = logging.getLogger(__name__)


def points_bucket(min_points: Optional[int]) -> int:
    """Round a points minimum down to its bucket; no minimum goes to bucket 0."""
    if min_points is None:
        return NO_POINTS_BUCKET
    return (min_points // POINTS_BUCKET_WIDTH) * POINTS_BUCKET_WIDTH


def calculate_reduction_ratio(total_programs: int, filtered_count: int) -> float:
    if filtered_count == 0:
        return float(total_programs)
    return total_programs / filtered_count


class ProgramIndex:
    """
    Catalog index with set-based filters.

    Candidate IDs are always returned in catalog order so that downstream
    ranking is independent of set iteration order.
    """

    def __init__(self, programs: Iterable[ProgramRequirements] = ()):
        self.rebuild(programs)

    def rebuild(self, programs: Iterable[ProgramRequirements]) -> None:
        by_points: Dict[int, Set[str]] = defaultdict(set)
        by_field: Dict[str, Set[str]] = defaultdict(set)
        by_country: Dict[str, Set[str]] = defaultdict(set)
        by_subject: Dict[str, Set[str]] = defaultdict(set)
        catalog: Dict[str, ProgramRequirements] = {}

        for program in programs:
            pid = program.program_id
            catalog[pid] = program
            by_points[points_bucket(program.min_points)].add(pid)

            if program.field_id:
                by_field[program.field_id].add(pid)
            if program.country_id:
                by_country[program.country_id].add(pid)

            for requirement in program.required_subjects:
                by_subject[requirement.subject_id].add(pid)
            for group in program.or_groups:
                for option in group.options:
                    by_subject[option.subject_id].add(pid)

        self._by_points = dict(by_points)
        self._by_field = dict(by_field)
        self._by_country = dict(by_country)
        self._by_subject = dict(by_subject)
        self._programs = catalog
        self._order = {pid: position for position, pid in enumerate(catalog)}

        logger.debug("Program index built: %s", self.stats())

    def invalidate(self) -> None:
        self.rebuild(())

    def __len__(self) -> int:
        return len(self._programs)

    @property
    def size(self) -> int:
        return len(self._programs)

    @property
    def programs(self) -> Dict[str, ProgramRequirements]:
        return self._programs

    def get(self, program_id: str) -> Optional[ProgramRequirements]:
        return self._programs.get(program_id)

    def all_program_ids(self) -> List[str]:
        return list(self._programs)

    # =========================================================================
    # FILTERS
    # =========================================================================

    def filter_by_points(self, student_points: int, margin: int = DEFAULT_POINTS_MARGIN) -> Set[str]:
        """Programs whose bucket lies within student_points +/- margin, plus bucket 0."""
        result = set(self._by_points.get(NO_POINTS_BUCKET, ()))
        low = points_bucket(student_points - margin)
        high = points_bucket(student_points + margin)
        for bucket in range(low, high + 1, POINTS_BUCKET_WIDTH):
            result.update(self._by_points.get(bucket, ()))
        return result

    def filter_by_field(self, field_ids: Iterable[str]) -> Set[str]:
        result: Set[str] = set()
        for field_id in field_ids:
            result.update(self._by_field.get(field_id, ()))
        return result

    def filter_by_country(self, country_ids: Iterable[str]) -> Set[str]:
        result: Set[str] = set()
        for country_id in country_ids:
            result.update(self._by_country.get(country_id, ()))
        return result

    def filter_by_subject(self, subject_id: str) -> Set[str]:
        return set(self._by_subject.get(subject_id, ()))

    def filter_candidates(self, filters: CandidateFilters) -> List[str]:
        """
        Intersect all active filters.

        Empty field or country lists mean the student is open to all and do
        not filter. With no active filter every program is returned.

        Args:
            filters: Student-derived filter criteria

        Returns:
            Candidate program IDs in catalog order
        """
        sets: List[Set[str]] = []
        if filters.student_points is not None:
            sets.append(self.filter_by_points(filters.student_points, filters.points_margin))
        if filters.field_ids:
            sets.append(self.filter_by_field(filters.field_ids))
        if filters.country_ids:
            sets.append(self.filter_by_country(filters.country_ids))

        if not sets:
            return self.all_program_ids()

        sets.sort(key=len)
        matched = set.intersection(*sets)
        return sorted(matched, key=self._order.__getitem__)

    def reduction_ratio(self, filtered_count: int) -> float:
        return calculate_reduction_ratio(self.size, filtered_count)

    def stats(self) -> Dict[str, int]:
        return {
            "total_programs": len(self._programs),
            "points_buckets": len(self._by_points),
            "fields_indexed": len(self._by_field),
            "countries_indexed": len(self._by_country),
            "subjects_indexed": len(self._by_subject),
        }
