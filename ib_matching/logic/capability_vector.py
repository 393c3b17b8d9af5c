"""
Capability Vector

Per-student precomputed subject lookups. Built once per batch so that the
subject matcher reads a dict instead of scanning the course list for every
requirement of every program.
"""

from typing import Dict, Optional, Sequence, Tuple

from .contracts import CourseRecord, StudentProfile
from .constants import CourseLevel


class CapabilityVector:
    """
    O(1) subject lookups for one student.

    `best_course` resolves a subject ID with the same rule as a list scan:
    the HL entry when the subject is listed at both levels, otherwise the
    first listed entry.
    """

    __slots__ = ("courses", "total_points", "_by_subject_level", "_best",
                 "max_grade", "course_count", "hl_count")

    def __init__(self, courses: Sequence[CourseRecord], total_points: int = 0):
        self.courses: Tuple[CourseRecord, ...] = tuple(courses)
        self.total_points = total_points
        self._by_subject_level: Dict[Tuple[str, CourseLevel], int] = {}
        self._best: Dict[str, CourseRecord] = {}

        for course in self.courses:
            self._by_subject_level.setdefault((course.subject_id, course.level), course.grade)
            current = self._best.get(course.subject_id)
            if current is None or (course.level == CourseLevel.HL and current.level != CourseLevel.HL):
                self._best[course.subject_id] = course

        self.max_grade = max((c.grade for c in self.courses), default=0)
        self.course_count = len(self.courses)
        self.hl_count = sum(1 for c in self.courses if c.level == CourseLevel.HL)

    @classmethod
    def from_student(cls, student: StudentProfile) -> "CapabilityVector":
        return cls(student.courses, student.total_points)

    @property
    def fingerprint(self) -> Tuple[CourseRecord, ...]:
        """Structural identity used in memo-cache keys."""
        return self.courses

    def best_course(self, subject_id: str) -> Optional[CourseRecord]:
        return self._best.get(subject_id)

    def grade_for(self, subject_id: str, level: CourseLevel) -> Optional[int]:
        return self._by_subject_level.get((subject_id, level))

    def best_grade(self, subject_id: str) -> Optional[int]:
        course = self._best.get(subject_id)
        return course.grade if course else None

    def has_subject(self, subject_id: str) -> bool:
        return subject_id in self._best
