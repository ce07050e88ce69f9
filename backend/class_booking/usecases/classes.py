from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Literal, Optional

from ..domain.paths import CLASSES, COURSES, class_path, course_path
from ..domain.repositories import RecordStore
from ..domain.services import iter_records
from ..schemas import ClassSession, CourseTemplate
from ..utils.time import hour_of, parse_class_date

TimeOfDay = Literal["morning", "afternoon", "evening"]

_TIME_OF_DAY_HOURS: dict[str, tuple[int, int]] = {
    "morning": (6, 12),
    "afternoon": (12, 18),
    "evening": (18, 22),
}


@dataclass(frozen=True)
class ClassFilters:
    name: Optional[str] = None
    day_of_week: Optional[str] = None
    time_of_day: Optional[TimeOfDay] = None
    course_key: Optional[str] = None

    def is_empty(self) -> bool:
        return not (self.name or self.day_of_week or self.time_of_day or self.course_key)


def join_classes_with_courses(
    classes: Iterable[ClassSession],
    courses: Iterable[CourseTemplate],
) -> List[ClassSession]:
    """Embed each class's course by key. Classes with a dangling course key get course=None."""
    by_key = {course.key: course for course in courses if course.key}
    return [session.model_copy(update={"course": by_key.get(session.course_key)}) for session in classes]


def _matches(session: ClassSession, filters: ClassFilters) -> bool:
    course = session.course
    if course is None:
        return False
    if filters.name:
        needle = filters.name.lower()
        if needle not in course.class_type.lower() and needle not in session.assigned_instructor.lower():
            return False
    if filters.day_of_week and course.day_of_week.lower() != filters.day_of_week.lower():
        return False
    if filters.time_of_day:
        hour = hour_of(course.time)
        low, high = _TIME_OF_DAY_HOURS[filters.time_of_day]
        if hour is not None and not low <= hour < high:
            return False
    if filters.course_key and course.key != filters.course_key:
        return False
    return True


def filter_classes(classes: Iterable[ClassSession], filters: ClassFilters) -> List[ClassSession]:
    """Apply search filters, then order by class date (undated classes last)."""
    selected = list(classes) if filters.is_empty() else [c for c in classes if _matches(c, filters)]
    return sorted(selected, key=lambda c: parse_class_date(c.date) or date.max)


class ClassCatalog:
    """Read side for classes and courses."""

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    async def list_courses(self) -> List[CourseTemplate]:
        snapshot = await self._store.get(COURSES)
        return [CourseTemplate.from_record(key, record) for key, record in iter_records(snapshot)]

    async def list_classes(self) -> List[ClassSession]:
        snapshot = await self._store.get(CLASSES)
        return [ClassSession.from_record(key, record) for key, record in iter_records(snapshot)]

    async def list_classes_with_courses(self, filters: Optional[ClassFilters] = None) -> List[ClassSession]:
        joined = join_classes_with_courses(await self.list_classes(), await self.list_courses())
        return filter_classes(joined, filters or ClassFilters())

    async def get_course(self, course_key: str) -> Optional[CourseTemplate]:
        record = await self._store.get(course_path(course_key))
        if not isinstance(record, dict):
            return None
        return CourseTemplate.from_record(course_key, record)

    async def get_class(self, class_key: str) -> Optional[ClassSession]:
        record = await self._store.get(class_path(class_key))
        if not isinstance(record, dict):
            return None
        session = ClassSession.from_record(class_key, record)
        course = await self.get_course(session.course_key) if session.course_key else None
        return session.model_copy(update={"course": course})
