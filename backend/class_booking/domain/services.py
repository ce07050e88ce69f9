from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Iterator, Mapping, Optional

from ..models import ClassStatus
from ..schemas import Booking, ClassSession, CourseTemplate
from ..utils.time import parse_iso_utc

SLOTS_FIELD = "slotsAvailable"
STATUS_FIELD = "status"

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class Identity:
    """The signed-in user as supplied by the identity provider."""

    user_id: str
    display_name: Optional[str] = None
    email: Optional[str] = None


def effective_capacity(session: ClassSession, course: Optional[CourseTemplate]) -> int:
    """Per-class override when set and positive, else the course default, else 0."""
    if session.actual_capacity is not None and session.actual_capacity > 0:
        return session.actual_capacity
    if course is not None and course.capacity > 0:
        return course.capacity
    return 0


def is_bookable(session: ClassSession) -> bool:
    return session.status == ClassStatus.ACTIVE


def _record_status(record: Mapping[str, Any]) -> Optional[str]:
    raw = record.get(STATUS_FIELD)
    return raw.strip().lower() if isinstance(raw, str) else None


def reserve_seat(record: Any, *, capacity: int) -> Optional[dict[str, Any]]:
    """
    Transaction body for booking: decrement slotsAvailable iff it is > 0.

    Returns None (abort) when the class is gone, no longer active, or full.
    A class that never had a counter starts from its effective capacity.
    """
    if not isinstance(record, dict):
        return None
    if _record_status(record) != ClassStatus.ACTIVE.value:
        return None
    slots = record.get(SLOTS_FIELD)
    if not isinstance(slots, int) or isinstance(slots, bool):
        slots = capacity
    if slots <= 0:
        return None
    record[SLOTS_FIELD] = slots - 1
    return record


def release_seat(record: Any, *, capacity: Optional[int]) -> Optional[dict[str, Any]]:
    """
    Transaction body for cancellation: increment slotsAvailable.

    Aborts when the class is gone or has no counter, and when the increment
    would push the counter past `capacity` (pass None to disable the clamp).
    """
    if not isinstance(record, dict):
        return None
    slots = record.get(SLOTS_FIELD)
    if not isinstance(slots, int) or isinstance(slots, bool):
        return None
    if capacity is not None and capacity > 0 and slots + 1 > capacity:
        return None
    record[SLOTS_FIELD] = slots + 1
    return record


def reset_seats(record: Any, *, available: int) -> Optional[dict[str, Any]]:
    if not isinstance(record, dict):
        return None
    record[SLOTS_FIELD] = available
    return record


def iter_records(snapshot: Any) -> Iterator[tuple[str, dict[str, Any]]]:
    """
    Yield (key, record) pairs from a collection snapshot.

    Collections written by older clients may come back as a list with null
    holes; list positions are used as keys.
    """
    if isinstance(snapshot, dict):
        items: Iterable[tuple[str, Any]] = snapshot.items()
    elif isinstance(snapshot, list):
        items = ((str(index), value) for index, value in enumerate(snapshot))
    else:
        return
    for key, value in items:
        if isinstance(value, dict):
            yield str(key), value


def _booking_sort_key(booking: Booking) -> datetime:
    return parse_iso_utc(booking.booking_date) or _EPOCH


def enrich_bookings(bookings: Iterable[Booking], class_map: Mapping[str, ClassSession]) -> list[Booking]:
    """
    Overlay each booking's classStatus with the live class status (when the
    class is still present) and sort most recent first.
    """
    enriched: list[Booking] = []
    for booking in bookings:
        live = class_map.get(booking.class_id)
        status = live.status if live is not None and live.status is not None else booking.class_status
        enriched.append(booking.model_copy(update={"class_status": status}))
    enriched.sort(key=_booking_sort_key, reverse=True)
    return enriched
