import pytest
from class_booking.domain.services import (
    effective_capacity,
    enrich_bookings,
    is_bookable,
    iter_records,
    release_seat,
    reserve_seat,
    reset_seats,
)
from class_booking.models import ClassStatus
from class_booking.schemas import Booking, ClassSession, CourseTemplate


def _booking(class_id: str, booked_at: str, status: str = "active") -> Booking:
    return Booking(
        id=f"U1_{class_id}",
        user_id="U1",
        class_id=class_id,
        booking_date=booked_at,
        class_status=status,
    )


def test_reserve_takes_one_seat() -> None:
    assert reserve_seat({"slotsAvailable": 2, "status": "active"}, capacity=5) == {
        "slotsAvailable": 1,
        "status": "active",
    }


def test_reserve_aborts_on_last_seat_taken() -> None:
    assert reserve_seat({"slotsAvailable": 0, "status": "active"}, capacity=5) is None


@pytest.mark.parametrize("status", ["cancelled", "Completed", None, "paused"])
def test_reserve_aborts_unless_active(status: object) -> None:
    assert reserve_seat({"slotsAvailable": 2, "status": status}, capacity=5) is None


def test_reserve_accepts_capitalised_status() -> None:
    assert reserve_seat({"slotsAvailable": 1, "status": " Active "}, capacity=5)["slotsAvailable"] == 0


def test_reserve_aborts_when_class_deleted() -> None:
    assert reserve_seat(None, capacity=5) is None


def test_reserve_without_counter_starts_from_capacity() -> None:
    assert reserve_seat({"status": "active"}, capacity=3)["slotsAvailable"] == 2
    assert reserve_seat({"status": "active"}, capacity=0) is None


def test_release_returns_one_seat() -> None:
    assert release_seat({"slotsAvailable": 0}, capacity=2) == {"slotsAvailable": 1}


def test_release_is_clamped_at_capacity() -> None:
    assert release_seat({"slotsAvailable": 2}, capacity=2) is None
    assert release_seat({"slotsAvailable": 2}, capacity=None) == {"slotsAvailable": 3}


def test_release_aborts_without_counter() -> None:
    assert release_seat({"status": "active"}, capacity=2) is None
    assert release_seat({"slotsAvailable": True}, capacity=2) is None
    assert release_seat(None, capacity=2) is None


def test_reset_overwrites_counter() -> None:
    assert reset_seats({"slotsAvailable": -3}, available=4) == {"slotsAvailable": 4}
    assert reset_seats(None, available=4) is None


def test_effective_capacity_prefers_positive_override() -> None:
    course = CourseTemplate(capacity=10)

    assert effective_capacity(ClassSession(actual_capacity=4), course) == 4
    assert effective_capacity(ClassSession(actual_capacity=0), course) == 10
    assert effective_capacity(ClassSession(), course) == 10
    assert effective_capacity(ClassSession(), None) == 0


def test_is_bookable_only_for_active() -> None:
    assert is_bookable(ClassSession(status="ACTIVE")) is True
    assert is_bookable(ClassSession(status=ClassStatus.CANCELLED)) is False
    assert is_bookable(ClassSession(status="unknown")) is False


def test_iter_records_handles_maps_and_sparse_lists() -> None:
    assert list(iter_records({"a": {"x": 1}, "b": "scalar"})) == [("a", {"x": 1})]
    assert list(iter_records([None, {"x": 1}, None, {"x": 2}])) == [("1", {"x": 1}), ("3", {"x": 2})]
    assert list(iter_records(None)) == []


def test_enrich_overlays_live_status_and_sorts_newest_first() -> None:
    bookings = [
        _booking("C1", "2025-01-01T09:00:00+00:00"),
        _booking("C2", "2025-01-03T09:00:00+00:00"),
        _booking("C3", "2025-01-02T09:00:00+00:00", status="completed"),
    ]
    classes = {
        "C1": ClassSession(key="C1", status="Cancelled"),
        "C3": ClassSession(key="C3", status=None),
    }

    enriched = enrich_bookings(bookings, classes)

    assert [b.class_id for b in enriched] == ["C2", "C3", "C1"]
    assert [b.class_status for b in enriched] == ["active", "completed", "cancelled"]
    # inputs are not mutated
    assert bookings[0].class_status == "active"


def test_enrich_puts_unparseable_dates_last() -> None:
    enriched = enrich_bookings(
        [_booking("C1", "not a date"), _booking("C2", "2025-01-01T00:00:00")],
        {},
    )

    assert [b.class_id for b in enriched] == ["C2", "C1"]
