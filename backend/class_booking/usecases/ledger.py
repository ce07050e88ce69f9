from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import Any, Awaitable, Optional, TypeVar

from ..domain.errors import (
    AlreadyBookedError,
    ClassFullError,
    ClassNotBookableError,
    ClassNotFoundError,
    CourseNotFoundError,
    NotAuthenticatedError,
    PartialDenormalizationFailure,
    StoreUnavailableError,
)
from ..domain.paths import booking_id, booking_path, class_bookings_path, class_path, course_path, validate_key
from ..domain.repositories import RecordStore
from ..domain.services import (
    SLOTS_FIELD,
    Identity,
    effective_capacity,
    is_bookable,
    release_seat,
    reserve_seat,
    reset_seats,
)
from ..schemas import Booking, ClassSession, CourseTemplate
from ..utils.audit_log import emit_audit_log
from .denormalization import DenormalizationManager

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _require_user(user: Optional[Identity]) -> Identity:
    if user is None or not user.user_id:
        raise NotAuthenticatedError("you must be signed in to manage bookings")
    return user


class CapacityLedger:
    """
    Admits or rejects seat reservations against a class's slotsAvailable
    counter. The counter is only ever changed through the store's optimistic
    transaction; the booking record and indexes follow as a separate write.
    """

    def __init__(
        self,
        store: RecordStore,
        denormalizer: DenormalizationManager,
        *,
        timeout: Optional[float] = None,
    ) -> None:
        self._store = store
        self._denormalizer = denormalizer
        self._timeout = timeout

    async def _call(self, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, self._timeout)
        except asyncio.TimeoutError as exc:
            raise StoreUnavailableError(
                "record store timed out; the operation may or may not have been applied",
                ambiguous=True,
            ) from exc

    async def _load_class(self, class_key: str) -> ClassSession:
        data = await self._call(self._store.get(class_path(class_key)))
        if not isinstance(data, dict):
            raise ClassNotFoundError(f"class {class_key} does not exist")
        return ClassSession.from_record(class_key, data)

    async def _load_course(self, session: ClassSession) -> Optional[CourseTemplate]:
        if not session.course_key:
            return None
        data = await self._call(self._store.get(course_path(session.course_key)))
        if not isinstance(data, dict):
            return None
        return CourseTemplate.from_record(session.course_key, data)

    async def is_booked(self, user_id: str, class_key: str) -> bool:
        existing = await self._call(self._store.get(booking_path(booking_id(user_id, class_key))))
        return existing is not None

    async def book(self, user: Optional[Identity], class_key: str) -> Booking:
        user = _require_user(user)
        user_id = user.user_id
        validate_key(class_key)

        # Pre-check makes a retry after an ambiguous timeout safe.
        if await self.is_booked(user_id, class_key):
            raise AlreadyBookedError(f"user {user_id} already booked class {class_key}")

        session = await self._load_class(class_key)
        if not is_bookable(session):
            raise ClassNotBookableError("this class is cancelled or completed and cannot be booked")
        course = await self._load_course(session)
        if course is None:
            raise CourseNotFoundError(f"course {session.course_key!r} for class {class_key} could not be found")

        capacity = effective_capacity(session, course)
        result = await self._call(
            self._store.transact(class_path(class_key), partial(reserve_seat, capacity=capacity))
        )
        if not result.committed:
            raise self._rejection(class_key, result.snapshot)

        committed = ClassSession.from_record(class_key, result.snapshot)
        try:
            booking = await self._call(self._denormalizer.materialize(user, committed, course))
        except StoreUnavailableError as exc:
            logger.error(
                "%s",
                PartialDenormalizationFailure(
                    f"booking record not written: {exc}",
                    operation="book",
                    user_id=user_id,
                    class_key=class_key,
                ),
            )
            landed = await self._booking_landed(user_id, class_key) if exc.ambiguous else False
            if landed is None:
                raise StoreUnavailableError(
                    "booking outcome unknown; check your bookings before retrying", ambiguous=True
                ) from exc
            if landed:
                stored = await self._call(self._store.get(booking_path(booking_id(user_id, class_key))))
                if isinstance(stored, dict):
                    return Booking.from_record(stored)
            await self._compensate(user_id, class_key, capacity)
            raise StoreUnavailableError("booking could not be saved; please try again") from exc

        logger.info("user %s booked class %s (%s seats left)", user_id, class_key, committed.slots_available)
        return booking

    @staticmethod
    def _rejection(class_key: str, snapshot: Any) -> Exception:
        if not isinstance(snapshot, dict):
            return ClassNotFoundError(f"class {class_key} does not exist")
        if not is_bookable(ClassSession.from_record(class_key, snapshot)):
            return ClassNotBookableError("this class is cancelled or completed and cannot be booked")
        return ClassFullError("this class is fully booked")

    async def _booking_landed(self, user_id: str, class_key: str) -> Optional[bool]:
        """Whether an ambiguous booking write actually committed; None when that cannot be determined."""
        try:
            return await self.is_booked(user_id, class_key)
        except StoreUnavailableError:
            logger.exception("could not verify booking %s", booking_id(user_id, class_key))
            return None

    async def _compensate(self, user_id: str, class_key: str, capacity: int) -> None:
        try:
            released = await self._call(
                self._store.transact(class_path(class_key), partial(release_seat, capacity=capacity))
            )
        except StoreUnavailableError:
            logger.exception(
                "%s",
                PartialDenormalizationFailure(
                    "seat decremented without a booking and could not be released; run reconcile_slots",
                    operation="book",
                    user_id=user_id,
                    class_key=class_key,
                ),
            )
            return
        if released.committed:
            logger.warning("released seat on class %s after failed booking for user %s", class_key, user_id)
            emit_audit_log(
                action="booking.compensated",
                initiator="system",
                class_key=class_key,
                user_id=user_id,
                booking_id=booking_id(user_id, class_key),
                slots_to=released.snapshot.get(SLOTS_FIELD),
            )

    async def _release(self, class_key: str) -> None:
        try:
            session = await self._load_class(class_key)
        except ClassNotFoundError:
            logger.warning("cancelling booking on missing class %s; no seat to release", class_key)
            return
        course = await self._load_course(session)
        capacity = effective_capacity(session, course) or None
        result = await self._call(
            self._store.transact(class_path(class_key), partial(release_seat, capacity=capacity))
        )
        if not result.committed:
            slots = result.snapshot.get(SLOTS_FIELD) if isinstance(result.snapshot, dict) else None
            logger.warning(
                "seat release on class %s skipped (slotsAvailable=%s, capacity=%s)",
                class_key,
                slots,
                capacity,
            )

    async def cancel(self, user: Optional[Identity], class_key: str) -> None:
        user_id = _require_user(user).user_id
        validate_key(class_key)

        if not await self.is_booked(user_id, class_key):
            # Only a holder gives a seat back; stray index entries are still cleared.
            logger.warning("user %s holds no booking on class %s; no seat to release", user_id, class_key)
        else:
            await self._release(class_key)

        try:
            await self._call(self._denormalizer.dematerialize(user_id, class_key))
        except StoreUnavailableError as exc:
            logger.error(
                "%s",
                PartialDenormalizationFailure(
                    f"seat released but booking indexes not removed: {exc}",
                    operation="cancel",
                    user_id=user_id,
                    class_key=class_key,
                ),
            )
            return
        logger.info("user %s cancelled class %s", user_id, class_key)

    async def reconcile_slots(self, class_key: str) -> int:
        """
        Recompute slotsAvailable from the class's booking index. Repairs seats
        leaked by a decrement whose booking write never landed.
        """
        session = await self._load_class(class_key)
        course = await self._load_course(session)
        capacity = effective_capacity(session, course)
        holders = await self._call(self._store.get(class_bookings_path(class_key)))
        booked = len(holders) if isinstance(holders, dict) else 0
        available = min(max(capacity - booked, 0), capacity)

        result = await self._call(
            self._store.transact(class_path(class_key), partial(reset_seats, available=available))
        )
        if not result.committed:
            raise ClassNotFoundError(f"class {class_key} does not exist")
        emit_audit_log(
            action="slots.reconciled",
            initiator="system",
            class_key=class_key,
            slots_from=session.slots_available,
            slots_to=available,
            extra={"capacity": capacity, "booked": booked},
        )
        return available
