from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable

from ..domain.errors import StoreUnavailableError
from ..domain.paths import (
    booking_id,
    booking_path,
    class_booking_path,
    user_booking_path,
    user_bookings_path,
    user_profile_path,
)
from ..domain.repositories import RecordStore
from ..domain.services import Identity
from ..schemas import Booking, ClassSession, CourseTemplate
from ..utils.time import to_utc_iso, utc_now

logger = logging.getLogger(__name__)

UNKNOWN_USER_NAME = "Unknown User"
UNKNOWN_USER_EMAIL = "No Email"


class DenormalizationManager:
    """
    Keeps a booking record and its two existence indexes in agreement. Both
    the create and the delete path are a single multi-path update.
    """

    def __init__(self, store: RecordStore, *, clock: Callable[[], datetime] = utc_now) -> None:
        self._store = store
        self._clock = clock

    def build_booking(self, user: Identity, session: ClassSession, course: CourseTemplate) -> Booking:
        return Booking(
            id=booking_id(user.user_id, session.key),
            user_id=user.user_id,
            class_id=session.key,
            booking_date=to_utc_iso(self._clock()),
            user_name=user.display_name or UNKNOWN_USER_NAME,
            user_email=user.email or UNKNOWN_USER_EMAIL,
            class_name=course.class_type,
            class_date=session.date,
            class_time=course.time,
            price=course.price,
            class_status=session.status,
        )

    async def current_identity(self, user: Identity) -> Identity:
        """The user with the display name from their profile record, when one is set."""
        name = await self._store.get(f"{user_profile_path(user.user_id)}/displayName")
        if isinstance(name, str) and name and name != user.display_name:
            return replace(user, display_name=name)
        return user

    async def materialize(self, user: Identity, session: ClassSession, course: CourseTemplate) -> Booking:
        user = await self.current_identity(user)
        booking = self.build_booking(user, session, course)
        await self._store.update(
            {
                booking_path(booking.id): booking.to_record(),
                user_booking_path(user.user_id, session.key): True,
                class_booking_path(session.key, user.user_id): True,
            }
        )
        return booking

    async def dematerialize(self, user_id: str, class_key: str) -> None:
        await self._store.update(
            {
                booking_path(booking_id(user_id, class_key)): None,
                user_booking_path(user_id, class_key): None,
                class_booking_path(class_key, user_id): None,
            }
        )

    async def propagate_name_change(self, user_id: str, new_display_name: str) -> None:
        """
        Rewrite userName on every booking the user holds, together with the
        profile record, in one atomic update. Failures are logged only.
        """
        try:
            index = await self._store.get(user_bookings_path(user_id))
            updates: dict[str, Any] = {}
            if isinstance(index, dict):
                for class_key in index:
                    updates[f"{booking_path(booking_id(user_id, class_key))}/userName"] = new_display_name
            updates[f"{user_profile_path(user_id)}/displayName"] = new_display_name
            await self._store.update(updates)
        except StoreUnavailableError:
            logger.exception("failed to propagate display name change for user %s", user_id)
            return
        logger.info("propagated display name for user %s to %d bookings", user_id, len(updates) - 1)
