from __future__ import annotations

import asyncio
import logging
from enum import StrEnum
from functools import partial
from typing import Any, Callable, Optional

from ..domain.errors import StoreUnavailableError
from ..domain.paths import CLASSES, booking_id, booking_path, user_bookings_path
from ..domain.repositories import RecordStore, Unsubscribe
from ..domain.services import enrich_bookings, iter_records
from ..schemas import Booking, ClassSession, LoadingState

logger = logging.getLogger(__name__)

BookingListener = Callable[[list[Booking]], None]


class AggregatorState(StrEnum):
    UNINITIALIZED = "uninitialized"
    PARTIAL = "partial"
    ACTIVE = "active"
    CLOSED = "closed"


def _class_map(snapshot: Any) -> dict[str, ClassSession]:
    return {key: ClassSession.from_record(key, record) for key, record in iter_records(snapshot)}


def _booked_class_keys(snapshot: Any) -> set[str]:
    return set(snapshot) if isinstance(snapshot, dict) else set()


async def load_user_bookings(store: RecordStore, user_id: str) -> list[Booking]:
    """One-shot read of a user's bookings, enriched with live class status."""
    index = await store.get(user_bookings_path(user_id))
    classes = await store.get(CLASSES)
    bookings = []
    for class_key in sorted(_booked_class_keys(index)):
        record = await store.get(booking_path(booking_id(user_id, class_key)))
        if isinstance(record, dict):
            bookings.append(Booking.from_record(record))
    return enrich_bookings(bookings, _class_map(classes))


class LiveBookingAggregator:
    """
    Merges the class collection feed and one user's booking-key index into a
    single sorted booking list.

    Each key in the index gets exactly one per-booking subscription, held in
    `_handles`. Index changes are reconciled as a diff: added keys are
    subscribed, removed keys are unsubscribed, the rest are left alone.
    Nothing is emitted until both feeds have delivered a first snapshot.
    """

    def __init__(self, store: RecordStore, user_id: str, listener: Optional[BookingListener] = None) -> None:
        self._store = store
        self._user_id = user_id
        self._listener = listener
        self._state = AggregatorState.UNINITIALIZED
        self._classes: Optional[dict[str, ClassSession]] = None
        self._booking_ids: Optional[set[str]] = None
        self._raw: dict[str, Booking] = {}
        self._handles: dict[str, Unsubscribe] = {}
        self._feeds: list[Unsubscribe] = []
        self._bookings: list[Booking] = []
        self._error: Optional[str] = None
        self._reconcile_lock = asyncio.Lock()
        self._batching = False

    @property
    def state(self) -> AggregatorState:
        return self._state

    @property
    def bookings(self) -> list[Booking]:
        return list(self._bookings)

    @property
    def loading(self) -> LoadingState:
        return LoadingState(is_loading=self._state is not AggregatorState.ACTIVE, error=self._error)

    @property
    def subscribed_booking_ids(self) -> set[str]:
        return set(self._handles)

    async def __aenter__(self) -> "LiveBookingAggregator":
        await self.start()
        return self

    async def __aexit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    async def start(self) -> None:
        if self._state is not AggregatorState.UNINITIALIZED:
            raise RuntimeError(f"aggregator cannot start from state {self._state}")
        self._state = AggregatorState.PARTIAL
        self._feeds.append(await self._store.subscribe(CLASSES, self._on_classes))
        self._feeds.append(await self._store.subscribe(user_bookings_path(self._user_id), self._on_index))

    def close(self) -> None:
        if self._state is AggregatorState.CLOSED:
            return
        self._state = AggregatorState.CLOSED
        for unsubscribe in self._feeds:
            unsubscribe()
        self._feeds.clear()
        for unsubscribe in self._handles.values():
            unsubscribe()
        self._handles.clear()
        self._raw.clear()

    async def refresh(self) -> None:
        """Re-read both feeds once, outside the subscriptions."""
        if self._state in (AggregatorState.UNINITIALIZED, AggregatorState.CLOSED):
            raise RuntimeError(f"aggregator cannot refresh in state {self._state}")
        self._error = None
        try:
            index = await self._store.get(user_bookings_path(self._user_id))
            classes = await self._store.get(CLASSES)
            raw = {}
            for class_key in _booked_class_keys(index):
                bid = booking_id(self._user_id, class_key)
                record = await self._store.get(booking_path(bid))
                if isinstance(record, dict):
                    raw[bid] = Booking.from_record(record)
        except StoreUnavailableError as exc:
            logger.warning("refresh failed for user %s: %s", self._user_id, exc)
            self._error = str(exc)
            return
        self._classes = _class_map(classes)
        self._raw = raw
        await self._reconcile(_booked_class_keys(index))
        self._emit()

    async def _on_classes(self, snapshot: Any) -> None:
        self._classes = _class_map(snapshot)
        self._emit()

    async def _on_index(self, snapshot: Any) -> None:
        await self._reconcile(_booked_class_keys(snapshot))
        self._emit()

    async def _on_booking(self, bid: str, snapshot: Any) -> None:
        if self._state is AggregatorState.CLOSED:
            return
        if isinstance(snapshot, dict):
            self._raw[bid] = Booking.from_record(snapshot)
        else:
            self._raw.pop(bid, None)
        if not self._batching:
            self._emit()

    async def _reconcile(self, class_keys: set[str]) -> None:
        async with self._reconcile_lock:
            if self._state is AggregatorState.CLOSED:
                return
            wanted = {booking_id(self._user_id, class_key) for class_key in class_keys}
            for bid in set(self._handles) - wanted:
                self._handles.pop(bid)()
                self._raw.pop(bid, None)
            self._batching = True
            try:
                for bid in sorted(wanted - set(self._handles)):
                    unsubscribe = await self._store.subscribe(booking_path(bid), partial(self._on_booking, bid))
                    if self._state is AggregatorState.CLOSED:
                        unsubscribe()
                        return
                    self._handles[bid] = unsubscribe
            finally:
                self._batching = False
            self._booking_ids = wanted

    def _emit(self) -> None:
        if self._state is AggregatorState.CLOSED:
            return
        if self._classes is None or self._booking_ids is None:
            return
        self._state = AggregatorState.ACTIVE
        current = [booking for bid, booking in self._raw.items() if bid in self._booking_ids]
        self._bookings = enrich_bookings(current, self._classes)
        if self._listener is not None:
            self._listener(list(self._bookings))
