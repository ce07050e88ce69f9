from pathlib import Path
from typing import Any

import pytest
from class_booking.domain.errors import StoreUnavailableError
from class_booking.infrastructure.repositories import SqlAlchemyRecordStore
from class_booking.models import RecordRow
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine


async def _store(tmp_path: Path) -> SqlAlchemyRecordStore:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'records.db'}")
    store = SqlAlchemyRecordStore(engine)
    await store.init_schema()
    return store


async def _paths(store: SqlAlchemyRecordStore) -> list[str]:
    async with store.engine.connect() as conn:
        return list((await conn.execute(select(RecordRow.path).order_by(RecordRow.path))).scalars())


@pytest.mark.asyncio
async def test_subtree_round_trip_keeps_types(tmp_path: Path) -> None:
    store = await _store(tmp_path)
    try:
        record = {"courseFirebaseKey": "course-flow", "slotsAvailable": 3, "price": 12.5, "booked": True}
        await store.set("classes/C1", record)

        assert await store.get("classes/C1") == record
        assert await store.get("classes") == {"C1": record}
        assert await store.get("classes/C1/slotsAvailable") == 3
        assert await store.get("classes/C2") is None
        assert await _paths(store) == [
            "classes/C1/booked",
            "classes/C1/courseFirebaseKey",
            "classes/C1/price",
            "classes/C1/slotsAvailable",
        ]
    finally:
        await store.dispose()


@pytest.mark.asyncio
async def test_set_replaces_whole_subtree(tmp_path: Path) -> None:
    store = await _store(tmp_path)
    try:
        await store.set("users/U1", {"displayName": "A", "email": "a@example.com"})
        await store.set("users/U1", {"displayName": "B"})
        assert await store.get("users/U1") == {"displayName": "B"}

        # a scalar written over a subtree replaces it, and vice versa
        await store.set("users/U1", "gone")
        assert await store.get("users/U1") == "gone"
        await store.set("users/U1/displayName", "C")
        assert await store.get("users/U1") == {"displayName": "C"}

        await store.set("users/U1", None)
        assert await store.get("users") is None
    finally:
        await store.dispose()


@pytest.mark.asyncio
async def test_sibling_keys_sharing_a_prefix_are_independent(tmp_path: Path) -> None:
    store = await _store(tmp_path)
    try:
        await store.update({"bookings/U1_C1/userId": "U1", "bookings/U1_C10/userId": "U1", "bookings/U1_C1x/a": 1})

        await store.set("bookings/U1_C1", None)

        assert await store.get("bookings") == {"U1_C10": {"userId": "U1"}, "U1_C1x": {"a": 1}}
    finally:
        await store.dispose()


@pytest.mark.asyncio
async def test_keys_are_case_sensitive(tmp_path: Path) -> None:
    store = await _store(tmp_path)
    try:
        await store.update({"classes/c1/status": "active", "classes/C1/status": "cancelled"})

        assert await store.get("classes/c1") == {"status": "active"}
        assert await store.get("classes/C1") == {"status": "cancelled"}

        await store.set("classes/C1", None)
        assert await store.get("classes") == {"c1": {"status": "active"}}
    finally:
        await store.dispose()


@pytest.mark.asyncio
async def test_transact_commit_and_abort(tmp_path: Path) -> None:
    store = await _store(tmp_path)
    try:
        await store.set("classes/C1", {"slotsAvailable": 1, "status": "active"})

        def take_seat(value: Any) -> Any:
            if not isinstance(value, dict) or value["slotsAvailable"] <= 0:
                return None
            value["slotsAvailable"] -= 1
            return value

        first = await store.transact("classes/C1", take_seat)
        second = await store.transact("classes/C1", take_seat)

        assert first.committed is True
        assert first.snapshot == {"slotsAvailable": 0, "status": "active"}
        assert second.committed is False
        assert second.snapshot == {"slotsAvailable": 0, "status": "active"}
        assert await store.get("classes/C1/slotsAvailable") == 0
    finally:
        await store.dispose()


@pytest.mark.asyncio
async def test_subscribers_are_notified_after_commit(tmp_path: Path) -> None:
    store = await _store(tmp_path)
    try:
        seen: list[Any] = []

        async def listener(value: Any) -> None:
            seen.append(value)

        unsubscribe = await store.subscribe("userBookings/U1", listener)
        await store.update({"userBookings/U1/C1": True, "classBookings/C1/U1": True})
        unsubscribe()
        await store.set("userBookings/U1/C2", True)

        assert seen == [None, {"C1": True}]
    finally:
        await store.dispose()


@pytest.mark.asyncio
async def test_driver_errors_surface_as_store_unavailable(tmp_path: Path) -> None:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'records.db'}")
    store = SqlAlchemyRecordStore(engine)
    try:
        with pytest.raises(StoreUnavailableError):
            await store.get("classes")
        with pytest.raises(StoreUnavailableError) as excinfo:
            await store.set("classes/C1/status", "active")
        assert excinfo.value.ambiguous is True
    finally:
        await store.dispose()
