from __future__ import annotations

import copy
from datetime import datetime, timezone
from typing import Any, Mapping

from sqlalchemy import ColumnElement, and_, delete, insert, or_, select, true
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from ..domain.errors import StoreUnavailableError
from ..domain.repositories import Listener, RecordStore, TransactionResult, TransactionUpdate, Unsubscribe
from ..models import Base, RecordRow
from .subscriptions import SubscriptionHub
from .tree import Segments, check_disjoint, flatten, join_path, nest, prune, split_path

_TRANSPORT_ERRORS = (SQLAlchemyError, OSError)
_AFTER_SEPARATOR = chr(ord("/") + 1)


class SqlAlchemyRecordStore(RecordStore):
    """
    Record tree persisted one leaf per row. Subtree reads and writes are
    range scans on the path column; `transact` is optimistic: compute on an
    unlocked read, then commit only if a locked re-read still matches.
    Subscriptions are served in-process after commit.
    """

    def __init__(self, engine: AsyncEngine, *, max_retries: int = 25) -> None:
        self.engine = engine
        self._sessions = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
        self._hub = SubscriptionHub()
        self.max_retries = max_retries

    async def init_schema(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()

    async def get(self, path: str) -> Any:
        segments = split_path(path)
        try:
            async with self._sessions() as session:
                return await self._load(session, segments)
        except _TRANSPORT_ERRORS as exc:
            raise StoreUnavailableError(f"failed to read {path!r}") from exc

    async def set(self, path: str, value: Any) -> None:
        await self.update({path: value})

    async def update(self, values: Mapping[str, Any]) -> None:
        writes = [(split_path(path), prune(copy.deepcopy(value))) for path, value in values.items()]
        check_disjoint(segments for segments, _ in writes)
        try:
            async with self._sessions() as session, session.begin():
                for segments, value in writes:
                    await self._write(session, segments, value)
        except _TRANSPORT_ERRORS as exc:
            raise StoreUnavailableError("multi-path update failed", ambiguous=True) from exc
        await self._hub.dispatch([segments for segments, _ in writes], self.get)

    async def transact(self, path: str, fn: TransactionUpdate) -> TransactionResult:
        segments = split_path(path)
        for _ in range(self.max_retries):
            try:
                async with self._sessions() as session:
                    current = await self._load(session, segments)
                proposed = fn(copy.deepcopy(current))
                if proposed is None:
                    return TransactionResult(committed=False, snapshot=current)
                proposed = prune(proposed)
                async with self._sessions() as session, session.begin():
                    latest = await self._load(session, segments, for_update=True)
                    conflict = latest != current
                    if not conflict:
                        await self._write(session, segments, proposed)
            except _TRANSPORT_ERRORS as exc:
                raise StoreUnavailableError(f"transaction on {path!r} failed", ambiguous=True) from exc
            if conflict:
                continue
            await self._hub.dispatch([segments], self.get)
            return TransactionResult(committed=True, snapshot=copy.deepcopy(proposed))
        raise StoreUnavailableError(f"transaction on {path!r} gave up after {self.max_retries} conflicting attempts")

    async def subscribe(self, path: str, listener: Listener) -> Unsubscribe:
        segments = split_path(path)
        unsubscribe = self._hub.add(segments, listener)
        await self._hub.deliver(segments, listener, await self.get(path))
        return unsubscribe

    @staticmethod
    def _subtree(segments: Segments) -> ColumnElement[bool]:
        if not segments:
            return true()
        base = join_path(segments)
        # Descendants sort between "base/" and "base0" under a binary collation.
        return or_(
            RecordRow.path == base,
            and_(RecordRow.path >= base + "/", RecordRow.path < base + _AFTER_SEPARATOR),
        )

    async def _load(self, session: AsyncSession, segments: Segments, *, for_update: bool = False) -> Any:
        stmt = select(RecordRow.path, RecordRow.value).where(self._subtree(segments)).order_by(RecordRow.path)
        if for_update:
            stmt = stmt.with_for_update()
        rows = (await session.execute(stmt)).all()
        depth = len(segments)
        return nest((tuple(row_path.split("/"))[depth:], value) for row_path, value in rows)

    async def _write(self, session: AsyncSession, segments: Segments, value: Any) -> None:
        if not segments and not isinstance(value, dict):
            value = None
        await session.execute(
            delete(RecordRow).where(self._subtree(segments)).execution_options(synchronize_session=False)
        )
        ancestors = [join_path(segments[:depth]) for depth in range(1, len(segments))]
        if ancestors:
            await session.execute(
                delete(RecordRow).where(RecordRow.path.in_(ancestors)).execution_options(synchronize_session=False)
            )
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        rows = [
            {"path": join_path(segments + leaf_segments), "value": leaf, "updated_at": now}
            for leaf_segments, leaf in flatten(value)
        ]
        if rows:
            await session.execute(insert(RecordRow), rows)
