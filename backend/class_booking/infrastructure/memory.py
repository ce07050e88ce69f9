from __future__ import annotations

import asyncio
import copy
from typing import Any, Mapping

from ..domain.errors import StoreUnavailableError
from ..domain.repositories import Listener, RecordStore, TransactionResult, TransactionUpdate, Unsubscribe
from .subscriptions import SubscriptionHub
from .tree import Segments, check_disjoint, get_in, prune, put_in, split_path


class InMemoryRecordStore(RecordStore):
    """
    Record tree held in a nested dict. Writes are atomic with respect to the
    event loop; `transact` yields between reading and committing, so
    concurrent transactions interleave and conflicting ones are retried.
    """

    def __init__(self, data: dict[str, Any] | None = None, *, max_retries: int = 25) -> None:
        self._tree: dict[str, Any] = prune(copy.deepcopy(data)) or {}
        self._hub = SubscriptionHub()
        self.max_retries = max_retries

    @property
    def listener_count(self) -> int:
        return len(self._hub)

    async def get(self, path: str) -> Any:
        return get_in(self._tree, split_path(path))

    async def set(self, path: str, value: Any) -> None:
        await self.update({path: value})

    async def update(self, values: Mapping[str, Any]) -> None:
        writes: list[tuple[Segments, Any]] = [(split_path(path), prune(copy.deepcopy(value))) for path, value in values.items()]
        check_disjoint(segments for segments, _ in writes)
        for segments, value in writes:
            self._tree = put_in(self._tree, segments, value)
        await self._hub.dispatch([segments for segments, _ in writes], self.get)

    async def transact(self, path: str, fn: TransactionUpdate) -> TransactionResult:
        segments = split_path(path)
        for _ in range(self.max_retries):
            current = get_in(self._tree, segments)
            # Stands in for the round trip between reading and writing.
            await asyncio.sleep(0)
            proposed = fn(copy.deepcopy(current))
            if proposed is None:
                return TransactionResult(committed=False, snapshot=current)
            if get_in(self._tree, segments) != current:
                continue
            proposed = prune(proposed)
            self._tree = put_in(self._tree, segments, proposed)
            await self._hub.dispatch([segments], self.get)
            return TransactionResult(committed=True, snapshot=copy.deepcopy(proposed))
        raise StoreUnavailableError(f"transaction on {path!r} gave up after {self.max_retries} conflicting attempts")

    async def subscribe(self, path: str, listener: Listener) -> Unsubscribe:
        segments = split_path(path)
        unsubscribe = self._hub.add(segments, listener)
        await self._hub.deliver(segments, listener, await self.get(path))
        return unsubscribe
