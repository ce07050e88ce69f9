from __future__ import annotations

import copy
import itertools
import logging
from typing import Any, Awaitable, Callable, Iterable

from ..domain.repositories import Listener, Unsubscribe
from .tree import Segments, is_related, join_path

logger = logging.getLogger(__name__)

Reader = Callable[[str], Awaitable[Any]]


class SubscriptionHub:
    """In-process registry of path listeners, notified after each committed write."""

    def __init__(self) -> None:
        self._listeners: dict[int, tuple[Segments, Listener]] = {}
        self._ids = itertools.count(1)

    def __len__(self) -> int:
        return len(self._listeners)

    def add(self, segments: Segments, listener: Listener) -> Unsubscribe:
        handle = next(self._ids)
        self._listeners[handle] = (segments, listener)

        def unsubscribe() -> None:
            self._listeners.pop(handle, None)

        return unsubscribe

    async def deliver(self, segments: Segments, listener: Listener, value: Any) -> None:
        try:
            await listener(value)
        except Exception:
            logger.exception("listener for %r failed", join_path(segments))

    async def dispatch(self, changed: Iterable[Segments], read: Reader) -> None:
        """
        Notify every listener whose path is related to a changed path. Each
        affected path is read once; listeners registered while dispatching are
        not included.
        """
        changed = list(changed)
        affected: dict[Segments, list[tuple[int, Listener]]] = {}
        for handle, (segments, listener) in list(self._listeners.items()):
            if any(is_related(segments, path) for path in changed):
                affected.setdefault(segments, []).append((handle, listener))
        for segments, listeners in affected.items():
            value = await read(join_path(segments))
            for handle, listener in listeners:
                # Skip listeners removed by an earlier callback in this dispatch.
                if handle in self._listeners:
                    await self.deliver(segments, listener, copy.deepcopy(value))
