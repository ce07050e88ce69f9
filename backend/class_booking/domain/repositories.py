from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Protocol

Listener = Callable[[Any], Awaitable[None]]
Unsubscribe = Callable[[], None]
# Receives a private copy of the current value; returns the new value or None to abort.
TransactionUpdate = Callable[[Any], Any]


@dataclass(frozen=True)
class TransactionResult:
    committed: bool
    snapshot: Any


class RecordStore(Protocol):
    async def get(self, path: str) -> Any: ...

    async def set(self, path: str, value: Any) -> None: ...

    async def update(self, values: Mapping[str, Any]) -> None: ...

    async def transact(self, path: str, fn: TransactionUpdate) -> TransactionResult: ...

    async def subscribe(self, path: str, listener: Listener) -> Unsubscribe: ...
