"""Backend driver protocol.

A driver owns exactly one session to the cache endpoint and knows how to
perform each cache verb over the wire.  memguard never speaks the protocol
itself — ``Connection`` calls the driver coroutine named after the verb.

Drivers report endpoint trouble through the health sink bound with
``bind_health()``.  A cache miss is returned as ``None``; anything the
driver raises is treated as an operation failure.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from memguard.models.events import HealthEvent

HealthSink = Callable[[HealthEvent], None]

# Verb names the facade exposes and every driver must implement
VERBS: tuple[str, ...] = (
    "touch",
    "get",
    "gets",
    "get_multi",
    "set",
    "replace",
    "add",
    "cas",
    "append",
    "prepend",
    "incr",
    "decr",
    "delete",
    "version",
    "flush",
    "stats",
    "settings",
    "slabs",
    "items",
    "cachedump",
    "end",
)


@dataclass(frozen=True)
class CasResult:
    """Value returned by ``gets`` together with its CAS token."""

    value: Any
    cas: Any


@runtime_checkable
class CacheDriver(Protocol):
    """One session to the cache endpoint."""

    server: str

    def bind_health(self, sink: HealthSink) -> None: ...

    async def touch(self, key: str, lifetime: int) -> bool: ...

    async def get(self, key: str) -> Any | None: ...

    async def gets(self, key: str) -> CasResult | None: ...

    async def get_multi(self, keys: Sequence[str]) -> dict[str, Any]: ...

    async def set(self, key: str, value: Any, lifetime: int = 0) -> bool: ...

    async def replace(self, key: str, value: Any, lifetime: int = 0) -> bool: ...

    async def add(self, key: str, value: Any, lifetime: int = 0) -> bool: ...

    async def cas(self, key: str, value: Any, cas: Any, lifetime: int = 0) -> bool: ...

    async def append(self, key: str, value: Any) -> bool: ...

    async def prepend(self, key: str, value: Any) -> bool: ...

    async def incr(self, key: str, amount: int = 1) -> int | None: ...

    async def decr(self, key: str, amount: int = 1) -> int | None: ...

    async def delete(self, key: str) -> bool: ...

    async def version(self) -> str: ...

    async def flush(self) -> bool: ...

    async def stats(self) -> dict[str, Any]: ...

    async def settings(self) -> dict[str, Any]: ...

    async def slabs(self) -> dict[str, Any]: ...

    async def items(self) -> dict[str, Any]: ...

    async def cachedump(self, slab_id: int, number: int) -> dict[str, Any]: ...

    async def end(self) -> bool: ...

    async def reset(self) -> None:
        """Drop the current session and open a fresh one on next use."""
        ...

    async def close(self) -> None: ...


DriverFactory = Callable[[], "CacheDriver | Awaitable[CacheDriver]"]
