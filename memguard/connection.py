"""Connection — one pooled session to the cache endpoint.

A ``Connection`` wraps a single ``CacheDriver`` and runs at most one verb
at a time.  It re-publishes the driver's health events to its subscribers
(the ``FailureObserver`` subscribes when the facade creates it).

States::

    IDLE     — parked in the pool
    IN_USE   — checked out by exactly one operation
    FAILED   — the driver reported a failure since the last success
    CLOSED   — session terminated (``end`` or ``close``)

When an attempt is abandoned mid-flight (timeout or cancellation) the
connection is marked *tainted* and resets its driver session before the
next verb, so a late response can never be read by another call.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from collections.abc import Callable
from enum import Enum
from typing import Any

from memguard.core.errors import BackendError, MemguardError
from memguard.drivers.base import VERBS, CacheDriver, HealthSink
from memguard.models.events import HealthEvent, HealthEventKind

logger = logging.getLogger(__name__)

_ids = itertools.count(1)


class ConnectionState(str, Enum):
    """Connection lifecycle states."""

    IDLE = "idle"
    IN_USE = "in_use"
    FAILED = "failed"
    CLOSED = "closed"


class Connection:
    """A single backend session owned by the pool or one in-flight call.

    Args:
        driver: The driver performing verbs for this session.
    """

    def __init__(self, driver: CacheDriver) -> None:
        self.id = next(_ids)
        self.driver = driver
        self.created_at = time.monotonic()
        self.last_used_at = self.created_at
        self.tainted = False
        self.failed = False

        self._checked_out = False
        self._closed = False
        self._lock = asyncio.Lock()
        self._subscribers: list[HealthSink] = []

        driver.bind_health(self._publish)

    def __repr__(self) -> str:
        return f"<Connection id={self.id} server={self.server!r} state={self.state.value}>"

    # ── Public properties ────────────────────────────────────────────

    @property
    def server(self) -> str:
        return self.driver.server

    @property
    def state(self) -> ConnectionState:
        if self._closed:
            return ConnectionState.CLOSED
        if self.failed:
            return ConnectionState.FAILED
        if self._checked_out:
            return ConnectionState.IN_USE
        return ConnectionState.IDLE

    @property
    def closed(self) -> bool:
        return self._closed

    # ── Ownership markers (driven by the pool) ───────────────────────

    def mark_in_use(self) -> None:
        self._checked_out = True

    def mark_idle(self) -> None:
        self._checked_out = False
        self.last_used_at = time.monotonic()

    # ── Health event stream ──────────────────────────────────────────

    def subscribe(self, sink: HealthSink) -> Callable[[], None]:
        """Register *sink* for health events; returns an unsubscribe callable."""
        self._subscribers.append(sink)

        def unsubscribe() -> None:
            if sink in self._subscribers:
                self._subscribers.remove(sink)

        return unsubscribe

    def _publish(self, event: HealthEvent) -> None:
        if event.kind is HealthEventKind.FAILURE:
            self.failed = True
        for sink in list(self._subscribers):
            try:
                sink(event)
            except Exception:
                logger.exception("Health subscriber failed for connection %d", self.id)

    # ── Verb execution ───────────────────────────────────────────────

    async def call(self, verb: str, *args: Any) -> Any:
        """Run *verb* on the driver.

        Raises:
            ValueError:   If *verb* is not a known cache verb.
            BackendError: If the connection is closed or the driver fails.
        """
        if verb not in VERBS:
            raise ValueError(f"Unknown cache verb: {verb}")

        async with self._lock:
            if self._closed:
                raise BackendError(verb, f"connection {self.id} is closed")
            try:
                if self.tainted:
                    logger.debug("Resetting tainted connection %d before '%s'", self.id, verb)
                    await self.driver.reset()
                    self.tainted = False
                result = await getattr(self.driver, verb)(*args)
            except asyncio.CancelledError:
                self.tainted = True
                raise
            except MemguardError:
                raise
            except Exception as exc:
                raise BackendError(verb, f"{type(exc).__name__}: {exc}") from exc
            finally:
                self.last_used_at = time.monotonic()

            self.failed = False
            if verb == "end":
                self._closed = True
            return result

    async def close(self) -> None:
        """Close the driver session; idempotent."""
        self._subscribers.clear()
        if self._closed:
            return
        self._closed = True
        await self.driver.close()
