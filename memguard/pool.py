"""ConnectionPool — bounded, FIFO-fair pool of backend connections.

The pool owns every ``Connection`` it creates.  A connection is either
parked in ``idle``, checked out to exactly one caller (``in_use``), or
being created; ``idle + outstanding`` never exceeds ``max``.

Bookkeeping runs in synchronous sections between the event loop's await
points, so ``acquire``/``release``/``destroy`` need no lock: the loop is
the single owner of pool state.  Connections and free slots are handed to
queued waiters in arrival order; a newcomer never overtakes a waiter.

Usage::

    pool = ConnectionPool(factory, PoolOptions(min=1, max=4))
    async with pool.connection() as conn:
        await conn.call("get", "key")
    await pool.close()
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import AsyncIterator, Awaitable, Callable, Coroutine
from contextlib import asynccontextmanager
from typing import Any

from memguard.connection import Connection, ConnectionState
from memguard.core.errors import AcquireError, PoolClosedError, PoolExhaustedError
from memguard.models.options import ConnectionOptions, PoolOptions

logger = logging.getLogger(__name__)

ConnectionFactory = Callable[[], Awaitable[Connection]]


class ConnectionPool:
    """Async connection pool with min/max population and idle eviction.

    Args:
        factory:            Coroutine function creating a new ``Connection``.
        options:            Population bounds.
        connection_options: Idle timeout and failure-eviction policy.
        name:               Label used in logs and snapshots.
    """

    def __init__(
        self,
        factory: ConnectionFactory,
        options: PoolOptions | None = None,
        connection_options: ConnectionOptions | None = None,
        *,
        name: str = "memcached",
    ) -> None:
        self._factory = factory
        self.options = options or PoolOptions()
        self.connection_options = connection_options or ConnectionOptions()
        self.name = name

        self._idle: deque[Connection] = deque()  # most recently used on the right
        self._in_use: dict[int, Connection] = {}
        self._creating = 0
        self._waiters: deque[asyncio.Future[Connection | None]] = deque()
        self._closed = False
        self._reaper: asyncio.Task[None] | None = None
        self._background: set[asyncio.Task[Any]] = set()

        # Metrics
        self.total_created = 0
        self.total_destroyed = 0
        self.total_acquired = 0

    # ── Public properties ────────────────────────────────────────────

    @property
    def outstanding(self) -> int:
        """Connections checked out plus connections being created."""
        return len(self._in_use) + self._creating

    @property
    def idle_count(self) -> int:
        return len(self._idle)

    @property
    def size(self) -> int:
        return len(self._idle) + self.outstanding

    @property
    def waiting(self) -> int:
        return sum(1 for w in self._waiters if not w.done())

    @property
    def closed(self) -> bool:
        return self._closed

    # ── Lifecycle ────────────────────────────────────────────────────

    async def start(self) -> None:
        """Warm ``min`` connections and start the idle reaper.

        Raises:
            PoolExhaustedError: If a warm-up connection cannot be created.
        """
        if self._closed:
            raise PoolClosedError()
        await self.fill_min(strict=True)
        self._ensure_reaper()

    async def close(self) -> None:
        """Tear the pool down; idempotent.

        Pending waiters fail with ``PoolClosedError`` and idle connections
        are closed.  Checked-out connections are closed when they come back
        through ``release``/``destroy``.
        """
        if self._closed:
            return
        self._closed = True

        if self._reaper is not None:
            self._reaper.cancel()
            await asyncio.wait({self._reaper})
            self._reaper = None

        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_exception(PoolClosedError())

        idle = list(self._idle)
        self._idle.clear()
        for conn in idle:
            await self._close_connection(conn)

        if self._background:
            await asyncio.wait(set(self._background))

        logger.debug("Pool %s closed", self.name)

    # ── Acquire ──────────────────────────────────────────────────────

    async def acquire(self, timeout: float | None = None) -> Connection:
        """Check out a connection, waiting in FIFO order when at ``max``.

        Args:
            timeout: Seconds to wait for a connection; ``None`` waits
                     until one is released or destroyed.

        Raises:
            PoolClosedError:    If the pool is closed.
            PoolExhaustedError: If creating a new connection fails.
            AcquireError:       If *timeout* expires while waiting.
        """
        if timeout is None:
            return await self._acquire()
        try:
            return await asyncio.wait_for(self._acquire(), timeout)
        except TimeoutError:
            raise AcquireError(f"no connection available within {timeout}s") from None

    async def _acquire(self) -> Connection:
        if self._closed:
            raise PoolClosedError()
        self._ensure_reaper()
        self._drop_finished_waiters()

        if self._idle and not self._waiters:
            conn = self._idle.pop()
            self._check_out(conn)
            return conn

        if not self._waiters and self.size < self.options.max:
            self._creating += 1
            return await self._create_checked_out()

        waiter: asyncio.Future[Connection | None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            granted = await waiter
        except asyncio.CancelledError:
            self._abandon(waiter)
            raise

        if granted is None:
            # A slot was freed for us; _creating was already bumped
            return await self._create_checked_out()
        return granted

    async def _create_checked_out(self) -> Connection:
        try:
            conn = await self._factory()
        except asyncio.CancelledError:
            self._creating -= 1
            self._grant_slot()
            raise
        except Exception as exc:
            self._creating -= 1
            self._grant_slot()
            logger.warning("Pool %s failed to create a connection: %s", self.name, exc)
            raise PoolExhaustedError(f"{type(exc).__name__}: {exc}") from exc

        self._creating -= 1
        self.total_created += 1
        if self._closed:
            await self._close_connection(conn)
            raise PoolClosedError()
        self._check_out(conn)
        logger.debug("Pool %s created connection %d (size=%d)", self.name, conn.id, self.size)
        return conn

    @asynccontextmanager
    async def connection(self, timeout: float | None = None) -> AsyncIterator[Connection]:
        """Scoped acquisition — the connection is released on every exit path."""
        conn = await self.acquire(timeout)
        try:
            yield conn
        finally:
            await self.release(conn)

    # ── Release / destroy ────────────────────────────────────────────

    async def release(self, conn: Connection) -> bool:
        """Return *conn* to the pool.

        Closed connections, and failed ones when ``evict_on_failure`` is
        set, are destroyed instead.  Returns ``False`` (and changes nothing)
        when *conn* is not currently checked out from this pool.
        """
        if not self._check_in(conn, "release"):
            return False
        if self._closed or self._should_evict(conn):
            await self._discard(conn)
            return True
        self._return(conn)
        return True

    async def destroy(self, conn: Connection) -> bool:
        """Permanently remove *conn* and close its session.

        Returns ``False`` (and changes nothing) when *conn* is not currently
        checked out from this pool.
        """
        if not self._check_in(conn, "destroy"):
            return False
        await self._discard(conn)
        return True

    def _should_evict(self, conn: Connection) -> bool:
        state = conn.state
        if state is ConnectionState.CLOSED:
            return True
        return state is ConnectionState.FAILED and self.connection_options.evict_on_failure

    # ── Idle eviction ────────────────────────────────────────────────

    async def evict_idle(self) -> int:
        """Close connections idle longer than ``idle_timeout``.

        Never drops the population below ``min``; tops it back up to
        ``min`` afterwards.  Returns the number of evicted connections.
        """
        now = time.monotonic()
        idle_timeout = self.connection_options.idle_timeout
        expired: list[Connection] = []
        # Oldest idle connections sit on the left
        while self._idle and self.size > self.options.min:
            if now - self._idle[0].last_used_at < idle_timeout:
                break
            expired.append(self._idle.popleft())

        for conn in expired:
            await self._close_connection(conn)
        if expired:
            logger.debug("Pool %s evicted %d idle connections", self.name, len(expired))

        await self.fill_min()
        return len(expired)

    async def fill_min(self, *, strict: bool = False) -> None:
        """Create connections until the population reaches ``min``.

        With *strict* a factory failure raises ``PoolExhaustedError``;
        otherwise it is logged and retried on the next sweep.
        """
        while not self._closed and self.size < self.options.min:
            self._creating += 1
            try:
                conn = await self._factory()
            except Exception as exc:
                self._creating -= 1
                self._grant_slot()
                if strict:
                    raise PoolExhaustedError(f"{type(exc).__name__}: {exc}") from exc
                logger.warning("Pool %s could not warm a connection: %s", self.name, exc)
                return
            self._creating -= 1
            self.total_created += 1
            if self._closed:
                await self._close_connection(conn)
                return
            self._return(conn)

    def _ensure_reaper(self) -> None:
        if self._reaper is None and not self._closed:
            self._reaper = asyncio.get_running_loop().create_task(
                self._reap_forever(),
                name=f"memguard-reaper-{self.name}",
            )

    async def _reap_forever(self) -> None:
        interval = self.connection_options.effective_reap_interval
        while not self._closed:
            await asyncio.sleep(interval)
            try:
                await self.evict_idle()
            except Exception:
                logger.exception("Idle sweep failed for pool %s", self.name)

    # ── Bookkeeping (synchronous sections) ───────────────────────────

    def _check_out(self, conn: Connection) -> None:
        conn.mark_in_use()
        self._in_use[conn.id] = conn
        self.total_acquired += 1

    def _check_in(self, conn: Connection, action: str) -> bool:
        if self._in_use.get(conn.id) is not conn:
            logger.warning(
                "Ignoring %s of connection %d: not checked out from pool %s",
                action,
                conn.id,
                self.name,
            )
            return False
        del self._in_use[conn.id]
        return True

    def _return(self, conn: Connection) -> None:
        """Hand *conn* to the oldest live waiter, or park it as idle."""
        conn.mark_idle()
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                self._check_out(conn)
                waiter.set_result(conn)
                return
        self._idle.append(conn)

    def _grant_slot(self) -> None:
        """A slot was freed: let the oldest live waiter create a connection."""
        if self._closed:
            return
        while self._waiters and self.size < self.options.max:
            waiter = self._waiters.popleft()
            if not waiter.done():
                self._creating += 1
                waiter.set_result(None)
                return

    def _abandon(self, waiter: asyncio.Future[Connection | None]) -> None:
        """Clean up after a waiter whose caller was cancelled."""
        if not waiter.done() or waiter.cancelled():
            try:
                self._waiters.remove(waiter)
            except ValueError:
                pass
            return
        if waiter.exception() is not None:
            return
        granted = waiter.result()
        if granted is None:
            self._creating -= 1
            self._grant_slot()
            return
        # A connection was handed over before the caller could resume
        del self._in_use[granted.id]
        if self._closed:
            self._spawn(self._close_connection(granted))
        else:
            self._return(granted)

    def _drop_finished_waiters(self) -> None:
        while self._waiters and self._waiters[0].done():
            self._waiters.popleft()

    async def _discard(self, conn: Connection) -> None:
        self._grant_slot()
        await self._close_connection(conn)

    async def _close_connection(self, conn: Connection) -> None:
        self.total_destroyed += 1
        try:
            await conn.close()
        except Exception:
            logger.warning("Error closing connection %d in pool %s", conn.id, self.name, exc_info=True)

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    # ── Introspection ────────────────────────────────────────────────

    def snapshot(self) -> dict:
        """Return a JSON-serializable snapshot for health/metrics."""
        return {
            "name": self.name,
            "min": self.options.min,
            "max": self.options.max,
            "idle": self.idle_count,
            "outstanding": self.outstanding,
            "waiters": self.waiting,
            "total_created": self.total_created,
            "total_destroyed": self.total_destroyed,
            "total_acquired": self.total_acquired,
            "closed": self._closed,
        }
