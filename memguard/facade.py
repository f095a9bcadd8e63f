"""CacheFacade — the public, resilient cache API.

Every verb follows the same path::

    circuit breaker pre-check (optional)
      → pool.acquire()
      → RetryExecutor.execute(connection.call(verb, *args), timeout, retries)
      → pool.release()  (pool.destroy() once the session is closed)

The connection is given back exactly once on every exit path, including
timeouts, retries exhausted and cancellation.  A cache miss is a normal
result (``None``); only real failures raise.

Usage::

    async with CacheFacade("127.0.0.1:11211", pool=PoolOptions(max=4)) as cache:
        await cache.set("greeting", "hello", 60)
        assert await cache.get("greeting") == "hello"
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Sequence
from typing import Any

from memguard.connection import Connection
from memguard.core.config import Settings
from memguard.core.errors import (
    BackendError,
    OperationTimeoutError,
    PoolExhaustedError,
    RetriesExhaustedError,
)
from memguard.core.log import DefaultLogger, LoggerProtocol
from memguard.drivers.aiomcache_driver import AiomcacheDriver
from memguard.drivers.base import CasResult, DriverFactory
from memguard.models.operation import BackoffKind, Operation
from memguard.models.options import ConnectionOptions, PoolOptions
from memguard.observer import FailureObserver
from memguard.pool import ConnectionPool
from memguard.resilience.circuit_breaker import CircuitBreaker
from memguard.resilience.retry import RetryExecutor

# Failures that count against the circuit breaker
_BACKEND_FAILURES = (BackendError, OperationTimeoutError, RetriesExhaustedError, PoolExhaustedError)


def _aiomcache_factory(locations: tuple[str, ...], encoding: str | None) -> DriverFactory:
    if len(locations) != 1:
        raise ValueError(
            f"The aiomcache driver pools a single endpoint; got {len(locations)} locations. "
            "Pass a driver_factory to use several."
        )
    location = locations[0]

    def factory() -> AiomcacheDriver:
        return AiomcacheDriver(location, encoding=encoding)

    return factory


class CacheFacade:
    """Pooled, timeout-bounded, retrying cache client.

    Args:
        server_location:  ``host:port`` or a sequence of them.
        pool:             Pool population bounds.
        connection:       Idle timeout, failure eviction and value codec.
        logger:           ``LoggerProtocol`` for operator logs; defaults to
                          ``DefaultLogger(debug_logging)``.
        debug_logging:    Emit per-call debug lines with the default logger.
        default_timeout:  Per-attempt timeout in seconds when a verb gets none.
        default_retries:  Retry budget when a verb gets none.
        retry_base_delay: Backoff unit in seconds; ``None`` reuses the timeout.
        backoff:          ``linear``, ``fixed`` or ``exponential``.
        max_delay:        Optional cap on one backoff delay.
        acquire_timeout:  Seconds to wait for a pooled connection; ``None``
                          waits until one frees up.
        circuit_breaker:  Optional breaker checked before acquiring.
        driver_factory:   Builds one ``CacheDriver`` per connection; defaults
                          to ``AiomcacheDriver`` for the single location.
        executor:         Custom ``RetryExecutor`` (overrides backoff/max_delay).
    """

    def __init__(
        self,
        server_location: str | Sequence[str] = "127.0.0.1:11211",
        *,
        pool: PoolOptions | None = None,
        connection: ConnectionOptions | None = None,
        logger: LoggerProtocol | None = None,
        debug_logging: bool = False,
        default_timeout: float = 1.0,
        default_retries: int = 0,
        retry_base_delay: float | None = None,
        backoff: BackoffKind = "linear",
        max_delay: float | None = None,
        acquire_timeout: float | None = None,
        circuit_breaker: CircuitBreaker | None = None,
        driver_factory: DriverFactory | None = None,
        executor: RetryExecutor | None = None,
    ) -> None:
        if isinstance(server_location, str):
            locations: tuple[str, ...] = (server_location,)
        else:
            locations = tuple(server_location)
        if not locations:
            raise ValueError("server_location must name at least one endpoint")
        if default_timeout <= 0:
            raise ValueError(f"default_timeout must be positive, got {default_timeout}")
        if default_retries < 0:
            raise ValueError(f"default_retries must not be negative, got {default_retries}")

        self.server_locations = locations
        self.pool_options = pool or PoolOptions()
        self.connection_options = connection or ConnectionOptions()
        self.debug_logging = debug_logging
        self.logger: LoggerProtocol = logger or DefaultLogger(debug_logging)
        self.default_timeout = default_timeout
        self.default_retries = default_retries
        self.retry_base_delay = retry_base_delay
        self.acquire_timeout = acquire_timeout

        self._driver_factory = driver_factory or _aiomcache_factory(locations, self.connection_options.encoding)
        self._executor = executor or RetryExecutor(backoff=backoff, max_delay=max_delay)
        self._breaker = circuit_breaker
        self._observer = FailureObserver(self.logger)
        self._pool = ConnectionPool(
            self._create_connection,
            self.pool_options,
            self.connection_options,
            name=",".join(locations),
        )

        self.logger.log("debug", f"connect to cache server: {', '.join(locations)}")

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        *,
        driver_factory: DriverFactory | None = None,
        logger: LoggerProtocol | None = None,
    ) -> CacheFacade:
        """Build a facade from ``Settings`` (environment by default)."""
        settings = settings or Settings()
        locations = [loc.strip() for loc in settings.SERVER_LOCATION.split(",") if loc.strip()]
        breaker = None
        if settings.CIRCUIT_BREAKER_ENABLED:
            breaker = CircuitBreaker(
                name=settings.SERVER_LOCATION,
                failure_threshold=settings.CIRCUIT_BREAKER_THRESHOLD,
                recovery_timeout=settings.CIRCUIT_BREAKER_RECOVERY_SECONDS,
            )
        return cls(
            locations,
            pool=PoolOptions(min=settings.POOL_MIN, max=settings.POOL_MAX),
            connection=ConnectionOptions(
                idle_timeout=settings.IDLE_TIMEOUT_SECONDS,
                evict_on_failure=settings.EVICT_ON_FAILURE,
                encoding=settings.VALUE_ENCODING,
            ),
            logger=logger,
            debug_logging=settings.DEBUG_LOGGING,
            default_timeout=settings.DEFAULT_TIMEOUT_SECONDS,
            default_retries=settings.DEFAULT_RETRIES,
            retry_base_delay=settings.RETRY_BASE_DELAY_SECONDS,
            backoff=settings.RETRY_BACKOFF,
            max_delay=settings.RETRY_MAX_DELAY_SECONDS,
            acquire_timeout=settings.ACQUIRE_TIMEOUT_SECONDS,
            circuit_breaker=breaker,
            driver_factory=driver_factory,
        )

    # ── Lifecycle ────────────────────────────────────────────────────

    @property
    def pool(self) -> ConnectionPool:
        return self._pool

    @property
    def circuit_breaker(self) -> CircuitBreaker | None:
        return self._breaker

    async def start(self) -> None:
        """Warm ``pool.min`` connections and start idle eviction."""
        await self._pool.start()

    async def close(self) -> None:
        """Close the pool and every idle connection."""
        await self._pool.close()

    async def __aenter__(self) -> CacheFacade:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def snapshot(self) -> dict:
        """Return a JSON-serializable snapshot of pool and breaker state."""
        return {
            "servers": list(self.server_locations),
            "pool": self._pool.snapshot(),
            "circuit_breaker": self._breaker.snapshot() if self._breaker is not None else None,
        }

    async def _create_connection(self) -> Connection:
        driver = self._driver_factory()
        if inspect.isawaitable(driver):
            driver = await driver
        conn = Connection(driver)
        self._observer.attach(conn)
        return conn

    # ── Execution core ───────────────────────────────────────────────

    async def _run(
        self,
        verb: str,
        args: tuple[Any, ...],
        timeout: float | None,
        retries: int | None,
    ) -> Any:
        operation = Operation(
            verb=verb,
            args=args,
            timeout=self.default_timeout if timeout is None else timeout,
            retries=self.default_retries if retries is None else retries,
            base_delay=self.retry_base_delay,
        )
        breaker = self._breaker
        if breaker is not None:
            await breaker.pre_check()

        try:
            result = await self._execute(operation)
        except asyncio.CancelledError:
            if breaker is not None:
                await breaker.on_abort()
            raise
        except Exception as exc:
            self.logger.log("error", f"cache.{verb}() error:", exc)
            if breaker is not None:
                if isinstance(exc, _BACKEND_FAILURES):
                    await breaker.on_failure()
                else:
                    await breaker.on_abort()
            raise

        if breaker is not None:
            await breaker.on_success()
        self.logger.log("debug", f"cache.{verb}() return:", result)
        return result

    async def _execute(self, operation: Operation) -> Any:
        conn = await self._pool.acquire(self.acquire_timeout)
        try:
            return await self._executor.execute(
                self._attempt(conn, operation),
                operation.timeout,
                operation.retries,
                operation.base_delay,
                label=operation.verb,
            )
        finally:
            if conn.closed:
                await self._pool.destroy(conn)
            else:
                await self._pool.release(conn)

    def _attempt(self, conn: Connection, operation: Operation):
        tries = 0

        async def attempt() -> Any:
            nonlocal tries
            tries += 1
            self.logger.log("debug", f"cache.{operation.verb}() try {tries} times", *operation.args)
            return await conn.call(operation.verb, *operation.args)

        return attempt

    # ── Verbs ────────────────────────────────────────────────────────

    async def touch(
        self, key: str, lifetime: int, *, timeout: float | None = None, retries: int | None = None
    ) -> bool:
        """Refresh the lifetime of *key*; ``False`` when it does not exist."""
        return await self._run("touch", (key, lifetime), timeout, retries)

    async def get(self, key: str, *, timeout: float | None = None, retries: int | None = None) -> Any | None:
        """Return the value stored under *key*, or ``None`` when missing."""
        return await self._run("get", (key,), timeout, retries)

    async def gets(
        self, key: str, *, timeout: float | None = None, retries: int | None = None
    ) -> CasResult | None:
        """Return value and CAS token for *key*, or ``None`` when missing."""
        return await self._run("gets", (key,), timeout, retries)

    async def get_multi(
        self, keys: Sequence[str], *, timeout: float | None = None, retries: int | None = None
    ) -> dict[str, Any]:
        """Return ``{key: value}`` for the keys that exist."""
        return await self._run("get_multi", (tuple(keys),), timeout, retries)

    async def set(
        self,
        key: str,
        value: Any,
        lifetime: int = 0,
        *,
        timeout: float | None = None,
        retries: int | None = None,
    ) -> bool:
        return await self._run("set", (key, value, lifetime), timeout, retries)

    async def replace(
        self,
        key: str,
        value: Any,
        lifetime: int = 0,
        *,
        timeout: float | None = None,
        retries: int | None = None,
    ) -> bool:
        """Store only if *key* exists; ``False`` otherwise."""
        return await self._run("replace", (key, value, lifetime), timeout, retries)

    async def add(
        self,
        key: str,
        value: Any,
        lifetime: int = 0,
        *,
        timeout: float | None = None,
        retries: int | None = None,
    ) -> bool:
        """Store only if *key* does not exist; ``False`` otherwise."""
        return await self._run("add", (key, value, lifetime), timeout, retries)

    async def cas(
        self,
        key: str,
        value: Any,
        cas: Any,
        lifetime: int = 0,
        *,
        timeout: float | None = None,
        retries: int | None = None,
    ) -> bool:
        """Store only if *key* still carries CAS token *cas*; ``False`` otherwise."""
        return await self._run("cas", (key, value, cas, lifetime), timeout, retries)

    async def append(
        self, key: str, value: Any, *, timeout: float | None = None, retries: int | None = None
    ) -> bool:
        return await self._run("append", (key, value), timeout, retries)

    async def prepend(
        self, key: str, value: Any, *, timeout: float | None = None, retries: int | None = None
    ) -> bool:
        return await self._run("prepend", (key, value), timeout, retries)

    async def incr(
        self, key: str, amount: int = 1, *, timeout: float | None = None, retries: int | None = None
    ) -> int | None:
        """Increment a numeric value; ``None`` when *key* is missing."""
        return await self._run("incr", (key, amount), timeout, retries)

    async def decr(
        self, key: str, amount: int = 1, *, timeout: float | None = None, retries: int | None = None
    ) -> int | None:
        """Decrement a numeric value (floored at 0); ``None`` when *key* is missing."""
        return await self._run("decr", (key, amount), timeout, retries)

    async def delete(self, key: str, *, timeout: float | None = None, retries: int | None = None) -> bool:
        return await self._run("delete", (key,), timeout, retries)

    async def version(self, *, timeout: float | None = None, retries: int | None = None) -> str:
        return await self._run("version", (), timeout, retries)

    async def flush(self, *, timeout: float | None = None, retries: int | None = None) -> bool:
        """Invalidate every item on the server."""
        return await self._run("flush", (), timeout, retries)

    async def stats(self, *, timeout: float | None = None, retries: int | None = None) -> dict[str, Any]:
        return await self._run("stats", (), timeout, retries)

    async def settings(self, *, timeout: float | None = None, retries: int | None = None) -> dict[str, Any]:
        return await self._run("settings", (), timeout, retries)

    async def slabs(self, *, timeout: float | None = None, retries: int | None = None) -> dict[str, Any]:
        return await self._run("slabs", (), timeout, retries)

    async def items(self, *, timeout: float | None = None, retries: int | None = None) -> dict[str, Any]:
        return await self._run("items", (), timeout, retries)

    async def cachedump(
        self,
        slab_id: int,
        number: int,
        *,
        timeout: float | None = None,
        retries: int | None = None,
    ) -> dict[str, Any]:
        """List up to *number* keys stored in slab class *slab_id*."""
        return await self._run("cachedump", (slab_id, number), timeout, retries)

    async def end(self, *, timeout: float | None = None, retries: int | None = None) -> bool:
        """Close the session of the pooled connection serving this call.

        The connection is destroyed afterwards; the pool replaces it on
        demand.
        """
        return await self._run("end", (), timeout, retries)
