"""AiomcacheDriver — ``CacheDriver`` on top of the aiomcache client.

Each driver wraps one ``aiomcache.Client`` capped at a single socket, so a
memguard ``Connection`` really is one backend session.  Keys and ``str``
values are encoded with the configured codec; returned values are decoded
back when possible.

Health reporting:

    socket-level error      →  FAILURE event (endpoint marked down)
    next call while down    →  RECONNECTING event with downtime so far
    first success after     →  endpoint marked up again

Protocol-level errors (``aiomcache.exceptions.ClientException``) are not
health events; they propagate to the caller.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any

import aiomcache
from aiomcache.exceptions import ClientException

from memguard.drivers.base import CasResult, HealthSink
from memguard.models.events import HealthEvent

DEFAULT_PORT = 11211

# IncompleteReadError is an EOFError; ConnectionError is an OSError
_CONNECTION_ERRORS = (OSError, EOFError)


def parse_location(location: str) -> tuple[str, int]:
    """Split ``host:port`` into its parts; the port defaults to 11211."""
    host, sep, port = location.rpartition(":")
    if not sep:
        return location, DEFAULT_PORT
    if not host:
        raise ValueError(f"Missing host in server location '{location}'")
    try:
        return host, int(port)
    except ValueError:
        raise ValueError(f"Invalid port in server location '{location}'") from None


class AiomcacheDriver:
    """Single-session memcached driver.

    Args:
        server:    Endpoint as ``host:port``.
        encoding:  Codec for keys and ``str`` values; ``None`` returns raw
                   bytes from reads (keys still use UTF-8).
        conn_args: Extra keyword arguments for ``asyncio.open_connection``.
    """

    def __init__(
        self,
        server: str,
        *,
        encoding: str | None = "utf-8",
        conn_args: Mapping[str, Any] | None = None,
    ) -> None:
        self.server = server
        self._host, self._port = parse_location(server)
        self._encoding = encoding
        self._conn_args = conn_args
        self._client = self._new_client()
        self._sink: HealthSink | None = None
        self._down_since: float | None = None
        self._closed = False

    def _new_client(self) -> aiomcache.Client:
        return aiomcache.Client(
            self._host,
            self._port,
            pool_size=1,
            conn_args=self._conn_args,
        )

    # ── Health ──────────────────────────────────────────────────────

    def bind_health(self, sink: HealthSink) -> None:
        self._sink = sink

    def _emit(self, event: HealthEvent) -> None:
        if self._sink is not None:
            self._sink(event)

    async def _call(self, method: Callable[..., Awaitable[Any]], *args: Any) -> Any:
        if self._down_since is not None:
            down_ms = (time.monotonic() - self._down_since) * 1000
            self._emit(HealthEvent.reconnecting(self.server, round(down_ms, 2)))
        try:
            result = await method(*args)
        except _CONNECTION_ERRORS as exc:
            if self._down_since is None:
                self._down_since = time.monotonic()
            self._emit(HealthEvent.failure(self.server, [f"{type(exc).__name__}: {exc}"]))
            raise
        self._down_since = None
        return result

    # ── Codec ───────────────────────────────────────────────────────

    def _key(self, key: str | bytes) -> bytes:
        if isinstance(key, bytes):
            return key
        return str(key).encode(self._encoding or "utf-8")

    def _value(self, value: Any) -> bytes:
        if isinstance(value, bytes):
            return value
        if isinstance(value, str):
            return value.encode(self._encoding or "utf-8")
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value).encode("ascii")
        raise TypeError(f"Cannot store value of type {type(value).__name__}; encode it to bytes first")

    def _decode(self, raw: Any) -> Any:
        if raw is None or self._encoding is None or not isinstance(raw, bytes):
            return raw
        try:
            return raw.decode(self._encoding)
        except UnicodeDecodeError:
            return raw

    def _decode_stats(self, raw: Mapping[bytes, Any]) -> dict[str, Any]:
        return {k.decode("utf-8", "replace"): self._decode(v) for k, v in raw.items()}

    # ── Verbs ───────────────────────────────────────────────────────

    async def touch(self, key: str, lifetime: int) -> bool:
        return await self._call(self._client.touch, self._key(key), lifetime)

    async def get(self, key: str) -> Any | None:
        return self._decode(await self._call(self._client.get, self._key(key)))

    async def gets(self, key: str) -> CasResult | None:
        value, cas = await self._call(self._client.gets, self._key(key))
        if value is None:
            return None
        return CasResult(value=self._decode(value), cas=cas)

    async def get_multi(self, keys: Sequence[str]) -> dict[str, Any]:
        # aiomcache rejects repeated keys
        unique = list(dict.fromkeys(keys))
        if not unique:
            return {}
        values = await self._call(self._client.multi_get, *(self._key(k) for k in unique))
        return {key: self._decode(value) for key, value in zip(unique, values) if value is not None}

    async def set(self, key: str, value: Any, lifetime: int = 0) -> bool:
        return await self._call(self._client.set, self._key(key), self._value(value), lifetime)

    async def replace(self, key: str, value: Any, lifetime: int = 0) -> bool:
        return await self._call(self._client.replace, self._key(key), self._value(value), lifetime)

    async def add(self, key: str, value: Any, lifetime: int = 0) -> bool:
        return await self._call(self._client.add, self._key(key), self._value(value), lifetime)

    async def cas(self, key: str, value: Any, cas: Any, lifetime: int = 0) -> bool:
        return await self._call(self._client.cas, self._key(key), self._value(value), cas, lifetime)

    async def append(self, key: str, value: Any) -> bool:
        return await self._call(self._client.append, self._key(key), self._value(value))

    async def prepend(self, key: str, value: Any) -> bool:
        return await self._call(self._client.prepend, self._key(key), self._value(value))

    async def incr(self, key: str, amount: int = 1) -> int | None:
        return await self._call(self._client.incr, self._key(key), amount)

    async def decr(self, key: str, amount: int = 1) -> int | None:
        return await self._call(self._client.decr, self._key(key), amount)

    async def delete(self, key: str) -> bool:
        return await self._call(self._client.delete, self._key(key))

    async def version(self) -> str:
        raw = await self._call(self._client.version)
        return raw.decode("ascii", "replace") if isinstance(raw, bytes) else str(raw)

    async def flush(self) -> bool:
        await self._call(self._client.flush_all)
        return True

    async def stats(self) -> dict[str, Any]:
        return self._decode_stats(await self._call(self._client.stats))

    async def settings(self) -> dict[str, Any]:
        return self._decode_stats(await self._call(self._client.stats, b"settings"))

    async def slabs(self) -> dict[str, Any]:
        return self._decode_stats(await self._call(self._client.stats, b"slabs"))

    async def items(self) -> dict[str, Any]:
        return self._decode_stats(await self._call(self._client.stats, b"items"))

    async def cachedump(self, slab_id: int, number: int) -> dict[str, Any]:
        return await self._call(self._cachedump, int(slab_id), int(number))

    async def _cachedump(self, slab_id: int, number: int) -> dict[str, str]:
        # aiomcache parses only STAT lines, so ITEM lines are read here on the
        # client's own pooled socket.
        pool = self._client._pool
        conn = await pool.acquire()
        try:
            conn.writer.write(f"stats cachedump {slab_id} {number}\r\n".encode("ascii"))
            await conn.writer.drain()
            items: dict[str, str] = {}
            line = await conn.reader.readline()
            while line != b"END\r\n":
                if not line:
                    raise EOFError("connection closed during cachedump")
                parts = line.rstrip(b"\r\n").split(b" ", 2)
                if len(parts) < 2 or parts[0] != b"ITEM":
                    raise ClientException("cachedump failed", line)
                items[parts[1].decode("utf-8", "replace")] = parts[2].decode("ascii", "replace") if len(parts) > 2 else ""
                line = await conn.reader.readline()
            return items
        except BaseException:
            # Unread response bytes would desync the socket; make the pool drop it
            conn.reader.set_exception(ConnectionAbortedError("cachedump aborted"))
            raise
        finally:
            pool.release(conn)

    async def end(self) -> bool:
        await self.close()
        return True

    # ── Lifecycle ───────────────────────────────────────────────────

    async def reset(self) -> None:
        """Swap in a fresh client; the driver is open again afterwards."""
        old = self._client
        self._client = self._new_client()
        self._closed = False
        await old.close()

    async def close(self) -> None:
        if self._closed:
            return
        await self._client.close()
        # Set after the client closed; an interrupted close runs again
        self._closed = True
