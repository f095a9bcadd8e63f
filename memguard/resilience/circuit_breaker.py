"""Optional fail-fast guard for the cache endpoint.

While memcached is unreachable every call would otherwise take a pooled
connection, burn its whole retry budget and only then fail.  The breaker
counts consecutive backend failures reported by the facade and, past a
threshold, rejects calls up front until a cool-down has elapsed:

    CLOSED     failures reach threshold        → OPEN
    OPEN       cool-down elapsed               → HALF_OPEN (trial call admitted)
    HALF_OPEN  trial verdict: success/failure  → CLOSED / OPEN
    HALF_OPEN  trial ended without a verdict   → HALF_OPEN (slot freed)

Misses and logical ``False`` results are successes: only the error
classes the facade treats as backend failures move the counter.
"""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum

from memguard.core.errors import CircuitOpenError

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Consecutive-failure breaker shared by every call of one facade.

    Args:
        name:              Endpoint label used in logs and ``CircuitOpenError``.
        failure_threshold: Consecutive backend failures that open the circuit.
        recovery_timeout:  Cool-down in seconds before a trial call is admitted.
        half_open_max:     Trial calls allowed in flight while HALF_OPEN.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        half_open_max: int = 1,
    ) -> None:
        if failure_threshold < 1:
            raise ValueError(f"failure_threshold must be at least 1, got {failure_threshold}")
        if half_open_max < 1:
            raise ValueError(f"half_open_max must be at least 1, got {half_open_max}")
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.half_open_max = half_open_max

        self._state = CircuitState.CLOSED
        self._streak = 0
        self._opened_at = 0.0
        self._trials = 0
        self._lock = asyncio.Lock()

        self.total_calls = 0
        self.total_failures = 0
        self.total_rejections = 0
        self.total_successes = 0

    @property
    def state(self) -> CircuitState:
        if self._state is CircuitState.OPEN and self._cooldown_left() <= 0:
            return CircuitState.HALF_OPEN
        return self._state

    @property
    def failure_count(self) -> int:
        """Consecutive failures since the last success."""
        return self._streak

    @property
    def trials_in_flight(self) -> int:
        return self._trials

    def _cooldown_left(self) -> float:
        return self.recovery_timeout - (time.monotonic() - self._opened_at)

    def _trip(self, why: str) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = time.monotonic()
        self._trials = 0
        logger.warning("Circuit for %s opened: %s", self.name, why)

    # ── Call accounting ──────────────────────────────────────────────

    async def pre_check(self) -> None:
        """Admit one call, or raise ``CircuitOpenError`` without touching the pool."""
        async with self._lock:
            state = self.state
            if state is CircuitState.OPEN:
                self.total_rejections += 1
                raise CircuitOpenError(self.name, self._cooldown_left())
            if state is CircuitState.HALF_OPEN:
                if self._trials >= self.half_open_max:
                    self.total_rejections += 1
                    # Retry once the running trial has a verdict
                    raise CircuitOpenError(self.name, 0.0)
                self._trials += 1
            self.total_calls += 1

    async def on_success(self) -> None:
        async with self._lock:
            self.total_successes += 1
            self._streak = 0
            if self._state is not CircuitState.CLOSED:
                self._state = CircuitState.CLOSED
                self._trials = 0
                logger.info("Circuit for %s closed: trial call succeeded", self.name)

    async def on_failure(self) -> None:
        async with self._lock:
            self.total_failures += 1
            self._streak += 1
            state = self.state
            if state is CircuitState.HALF_OPEN:
                self._trip("trial call failed")
            elif state is CircuitState.CLOSED and self._streak >= self.failure_threshold:
                self._trip(f"{self._streak} consecutive failures")

    async def on_abort(self) -> None:
        """The admitted call ended without a backend verdict (cancelled, misuse)."""
        async with self._lock:
            if self._trials:
                self._trials -= 1

    async def reset(self) -> None:
        async with self._lock:
            self._state = CircuitState.CLOSED
            self._streak = 0
            self._trials = 0

    def snapshot(self) -> dict:
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self._streak,
            "trials_in_flight": self._trials,
            "total_calls": self.total_calls,
            "total_failures": self.total_failures,
            "total_rejections": self.total_rejections,
            "total_successes": self.total_successes,
        }
