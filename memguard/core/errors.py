"""Exception hierarchy for memguard.

Every failure a caller can observe from ``CacheFacade`` is a subclass of
``MemguardError``.  Pool acquisition failures, per-attempt timeouts,
driver-reported failures, exhausted retry budgets and open circuits each
get their own type so callers can tell them apart without string matching.

A cache miss is **not** an error — verbs return ``None`` for it.
"""

from __future__ import annotations


class MemguardError(Exception):
    """Base exception for all memguard errors."""


# ── Acquisition ─────────────────────────────────────────────────────────


class AcquireError(MemguardError):
    """Raised when the pool cannot hand out a connection.

    Attributes:
        detail: Human-readable reason (factory failure, wait timeout, ...).
    """

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        msg = "Could not acquire a connection"
        if detail:
            msg += f" — {detail}"
        super().__init__(msg)


class PoolExhaustedError(AcquireError):
    """Raised when the connection factory fails while the pool grows."""


class PoolClosedError(AcquireError):
    """Raised when acquiring from a pool that has been closed."""

    def __init__(self) -> None:
        super().__init__("pool is closed")


# ── Execution ───────────────────────────────────────────────────────────


class OperationTimeoutError(MemguardError, TimeoutError):
    """Raised when a single attempt exceeds its per-attempt timeout.

    Attributes:
        verb:            Cache verb (or executor label) that timed out.
        timeout_seconds: The per-attempt timeout that was exceeded.
    """

    def __init__(self, verb: str, timeout_seconds: float) -> None:
        self.verb = verb
        self.timeout_seconds = timeout_seconds
        super().__init__(f"'{verb}' timed out after {timeout_seconds}s")


class BackendError(MemguardError):
    """Raised when the backend driver reports an operation-level failure.

    Attributes:
        verb:   Cache verb that failed.
        detail: Driver-supplied description of the failure.
    """

    def __init__(self, verb: str, detail: str = "") -> None:
        self.verb = verb
        self.detail = detail
        msg = f"Backend error during '{verb}'"
        if detail:
            msg += f" — {detail}"
        super().__init__(msg)


class RetriesExhaustedError(MemguardError):
    """Raised when every attempt in the retry budget has failed.

    Attributes:
        last_error: The failure observed on the final attempt.
        attempts:   Number of attempts that were made.
    """

    def __init__(self, last_error: BaseException, attempts: int) -> None:
        self.last_error = last_error
        self.attempts = attempts
        super().__init__(f"Gave up after {attempts} attempts: {last_error}")


class CircuitOpenError(MemguardError):
    """Raised when the circuit breaker rejects a call.

    Attributes:
        backend_name: Friendly name of the guarded backend.
        retry_after:  Seconds until the circuit transitions to HALF_OPEN.
    """

    def __init__(self, backend_name: str, retry_after: float) -> None:
        self.backend_name = backend_name
        self.retry_after = max(0.0, retry_after)
        super().__init__(f"Circuit open for '{backend_name}' — retry after {self.retry_after:.1f}s")
