"""Operation and RetryPolicy — immutable descriptions of one cache call.

An ``Operation`` is built by the facade for every verb invocation and is
never mutated afterwards.  The retry executor derives a ``RetryPolicy``
from it, which decides how many attempts are made and how long to wait
between them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

BackoffKind = Literal["linear", "fixed", "exponential"]

_BACKOFF_KINDS = frozenset({"linear", "fixed", "exponential"})


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget and backoff schedule.

    Attributes:
        retries:    Retries after the first attempt (``attempts = retries + 1``).
        base_delay: Seconds used as the unit of the backoff schedule.
        backoff:    ``linear`` (``base × n``), ``fixed`` (``base``) or
                    ``exponential`` (``base × 2^(n-1)``).
        max_delay:  Optional cap applied after the schedule.
    """

    retries: int = 0
    base_delay: float = 1.0
    backoff: BackoffKind = "linear"
    max_delay: float | None = None

    def __post_init__(self) -> None:
        if self.retries < 0:
            raise ValueError(f"retries must not be negative, got {self.retries}")
        if self.base_delay < 0:
            raise ValueError(f"base_delay must not be negative, got {self.base_delay}")
        if self.backoff not in _BACKOFF_KINDS:
            raise ValueError(f"Unknown backoff '{self.backoff}'. Available: {sorted(_BACKOFF_KINDS)}")
        if self.max_delay is not None and self.max_delay < 0:
            raise ValueError(f"max_delay must not be negative, got {self.max_delay}")

    @property
    def attempts(self) -> int:
        return self.retries + 1

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number *attempt* (1-indexed).

        Non-decreasing in *attempt* for every backoff kind.
        """
        if attempt < 1:
            raise ValueError(f"attempt numbers start at 1, got {attempt}")
        if self.backoff == "fixed":
            delay = self.base_delay
        elif self.backoff == "linear":
            delay = self.base_delay * attempt
        else:
            delay = self.base_delay * (2 ** (attempt - 1))
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return delay


@dataclass(frozen=True)
class Operation:
    """One logical cache request.

    Attributes:
        verb:       Facade verb name (``get``, ``set``, ...).
        args:       Positional verb arguments forwarded to the driver.
        timeout:    Per-attempt timeout in seconds.
        retries:    Retry budget after the first attempt.
        base_delay: Backoff unit in seconds; ``None`` reuses *timeout*.
    """

    verb: str
    args: tuple[Any, ...] = ()
    timeout: float = 1.0
    retries: int = 0
    base_delay: float | None = None

    def __post_init__(self) -> None:
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")
        if self.retries < 0:
            raise ValueError(f"retries must not be negative, got {self.retries}")
