"""Connection health events.

Drivers report trouble with the endpoint as ``HealthEvent`` values; the
owning ``Connection`` re-publishes them to its subscribers.  Events are
informational only and carry no ownership of the connection.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class HealthEventKind(str, Enum):
    """Kinds of health notifications a driver can emit."""

    FAILURE = "failure"
    RECONNECTING = "reconnecting"


@dataclass(frozen=True)
class HealthEvent:
    """A single health notification.

    Attributes:
        kind:               ``FAILURE`` or ``RECONNECTING``.
        server:             Identifier of the endpoint (``host:port``).
        messages:           Failure descriptions (FAILURE only).
        total_down_time_ms: Milliseconds the endpoint has been down
                            (RECONNECTING only).
    """

    kind: HealthEventKind
    server: str
    messages: tuple[str, ...] = ()
    total_down_time_ms: float | None = None

    @classmethod
    def failure(cls, server: str, messages: list[str] | tuple[str, ...]) -> HealthEvent:
        return cls(kind=HealthEventKind.FAILURE, server=server, messages=tuple(messages))

    @classmethod
    def reconnecting(cls, server: str, total_down_time_ms: float) -> HealthEvent:
        return cls(
            kind=HealthEventKind.RECONNECTING,
            server=server,
            total_down_time_ms=total_down_time_ms,
        )
