"""FailureObserver — turns connection health events into log records.

Purely observational: it never evicts, retries or fails anything.  Whether
a failed connection is reused is the pool's ``evict_on_failure`` policy.
"""

from __future__ import annotations

from collections.abc import Callable

from memguard.connection import Connection
from memguard.core.log import LoggerProtocol
from memguard.models.events import HealthEvent, HealthEventKind


class FailureObserver:
    """Forwards ``HealthEvent`` values to a leveled logger.

    Args:
        logger: Any ``LoggerProtocol`` implementation.
    """

    def __init__(self, logger: LoggerProtocol) -> None:
        self._logger = logger

    def attach(self, connection: Connection) -> Callable[[], None]:
        """Subscribe to *connection*'s health events; returns the unsubscriber."""
        return connection.subscribe(self.handle)

    def handle(self, event: HealthEvent) -> None:
        if event.kind is HealthEventKind.FAILURE:
            self._logger.log(
                "error",
                f"server {event.server} went down due to: {', '.join(event.messages)}",
            )
        elif event.kind is HealthEventKind.RECONNECTING:
            self._logger.log(
                "debug",
                f"downtime caused by server {event.server}: {event.total_down_time_ms} ms",
            )
