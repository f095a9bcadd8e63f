"""memguard — resilient asyncio access to a memcached endpoint.

A bounded FIFO connection pool, per-attempt timeouts with retry and
backoff, optional circuit breaking and operator logging of endpoint
health, behind one ``CacheFacade``.
"""

from memguard.connection import Connection, ConnectionState
from memguard.core.config import Settings
from memguard.core.errors import (
    AcquireError,
    BackendError,
    CircuitOpenError,
    MemguardError,
    OperationTimeoutError,
    PoolClosedError,
    PoolExhaustedError,
    RetriesExhaustedError,
)
from memguard.core.log import DefaultLogger, LoggerProtocol, configure_logging
from memguard.drivers.base import CacheDriver, CasResult
from memguard.facade import CacheFacade
from memguard.models.events import HealthEvent, HealthEventKind
from memguard.models.options import ConnectionOptions, PoolOptions
from memguard.observer import FailureObserver
from memguard.pool import ConnectionPool
from memguard.resilience import CircuitBreaker, RetryExecutor

__version__ = "0.1.0"

__all__ = [
    "AcquireError",
    "BackendError",
    "CacheDriver",
    "CacheFacade",
    "CasResult",
    "CircuitBreaker",
    "CircuitOpenError",
    "Connection",
    "ConnectionOptions",
    "ConnectionPool",
    "ConnectionState",
    "DefaultLogger",
    "FailureObserver",
    "HealthEvent",
    "HealthEventKind",
    "LoggerProtocol",
    "MemguardError",
    "OperationTimeoutError",
    "PoolClosedError",
    "PoolExhaustedError",
    "PoolOptions",
    "RetriesExhaustedError",
    "RetryExecutor",
    "Settings",
    "configure_logging",
]
