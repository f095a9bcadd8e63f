"""Resilience patterns — retry executor and circuit breaker for cache calls.

Every facade verb runs through ``RetryExecutor`` (per-attempt timeout and
bounded retries with backoff); a ``CircuitBreaker`` can optionally guard
the endpoint so calls fail fast while it is unreachable.
"""

from memguard.resilience.circuit_breaker import CircuitBreaker, CircuitState
from memguard.resilience.retry import RetryExecutor, RetryRun, RetryState

__all__ = [
    "CircuitBreaker",
    "CircuitState",
    "RetryExecutor",
    "RetryRun",
    "RetryState",
]
