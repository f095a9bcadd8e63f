"""RetryExecutor — per-attempt timeout plus bounded retry with backoff.

Every call is driven by a small state machine:

    ATTEMPTING(n)  →  SUCCEEDED                  (attempt returned)
    ATTEMPTING(n)  →  FAILED                     (budget spent / not retryable)
    ATTEMPTING(n)  →  WAITING(until)             (retry scheduled)
    WAITING        →  ATTEMPTING(n + 1)          (backoff elapsed)

An attempt that outlives its timeout fails with ``OperationTimeoutError``.
Its task is cancelled and the caller moves on without waiting for it; the
backend may still apply the request (at-least-once side effects).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeVar

from memguard.core.errors import OperationTimeoutError, RetriesExhaustedError
from memguard.models.operation import BackoffKind, RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")

Attempt = Callable[[], Awaitable[T]]
Retryable = Callable[[BaseException], bool]


class RetryState(str, Enum):
    """States of a single ``execute`` call."""

    ATTEMPTING = "attempting"
    WAITING = "waiting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class RetryRun:
    """Mutable progress record of one ``execute`` call."""

    label: str
    policy: RetryPolicy
    state: RetryState = RetryState.ATTEMPTING
    attempt: int = 0
    wait_until: float | None = None
    last_error: BaseException | None = None
    delays: list[float] = field(default_factory=list)

    def transition(self, state: RetryState) -> None:
        logger.debug(
            "%s: %s -> %s (attempt %d/%d)",
            self.label,
            self.state.value,
            state.value,
            self.attempt,
            self.policy.attempts,
        )
        self.state = state


def _always_retry(exc: BaseException) -> bool:
    return True


def _discard_outcome(task: asyncio.Task[Any]) -> None:
    """Done-callback for abandoned attempts: consume and drop the outcome."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("Discarded late failure of abandoned attempt: %r", exc)
    else:
        logger.debug("Discarded late result of abandoned attempt")


class RetryExecutor:
    """Runs attempt functions under a timeout and a retry budget.

    Args:
        backoff:   Backoff schedule shared by every call.
        max_delay: Optional cap on a single backoff delay (seconds).
        sleep:     Coroutine used for backoff waits (injectable for tests).
    """

    def __init__(
        self,
        backoff: BackoffKind = "linear",
        max_delay: float | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.backoff = backoff
        self.max_delay = max_delay
        self._sleep = sleep

    def policy_for(self, retries: int, base_delay: float) -> RetryPolicy:
        return RetryPolicy(
            retries=retries,
            base_delay=base_delay,
            backoff=self.backoff,
            max_delay=self.max_delay,
        )

    async def execute(
        self,
        attempt: Attempt[T],
        timeout: float,
        retries: int = 0,
        base_delay: float | None = None,
        *,
        label: str = "operation",
        retryable: Retryable | None = None,
    ) -> T:
        """Run *attempt* until it succeeds or the budget is spent.

        Args:
            attempt:    Zero-argument coroutine function; called once per try.
            timeout:    Per-attempt timeout in seconds.
            retries:    Retries after the first attempt.
            base_delay: Backoff unit in seconds; ``None`` reuses *timeout*.
            label:      Name used in logs and timeout errors.
            retryable:  Classifier; returning ``False`` stops retrying.

        Returns:
            The first successful attempt's result.

        Raises:
            OperationTimeoutError: The only allowed attempt timed out.
            RetriesExhaustedError: Every attempt of a multi-attempt budget
                                   failed; wraps the last failure.
            Exception:             The attempt's own error when only one
                                   attempt was allowed or it is not retryable.
        """
        if timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")
        policy = self.policy_for(retries, timeout if base_delay is None else base_delay)
        is_retryable = retryable or _always_retry
        run = RetryRun(label=label, policy=policy)
        loop = asyncio.get_running_loop()

        while True:
            run.attempt += 1
            if run.attempt > 1:
                run.transition(RetryState.ATTEMPTING)
            try:
                result = await self._attempt_once(attempt, timeout, label)
            except asyncio.CancelledError:
                run.transition(RetryState.FAILED)
                raise
            except Exception as exc:
                run.last_error = exc
                if run.attempt >= policy.attempts or not is_retryable(exc):
                    run.transition(RetryState.FAILED)
                    if run.attempt >= policy.attempts and policy.attempts > 1:
                        logger.error("%s failed after %d attempts: %s", label, run.attempt, exc)
                        raise RetriesExhaustedError(exc, run.attempt) from exc
                    raise

                delay = policy.delay_for(run.attempt)
                run.delays.append(delay)
                run.wait_until = loop.time() + delay
                run.transition(RetryState.WAITING)
                logger.warning(
                    "%s failed (attempt %d/%d), retrying in %.3fs: %s",
                    label,
                    run.attempt,
                    policy.attempts,
                    delay,
                    exc,
                )
                await self._sleep(delay)
                continue

            run.transition(RetryState.SUCCEEDED)
            if run.attempt > 1:
                logger.info("%s succeeded after %d attempts", label, run.attempt)
            return result

    async def _attempt_once(self, attempt: Attempt[T], timeout: float, label: str) -> T:
        """Run one attempt as its own task and stop waiting after *timeout*."""
        task = asyncio.ensure_future(attempt())
        try:
            done, _ = await asyncio.wait({task}, timeout=timeout)
        except asyncio.CancelledError:
            task.cancel()
            task.add_done_callback(_discard_outcome)
            raise

        if task in done:
            return task.result()

        task.cancel()
        task.add_done_callback(_discard_outcome)
        raise OperationTimeoutError(label, timeout)
