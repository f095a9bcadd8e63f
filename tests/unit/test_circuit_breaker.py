"""Tests for the fail-fast circuit breaker.

Covers:
- Consecutive-failure counting and tripping at the threshold
- Cool-down, trial-call admission and verdicts
- on_abort() frees a trial slot without deciding the circuit
- Rejections raise CircuitOpenError and are counted
- Constructor validation and snapshot()
"""

from __future__ import annotations

import asyncio

import pytest

from memguard.core.errors import CircuitOpenError
from memguard.resilience.circuit_breaker import CircuitBreaker, CircuitState

COOLDOWN = 0.01


async def fail_times(breaker: CircuitBreaker, n: int) -> None:
    for _ in range(n):
        await breaker.on_failure()


@pytest.fixture
async def cooled_down() -> CircuitBreaker:
    """A breaker that tripped and whose cool-down has elapsed."""
    breaker = CircuitBreaker("127.0.0.1:11211", failure_threshold=2, recovery_timeout=COOLDOWN)
    await fail_times(breaker, 2)
    await asyncio.sleep(COOLDOWN * 2)
    return breaker


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Tripping
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestTripping:
    """CLOSED → OPEN on consecutive backend failures."""

    @pytest.mark.parametrize(
        ("failures", "expected"),
        [(0, CircuitState.CLOSED), (2, CircuitState.CLOSED), (3, CircuitState.OPEN)],
    )
    async def test_threshold(self, failures, expected):
        breaker = CircuitBreaker("cache", failure_threshold=3, recovery_timeout=60.0)
        await fail_times(breaker, failures)
        assert breaker.state is expected
        assert breaker.failure_count == failures

    async def test_success_breaks_the_streak(self):
        breaker = CircuitBreaker("cache", failure_threshold=3)
        await fail_times(breaker, 2)
        await breaker.on_success()
        await fail_times(breaker, 2)
        assert breaker.state is CircuitState.CLOSED
        assert breaker.failure_count == 2

    async def test_open_circuit_rejects_with_remaining_cooldown(self):
        breaker = CircuitBreaker("cache", failure_threshold=1, recovery_timeout=60.0)
        await breaker.on_failure()

        with pytest.raises(CircuitOpenError) as exc_info:
            await breaker.pre_check()

        assert exc_info.value.backend_name == "cache"
        assert 59.0 < exc_info.value.retry_after <= 60.0
        assert breaker.total_rejections == 1
        assert breaker.total_calls == 0

    async def test_reset_closes(self):
        breaker = CircuitBreaker("cache", failure_threshold=1, recovery_timeout=60.0)
        await breaker.on_failure()
        await breaker.reset()
        assert breaker.state is CircuitState.CLOSED
        await breaker.pre_check()


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Half-open trials
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestHalfOpenTrials:
    """HALF_OPEN admission and verdicts."""

    async def test_half_open_after_cooldown(self, cooled_down):
        assert cooled_down.state is CircuitState.HALF_OPEN

    async def test_successful_trial_closes(self, cooled_down):
        await cooled_down.pre_check()
        await cooled_down.on_success()
        assert cooled_down.state is CircuitState.CLOSED
        assert cooled_down.trials_in_flight == 0

    async def test_failed_trial_reopens_and_frees_slot(self, cooled_down):
        await cooled_down.pre_check()
        await cooled_down.on_failure()
        assert cooled_down._state is CircuitState.OPEN
        assert cooled_down.trials_in_flight == 0

    async def test_second_trial_rejected(self, cooled_down):
        await cooled_down.pre_check()
        with pytest.raises(CircuitOpenError):
            await cooled_down.pre_check()

    async def test_abort_frees_slot_without_verdict(self, cooled_down):
        await cooled_down.pre_check()
        await cooled_down.on_abort()
        assert cooled_down.state is CircuitState.HALF_OPEN
        await cooled_down.pre_check()
        assert cooled_down.trials_in_flight == 1


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Construction and reporting
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestConstructionAndSnapshot:
    """Validation and counters."""

    @pytest.mark.parametrize("kwargs", [{"failure_threshold": 0}, {"half_open_max": 0}])
    def test_rejects_invalid_limits(self, kwargs):
        with pytest.raises(ValueError):
            CircuitBreaker("cache", **kwargs)

    async def test_counters(self):
        breaker = CircuitBreaker("cache", failure_threshold=5)
        await breaker.pre_check()
        await breaker.on_success()
        await breaker.pre_check()
        await breaker.on_failure()

        snap = breaker.snapshot()
        assert snap == {
            "name": "cache",
            "state": "closed",
            "failure_count": 1,
            "trials_in_flight": 0,
            "total_calls": 2,
            "total_failures": 1,
            "total_rejections": 0,
            "total_successes": 1,
        }
