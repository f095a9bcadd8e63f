"""Tests for PoolOptions, ConnectionOptions and HealthEvent."""

import pytest
from pydantic import ValidationError

from memguard.models.events import HealthEvent, HealthEventKind
from memguard.models.options import ConnectionOptions, PoolOptions


class TestPoolOptions:
    """Population bounds validation."""

    def test_defaults(self):
        options = PoolOptions()
        assert options.min == 0
        assert options.max == 10

    def test_min_above_max_rejected(self):
        with pytest.raises(ValidationError, match="must not exceed max"):
            PoolOptions(min=3, max=2)

    def test_zero_max_rejected(self):
        with pytest.raises(ValidationError):
            PoolOptions(max=0)

    def test_negative_min_rejected(self):
        with pytest.raises(ValidationError):
            PoolOptions(min=-1)

    def test_frozen(self):
        options = PoolOptions()
        with pytest.raises(ValidationError):
            options.max = 3


class TestConnectionOptions:
    """Idle timeout and reap interval."""

    def test_defaults(self):
        options = ConnectionOptions()
        assert options.idle_timeout == 5.0
        assert options.evict_on_failure is False
        assert options.encoding == "utf-8"

    def test_reap_interval_defaults_to_half_idle_timeout(self):
        assert ConnectionOptions(idle_timeout=4.0).effective_reap_interval == 2.0

    def test_explicit_reap_interval(self):
        assert ConnectionOptions(reap_interval=0.5).effective_reap_interval == 0.5

    def test_non_positive_idle_timeout_rejected(self):
        with pytest.raises(ValidationError):
            ConnectionOptions(idle_timeout=0)


class TestHealthEvent:
    """Constructors for the two event kinds."""

    def test_failure(self):
        event = HealthEvent.failure("a:11211", ["refused", "reset"])
        assert event.kind is HealthEventKind.FAILURE
        assert event.messages == ("refused", "reset")
        assert event.total_down_time_ms is None

    def test_reconnecting(self):
        event = HealthEvent.reconnecting("a:11211", 1500.0)
        assert event.kind is HealthEventKind.RECONNECTING
        assert event.total_down_time_ms == 1500.0
        assert event.messages == ()
