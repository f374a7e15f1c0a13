"""
Unit tests for configuration tables.
Run with:  pytest tests/
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from heartid.config import AuthenticationFrequency, LockoutPolicy, SecurityLevel
from heartid.lockout import LockoutTracker
from heartid.storage import InMemorySecureStorage


class TestSecurityLevel:

    @pytest.mark.parametrize("level, threshold, retries", [
        (SecurityLevel.LOW, 70.0, 3),
        (SecurityLevel.MEDIUM, 80.0, 2),
        (SecurityLevel.HIGH, 90.0, 1),
        (SecurityLevel.MAXIMUM, 95.0, 1),
    ])
    def test_table(self, level, threshold, retries):
        assert level.threshold == threshold
        assert level.max_retries == retries
        assert level.retry_floor == threshold - 10.0
        assert level.description

    def test_parse_is_case_insensitive(self):
        assert SecurityLevel.parse("high") is SecurityLevel.HIGH
        assert SecurityLevel.parse("Maximum") is SecurityLevel.MAXIMUM
        assert SecurityLevel.parse("LOW") is SecurityLevel.LOW

    def test_parse_unknown(self):
        with pytest.raises(ValueError):
            SecurityLevel.parse("paranoid")


class TestAuthenticationFrequency:

    def test_intervals(self):
        assert AuthenticationFrequency.MINIMAL.interval == timedelta(hours=1)
        assert AuthenticationFrequency.CONTINUOUS.interval == timedelta(minutes=5)


class TestLockoutPolicy:

    def test_custom_schedule(self):
        policy = LockoutPolicy(periods_minutes=(1, 2), overflow_increment_minutes=5)
        assert policy.duration(2) == timedelta(minutes=2)
        assert policy.duration(4) == timedelta(minutes=12)

    def test_tracker_exposes_schedule(self):
        tracker = LockoutTracker(InMemorySecureStorage())
        assert tracker.lockout_duration(5) == timedelta(hours=6)
