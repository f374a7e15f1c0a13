"""
Unit tests for DecisionEngine.
Run with:  pytest tests/
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from heartid.config import SecurityLevel
from heartid.decision import DecisionEngine
from heartid.errors import ErrorKind
from heartid.fingerprint import FingerprintBuilder
from heartid.models import DecisionKind, LockoutState

from conftest import genuine_window


class ExplodingScorer:
    def similarity(self, candidate, baseline):
        raise AssertionError("scoring must not run while locked out")


class TestDecide:

    @pytest.mark.parametrize("level, similarity, retries, expected", [
        (SecurityLevel.LOW, 0.71, 0, DecisionKind.ACCEPTED),
        (SecurityLevel.LOW, 0.65, 2, DecisionKind.RETRY_REQUIRED),
        (SecurityLevel.LOW, 0.65, 3, DecisionKind.REJECTED),
        (SecurityLevel.LOW, 0.55, 0, DecisionKind.REJECTED),
        (SecurityLevel.MEDIUM, 0.81, 0, DecisionKind.ACCEPTED),
        (SecurityLevel.MEDIUM, 0.75, 0, DecisionKind.RETRY_REQUIRED),
        (SecurityLevel.MEDIUM, 0.75, 1, DecisionKind.RETRY_REQUIRED),
        (SecurityLevel.MEDIUM, 0.75, 2, DecisionKind.REJECTED),
        (SecurityLevel.MEDIUM, 0.69, 0, DecisionKind.REJECTED),
        (SecurityLevel.HIGH, 0.91, 0, DecisionKind.ACCEPTED),
        (SecurityLevel.HIGH, 0.85, 0, DecisionKind.RETRY_REQUIRED),
        (SecurityLevel.HIGH, 0.85, 1, DecisionKind.REJECTED),
        (SecurityLevel.MAXIMUM, 0.93, 0, DecisionKind.RETRY_REQUIRED),
        (SecurityLevel.MAXIMUM, 0.96, 0, DecisionKind.ACCEPTED),
    ])
    def test_level_table(self, level, similarity, retries, expected):
        result = DecisionEngine.decide(similarity, 0.8, level, retries)
        assert result.kind is expected

    def test_accepted_carries_scores(self):
        result = DecisionEngine.decide(0.9, 0.75, SecurityLevel.MEDIUM)
        assert result.is_successful
        assert result.similarity == 0.9
        assert result.confidence == 0.75
        assert result.score == pytest.approx(90.0)

    def test_rejected_is_tagged(self):
        result = DecisionEngine.decide(0.2, 0.75, SecurityLevel.MEDIUM)
        assert result.error is ErrorKind.REJECTED
        assert not result.is_successful


class TestEvaluate:

    def test_locked_out_skips_scoring(self, t0):
        fp = FingerprintBuilder().build_from_window(genuine_window(), created_at=t0)
        lockout = LockoutState(
            is_locked_out=True,
            lockout_end_time=t0 + timedelta(minutes=10),
            lockout_reason="Account locked for 10 minutes",
        )
        result = DecisionEngine(ExplodingScorer()).evaluate(
            fp, fp, SecurityLevel.MEDIUM, lockout=lockout, now=t0
        )
        assert result.kind is DecisionKind.LOCKED_OUT
        assert result.error is ErrorKind.LOCKED_OUT
        assert result.retry_after == pytest.approx(600.0)
        assert result.reason == "Account locked for 10 minutes"

    def test_gate_allows_active_state(self, t0):
        assert DecisionEngine.gate(None, t0) is None
        assert DecisionEngine.gate(LockoutState(), t0) is None

    def test_identical_fingerprint_accepted(self, t0):
        fp = FingerprintBuilder().build_from_window(genuine_window(), created_at=t0)
        result = DecisionEngine().evaluate(fp, fp, SecurityLevel.MAXIMUM)
        assert result.kind is DecisionKind.ACCEPTED
