"""
Unit tests for ReauthenticationMonitor.
Run with:  pytest tests/
"""

from __future__ import annotations

import threading
import time
from datetime import timedelta

import pytest

from heartid.authenticator import HeartAuthenticator
from heartid.errors import ErrorKind
from heartid.models import DecisionKind
from heartid.monitor import ReauthenticationMonitor
from heartid.storage import InMemorySecureStorage

from conftest import genuine_window


@pytest.fixture
def auth():
    auth = HeartAuthenticator(InMemorySecureStorage(), InMemorySecureStorage())
    auth.enroll("alice", genuine_window())
    return auth


class TestReauthenticationMonitor:

    def test_run_once(self, auth):
        seen = []
        monitor = ReauthenticationMonitor(
            auth, "alice", lambda seconds: genuine_window(), on_result=seen.append
        )
        result = monitor.run_once()
        assert result is not None
        assert monitor.runs == 1
        assert monitor.last_result is result
        assert seen == [result]

    def test_capture_timeout_is_insufficient_data(self, auth):
        def timeout(seconds):
            raise TimeoutError

        result = ReauthenticationMonitor(auth, "alice", timeout).run_once()
        assert result.kind is DecisionKind.RETRY_REQUIRED
        assert result.error is ErrorKind.INSUFFICIENT_DATA

    def test_missing_capture_is_insufficient_data(self, auth):
        result = ReauthenticationMonitor(auth, "alice", lambda seconds: None).run_once()
        assert result.error is ErrorKind.INSUFFICIENT_DATA

    def test_capture_duration_passed_to_source(self, auth):
        durations = []

        def source(seconds):
            durations.append(seconds)
            return genuine_window()

        ReauthenticationMonitor(auth, "alice", source, capture_seconds=3.0).run_once()
        ReauthenticationMonitor(auth, "alice", source).run_once()
        assert durations == [3.0, auth.config.capture_seconds]

    def test_runs_do_not_overlap(self, auth):
        entered = threading.Event()
        release = threading.Event()

        def slow_source(seconds):
            entered.set()
            release.wait(5)
            return genuine_window()

        monitor = ReauthenticationMonitor(auth, "alice", slow_source)
        worker = threading.Thread(target=monitor.run_once)
        worker.start()
        assert entered.wait(5)
        assert monitor.run_once() is None
        release.set()
        worker.join(5)
        assert monitor.runs == 1

    def test_start_and_stop(self, auth):
        done = threading.Event()

        def on_result(result):
            if monitor.runs >= 2:
                done.set()

        monitor = ReauthenticationMonitor(
            auth, "alice", lambda seconds: genuine_window(),
            interval=0.01, on_result=on_result,
        )
        monitor.start()
        assert monitor.is_running
        assert done.wait(5)
        monitor.stop(timeout=5)
        assert not monitor.is_running

        runs = monitor.runs
        time.sleep(0.05)
        assert monitor.runs == runs

    def test_context_manager(self, auth):
        with ReauthenticationMonitor(
            auth, "alice", lambda seconds: genuine_window(), interval=timedelta(minutes=5)
        ) as monitor:
            assert monitor.is_running
            assert monitor.interval == 300.0
        assert not monitor.is_running

    def test_interval_must_be_positive(self, auth):
        with pytest.raises(ValueError):
            ReauthenticationMonitor(auth, "alice", lambda seconds: None, interval=0)
