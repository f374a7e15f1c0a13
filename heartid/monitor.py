"""
Periodic re-authentication.

A single daemon thread captures a window every ``interval`` seconds and runs
it through :meth:`HeartAuthenticator.authenticate`.  Runs never overlap, and
once :meth:`ReauthenticationMonitor.stop` returns no further pipeline
invocation happens.
"""

from __future__ import annotations

import logging
import threading
from datetime import timedelta
from typing import Callable, Optional, Union

from heartid.authenticator import HeartAuthenticator
from heartid.models import DecisionResult, SampleWindow

logger = logging.getLogger(__name__)

SampleSource = Callable[[float], Optional[SampleWindow]]
ResultCallback = Callable[[DecisionResult], None]


class ReauthenticationMonitor:
    """
    Parameters
    ----------
    authenticator:
        Engine that performs each attempt.
    user_id:
        Wearer being monitored.
    sample_source:
        ``source(capture_seconds)`` returning a window, ``None`` or raising
        :class:`TimeoutError` when acquisition did not complete; the last two
        resolve to an insufficient-data result instead of blocking.
    interval:
        Seconds (or a :class:`~datetime.timedelta`) between attempts.
    capture_seconds:
        Capture duration handed to *sample_source*.
    on_result:
        Optional callback invoked with every result.
    """

    def __init__(
        self,
        authenticator: HeartAuthenticator,
        user_id: str,
        sample_source: SampleSource,
        interval: Union[float, timedelta] = 300.0,
        capture_seconds: float | None = None,
        on_result: ResultCallback | None = None,
    ) -> None:
        if isinstance(interval, timedelta):
            interval = interval.total_seconds()
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.authenticator = authenticator
        self.user_id = user_id
        self.sample_source = sample_source
        self.interval = float(interval)
        self.capture_seconds = (
            capture_seconds if capture_seconds is not None
            else authenticator.config.capture_seconds
        )
        self.on_result = on_result

        self._stop = threading.Event()
        self._run_lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._runs = 0
        self._last_result: DecisionResult | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self.is_running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop, name=f"reauth-{self.user_id}", daemon=True
        )
        self._thread.start()
        logger.info("Periodic re-authentication started for '%s' every %.0fs",
                    self.user_id, self.interval)

    def stop(self, timeout: float | None = None) -> None:
        """Cancel the timer and wait for an in-flight attempt to finish."""
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None
        logger.info("Periodic re-authentication stopped for '%s'", self.user_id)

    def __enter__(self) -> "ReauthenticationMonitor":
        self.start()
        return self

    def __exit__(self, *exc) -> None:
        self.stop()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def runs(self) -> int:
        return self._runs

    @property
    def last_result(self) -> DecisionResult | None:
        return self._last_result

    # ------------------------------------------------------------------
    # Work
    # ------------------------------------------------------------------

    def run_once(self) -> DecisionResult | None:
        """
        Perform one attempt now.

        Returns ``None`` without doing anything if another attempt is in
        flight or the monitor has been stopped.
        """
        if not self._run_lock.acquire(blocking=False):
            logger.debug("Skipping re-authentication: previous attempt still running")
            return None
        try:
            if self._stop.is_set() and self._thread is not None:
                return None
            window = self._capture()
            result = self.authenticator.authenticate(self.user_id, window)
            self._runs += 1
            self._last_result = result
        finally:
            self._run_lock.release()

        logger.info("Re-authentication #%d for '%s': %s",
                    self._runs, self.user_id, result.kind.value)
        if self.on_result is not None:
            self.on_result(result)
        return result

    def _loop(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.run_once()
            except Exception:
                logger.exception("Re-authentication attempt for '%s' failed", self.user_id)

    def _capture(self) -> SampleWindow:
        try:
            window = self.sample_source(self.capture_seconds)
        except TimeoutError:
            logger.warning("Sample capture timed out after %.1fs", self.capture_seconds)
            return SampleWindow()
        return window if window is not None else SampleWindow()
