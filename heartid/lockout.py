"""
Progressive lockout tracker.

State machine per user::

    Active(remaining) --failure, remaining hits 0--> LockedOut(end, reason)
    LockedOut --now >= end--> Active(max)          (escalation index kept)
    any --success / admin reset--> Active(max), index 0

The tracker is the authoritative brute-force defence.  State is persisted
through a :class:`~heartid.storage.SecureStorage` after every mutation and
loaded at most once per user per process.
"""

from __future__ import annotations

import logging
import math
import threading
from datetime import datetime, timedelta
from typing import Dict

from heartid.config import LockoutPolicy
from heartid.errors import HeartIDError
from heartid.models import LockoutState, as_utc
from heartid.storage import SecureStorage

logger = logging.getLogger(__name__)


def format_duration(duration: timedelta) -> str:
    """Human wording for a lockout length: ``10 minutes``, ``6 hours``, ``1 day``."""
    minutes = int(duration.total_seconds() // 60)
    if minutes < 120 or minutes % 60:
        return f"{minutes} minute{'s' if minutes != 1 else ''}"
    if minutes == 1440:
        return "1 day"
    return f"{minutes // 60} hours"


def format_time_remaining(seconds: float) -> str:
    """``1h 2m 3s`` / ``4m 5s`` / ``6s``."""
    if not math.isfinite(seconds) or seconds <= 0:
        return "0s"
    total = int(round(seconds))
    hours, rem = divmod(total, 3600)
    minutes, secs = divmod(rem, 60)
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


class LockoutTracker:
    """
    Thread-safe per-user lockout bookkeeping.

    Parameters
    ----------
    storage:
        Where serialized :class:`~heartid.models.LockoutState` blobs live.
    policy:
        Attempts per period and the escalation schedule.
    """

    def __init__(self, storage: SecureStorage, policy: LockoutPolicy | None = None) -> None:
        self.storage = storage
        self.policy = policy or LockoutPolicy()
        self._states: Dict[str, LockoutState] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def state(self, user_id: str, now: datetime | None = None) -> LockoutState:
        """Current state, with an elapsed lockout already lifted."""
        now = as_utc(now)
        with self._lock:
            state = self._expire(self._load(user_id), now)
            self._states[user_id] = state
            return state

    def can_attempt(self, user_id: str, now: datetime | None = None) -> bool:
        return not self.state(user_id, now).is_locked_out

    def time_remaining(self, user_id: str, now: datetime | None = None) -> float:
        now = as_utc(now)
        return self.state(user_id, now).time_remaining(now)

    def lockout_duration(self, period_index: int) -> timedelta:
        return self.policy.duration(period_index)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def record_failure(self, user_id: str, now: datetime | None = None) -> LockoutState:
        """
        Count one failed authentication.

        While locked out the failure is refused and nothing changes.  When
        the period's attempts run out the escalation index advances and a
        timed lockout starts.
        """
        now = as_utc(now)
        max_attempts = self.policy.max_attempts_per_period
        with self._lock:
            state = self._expire(self._load(user_id), now)
            if state.is_locked_out:
                logger.warning(
                    "Failure for '%s' ignored: already locked out (%s remaining)",
                    user_id, format_time_remaining(state.time_remaining(now)),
                )
                self._states[user_id] = state
                return state

            attempts = state.attempts_in_current_period + 1
            state = state.evolve(
                attempts_in_current_period=attempts,
                remaining_attempts=max(0, max_attempts - attempts),
                last_attempt_time=now,
            )

            if attempts >= max_attempts:
                index = state.current_period_index + 1
                duration = self.policy.duration(index)
                state = state.evolve(
                    current_period_index=index,
                    attempts_in_current_period=0,
                    remaining_attempts=max_attempts,
                    is_locked_out=True,
                    lockout_end_time=now + duration,
                    lockout_reason=f"Account locked for {format_duration(duration)}",
                )
                logger.warning(
                    "User '%s' locked out until %s (period %d)",
                    user_id, state.lockout_end_time.isoformat(), index,
                )
            else:
                logger.info(
                    "Failed attempt for '%s': %d attempt(s) remaining",
                    user_id, state.remaining_attempts,
                )

            self._commit(user_id, state)
            return state

    def record_success(self, user_id: str, now: datetime | None = None) -> LockoutState:
        """A verified authentication clears all escalation."""
        with self._lock:
            state = LockoutState.initial(self.policy.max_attempts_per_period)
            self._commit(user_id, state)
            logger.info("Lockout state cleared for '%s' after successful authentication", user_id)
            return state

    def reset(self, user_id: str) -> LockoutState:
        """Administrative reset; the only other way to clear escalation."""
        with self._lock:
            state = LockoutState.initial(self.policy.max_attempts_per_period)
            self._commit(user_id, state)
            logger.warning("Lockout state for '%s' reset by administrator", user_id)
            return state

    def forget(self, user_id: str) -> None:
        """Drop all lockout data for a removed user."""
        with self._lock:
            self._states.pop(user_id, None)
            self.storage.delete(user_id)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _load(self, user_id: str) -> LockoutState:
        cached = self._states.get(user_id)
        if cached is not None:
            return cached
        blob = self.storage.get(user_id)
        if blob is None:
            state = LockoutState.initial(self.policy.max_attempts_per_period)
        else:
            state = LockoutState.from_bytes(blob)
        self._states[user_id] = state
        return state

    @staticmethod
    def _expire(state: LockoutState, now: datetime) -> LockoutState:
        if not state.is_locked_out:
            return state
        if state.lockout_end_time is not None and now < state.lockout_end_time:
            return state
        logger.info("Lockout period %d expired", state.current_period_index)
        return state.evolve(is_locked_out=False, lockout_end_time=None, lockout_reason=None)

    def _commit(self, user_id: str, state: LockoutState) -> None:
        self._states[user_id] = state
        try:
            self.storage.put(user_id, state.to_bytes())
        except HeartIDError:
            logger.exception(
                "Could not persist lockout state for '%s'; in-memory state stays authoritative",
                user_id,
            )
