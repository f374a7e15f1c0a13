"""
Enrollment and authentication orchestration.

:class:`HeartAuthenticator` wires the pipeline together::

    window ─► SampleValidator ─► FeatureExtractor ─► FingerprintBuilder
                                                          │
             LockoutTracker gate ◄────────────────────────┘
                     │
                     ▼
    baseline ─► SimilarityScorer ─► DecisionEngine ─► DecisionResult
                                                          │
                           LockoutTracker bookkeeping ◄───┤
                           audit trail / subscribers  ◄───┘

Storage is injected; nothing here reaches for a process-wide singleton.
Attempts for one user are serialized through a per-user lock.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Deque, Dict, List, Tuple

from heartid.config import EngineConfig, SecurityLevel
from heartid.decision import DecisionEngine
from heartid.errors import ErrorKind, HeartIDError, InsufficientDataError, NotEnrolledError
from heartid.feature_extractor import FeatureExtractor
from heartid.fingerprint import FingerprintBuilder
from heartid.lockout import LockoutTracker
from heartid.models import (
    AuthenticationAttempt,
    AuthenticationStatistics,
    DecisionKind,
    DecisionResult,
    EnrollmentBaseline,
    LockoutState,
    SampleWindow,
    as_utc,
)
from heartid.similarity import SimilarityScorer
from heartid.storage import SecureStorage
from heartid.validator import SampleValidator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthenticationEvent:
    user_id: str
    result: DecisionResult
    timestamp: datetime


Listener = Callable[[AuthenticationEvent], None]


class HeartAuthenticator:
    """
    Parameters
    ----------
    baseline_storage:
        Holds one serialized :class:`~heartid.models.EnrollmentBaseline` per user.
    lockout_storage:
        Holds one serialized :class:`~heartid.models.LockoutState` per user.
    config:
        Engine configuration; defaults reproduce the watch application.
    """

    def __init__(
        self,
        baseline_storage: SecureStorage,
        lockout_storage: SecureStorage,
        config: EngineConfig | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.baseline_storage = baseline_storage

        extraction = self.config.extraction
        self.validator = SampleValidator(extraction)
        self.extractor = FeatureExtractor(extraction)
        self.builder = FingerprintBuilder(extraction, self.extractor)
        self.engine = DecisionEngine(SimilarityScorer())
        self.lockout = LockoutTracker(lockout_storage, self.config.lockout)

        self._user_locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._retries: Dict[str, int] = {}
        self._attempts: Dict[str, Deque[AuthenticationAttempt]] = {}
        self._listeners: List[Listener] = []

    # ------------------------------------------------------------------
    # Enrollment
    # ------------------------------------------------------------------

    def enroll(
        self,
        user_id: str,
        window: SampleWindow,
        security_level: SecurityLevel | None = None,
        now: datetime | None = None,
    ) -> EnrollmentBaseline:
        """
        Create (or wholesale replace) the user's baseline.

        Raises
        ------
        InsufficientDataError
            The window fails validation or its fingerprint confidence is
            below ``min_enrollment_confidence``.
        StorageUnavailableError
            The baseline could not be written.
        """
        now = as_utc(now)
        level = security_level or self.config.default_security_level
        logger.info("Enrolling '%s' with %d samples (%s security)", user_id, len(window), level.value)

        with self._user_lock(user_id):
            validation = self.validator.validate(window)
            if not validation:
                logger.warning("Enrollment for '%s' rejected: %s", user_id, validation.reason)
                raise InsufficientDataError(validation.reason)

            fingerprint = self.builder.build_from_window(window, created_at=now)
            if fingerprint.confidence < self.config.min_enrollment_confidence:
                reason = (
                    f"Capture quality too low: confidence {fingerprint.confidence:.2f} "
                    f"< {self.config.min_enrollment_confidence:.2f}"
                )
                logger.warning("Enrollment for '%s' rejected: %s", user_id, reason)
                raise InsufficientDataError(reason)

            baseline = EnrollmentBaseline(
                user_id=user_id,
                fingerprint=fingerprint,
                security_level=level,
                enrolled_at=now,
            )
            self.baseline_storage.put(user_id, baseline.to_bytes())
            self._retries.pop(user_id, None)

        logger.info("Enrollment complete for '%s' – fingerprint %s", user_id, fingerprint.id)
        return baseline

    def is_enrolled(self, user_id: str) -> bool:
        return self.baseline_storage.get(user_id) is not None

    def remove_user(self, user_id: str) -> None:
        """Delete the baseline, lockout state and audit trail of *user_id*."""
        with self._user_lock(user_id):
            self.baseline_storage.delete(user_id)
            self.lockout.forget(user_id)
            self._retries.pop(user_id, None)
            self._attempts.pop(user_id, None)
        logger.info("User '%s' removed", user_id)

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def authenticate(
        self, user_id: str, window: SampleWindow, now: datetime | None = None
    ) -> DecisionResult:
        """
        Run one authentication attempt for *user_id* against its baseline.

        Validation failures and storage problems never touch the lockout
        state; only an accepted or rejected comparison does.
        """
        now = as_utc(now)
        started = time.perf_counter()

        with self._user_lock(user_id):
            result, confidence = self._authenticate_locked(user_id, window, now)
            self._record_attempt(user_id, result, confidence, time.perf_counter() - started, now)

        self._publish(AuthenticationEvent(user_id, result, now))
        return result

    def _authenticate_locked(
        self, user_id: str, window: SampleWindow, now: datetime
    ) -> Tuple[DecisionResult, float]:
        validation = self.validator.validate(window)
        if not validation:
            logger.warning("Authentication for '%s' needs recapture: %s", user_id, validation.reason)
            return DecisionResult.retry_required(validation.reason, ErrorKind.INSUFFICIENT_DATA), 0.0

        try:
            lockout = self.lockout.state(user_id, now)
        except HeartIDError as exc:
            logger.error("Lockout state unavailable for '%s': %s", user_id, exc.message)
            return DecisionResult.system_unavailable(exc.kind, exc.message), 0.0

        refusal = self.engine.gate(lockout, now)
        if refusal is not None:
            return refusal, 0.0

        try:
            baseline = self._load_baseline(user_id)
        except HeartIDError as exc:
            logger.error("Baseline unavailable for '%s': %s", user_id, exc.message)
            return DecisionResult.system_unavailable(exc.kind, exc.message), 0.0

        candidate = self.builder.build_from_window(window, created_at=now)
        result = self.engine.evaluate(
            candidate,
            baseline.fingerprint,
            baseline.security_level,
            lockout=lockout,
            retries_used=self._retries.get(user_id, 0),
            now=now,
        )

        if result.kind is DecisionKind.ACCEPTED:
            self._retries.pop(user_id, None)
            self.lockout.record_success(user_id, now)
        elif result.kind is DecisionKind.REJECTED:
            self._retries.pop(user_id, None)
            self.lockout.record_failure(user_id, now)
        elif result.kind is DecisionKind.RETRY_REQUIRED:
            self._retries[user_id] = self._retries.get(user_id, 0) + 1
        return result, candidate.confidence

    def _load_baseline(self, user_id: str) -> EnrollmentBaseline:
        blob = self.baseline_storage.get(user_id)
        if blob is None:
            raise NotEnrolledError(f"No enrollment found for '{user_id}'")
        return EnrollmentBaseline.from_bytes(blob)

    # ------------------------------------------------------------------
    # Lockout administration
    # ------------------------------------------------------------------

    def lockout_state(self, user_id: str, now: datetime | None = None) -> LockoutState:
        return self.lockout.state(user_id, now)

    def reset_lockout(self, user_id: str) -> LockoutState:
        with self._user_lock(user_id):
            self._retries.pop(user_id, None)
            return self.lockout.reset(user_id)

    # ------------------------------------------------------------------
    # Audit & events
    # ------------------------------------------------------------------

    def attempts(self, user_id: str) -> List[AuthenticationAttempt]:
        """Most recent attempts, oldest first (capped at ``audit_capacity``)."""
        return list(self._attempts.get(user_id, ()))

    def statistics(self, user_id: str) -> AuthenticationStatistics:
        return AuthenticationStatistics.from_attempts(self.attempts(user_id))

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener* for every decision; returns an unsubscribe callable."""
        with self._locks_guard:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._locks_guard:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _user_lock(self, user_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._user_locks.get(user_id)
            if lock is None:
                lock = self._user_locks[user_id] = threading.Lock()
            return lock

    def _record_attempt(
        self,
        user_id: str,
        result: DecisionResult,
        confidence: float,
        duration: float,
        now: datetime,
    ) -> None:
        trail = self._attempts.get(user_id)
        if trail is None:
            trail = self._attempts[user_id] = deque(maxlen=self.config.audit_capacity)
        trail.append(
            AuthenticationAttempt(
                result=result.kind,
                similarity=result.similarity or 0.0,
                confidence_score=confidence,
                duration=duration,
                timestamp=now,
            )
        )

    def _publish(self, event: AuthenticationEvent) -> None:
        with self._locks_guard:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("Authentication listener %r failed", listener)
