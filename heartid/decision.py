"""
Security-level decisions.

Maps a similarity score to a verdict under the user's
:class:`~heartid.config.SecurityLevel`.  A locked-out user is refused before
any comparison takes place.
"""

from __future__ import annotations

import logging
from datetime import datetime

from heartid.config import SecurityLevel
from heartid.models import DecisionResult, LockoutState, PatternFingerprint, as_utc
from heartid.similarity import SimilarityScorer

logger = logging.getLogger(__name__)


class DecisionEngine:
    """
    Parameters
    ----------
    scorer:
        Similarity scorer used by :meth:`evaluate`.
    """

    def __init__(self, scorer: SimilarityScorer | None = None) -> None:
        self.scorer = scorer or SimilarityScorer()

    def evaluate(
        self,
        candidate: PatternFingerprint,
        baseline: PatternFingerprint,
        level: SecurityLevel,
        lockout: LockoutState | None = None,
        retries_used: int = 0,
        now: datetime | None = None,
    ) -> DecisionResult:
        """
        Compare *candidate* with *baseline* and decide.

        When *lockout* reports an active lockout the comparison is skipped
        entirely and a ``LOCKED_OUT`` result is returned.
        """
        refusal = self.gate(lockout, now)
        if refusal is not None:
            return refusal

        similarity = self.scorer.similarity(candidate, baseline)
        return self.decide(similarity, candidate.confidence, level, retries_used)

    @staticmethod
    def gate(lockout: LockoutState | None, now: datetime | None = None) -> DecisionResult | None:
        """Return a ``LOCKED_OUT`` result if *lockout* forbids comparing, else ``None``."""
        if lockout is None or not lockout.is_locked_out:
            return None
        now = as_utc(now)
        logger.warning("Comparison refused: %s", lockout.lockout_reason)
        return DecisionResult.locked_out(
            lockout.lockout_reason or "Account locked",
            retry_after=lockout.time_remaining(now),
        )

    @staticmethod
    def decide(
        similarity: float,
        confidence: float,
        level: SecurityLevel,
        retries_used: int = 0,
    ) -> DecisionResult:
        """
        Pure mapping from a similarity in [0, 1] to a verdict.

        Scores at or above the level threshold are accepted.  Near misses
        (within the level's retry band) ask for a recapture while the level's
        retry allowance lasts; everything else is rejected.

        Notes
        -----
        A retry does not count toward lockout, so the band trades attempts
        for convenience: a near-miss impostor gets up to ``max_retries`` extra
        comparisons before each counted rejection (3 at ``LOW``, 1 at
        ``HIGH``/``MAXIMUM``).  The band is ``RETRY_MARGIN`` (10) points wide.
        Retry counters live in memory only and restart with the process;
        the lockout state is what bounds brute force.
        """
        score = similarity * 100.0
        if score >= level.threshold:
            logger.info("Accepted: score %.1f ≥ %.0f (%s)", score, level.threshold, level.value)
            return DecisionResult.accepted(similarity, confidence)

        if score >= level.retry_floor and retries_used < level.max_retries:
            logger.info(
                "Partial match: score %.1f in [%.0f, %.0f) – retry %d/%d",
                score, level.retry_floor, level.threshold,
                retries_used + 1, level.max_retries,
            )
            return DecisionResult.retry_required(
                "Partial match. Please try again.", similarity=similarity
            )

        logger.info("Rejected: score %.1f < %.0f (%s)", score, level.threshold, level.value)
        return DecisionResult.rejected(similarity, confidence)
