"""
Fingerprint similarity.

Per field: ``1 - |a - b| / max(|a|, |b|)``, clipped at zero, with a pair of
zeros counting as identical.  Fields are averaged per group, groups are
weighted, and the result is scaled by a temporal-stability factor derived
from how far apart the two captures were taken.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, fields
from datetime import timedelta
from typing import Tuple

from heartid.models import PatternFingerprint

logger = logging.getLogger(__name__)

GROUP_WEIGHTS: Tuple[float, float, float, float] = (0.30, 0.25, 0.25, 0.20)

TOO_CLOSE = timedelta(seconds=60)
TOO_FAR = timedelta(days=7)
TOO_CLOSE_FACTOR = 0.8
TOO_FAR_FACTOR = 0.9


@dataclass(frozen=True)
class SimilarityBreakdown:
    frequency: float
    time: float
    statistical: float
    variability: float
    weighted: float
    temporal_factor: float
    similarity: float


def field_similarity(a: float, b: float) -> float:
    """Relative closeness of two feature values in [0, 1]."""
    a, b = float(a), float(b)
    if not (math.isfinite(a) and math.isfinite(b)):
        return 0.0
    scale = max(abs(a), abs(b))
    if scale == 0.0:
        return 1.0
    return min(1.0, max(0.0, 1.0 - abs(a - b) / scale))


def group_similarity(g1, g2) -> float:
    """Mean field similarity across two records of the same feature group."""
    names = [f.name for f in fields(g1)]
    if not names:
        return 1.0
    return sum(field_similarity(getattr(g1, n), getattr(g2, n)) for n in names) / len(names)


def temporal_factor(a: PatternFingerprint, b: PatternFingerprint) -> float:
    """
    Penalise captures that are suspiciously close together (likely the same
    instant replayed) or far apart (natural drift).

    Two fingerprints with the very same timestamp are one capture compared
    with itself and are not penalised.
    """
    delta = abs(a.created_at - b.created_at)
    if delta == timedelta(0):
        return 1.0
    if delta < TOO_CLOSE:
        return TOO_CLOSE_FACTOR
    if delta > TOO_FAR:
        return TOO_FAR_FACTOR
    return 1.0


class SimilarityScorer:
    """
    Parameters
    ----------
    weights:
        Frequency, time, statistical and variability weights; they should
        sum to one.
    """

    def __init__(self, weights: Tuple[float, float, float, float] = GROUP_WEIGHTS) -> None:
        if len(weights) != 4:
            raise ValueError("Exactly four group weights are required")
        self.weights = tuple(float(w) for w in weights)

    def score(
        self, candidate: PatternFingerprint, baseline: PatternFingerprint
    ) -> SimilarityBreakdown:
        f1, f2 = candidate.features, baseline.features
        groups = (
            group_similarity(f1.frequency, f2.frequency),
            group_similarity(f1.time, f2.time),
            group_similarity(f1.statistical, f2.statistical),
            group_similarity(f1.variability, f2.variability),
        )
        weighted = sum(g * w for g, w in zip(groups, self.weights))
        factor = temporal_factor(candidate, baseline)
        final = weighted * factor
        final = min(1.0, max(0.0, final)) if math.isfinite(final) else 0.0

        logger.debug(
            "Similarity %s vs %s: groups=%s weighted=%.4f factor=%.2f",
            candidate.id, baseline.id,
            ", ".join(f"{g:.3f}" for g in groups), weighted, factor,
        )
        return SimilarityBreakdown(*groups, weighted=weighted,
                                   temporal_factor=factor, similarity=final)

    def similarity(self, candidate: PatternFingerprint, baseline: PatternFingerprint) -> float:
        return self.score(candidate, baseline).similarity
