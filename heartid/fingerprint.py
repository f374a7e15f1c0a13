"""
Fingerprint builder.

Packages a feature vector into a :class:`~heartid.models.PatternFingerprint`
together with a confidence score that reflects how trustworthy the
underlying capture was.
"""

from __future__ import annotations

import hashlib
import logging
from datetime import datetime

import numpy as np

from heartid.config import ExtractionConfig
from heartid.feature_extractor import FeatureExtractor
from heartid.models import FeatureVector, PatternFingerprint, SampleWindow, as_utc

logger = logging.getLogger(__name__)

DATA_QUALITY_WEIGHT = 0.6
CONSISTENCY_WEIGHT = 0.4


class FingerprintBuilder:
    """
    Parameters
    ----------
    config:
        Supplies ``max_sample_count``, ``expected_std_bpm`` and
        ``realistic_mean_bpm`` for the data-quality score.
    extractor:
        Used by :meth:`build_from_window`; a default one is created when
        omitted.
    """

    def __init__(
        self,
        config: ExtractionConfig | None = None,
        extractor: FeatureExtractor | None = None,
    ) -> None:
        self.config = config or ExtractionConfig()
        self.extractor = extractor or FeatureExtractor(self.config)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def build(
        self,
        features: FeatureVector,
        window: SampleWindow,
        created_at: datetime | None = None,
    ) -> PatternFingerprint:
        """
        Return a fingerprint for *features* extracted from *window*.

        ``confidence = 0.6 * data_quality + 0.4 * feature_consistency``; it is
        fixed at creation and never recomputed.
        """
        confidence = (
            DATA_QUALITY_WEIGHT * self.data_quality(window)
            + CONSISTENCY_WEIGHT * self.feature_consistency(features)
        )
        confidence = min(1.0, max(0.0, confidence))
        fingerprint = PatternFingerprint(
            id=self.pattern_id(features),
            features=features,
            confidence=confidence,
            created_at=as_utc(created_at),
        )
        logger.info(
            "Fingerprint %s built from %d samples – confidence %.1f%%",
            fingerprint.id, len(window), confidence * 100,
        )
        return fingerprint

    def build_from_window(
        self, window: SampleWindow, created_at: datetime | None = None
    ) -> PatternFingerprint:
        return self.build(self.extractor.extract(window), window, created_at)

    def data_quality(self, window: SampleWindow) -> float:
        """Length, variability and range sub-scores over the raw values."""
        cfg = self.config
        values = window.values
        if values.size == 0:
            return 0.0
        mean = float(values.mean())
        std = float(values.std())

        length_score = min(values.size / cfg.max_sample_count, 1.0)
        variability_score = min(std / cfg.expected_std_bpm, 1.0) if np.isfinite(std) else 0.0
        low, high = cfg.realistic_mean_bpm
        range_score = 1.0 if low <= mean <= high else 0.5
        return 0.4 * length_score + 0.4 * variability_score + 0.2 * range_score

    @staticmethod
    def feature_consistency(features: FeatureVector) -> float:
        """Quarter step for each group whose representative value is non-zero."""
        checks = (
            features.frequency.dominant_frequency > 0,
            features.time.mean_amplitude > 0,
            features.statistical.variance > 0,
            features.variability.rmssd > 0,
        )
        return sum(checks) / 4.0

    @staticmethod
    def pattern_id(features: FeatureVector) -> str:
        """
        Deterministic correlation id.

        Not a credential: it is derived from four public feature values and
        only serves to tie log lines together.
        """
        key = (
            f"{features.frequency.dominant_frequency}_"
            f"{features.time.mean_amplitude}_"
            f"{features.statistical.mean}_"
            f"{features.variability.rmssd}"
        )
        return hashlib.sha256(key.encode()).hexdigest()[:16]
