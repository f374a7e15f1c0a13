"""
Heart-rate feature extractor.

Algorithm
---------
1. Drop outliers outside the Tukey fences ``[Q1 - 1.5 IQR, Q3 + 1.5 IQR]``.
2. Smooth with a centred moving average (window 5, shrunk at the edges).
3. Derive four feature groups from the smoothed series:

   * frequency   – FFT magnitude spectrum of the mean-centred series
   * time        – amplitude, range, RMS, zero crossings
   * statistical – mean, population variance, skewness, excess kurtosis
   * variability – RMSSD, pNN50, triangular index, SDNN

Every feature is finite: empty input, zero denominators and constant series
all produce ``0.0``.

References
----------
- Task Force of the ESC and NASPE, "Heart rate variability: standards of
  measurement, physiological interpretation and clinical use." 1996.
- Peeters G., "A large set of audio features for sound description." 2004.
"""

from __future__ import annotations

import logging
import math
from typing import Iterable, Union

import numpy as np
from scipy import stats

from heartid.config import ExtractionConfig
from heartid.models import (
    FeatureVector,
    FrequencyFeatures,
    SampleWindow,
    StatisticalFeatures,
    TimeFeatures,
    VariabilityFeatures,
)

logger = logging.getLogger(__name__)

SeriesLike = Union[SampleWindow, np.ndarray, Iterable[float]]


def _finite(value: float) -> float:
    """Collapse NaN / ±Inf to 0.0."""
    value = float(value)
    return value if math.isfinite(value) else 0.0


def _ratio(num: float, den: float) -> float:
    if den == 0 or not math.isfinite(den):
        return 0.0
    return _finite(num / den)


class FeatureExtractor:
    """
    Turns a raw heart-rate series into a :class:`~heartid.models.FeatureVector`.

    Parameters
    ----------
    config:
        Supplies ``smoothing_window``, ``rolloff_fraction`` and
        ``pnn_threshold``.
    """

    def __init__(self, config: ExtractionConfig | None = None) -> None:
        self.config = config or ExtractionConfig()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def extract(self, series: SeriesLike) -> FeatureVector:
        """Preprocess *series* and compute all four feature groups."""
        x = self.preprocess(series)
        if x.size == 0:
            return FeatureVector.empty()

        features = FeatureVector(
            frequency=self.frequency_features(x),
            time=self.time_features(x),
            statistical=self.statistical_features(x),
            variability=self.variability_features(x),
        )
        logger.debug("Extracted features from %d samples: %s", x.size, features)
        return features

    def preprocess(self, series: SeriesLike) -> np.ndarray:
        """Outlier removal followed by smoothing."""
        raw = self._as_array(series)
        return self.smooth(self.remove_outliers(raw))

    @staticmethod
    def remove_outliers(values: np.ndarray) -> np.ndarray:
        """
        Keep samples inside the Tukey fences, preserving their order.

        The quartiles are taken at sorted positions ``n // 4`` and ``3n // 4``.
        """
        n = values.size
        if n == 0:
            return values
        ordered = np.sort(values)
        q1 = ordered[n // 4]
        q3 = ordered[(3 * n) // 4]
        iqr = q3 - q1
        lower, upper = q1 - 1.5 * iqr, q3 + 1.5 * iqr
        kept = values[(values >= lower) & (values <= upper)]
        if kept.size < n:
            logger.debug("Outlier removal dropped %d of %d samples", n - kept.size, n)
        return kept

    def smooth(self, values: np.ndarray) -> np.ndarray:
        """Centred moving average; edge windows shrink instead of padding."""
        n = values.size
        if n == 0 or np.ptp(values) == 0.0:
            # a constant series is its own average; avoid cumsum round-off
            return values.copy()
        half = self.config.smoothing_window // 2
        csum = np.concatenate(([0.0], np.cumsum(values)))
        idx = np.arange(n)
        start = np.clip(idx - half, 0, n)
        end = np.clip(idx + half + 1, 0, n)
        return (csum[end] - csum[start]) / (end - start)

    # ------------------------------------------------------------------
    # Feature groups
    # ------------------------------------------------------------------

    def frequency_features(self, x: np.ndarray) -> FrequencyFeatures:
        n = x.size
        if n == 0:
            return FrequencyFeatures()
        spectrum = np.abs(np.fft.rfft(x - x.mean()))
        bins = np.arange(spectrum.size, dtype=np.float64)
        total = float(spectrum.sum())

        dominant = _ratio(float(np.argmax(spectrum)), n) * 100.0 if total > 0 else 0.0
        centroid = _ratio(float((bins * spectrum).sum()), total)
        spread = math.sqrt(
            max(0.0, _ratio(float((spectrum * (bins - centroid) ** 2).sum()), total))
        )
        return FrequencyFeatures(
            dominant_frequency=_finite(dominant),
            spectral_centroid=centroid,
            spectral_spread=_finite(spread),
            spectral_rolloff=self._rolloff(spectrum),
        )

    @staticmethod
    def time_features(x: np.ndarray) -> TimeFeatures:
        if x.size == 0:
            return TimeFeatures()
        centred = x - x.mean()
        signs = np.sign(centred)
        crossings = int(np.count_nonzero(signs[1:] * signs[:-1] < 0))
        return TimeFeatures(
            mean_amplitude=_finite(x.mean()),
            peak_to_peak=_finite(x.max() - x.min()),
            rms_value=_finite(np.sqrt(np.mean(x ** 2))),
            zero_crossings=crossings,
        )

    @staticmethod
    def statistical_features(x: np.ndarray) -> StatisticalFeatures:
        if x.size == 0:
            return StatisticalFeatures()
        variance = _finite(np.var(x))
        if variance == 0.0 or np.ptp(x) == 0.0:
            # scipy returns NaN for constant input
            skewness = kurtosis = 0.0
        else:
            skewness = _finite(stats.skew(x, bias=True))
            kurtosis = _finite(stats.kurtosis(x, fisher=True, bias=True))
        return StatisticalFeatures(
            mean=_finite(x.mean()),
            variance=variance,
            skewness=skewness,
            kurtosis=kurtosis,
        )

    def variability_features(self, x: np.ndarray) -> VariabilityFeatures:
        if x.size == 0:
            return VariabilityFeatures()
        diffs = np.abs(np.diff(x))
        if diffs.size:
            rmssd = _finite(np.sqrt(np.mean(diffs ** 2)))
            over = np.count_nonzero(diffs > self.config.pnn_threshold)
            pnn50 = _ratio(float(over), diffs.size) * 100.0
        else:
            rmssd = pnn50 = 0.0
        return VariabilityFeatures(
            rmssd=rmssd,
            pnn50=pnn50,
            triangular_index=_ratio(float(x.max() - x.min()), float(np.median(x))),
            sdnn=_finite(np.std(x)),
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _as_array(series: SeriesLike) -> np.ndarray:
        if isinstance(series, SampleWindow):
            arr = series.values
        elif isinstance(series, np.ndarray):
            arr = series.astype(np.float64).ravel()
        else:
            arr = np.fromiter(series, dtype=np.float64)
        return arr[np.isfinite(arr)]

    def _rolloff(self, spectrum: np.ndarray) -> float:
        """Smallest bin where cumulative energy reaches the roll-off fraction."""
        energy = spectrum ** 2
        total = float(energy.sum())
        if total <= 0.0 or not math.isfinite(total):
            return 0.0
        cumulative = np.cumsum(energy)
        idx = int(np.searchsorted(cumulative, self.config.rolloff_fraction * total))
        return float(min(idx, spectrum.size - 1))
