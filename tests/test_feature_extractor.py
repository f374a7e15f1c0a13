"""
Unit tests for FeatureExtractor.
Run with:  pytest tests/
"""

from __future__ import annotations

import math

import numpy as np
import pytest

from heartid.feature_extractor import FeatureExtractor
from heartid.models import FeatureVector, SampleWindow
from heartid.simulation import oscillating_series


def _sine(n=200, cycles=20, mean=72.0, amplitude=5.0, phase=0.3):
    t = np.arange(n, dtype=np.float64)
    return mean + amplitude * np.sin(2 * np.pi * cycles * t / n + phase)


class TestPreprocessing:

    def test_outliers_removed_order_kept(self):
        values = np.array([72, 70, 71, 300, 73, 72, 71, 70], dtype=np.float64)
        kept = FeatureExtractor.remove_outliers(values)
        np.testing.assert_array_equal(kept, [72, 70, 71, 73, 72, 71, 70])

    def test_constant_series_keeps_everything(self):
        values = np.full(50, 72.0)
        assert FeatureExtractor.remove_outliers(values).size == 50

    def test_smoothing_shrinks_at_edges(self):
        values = np.array([0, 0, 0, 10, 0, 0, 0], dtype=np.float64)
        smoothed = FeatureExtractor().smooth(values)
        assert smoothed.shape == values.shape
        assert smoothed[0] == pytest.approx(0.0)
        assert smoothed[1] == pytest.approx(2.5)
        assert smoothed[3] == pytest.approx(2.0)

    def test_non_finite_values_dropped(self):
        values = np.array([70.0, np.nan, 72.0, np.inf, 71.0])
        assert FeatureExtractor().preprocess(values).size == 3


class TestFeatureGroups:

    def test_constant_series_has_no_variability(self):
        features = FeatureExtractor().extract(np.full(200, 72.0))
        assert features.variability.rmssd == 0.0
        assert features.variability.pnn50 == 0.0
        assert features.variability.sdnn == 0.0
        assert features.time.zero_crossings == 0
        assert features.frequency.dominant_frequency == 0.0
        assert features.statistical.variance == 0.0
        assert features.time.mean_amplitude == pytest.approx(72.0)

    def test_empty_series_gives_empty_vector(self):
        assert FeatureExtractor().extract([]) == FeatureVector.empty()

    def test_pure_sinusoid_spectrum(self):
        freq = FeatureExtractor().frequency_features(_sine())
        assert freq.dominant_frequency == pytest.approx(10.0)
        assert freq.spectral_centroid == pytest.approx(20.0, abs=1e-6)
        assert freq.spectral_spread == pytest.approx(0.0, abs=1e-3)
        assert freq.spectral_rolloff == 20.0

    def test_sinusoid_time_features(self):
        feats = FeatureExtractor.time_features(_sine())
        assert feats.zero_crossings == 39
        assert feats.peak_to_peak <= 10.0
        assert feats.mean_amplitude == pytest.approx(72.0)

    def test_sinusoid_statistics(self):
        stats = FeatureExtractor.statistical_features(_sine())
        assert stats.mean == pytest.approx(72.0)
        assert stats.variance == pytest.approx(12.5)
        assert stats.skewness == pytest.approx(0.0, abs=1e-6)
        assert stats.kurtosis == pytest.approx(-1.5, abs=1e-6)

    def test_pnn50_counts_large_jumps(self):
        x = np.array([60.0, 120.0, 60.0, 61.0, 62.0])
        var = FeatureExtractor().variability_features(x)
        assert var.pnn50 == pytest.approx(50.0)
        assert var.sdnn == pytest.approx(float(np.std(x)))

    def test_every_feature_is_finite(self):
        features = FeatureExtractor().extract(oscillating_series(200, noise_std=1.0, seed=3))
        for group in features.to_dict().values():
            for value in group.values():
                assert math.isfinite(value)

    def test_window_and_array_inputs_agree(self):
        values = oscillating_series(150)
        extractor = FeatureExtractor()
        assert extractor.extract(SampleWindow.from_values(values)) == extractor.extract(values)
