"""
Unit tests for FingerprintBuilder.
Run with:  pytest tests/
"""

from __future__ import annotations

import pytest

from heartid.fingerprint import FingerprintBuilder
from heartid.models import FeatureVector, SampleWindow

from conftest import genuine_window


class TestFingerprintBuilder:

    def test_stable_series_confidence(self, t0):
        """68–78 BPM oscillation over 200 samples must reach 0.7 confidence."""
        fp = FingerprintBuilder().build_from_window(genuine_window(), created_at=t0)
        assert fp.confidence >= 0.7
        assert fp.confidence == pytest.approx(0.80, abs=0.01)
        assert fp.created_at == t0

    def test_constant_series_has_low_confidence(self):
        fp = FingerprintBuilder().build_from_window(SampleWindow.from_values([72.0] * 200))
        # data quality 0.6 (no variability), only the amplitude group is non-zero
        assert fp.confidence == pytest.approx(0.6 * 0.6 + 0.4 * 0.25)

    def test_confidence_is_bounded(self):
        fp = FingerprintBuilder().build(FeatureVector.empty(), SampleWindow())
        assert fp.confidence == 0.0

    def test_data_quality_penalises_unrealistic_mean(self):
        builder = FingerprintBuilder()
        normal = builder.data_quality(SampleWindow.from_values([72.0] * 200))
        high = builder.data_quality(SampleWindow.from_values([170.0] * 200))
        assert normal - high == pytest.approx(0.2 * 0.5)

    def test_feature_consistency_counts_groups(self):
        assert FingerprintBuilder.feature_consistency(FeatureVector.empty()) == 0.0

    def test_pattern_id_is_deterministic(self, t0):
        builder = FingerprintBuilder()
        a = builder.build_from_window(genuine_window(), created_at=t0)
        b = builder.build_from_window(genuine_window())
        assert a.id == b.id
        assert len(a.id) == 16
        int(a.id, 16)

    def test_naive_creation_time_is_utc(self, t0):
        fp = FingerprintBuilder().build_from_window(
            genuine_window(), created_at=t0.replace(tzinfo=None)
        )
        assert fp.created_at == t0
        assert fp.created_at.tzinfo is not None
