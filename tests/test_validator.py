"""
Unit tests for SampleValidator.
Run with:  pytest tests/
"""

from __future__ import annotations

from heartid.config import ExtractionConfig
from heartid.models import SampleWindow
from heartid.validator import SampleValidator


class TestSampleValidator:

    def test_short_window_is_insufficient(self):
        result = SampleValidator().validate(SampleWindow.from_values([72.0] * 99))
        assert not result
        assert result.reason.startswith("Insufficient data")

    def test_empty_window_is_insufficient(self):
        assert not SampleValidator().validate(SampleWindow())

    def test_minimum_length_is_accepted(self):
        assert SampleValidator().validate(SampleWindow.from_values([72.0] * 100))

    def test_too_many_implausible_values(self):
        values = [72.0] * 79 + [250.0] * 21
        result = SampleValidator().validate(SampleWindow.from_values(values))
        assert not result
        assert result.reason.startswith("Too noisy")

    def test_plausible_fraction_boundary_is_inclusive(self):
        values = [72.0] * 80 + [250.0] * 20
        assert SampleValidator().validate(SampleWindow.from_values(values))

    def test_range_bounds_are_inclusive(self):
        values = [40.0] * 50 + [200.0] * 50
        assert SampleValidator().validate(SampleWindow.from_values(values))

    def test_custom_minimum(self):
        validator = SampleValidator(ExtractionConfig(min_sample_count=10))
        assert validator.validate(SampleWindow.from_values([70.0] * 10))

    def test_low_sensor_quality_rejected(self):
        result = SampleValidator().validate(SampleWindow.from_values([72.0] * 150, quality=0.3))
        assert not result
        assert result.reason.startswith("Poor signal quality")

    def test_quality_threshold_is_inclusive(self):
        window = SampleWindow.from_values([72.0] * 150, quality=0.5)
        assert SampleValidator().validate(window)
