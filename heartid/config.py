"""
Configuration for the matching and lockout engine.

Every tunable constant lives here so call sites never carry magic numbers.
The defaults reproduce the behaviour of the HeartID watch application.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Tuple


# ---------------------------------------------------------------------------
# Security levels
# ---------------------------------------------------------------------------

class SecurityLevel(Enum):
    """
    Configuration tier controlling the acceptance threshold and the number
    of partial-match retries granted before a failure counts toward lockout.

    Thresholds are expressed on a 0 – 100 score (similarity × 100).
    """

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    MAXIMUM = "Maximum"

    @property
    def threshold(self) -> float:
        return _LEVEL_TABLE[self][0]

    @property
    def max_retries(self) -> int:
        return _LEVEL_TABLE[self][1]

    @property
    def retry_floor(self) -> float:
        """Lowest score still treated as a partial match worth a retry."""
        return self.threshold - RETRY_MARGIN

    @property
    def description(self) -> str:
        return _LEVEL_TABLE[self][2]

    @classmethod
    def parse(cls, name: str) -> "SecurityLevel":
        """Case-insensitive lookup by name or value (``"high"``, ``"High"``)."""
        for level in cls:
            if name.lower() in (level.name.lower(), level.value.lower()):
                return level
        raise ValueError(f"Unknown security level: {name!r}")


RETRY_MARGIN = 10.0

_LEVEL_TABLE = {
    SecurityLevel.LOW:     (70.0, 3, "Lower security, faster authentication"),
    SecurityLevel.MEDIUM:  (80.0, 2, "Balanced security and convenience"),
    SecurityLevel.HIGH:    (90.0, 1, "Higher security, more precise matching required"),
    SecurityLevel.MAXIMUM: (95.0, 1, "Maximum security, strictest pattern matching"),
}


class AuthenticationFrequency(Enum):
    """How often the periodic monitor re-authenticates the wearer."""

    MINIMAL = "Minimal"
    MODERATE = "Moderate"
    FREQUENT = "Frequent"
    CONTINUOUS = "Continuous"

    @property
    def interval(self) -> timedelta:
        minutes = {
            AuthenticationFrequency.MINIMAL: 60,
            AuthenticationFrequency.MODERATE: 30,
            AuthenticationFrequency.FREQUENT: 15,
            AuthenticationFrequency.CONTINUOUS: 5,
        }[self]
        return timedelta(minutes=minutes)


# ---------------------------------------------------------------------------
# Component configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ExtractionConfig:
    """
    Parameters shared by the validator, the feature extractor and the
    fingerprint builder.

    Parameters
    ----------
    min_sample_count:
        Windows shorter than this are rejected as insufficient data.
    max_sample_count:
        Sample count at which the length component of data quality
        saturates.
    plausible_bpm:
        Physiologically plausible heart-rate range (inclusive).
    min_plausible_fraction:
        Minimum share of samples that must fall inside ``plausible_bpm``.
    smoothing_window:
        Width of the centred moving average.
    rolloff_fraction:
        Energy fraction defining the spectral roll-off bin.
    pnn_threshold:
        Successive-difference threshold for pNN50, in sample units.
    min_quality_score:
        Lowest acceptable :attr:`~heartid.models.SampleWindow.quality_score`
        (valid-sample share weighted by the sensor's own quality values).
    """

    min_sample_count: int = 100
    max_sample_count: int = 200
    plausible_bpm: Tuple[float, float] = (40.0, 200.0)
    min_plausible_fraction: float = 0.8
    smoothing_window: int = 5
    rolloff_fraction: float = 0.85
    pnn_threshold: float = 50.0
    min_quality_score: float = 0.5
    expected_std_bpm: float = 20.0
    realistic_mean_bpm: Tuple[float, float] = (50.0, 150.0)


@dataclass(frozen=True)
class LockoutPolicy:
    """
    Progressive lockout schedule.

    ``periods_minutes[i]`` is the duration of the ``i + 1``-th lockout.  Past
    the end of the table every further step adds ``overflow_increment_minutes``.
    """

    max_attempts_per_period: int = 2
    periods_minutes: Tuple[int, ...] = (10, 20, 40, 90, 360, 1440, 2880)
    overflow_increment_minutes: int = 2880

    def duration(self, period_index: int) -> timedelta:
        """Lockout length imposed when escalating to *period_index* (1-based)."""
        if period_index <= 0:
            return timedelta(0)
        table = self.periods_minutes
        if period_index <= len(table):
            return timedelta(minutes=table[period_index - 1])
        extra_steps = period_index - len(table)
        return timedelta(
            minutes=table[-1] + extra_steps * self.overflow_increment_minutes
        )


@dataclass(frozen=True)
class EngineConfig:
    """Top-level configuration handed to :class:`~heartid.authenticator.HeartAuthenticator`."""

    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    lockout: LockoutPolicy = field(default_factory=LockoutPolicy)
    default_security_level: SecurityLevel = SecurityLevel.MEDIUM
    min_enrollment_confidence: float = 0.6
    audit_capacity: int = 10
    capture_seconds: float = 8.0
