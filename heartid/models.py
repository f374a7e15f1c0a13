"""
Shared data model.

Samples and windows come from the sensor side, feature vectors and
fingerprints from the extraction pipeline, and lockout state / decision
results from the authentication side.  Everything that is persisted exposes
``to_dict`` / ``from_dict`` plus a ``to_bytes`` / ``from_bytes`` pair
producing UTF-8 JSON; encryption is the storage layer's business.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Iterable, Iterator, Optional, Sequence, Tuple

import numpy as np

from heartid.config import SecurityLevel
from heartid.errors import DecryptionFailureError, ErrorKind

FORMAT_VERSION = "1"

# Range accepted by the sample model itself; the validator applies its own,
# narrower plausibility range.
SAMPLE_VALID_BPM = (30.0, 200.0)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(ts: Optional[datetime] = None) -> datetime:
    """*ts* as an aware UTC datetime; naive values are taken to be UTC already."""
    if ts is None:
        return utcnow()
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _iso(ts: Optional[datetime]) -> Optional[str]:
    return ts.isoformat() if ts is not None else None


def _parse_ts(raw: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(raw) if raw is not None else None


def _decode(blob: bytes, what: str) -> dict:
    try:
        payload = json.loads(blob.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise DecryptionFailureError(f"Unreadable {what} blob: {exc}") from exc
    if not isinstance(payload, dict) or payload.get("version") != FORMAT_VERSION:
        raise DecryptionFailureError(f"Unsupported {what} format")
    return payload


# ---------------------------------------------------------------------------
# Samples
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class HeartRateSample:
    value: float                 # BPM
    timestamp: datetime
    source: str = "Apple Watch"
    quality: float = 1.0         # 0 – 1

    @property
    def is_valid(self) -> bool:
        low, high = SAMPLE_VALID_BPM
        return low <= self.value <= high


class SampleWindow(Sequence[HeartRateSample]):
    """
    Immutable, time-ordered run of heart-rate samples.

    Derived statistics are computed on access and never cached on the
    instance, so a window is just its samples.

    Raises
    ------
    ValueError
        If timestamps decrease anywhere in *samples*.
    """

    __slots__ = ("_samples",)

    def __init__(self, samples: Iterable[HeartRateSample] = ()) -> None:
        items = tuple(samples)
        for prev, cur in zip(items, items[1:]):
            if cur.timestamp < prev.timestamp:
                raise ValueError(
                    f"Sample timestamps must be non-decreasing "
                    f"({cur.timestamp.isoformat()} < {prev.timestamp.isoformat()})"
                )
        self._samples: Tuple[HeartRateSample, ...] = items

    @classmethod
    def from_values(
        cls,
        values: Iterable[float],
        start: Optional[datetime] = None,
        interval: float = 1.0,
        source: str = "simulated",
        quality: float = 1.0,
    ) -> "SampleWindow":
        """Build a window from bare BPM values spaced *interval* seconds apart."""
        start = start or utcnow()
        return cls(
            HeartRateSample(
                value=float(v),
                timestamp=start + timedelta(seconds=i * interval),
                source=source,
                quality=quality,
            )
            for i, v in enumerate(values)
        )

    # ------------------------------------------------------------------
    # Sequence protocol
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._samples)

    def __getitem__(self, index):
        if isinstance(index, slice):
            return SampleWindow(self._samples[index])
        return self._samples[index]

    def __iter__(self) -> Iterator[HeartRateSample]:
        return iter(self._samples)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SampleWindow):
            return NotImplemented
        return self._samples == other._samples

    def __repr__(self) -> str:
        return f"SampleWindow(n={len(self)}, duration={self.duration:.1f}s)"

    # ------------------------------------------------------------------
    # Derived statistics
    # ------------------------------------------------------------------

    @property
    def values(self) -> np.ndarray:
        return np.array([s.value for s in self._samples], dtype=np.float64)

    @property
    def mean(self) -> float:
        return float(self.values.mean()) if self._samples else 0.0

    @property
    def min(self) -> float:
        return float(self.values.min()) if self._samples else 0.0

    @property
    def max(self) -> float:
        return float(self.values.max()) if self._samples else 0.0

    @property
    def duration(self) -> float:
        """Seconds between the first and last sample."""
        if len(self._samples) < 2:
            return 0.0
        return (self._samples[-1].timestamp - self._samples[0].timestamp).total_seconds()

    @property
    def quality_score(self) -> float:
        """Share of valid samples weighted by the mean sensor quality."""
        if not self._samples:
            return 0.0
        valid = sum(1 for s in self._samples if s.is_valid) / len(self._samples)
        avg_quality = sum(s.quality for s in self._samples) / len(self._samples)
        return valid * avg_quality

    @property
    def mean_successive_difference(self) -> float:
        if len(self._samples) < 2:
            return 0.0
        return float(np.mean(np.abs(np.diff(self.values))))


# ---------------------------------------------------------------------------
# Features
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FrequencyFeatures:
    dominant_frequency: float = 0.0
    spectral_centroid: float = 0.0
    spectral_spread: float = 0.0
    spectral_rolloff: float = 0.0


@dataclass(frozen=True)
class TimeFeatures:
    mean_amplitude: float = 0.0
    peak_to_peak: float = 0.0
    rms_value: float = 0.0
    zero_crossings: int = 0


@dataclass(frozen=True)
class StatisticalFeatures:
    mean: float = 0.0
    variance: float = 0.0
    skewness: float = 0.0
    kurtosis: float = 0.0


@dataclass(frozen=True)
class VariabilityFeatures:
    rmssd: float = 0.0
    pnn50: float = 0.0
    triangular_index: float = 0.0
    sdnn: float = 0.0


@dataclass(frozen=True)
class FeatureVector:
    frequency: FrequencyFeatures = field(default_factory=FrequencyFeatures)
    time: TimeFeatures = field(default_factory=TimeFeatures)
    statistical: StatisticalFeatures = field(default_factory=StatisticalFeatures)
    variability: VariabilityFeatures = field(default_factory=VariabilityFeatures)

    @classmethod
    def empty(cls) -> "FeatureVector":
        return cls()

    def to_dict(self) -> dict:
        return asdict(self)

    @staticmethod
    def from_dict(d: dict) -> "FeatureVector":
        time = dict(d["time"])
        time["zero_crossings"] = int(time["zero_crossings"])
        return FeatureVector(
            frequency=FrequencyFeatures(**d["frequency"]),
            time=TimeFeatures(**time),
            statistical=StatisticalFeatures(**d["statistical"]),
            variability=VariabilityFeatures(**d["variability"]),
        )


# ---------------------------------------------------------------------------
# Fingerprints & baselines
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PatternFingerprint:
    id: str
    features: FeatureVector
    confidence: float
    created_at: datetime

    def to_dict(self) -> dict:
        return {
            "version": FORMAT_VERSION,
            "id": self.id,
            "features": self.features.to_dict(),
            "confidence": self.confidence,
            "created_at": _iso(self.created_at),
        }

    @staticmethod
    def from_dict(d: dict) -> "PatternFingerprint":
        return PatternFingerprint(
            id=d["id"],
            features=FeatureVector.from_dict(d["features"]),
            confidence=float(d["confidence"]),
            created_at=_parse_ts(d["created_at"]),
        )

    def to_bytes(self) -> bytes:
        return json.dumps(self.to_dict()).encode("utf-8")

    @staticmethod
    def from_bytes(blob: bytes) -> "PatternFingerprint":
        payload = _decode(blob, "fingerprint")
        try:
            return PatternFingerprint.from_dict(payload)
        except (KeyError, TypeError, ValueError) as exc:
            raise DecryptionFailureError(f"Corrupt fingerprint: {exc}") from exc


@dataclass(frozen=True)
class EnrollmentBaseline:
    """The single active enrolled reference for a user."""

    user_id: str
    fingerprint: PatternFingerprint
    security_level: SecurityLevel = SecurityLevel.MEDIUM
    enrolled_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "version": FORMAT_VERSION,
            "user_id": self.user_id,
            "fingerprint": self.fingerprint.to_dict(),
            "security_level": self.security_level.value,
            "enrolled_at": _iso(self.enrolled_at),
        }

    @staticmethod
    def from_dict(d: dict) -> "EnrollmentBaseline":
        return EnrollmentBaseline(
            user_id=d["user_id"],
            fingerprint=PatternFingerprint.from_dict(d["fingerprint"]),
            security_level=SecurityLevel(d["security_level"]),
            enrolled_at=_parse_ts(d["enrolled_at"]),
        )

    def to_bytes(self) -> bytes:
        return json.dumps(self.to_dict()).encode("utf-8")

    @staticmethod
    def from_bytes(blob: bytes) -> "EnrollmentBaseline":
        payload = _decode(blob, "baseline")
        try:
            return EnrollmentBaseline.from_dict(payload)
        except (KeyError, TypeError, ValueError) as exc:
            raise DecryptionFailureError(f"Corrupt baseline: {exc}") from exc


# ---------------------------------------------------------------------------
# Lockout state
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LockoutState:
    current_period_index: int = 0
    attempts_in_current_period: int = 0
    remaining_attempts: int = 2
    is_locked_out: bool = False
    lockout_end_time: Optional[datetime] = None
    lockout_reason: Optional[str] = None
    last_attempt_time: Optional[datetime] = None

    @classmethod
    def initial(cls, max_attempts: int) -> "LockoutState":
        return cls(remaining_attempts=max_attempts)

    def time_remaining(self, now: datetime) -> float:
        """Seconds until the lockout ends (0.0 when not locked out)."""
        if not self.is_locked_out or self.lockout_end_time is None:
            return 0.0
        return max(0.0, (self.lockout_end_time - now).total_seconds())

    def evolve(self, **changes) -> "LockoutState":
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return {
            "version": FORMAT_VERSION,
            "current_period_index": self.current_period_index,
            "attempts_in_current_period": self.attempts_in_current_period,
            "remaining_attempts": self.remaining_attempts,
            "is_locked_out": self.is_locked_out,
            "lockout_end_time": _iso(self.lockout_end_time),
            "lockout_reason": self.lockout_reason,
            "last_attempt_time": _iso(self.last_attempt_time),
        }

    @staticmethod
    def from_dict(d: dict) -> "LockoutState":
        return LockoutState(
            current_period_index=int(d["current_period_index"]),
            attempts_in_current_period=int(d["attempts_in_current_period"]),
            remaining_attempts=max(0, int(d["remaining_attempts"])),
            is_locked_out=bool(d["is_locked_out"]),
            lockout_end_time=_parse_ts(d.get("lockout_end_time")),
            lockout_reason=d.get("lockout_reason"),
            last_attempt_time=_parse_ts(d.get("last_attempt_time")),
        )

    def to_bytes(self) -> bytes:
        return json.dumps(self.to_dict()).encode("utf-8")

    @staticmethod
    def from_bytes(blob: bytes) -> "LockoutState":
        payload = _decode(blob, "lockout state")
        try:
            return LockoutState.from_dict(payload)
        except (KeyError, TypeError, ValueError) as exc:
            raise DecryptionFailureError(f"Corrupt lockout state: {exc}") from exc


# ---------------------------------------------------------------------------
# Decisions & audit
# ---------------------------------------------------------------------------

class DecisionKind(Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    RETRY_REQUIRED = "retry_required"
    LOCKED_OUT = "locked_out"
    SYSTEM_UNAVAILABLE = "system_unavailable"


@dataclass(frozen=True)
class DecisionResult:
    """
    Outcome of one authentication attempt.

    Use the named constructors rather than building instances by hand;
    ``error`` carries the structured reason for non-verdict outcomes.
    """

    kind: DecisionKind
    similarity: Optional[float] = None
    confidence: Optional[float] = None
    reason: str = ""
    retry_after: Optional[float] = None     # seconds
    error: Optional[ErrorKind] = None

    @classmethod
    def accepted(cls, similarity: float, confidence: float) -> "DecisionResult":
        return cls(DecisionKind.ACCEPTED, similarity=similarity,
                   confidence=confidence, reason="Pattern matched")

    @classmethod
    def rejected(cls, similarity: float, confidence: Optional[float] = None) -> "DecisionResult":
        return cls(DecisionKind.REJECTED, similarity=similarity, confidence=confidence,
                   reason="Pattern does not match", error=ErrorKind.REJECTED)

    @classmethod
    def retry_required(
        cls,
        reason: str,
        error: Optional[ErrorKind] = None,
        similarity: Optional[float] = None,
    ) -> "DecisionResult":
        return cls(DecisionKind.RETRY_REQUIRED, similarity=similarity,
                   reason=reason, error=error)

    @classmethod
    def locked_out(cls, reason: str, retry_after: float) -> "DecisionResult":
        return cls(DecisionKind.LOCKED_OUT, reason=reason,
                   retry_after=retry_after, error=ErrorKind.LOCKED_OUT)

    @classmethod
    def system_unavailable(cls, error: ErrorKind, reason: str = "") -> "DecisionResult":
        return cls(DecisionKind.SYSTEM_UNAVAILABLE, reason=reason or error.value,
                   error=error)

    @property
    def is_successful(self) -> bool:
        return self.kind is DecisionKind.ACCEPTED

    @property
    def score(self) -> Optional[float]:
        """Similarity on the 0 – 100 scale used by security thresholds."""
        return None if self.similarity is None else self.similarity * 100.0


@dataclass(frozen=True)
class AuthenticationAttempt:
    result: DecisionKind
    similarity: float
    confidence_score: float
    duration: float          # seconds spent in the pipeline
    timestamp: datetime


@dataclass(frozen=True)
class AuthenticationStatistics:
    total_attempts: int
    successful_attempts: int
    success_rate: float          # percent
    average_confidence: float
    average_similarity: float
    last_attempt: Optional[datetime]

    @classmethod
    def from_attempts(cls, attempts: Sequence[AuthenticationAttempt]) -> "AuthenticationStatistics":
        total = len(attempts)
        successful = sum(1 for a in attempts if a.result is DecisionKind.ACCEPTED)
        denom = max(total, 1)
        return cls(
            total_attempts=total,
            successful_attempts=successful,
            success_rate=successful / total * 100.0 if total else 0.0,
            average_confidence=sum(a.confidence_score for a in attempts) / denom,
            average_similarity=sum(a.similarity for a in attempts) / denom,
            last_attempt=attempts[-1].timestamp if attempts else None,
        )
