"""
Synthetic heart-rate captures.

Stands in for the watch sensor in demos and tests.  Each user id maps
deterministically to a resting heart rate, a respiratory-sinus-arrhythmia
amplitude and an oscillation period, so repeated captures of the same user
resemble each other while different users do not.  Optional Gaussian noise
makes consecutive captures differ slightly, like a real sensor.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import datetime

import numpy as np

from heartid.models import SampleWindow


@dataclass(frozen=True)
class HeartProfile:
    resting_bpm: float
    amplitude_bpm: float
    period_samples: float


def profile_for(user_id: str) -> HeartProfile:
    """Deterministic physiological profile derived from *user_id*."""
    seed = int(hashlib.sha256(user_id.encode()).hexdigest(), 16) % (2**31)
    rng = np.random.default_rng(seed)
    return HeartProfile(
        resting_bpm=float(rng.uniform(58.0, 88.0)),
        amplitude_bpm=float(rng.uniform(3.0, 12.0)),
        period_samples=float(rng.uniform(8.0, 30.0)),
    )


def oscillating_series(
    n: int = 200,
    low: float = 68.0,
    high: float = 78.0,
    period: float = 10.0,
    noise_std: float = 0.0,
    seed: int | None = None,
) -> np.ndarray:
    """Sinusoid swinging between *low* and *high* BPM with optional noise."""
    t = np.arange(n, dtype=np.float64)
    centre = (low + high) / 2.0
    amplitude = (high - low) / 2.0
    series = centre + amplitude * np.sin(2 * np.pi * t / period)
    if noise_std > 0:
        series = series + np.random.default_rng(seed).normal(0.0, noise_std, n)
    return series


def simulate_heart_rate(
    user_id: str, n: int = 200, noise_std: float = 0.5, seed: int | None = None
) -> np.ndarray:
    profile = profile_for(user_id)
    return oscillating_series(
        n=n,
        low=profile.resting_bpm - profile.amplitude_bpm,
        high=profile.resting_bpm + profile.amplitude_bpm,
        period=profile.period_samples,
        noise_std=noise_std,
        seed=seed,
    )


def simulate_window(
    user_id: str,
    n: int = 200,
    noise_std: float = 0.5,
    start: datetime | None = None,
    interval: float = 1.0,
    seed: int | None = None,
) -> SampleWindow:
    """A :class:`~heartid.models.SampleWindow` of *n* simulated readings for *user_id*."""
    return SampleWindow.from_values(
        simulate_heart_rate(user_id, n=n, noise_std=noise_std, seed=seed),
        start=start,
        interval=interval,
        source="simulated",
    )
