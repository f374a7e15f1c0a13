from __future__ import annotations

from datetime import datetime, timezone

import pytest

from heartid.models import SampleWindow
from heartid.simulation import oscillating_series


T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def genuine_window(n: int = 200, start: datetime = T0) -> SampleWindow:
    """200 samples swinging 68–78 BPM with a 10-sample period."""
    return SampleWindow.from_values(oscillating_series(n, 68.0, 78.0, 10.0), start=start)


def impostor_window(n: int = 200, start: datetime = T0) -> SampleWindow:
    """A clearly different wearer: higher rate, wider and slower swing."""
    return SampleWindow.from_values(oscillating_series(n, 95.0, 145.0, 40.0), start=start)


@pytest.fixture
def t0() -> datetime:
    return T0
