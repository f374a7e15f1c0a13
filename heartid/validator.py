"""
Sample window gate.

A pure predicate run before any feature work: windows that are too short
or dominated by implausible readings never reach the extractor.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from heartid.config import ExtractionConfig
from heartid.models import SampleWindow


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    reason: str = ""

    def __bool__(self) -> bool:
        return self.is_valid


VALID = ValidationResult(True)


class SampleValidator:
    """
    Check that a window carries enough plausible heart-rate data.

    Parameters
    ----------
    config:
        Supplies ``min_sample_count``, ``plausible_bpm``,
        ``min_plausible_fraction`` and ``min_quality_score``.
    """

    def __init__(self, config: ExtractionConfig | None = None) -> None:
        self.config = config or ExtractionConfig()

    def validate(self, window: SampleWindow) -> ValidationResult:
        cfg = self.config
        n = len(window)
        if n < cfg.min_sample_count:
            return ValidationResult(
                False,
                f"Insufficient data: {n} samples, need at least {cfg.min_sample_count}",
            )

        low, high = cfg.plausible_bpm
        values = window.values
        in_range = float(np.count_nonzero((values >= low) & (values <= high))) / n
        if in_range < cfg.min_plausible_fraction:
            return ValidationResult(
                False,
                f"Too noisy: only {in_range:.0%} of samples within "
                f"{low:.0f}-{high:.0f} BPM",
            )

        quality = window.quality_score
        if quality < cfg.min_quality_score:
            return ValidationResult(
                False,
                f"Poor signal quality: {quality:.2f} < {cfg.min_quality_score:.2f}",
            )
        return VALID
