"""Noise engine - dispersion statistics over a decision's blind scores."""

import math
from collections.abc import Sequence

from deliberate.schemas.judgment import VarianceResult

DEFAULT_NOISE_THRESHOLD = 1.5

# |mean| at or below this is treated as zero when forming the CV
_MEAN_EPSILON = 1e-9


def _round4(value: float) -> float:
    return round(value, 4)


def calculate_variance(
    scores: Sequence[float], threshold: float = DEFAULT_NOISE_THRESHOLD
) -> VarianceResult:
    """
    Compute mean, sample standard deviation (n-1), coefficient of variation
    and the high-noise flag for a set of scores.

    n < 2 has no sample variance; it is reported as 0 rather than NaN.
    """
    n = len(scores)
    if n == 0:
        return VarianceResult(mean=0, std_dev=0, cv=0, is_high_noise=False, score_count=0)

    mean = math.fsum(scores) / n
    if n < 2:
        variance = 0.0
    else:
        variance = math.fsum((s - mean) ** 2 for s in scores) / (n - 1)
    std_dev = math.sqrt(variance)

    cv = 0.0 if abs(mean) <= _MEAN_EPSILON else std_dev / mean

    return VarianceResult(
        mean=_round4(mean),
        std_dev=_round4(std_dev),
        cv=_round4(cv),
        is_high_noise=std_dev > threshold,
        score_count=n,
    )
