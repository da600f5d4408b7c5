"""Unit tests for the noise engine."""

import math

from deliberate.engine.variance import calculate_variance


def test_empty_scores():
    """No scores yields all zeros."""
    result = calculate_variance([])
    assert result.mean == 0
    assert result.std_dev == 0
    assert result.cv == 0
    assert result.is_high_noise is False
    assert result.score_count == 0


def test_single_score_has_no_spread():
    """A lone score has zero deviation, not NaN."""
    result = calculate_variance([7])
    assert result.mean == 7
    assert result.std_dev == 0
    assert result.cv == 0
    assert result.is_high_noise is False
    assert result.score_count == 1


def test_sample_variance_uses_n_minus_one():
    """Bessel-corrected deviation for [1, 2, 3] is exactly 1."""
    result = calculate_variance([1, 2, 3])
    assert result.mean == 2
    assert result.std_dev == 1
    assert result.cv == 0.5
    assert result.score_count == 3
    assert result.is_high_noise is False


def test_zero_mean_keeps_cv_finite():
    """cv is 0 when the mean is 0."""
    result = calculate_variance([1, -1])
    assert result.mean == 0
    assert result.cv == 0
    assert math.isfinite(result.cv)


def test_values_rounded_to_four_places():
    """Mean, deviation and cv are rounded to 4 decimals."""
    result = calculate_variance([1, 2, 2])
    assert result.mean == 1.6667
    assert result.std_dev == 0.5774
    assert result.cv == 0.3464


def test_high_noise_above_threshold():
    """Wide disagreement is flagged."""
    result = calculate_variance([1, 10, 2, 9])
    assert result.std_dev > 1.5
    assert result.is_high_noise is True


def test_custom_threshold():
    """The threshold is configurable."""
    assert calculate_variance([1, 2, 3], threshold=0.5).is_high_noise is True
    assert calculate_variance([1, 2, 3], threshold=1.0).is_high_noise is False


def test_wire_keys_are_camel_case():
    """Serialized with the API field names."""
    payload = calculate_variance([4, 6]).model_dump(by_alias=True)
    assert set(payload) == {"mean", "stdDev", "cv", "isHighNoise", "scoreCount"}
