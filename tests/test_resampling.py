"""Tests for onset-aware resampling of eye movement time series."""

import numpy as np
import pytest

from EMMA.errors import DimensionMismatchError, InvalidParameterError, OutOfRangeError
from EMMA.resampling import resampleOnsets, segmentStarts, smartInterpolation


def test_resampling_onto_own_axis_is_identity() -> None:
    """Resampling onto the source axis returns the data unchanged."""
    time = np.arange(50) * 0.001
    rng = np.random.default_rng(3)
    data = np.cumsum(rng.normal(size=(50, 2)), axis=0)
    resampled = smartInterpolation(time, data, time, onsets=[10, 30])
    np.testing.assert_allclose(resampled, data, rtol=0.0, atol=1e-12)


def test_linear_within_a_segment() -> None:
    """Drift segments are interpolated linearly."""
    time = np.arange(11) * 0.1
    data = 2.0 * time
    new_time = np.array([0.05, 0.25, 0.95])
    resampled = smartInterpolation(time, data, new_time)
    np.testing.assert_allclose(resampled, 2.0 * new_time)


def test_no_interpolation_across_onset() -> None:
    """A target time between two segments holds the earlier segment's value."""
    time = np.arange(10, dtype=float)
    data = np.where(time < 5, 0.0, 10.0)
    resampled = smartInterpolation(time, data, np.array([4.5, 5.0, 5.5]), onsets=[5])
    np.testing.assert_array_equal(resampled, [0.0, 10.0, 10.0])

    # Without the onset the jump is smoothed
    smoothed = smartInterpolation(time, data, np.array([4.5]))
    assert smoothed[0] == pytest.approx(5.0)


def test_multidimensional_channels_keep_trailing_shape() -> None:
    """Heat map style (N, G, G) data keeps its trailing dimensions."""
    time = np.arange(20) * 0.001
    data = np.arange(20 * 9, dtype=float).reshape((20, 3, 3))
    new_time = np.arange(10) * 0.002
    resampled = smartInterpolation(time, data, new_time, onsets=[7])
    assert resampled.shape == (10, 3, 3)
    np.testing.assert_allclose(resampled[0], data[0])


def test_single_sample_segment_is_held() -> None:
    """A segment with one sample is held constant."""
    time = np.arange(6, dtype=float)
    data = np.array([0.0, 1.0, 2.0, 9.0, 20.0, 21.0])
    resampled = smartInterpolation(time, data, np.array([3.0, 3.5]), onsets=[3, 4])
    np.testing.assert_array_equal(resampled, [9.0, 9.0])


def test_higher_order_kind_falls_back_on_short_segments() -> None:
    """Cubic interpolation on a two-sample segment falls back to linear."""
    time = np.arange(8, dtype=float)
    data = np.array([0.0, 1.0, 4.0, 9.0, 16.0, 25.0, 100.0, 102.0])
    resampled = smartInterpolation(time, data, np.array([1.5, 6.5]), onsets=[6], kind="cubic")
    assert resampled[0] == pytest.approx(2.25)
    assert resampled[1] == pytest.approx(101.0)


def test_out_of_range_targets_raise() -> None:
    """Target times outside the source axis are rejected."""
    time = np.arange(10) * 0.01
    data = np.zeros(10)
    with pytest.raises(OutOfRangeError):
        smartInterpolation(time, data, np.array([0.0, 0.2]))
    with pytest.raises(OutOfRangeError):
        smartInterpolation(time, data, np.array([-0.01]))


def test_rounding_error_at_the_end_is_clamped() -> None:
    """Targets beyond the end by rounding error only are accepted."""
    time = np.arange(10) * 0.01
    data = np.arange(10, dtype=float)
    resampled = smartInterpolation(time, data, np.array([time[-1] + 1e-12]))
    assert resampled[0] == pytest.approx(9.0)


def test_invalid_inputs_raise() -> None:
    """Non-increasing axes, length mismatches and unknown kinds are rejected."""
    with pytest.raises(InvalidParameterError):
        smartInterpolation([0.0, 0.0, 1.0], np.zeros(3), [0.5])
    with pytest.raises(DimensionMismatchError):
        smartInterpolation([0.0, 1.0, 2.0], np.zeros(4), [0.5])
    with pytest.raises(InvalidParameterError):
        smartInterpolation([0.0, 1.0], np.zeros(2), [0.5], kind="spline")


def test_segment_starts_ignore_out_of_range_onsets() -> None:
    """Onsets at 0 or beyond the series do not create segments."""
    np.testing.assert_array_equal(segmentStarts([0, 4, 4, 12, 2], 10), [0, 2, 4])
    np.testing.assert_array_equal(segmentStarts(None, 10), [0])


def test_resample_onsets_maps_to_first_sample_at_or_after() -> None:
    """Onsets move to the first new sample at or after the onset time."""
    old_time = np.arange(100) * 0.001
    new_time = np.arange(10) * 0.01
    onsets = resampleOnsets(old_time, [20, 25, 26, 95, 120], new_time)
    np.testing.assert_array_equal(onsets, [2, 3])
