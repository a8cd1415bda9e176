"""Tests for batches of fixational eye movement trials."""

import numpy as np
import pytest

from EMMA.cone_mosaic import ConeMosaic
from EMMA.errors import DimensionMismatchError, InvalidParameterError
from EMMA.fixation_simulation import FixationalEM
from EMMA.trajectory import EyeMovementTrajectory
from EMMA.trials import computeForConeMosaic, computeTrialTask, computeTrials, maxEyeMovementsNum


class ShrinkingEM(FixationalEM):
    """Returns one sample fewer after the first trial."""

    def __init__(self):
        super().__init__()
        self.calls = 0

    def computeSingleTrial(self, duration_s, sample_duration_s, rng, keep_heat_map=True):
        self.calls += 1
        n = 10 if self.calls == 1 else 9
        return EyeMovementTrajectory(np.arange(n) * sample_duration_s, np.zeros((n, 2)), np.zeros(n), [],
                                     sample_duration_s)


def test_batch_shapes(fixational_em: FixationalEM) -> None:
    """A one second batch at 10 ms has 100 samples per trial."""
    batch = computeTrials(fixational_em, 1.0, 0.01, 5, compute_velocity=True, seed=1)
    assert batch.em_pos_arcmin.shape == (5, 100, 2)
    assert batch.velocity_arcmin_per_sec.shape == (5, 100)
    assert batch.time_axis.shape == (100,)
    assert batch.n_trials == 5
    assert len(batch.microsaccade_onsets) == 5
    assert batch.sample_duration == 0.01


def test_every_trial_is_recentred(fixational_em: FixationalEM) -> None:
    """All trials start at (0, 0) at time 0 with increasing time."""
    batch = computeTrials(fixational_em, 0.5, 0.005, 3, seed=2)
    np.testing.assert_array_equal(batch.em_pos_arcmin[:, 0, :], np.zeros((3, 2)))
    assert batch.time_axis[0] == 0.0
    assert np.all(np.diff(batch.time_axis) > 0)
    for onsets in batch.microsaccade_onsets:
        assert np.all((onsets >= 0) & (onsets < batch.n_samples))


def test_same_seed_reproduces_batch(fixational_em: FixationalEM) -> None:
    """A master seed reproduces the whole batch and another seed does not."""
    first = computeTrials(fixational_em, 0.5, 0.01, 2, seed=42)
    second = computeTrials(fixational_em, 0.5, 0.01, 2, seed=42)
    other = computeTrials(fixational_em, 0.5, 0.01, 2, seed=43)
    np.testing.assert_array_equal(first.em_pos_arcmin, second.em_pos_arcmin)
    np.testing.assert_array_equal(first.velocity_arcmin_per_sec, second.velocity_arcmin_per_sec)
    assert not np.array_equal(first.em_pos_arcmin, other.em_pos_arcmin)
    assert first.random_seed == 42


def test_unseeded_batch_records_its_seed(fixational_em: FixationalEM) -> None:
    """An unseeded batch can be reproduced from its recorded seed."""
    batch = computeTrials(fixational_em, 0.3, 0.01, 2)
    repeat = computeTrials(fixational_em, 0.3, 0.01, 2, seed=batch.random_seed)
    np.testing.assert_array_equal(batch.em_pos_arcmin, repeat.em_pos_arcmin)


def test_velocity_is_optional(fixational_em: FixationalEM) -> None:
    """Speed is only stored when requested."""
    batch = computeTrials(fixational_em, 0.3, 0.01, 2, compute_velocity=False, seed=3)
    assert batch.velocity_arcmin_per_sec is None


def test_parallel_matches_sequential(fixational_em: FixationalEM) -> None:
    """Worker processes reproduce the sequential batch exactly."""
    sequential = computeTrials(fixational_em, 0.2, 0.002, 3, seed=5)
    parallel = computeTrials(fixational_em, 0.2, 0.002, 3, seed=5, parallel=True, n_workers=2)
    np.testing.assert_array_equal(sequential.em_pos_arcmin, parallel.em_pos_arcmin)
    np.testing.assert_array_equal(sequential.velocity_arcmin_per_sec, parallel.velocity_arcmin_per_sec)
    for a, b in zip(sequential.microsaccade_onsets, parallel.microsaccade_onsets):
        np.testing.assert_array_equal(a, b)


def test_trials_are_independent(fixational_em: FixationalEM) -> None:
    """Position increments of different trials are uncorrelated."""
    batch = computeTrials(fixational_em, 2.0, 0.02, 10, seed=9)
    increments = np.diff(batch.em_pos_arcmin[:, :, 0], axis=1)
    correlation = np.corrcoef(increments)
    off_diagonal = np.abs(correlation[~np.eye(10, dtype=bool)])
    assert off_diagonal.mean() < 0.15
    assert off_diagonal.max() < 0.7


def test_invalid_batch_parameters_raise(fixational_em: FixationalEM) -> None:
    """Trial counts and durations are checked before any work is done."""
    with pytest.raises(InvalidParameterError):
        computeTrials(fixational_em, 1.0, 0.01, 0)
    with pytest.raises(InvalidParameterError):
        computeTrials(fixational_em, 1.0, 0.01, 1.5)
    with pytest.raises(InvalidParameterError):
        computeTrials(fixational_em, 0.0, 0.01, 1)
    with pytest.raises(InvalidParameterError):
        computeTrials(fixational_em, 1.0, -0.01, 1)
    with pytest.raises(InvalidParameterError):
        computeTrials(fixational_em, 0.005, 0.01, 1)


def test_trial_length_mismatch_raises() -> None:
    """Every trial must have as many samples as the first."""
    with pytest.raises(DimensionMismatchError):
        computeTrials(ShrinkingEM(), 0.1, 0.01, 2, seed=0)


def test_verbose_batch_reports_progress(capsys) -> None:
    """Verbose models write progress to stdout."""
    computeTrials(FixationalEM(verbose=True), 0.1, 0.01, 2, seed=4)
    out = capsys.readouterr().out
    assert "Computing fixational eye movements" in out
    assert "Computed 2 trials of 10 samples" in out


def test_cone_mosaic_batch(fixational_em: FixationalEM, small_mosaic: ConeMosaic) -> None:
    """Mosaic batches have exactly one sample per integration time."""
    batch = computeForConeMosaic(fixational_em, small_mosaic, 20, n_trials=2, seed=6)
    assert batch.em_pos_arcmin.shape == (2, 20, 2)
    assert batch.velocity_arcmin_per_sec.shape == (2, 20)
    np.testing.assert_allclose(np.diff(batch.time_axis), 0.005)
    np.testing.assert_allclose(batch.em_pos_microns, batch.em_pos_arcmin / 60.0 * 300.0)
    assert batch.em_pos.dtype.kind == "i"
    np.testing.assert_array_equal(batch.em_pos, np.round(batch.em_pos_microns / 2.0))


def test_cone_mosaic_batch_below_time_step(fixational_em: FixationalEM) -> None:
    """Integration times shorter than the generator step still give M samples."""
    mosaic = ConeMosaic(4, 4, 0.0005)
    batch = computeForConeMosaic(fixational_em, mosaic, 10, seed=7)
    assert batch.em_pos_arcmin.shape == (1, 10, 2)
    with pytest.raises(InvalidParameterError):
        computeForConeMosaic(fixational_em, mosaic, 0)


def test_max_eye_movements_num() -> None:
    """A stimulus sequence needs one eye movement per integration time."""
    assert maxEyeMovementsNum([0.0, 0.01, 0.02], 0.005) == 6
    assert maxEyeMovementsNum([0.0], 0.005) == 1
    assert maxEyeMovementsNum([0.0, 0.001], 0.005) == 1
    with pytest.raises(InvalidParameterError):
        maxEyeMovementsNum([], 0.005)
    with pytest.raises(InvalidParameterError):
        maxEyeMovementsNum([0.0, 0.01], 0.0)


@pytest.mark.parametrize("integration_time, eye_movements_per_trial",
                         [(0.0003, 8), (0.0001, 3), (0.0001, 14), (0.0007, 9), (0.01, 1), (0.01, 3)])
def test_cone_mosaic_batch_has_requested_length(fixational_em: FixationalEM, integration_time: float,
                                                eye_movements_per_trial: int) -> None:
    """Any integration time, above or below the generator step, gives M samples."""
    mosaic = ConeMosaic(4, 4, integration_time)
    batch = computeForConeMosaic(fixational_em, mosaic, eye_movements_per_trial, seed=1)
    assert batch.em_pos_arcmin.shape == (1, eye_movements_per_trial, 2)
    assert batch.em_pos.shape == (1, eye_movements_per_trial, 2)
    np.testing.assert_allclose(batch.time_axis, np.arange(eye_movements_per_trial) * integration_time)


def test_worker_task_keeps_model_behaviour(capsys) -> None:
    """A worker computes a trial with the caller's model, verbose flag included."""
    shrinking = ShrinkingEM()
    shrinking.calls = 1
    em_trajectory = computeTrialTask((shrinking, 0.1, 0.01, np.random.SeedSequence(0)))
    assert em_trajectory.n_samples == 9

    computeTrialTask((FixationalEM(verbose=True), 0.1, 0.01, np.random.SeedSequence(0)))
    assert "Trial generated: 10 samples" in capsys.readouterr().out


def test_batch_crop_beyond_length_raises(fixational_em: FixationalEM) -> None:
    """Batches and single trajectories reject over-length crops the same way."""
    batch = computeTrials(fixational_em, 0.1, 0.01, 1, seed=0)
    assert batch.cropped(4).n_samples == 4
    with pytest.raises(DimensionMismatchError):
        batch.cropped(batch.n_samples + 1)
