'''
Trials
-------------------
Functions for computing batches of independent fixational eye movement
trials, optionally in parallel, and for computing eye movements matched to a
cone mosaic.
'''

import multiprocessing
import sys

import numpy

from EMMA import EMMA_toolkit
from EMMA.errors import DimensionMismatchError, InvalidParameterError


class TrialBatch:

    '''The result of one batch computation. Every computation returns a new
    batch; nothing accumulates between calls.

    Attributes
    ----------
    time_axis : array_like
        (N,) time in seconds, shared by all trials.
    em_pos_arcmin : array_like
        (n_trials, N, 2) eye positions (x, y) in arcminutes.
    velocity_arcmin_per_sec : array_like or None
        (n_trials, N) eye speed, if it was requested.
    microsaccade_onsets : list
        One array of onset sample indices per trial.
    sample_duration : float
        The time between samples (seconds).
    random_seed : int
        The entropy of the master seed. Passing it back as the seed reproduces
        the batch.
    em_pos_microns : array_like or None
        (n_trials, N, 2) eye positions in microns, set for mosaic batches.
    em_pos : array_like or None
        (n_trials, N, 2) eye positions in whole mosaic pattern units, set for
        mosaic batches.
    '''

    def __init__(self, time_axis, em_pos_arcmin, velocity_arcmin_per_sec, microsaccade_onsets,
                 sample_duration, random_seed):

        self.time_axis = time_axis
        self.em_pos_arcmin = em_pos_arcmin
        self.velocity_arcmin_per_sec = velocity_arcmin_per_sec
        self.microsaccade_onsets = microsaccade_onsets
        self.sample_duration = sample_duration
        self.random_seed = random_seed
        self.em_pos_microns = None
        self.em_pos = None

    @property
    def n_trials(self):
        return self.em_pos_arcmin.shape[0]

    @property
    def n_samples(self):
        return self.em_pos_arcmin.shape[1]

    def emPosMicrons(self, microns_per_degree):
        '''Returns the eye positions in microns on the retina.'''
        return EMMA_toolkit.arcminToMicrons(self.em_pos_arcmin, microns_per_degree)

    def emPosPatternUnits(self, microns_per_degree, pattern_sample_size_microns):
        '''Returns the eye positions in whole units of the mosaic pattern
        size, as needed for applying them to absorptions.'''
        return EMMA_toolkit.micronsToPatternUnits(self.emPosMicrons(microns_per_degree),
                                                  pattern_sample_size_microns)

    def cropped(self, n_samples):
        '''Returns a batch holding only the first n_samples samples of each
        trial.'''

        if n_samples > self.n_samples:
            raise DimensionMismatchError('Cannot crop %d samples to %d' % (self.n_samples, n_samples))

        velocity = None
        if self.velocity_arcmin_per_sec is not None:
            velocity = self.velocity_arcmin_per_sec[:, :n_samples].copy()
        onsets = [o[o < n_samples] for o in self.microsaccade_onsets]

        return TrialBatch(self.time_axis[:n_samples].copy(), self.em_pos_arcmin[:, :n_samples].copy(),
                          velocity, onsets, self.sample_duration, self.random_seed)


def computeTrialTask(task):
    '''Computes one trial in a worker process. The task holds the oculomotor
    model (configuration only, so a pickled copy behaves like the caller's,
    verbose flag and subclass included) and the trial's own seed sequence.'''

    fixational_em, duration_s, sample_duration_s, seed_sequence = task

    return fixational_em.computeSingleTrial(duration_s, sample_duration_s, numpy.random.default_rng(seed_sequence),
                                            keep_heat_map=False)


def computeTrials(fixational_em, duration_s, sample_duration_s, n_trials, compute_velocity=True, seed=None,
                  parallel=False, n_workers=None):
    '''Computes a batch of independent fixational eye movement trials.

    Trial 1 is always computed first to fix the number of samples. Each trial
    draws from its own random stream derived from the master seed, so trial i
    is the same whether the batch runs sequentially or in parallel.

    Parameters
    ----------
    fixational_em : fixation_simulation.FixationalEM
        The oculomotor model.
    duration_s : float
        The duration of each trial (seconds).
    sample_duration_s : float
        The time between returned samples (seconds).
    n_trials : int
        The number of trials.
    compute_velocity : bool, optional
        Also return the speed of each trial.
    seed : int, optional
        The master seed. If None, fresh entropy is used and the batch can only
        be reproduced from its random_seed attribute.
    parallel : bool, optional
        Compute trials 2..n_trials in a pool of worker processes.
    n_workers : int, optional
        The number of worker processes. The default is the number of CPUs.

    Returns
    -------
    batch : TrialBatch
        The computed trials.

    '''

    if int(n_trials) != n_trials or n_trials < 1:
        raise InvalidParameterError('The number of trials must be a positive integer (got %r)' % n_trials)
    if not float(duration_s) > 0 or not float(sample_duration_s) > 0:
        raise InvalidParameterError('The duration and sample duration must be positive (got %r, %r)'
                                    % (duration_s, sample_duration_s))
    n_trials = int(n_trials)

    random_seed, seed_sequences = EMMA_toolkit.trialSeedSequences(seed, n_trials)

    if fixational_em.verbose:
        sys.stdout.write('Computing fixational eye movements for %2.2f seconds; sample time = %2.4f s, trials: %d, seed: %d\n'
                         % (duration_s, sample_duration_s, n_trials, random_seed))

    # Compute the first trial to determine the size of the output
    first_trial = fixational_em.computeSingleTrial(duration_s, sample_duration_s,
                                                   numpy.random.default_rng(seed_sequences[0]),
                                                   keep_heat_map=False)
    n_samples = first_trial.n_samples

    em_pos_arcmin = numpy.zeros((n_trials, n_samples, 2))
    velocity = numpy.zeros((n_trials, n_samples)) if compute_velocity else None
    onsets = [None] * n_trials

    def storeTrial(trial, em_trajectory):
        if em_trajectory.n_samples != n_samples:
            raise DimensionMismatchError('Trial %d has %d samples but trial 1 has %d'
                                         % (trial + 1, em_trajectory.n_samples, n_samples))
        em_pos_arcmin[trial] = em_trajectory.em_pos_arcmin
        if compute_velocity:
            velocity[trial] = em_trajectory.velocity_arcmin_per_sec
        onsets[trial] = numpy.array(em_trajectory.microsaccade_onsets)

    storeTrial(0, first_trial)

    # Compute the remaining trials
    remaining = range(1, n_trials)
    tasks = [(fixational_em, duration_s, sample_duration_s, seed_sequences[i]) for i in remaining]
    if parallel and n_trials > 1:
        with multiprocessing.Pool(processes=n_workers) as pool:
            em_trajectories = pool.map(computeTrialTask, tasks)
    else:
        em_trajectories = map(computeTrialTask, tasks)

    for trial, em_trajectory in zip(remaining, em_trajectories):
        storeTrial(trial, em_trajectory)

    if fixational_em.verbose:
        sys.stdout.write('Computed %d trials of %d samples\n' % (n_trials, n_samples))

    return TrialBatch(numpy.array(first_trial.time_axis), em_pos_arcmin, velocity, onsets,
                      float(sample_duration_s), random_seed)


def computeForConeMosaic(fixational_em, mosaic, eye_movements_per_trial, n_trials=1, seed=None,
                         compute_velocity=True, parallel=False, n_workers=None):
    '''Computes eye movements matched to a cone mosaic: one sample per
    integration time, expressed in arcminutes, microns and pattern units.

    Parameters
    ----------
    fixational_em : fixation_simulation.FixationalEM
        The oculomotor model.
    mosaic : cone_mosaic.ConeMosaic
        The mosaic. Its integration time becomes the sample duration.
    eye_movements_per_trial : int
        The number of eye movement samples per trial.
    n_trials : int, optional
        The number of trials.
    seed : int, optional
        The master seed.
    compute_velocity : bool, optional
        Also return the speed of each trial.
    parallel : bool, optional
        Compute trials 2..n_trials in a pool of worker processes.
    n_workers : int, optional
        The number of worker processes.

    Returns
    -------
    batch : TrialBatch
        Exactly eye_movements_per_trial samples per trial, with em_pos_microns
        and em_pos filled in.

    '''

    if int(eye_movements_per_trial) != eye_movements_per_trial or eye_movements_per_trial < 1:
        raise InvalidParameterError('The number of eye movements per trial must be a positive integer (got %r)'
                                    % eye_movements_per_trial)
    eye_movements_per_trial = int(eye_movements_per_trial)

    # The kept trace must reach the last requested sample: (D - 1) generator
    # steps have to cover (M - 1) integration times, plus one spare step for
    # rounding.
    sample_duration_s = mosaic.integration_time
    duration_steps = int(numpy.ceil((eye_movements_per_trial - 1) * sample_duration_s
                                    / fixational_em.time_step)) + 2
    duration_s = max(duration_steps * fixational_em.time_step, sample_duration_s)

    batch = computeTrials(fixational_em, duration_s, sample_duration_s, n_trials,
                          compute_velocity=compute_velocity, seed=seed, parallel=parallel, n_workers=n_workers)
    if batch.n_samples < eye_movements_per_trial:
        raise DimensionMismatchError('Computed %d samples per trial but %d were requested'
                                     % (batch.n_samples, eye_movements_per_trial))

    batch = batch.cropped(eye_movements_per_trial)
    batch.em_pos_microns = batch.emPosMicrons(mosaic.microns_per_degree)
    batch.em_pos = batch.emPosPatternUnits(mosaic.microns_per_degree, mosaic.pattern_sample_size_microns)

    return batch


def maxEyeMovementsNum(stimulus_time_axis, integration_time):
    '''The number of eye movement samples (one per integration time) needed
    to cover a stimulus sequence.

    Parameters
    ----------
    stimulus_time_axis : array_like
        Onset time of each stimulus frame (seconds), uniformly spaced. The
        last frame lasts one refresh interval; a single frame is taken to
        last one integration time.
    integration_time : float
        The cone integration time (seconds).

    Returns
    -------
    eye_movements_num : int

    '''

    stimulus_time_axis = numpy.asarray(stimulus_time_axis, dtype=float)
    if stimulus_time_axis.ndim != 1 or stimulus_time_axis.shape[0] == 0:
        raise InvalidParameterError('The stimulus time axis must be a non-empty 1D array')
    if not float(integration_time) > 0:
        raise InvalidParameterError('The integration time must be positive (got %r)' % integration_time)

    if stimulus_time_axis.shape[0] > 1:
        refresh_interval = stimulus_time_axis[1] - stimulus_time_axis[0]
    else:
        refresh_interval = integration_time

    stimulus_duration = stimulus_time_axis[-1] - stimulus_time_axis[0] + refresh_interval

    return max(int(round(stimulus_duration / integration_time)), 1)
