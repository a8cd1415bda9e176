'''
Fixation simulation
-------------------
A simulation of fixational eye movements including drift and microsaccades.
Drift is a correlated random walk that is pulled towards the fixation centre
and pushed away from recently visited locations; microsaccades are a renewal
process whose amplitude, peak speed and direction are drawn from fitted
statistics.
'''

import os
import sys

import numpy
import yaml

from numba import jit

from EMMA import EMMA_toolkit, trajectory
from EMMA.errors import InvalidParameterError

DEFAULT_PARAMETER_FILE = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'Data',
                                      'fixational_em_parameters.yaml')

POSITIVE_PARAMETERS = ['Time_step_seconds',
                       'Drift_speed_arcmin_per_second_STD',
                       'Drift_correlation_time_seconds',
                       'Heat_map_cell_arcmin',
                       'Heat_map_relaxation_per_second',
                       'Microsaccade_interval_seconds_MEAN',
                       'Microsaccade_interval_gamma_shape',
                       'Microsaccade_amplitude_arcmin_MEAN',
                       'Minimum_microsaccade_amplitude_arcmin',
                       'Main_sequence_factor']

NON_NEGATIVE_PARAMETERS = ['Stabilization_seconds',
                           'Fixation_potential_per_second',
                           'Self_avoidance_strength',
                           'Minimum_microsaccade_interval',
                           'Microsaccade_amplitude_arcmin_STD',
                           'Microsaccade_direction_STD_radians',
                           'Main_sequence_STD']


class RawFixationTrace:

    '''The raw output of one run of the generator, including the leading
    stabilization period. Positions are time-major, (N, 2) with columns
    (x, y) in arcminutes.
    '''

    def __init__(self, time_axis, em_pos_arcmin, heat_map, velocity_arcmin_per_sec,
                 microsaccade_onsets, time_step, stabilization_steps):

        self.time_axis = time_axis
        self.em_pos_arcmin = em_pos_arcmin
        self.heat_map = heat_map
        self.velocity_arcmin_per_sec = velocity_arcmin_per_sec
        self.microsaccade_onsets = microsaccade_onsets
        self.time_step = time_step
        self.stabilization_steps = stabilization_steps

    @property
    def t_steps(self):
        return self.time_axis.shape[0]


class FixationalEM:

    '''A FixationalEM class. Instances of this class are oculomotor objects
    with parameters specified in the fixational eye movement parameter yaml
    file. Instances hold only configuration: every trial is generated from the
    random generator passed in, so one instance can be shared between trials.
    '''

    def __init__(self, fixation_parameter_file=None, parameters=None, verbose=False):

        '''Creates an instance of a FixationalEM object.

        Parameters
        ----------
        fixation_parameter_file : string, optional
            The path to the fixational eye movement parameter file. The
            default is the file shipped in EMMA/Data.
        parameters : dict, optional
            Values that override entries of the parameter file.
        verbose : bool, optional
            Write progress messages to stdout.

        '''

        if fixation_parameter_file is None:
            fixation_parameter_file = DEFAULT_PARAMETER_FILE
        self.fixation_parameter_file = fixation_parameter_file
        self.verbose = verbose

        # Open the fixation parameters file
        with open(self.fixation_parameter_file, 'r') as f:
            self.parameters = yaml.safe_load(f)

        if parameters is not None:
            self.parameters.update(parameters)

        self.checkParameters()

        self.time_step = float(self.parameters['Time_step_seconds'])
        self.stabilization_steps = int(round(self.parameters['Stabilization_seconds'] / self.time_step))

    def checkParameters(self):
        '''Checks that every parameter is present and within its allowed
        range, raising an InvalidParameterError otherwise.'''

        for key in POSITIVE_PARAMETERS + NON_NEGATIVE_PARAMETERS + ['Heat_map_size', 'Microsaccades_enabled']:
            if key not in self.parameters:
                raise InvalidParameterError('Missing fixational eye movement parameter "%s"' % key)

        for key in POSITIVE_PARAMETERS:
            if not self.parameters[key] > 0:
                raise InvalidParameterError('Parameter "%s" must be positive (got %r)' % (key, self.parameters[key]))

        for key in NON_NEGATIVE_PARAMETERS:
            if not self.parameters[key] >= 0:
                raise InvalidParameterError('Parameter "%s" must not be negative (got %r)' % (key, self.parameters[key]))

        if int(self.parameters['Heat_map_size']) < 3:
            raise InvalidParameterError('Parameter "Heat_map_size" must be at least 3')

        if self.parameters['Minimum_microsaccade_interval'] >= self.parameters['Microsaccade_interval_seconds_MEAN']:
            raise InvalidParameterError('The minimum microsaccade interval must be shorter than the mean interval')

        if self.parameters['Minimum_microsaccade_amplitude_arcmin'] > self.parameters['Microsaccade_amplitude_arcmin_MEAN']:
            raise InvalidParameterError('The minimum microsaccade amplitude must not exceed the mean amplitude')

    def durationSteps(self, duration_s):
        '''Returns the number of generator steps covering duration_s, after
        checking that the duration spans at least one step.'''

        duration_s = float(duration_s)
        if not duration_s >= self.time_step:
            raise InvalidParameterError('The duration (%g s) must be at least one time step (%g s)'
                                        % (duration_s, self.time_step))

        return int(round(duration_s / self.time_step))

    def microsaccadeOnsets(self, t_steps, rng):
        '''Draws microsaccade onset steps from a renewal process covering
        t_steps generator steps (stabilization period included).

        Parameters
        ----------
        t_steps : int
            The number of generator steps.
        rng : numpy.random.Generator
            The random generator for this trial.

        Returns
        -------
        onsets : array_like
            Onset step indices, in increasing order.

        '''

        if not self.parameters['Microsaccades_enabled']:
            return numpy.zeros((0), dtype=numpy.int64)

        total_time_s = t_steps * self.time_step
        shape = self.parameters['Microsaccade_interval_gamma_shape']
        scale = self.parameters['Microsaccade_interval_seconds_MEAN'] / shape

        onset_times = []
        time_counter = 0.0

        # Keep choosing an interval and adding it to the time counter until
        # the total time has been reached
        while True:
            this_interval = rng.gamma(shape, scale)
            if this_interval < self.parameters['Minimum_microsaccade_interval']:
                continue
            time_counter += this_interval
            if time_counter >= total_time_s:
                break
            onset_times.append(time_counter)

        onsets = numpy.round(numpy.asarray(onset_times) / self.time_step).astype(numpy.int64)

        return onsets[onsets < t_steps]

    def microsaccadeAmplitudes(self, n, rng):
        '''Draws n microsaccade amplitudes (arcmin) from a normal distribution,
        redrawing any below the minimum amplitude.'''

        amplitudes = numpy.zeros((n))
        for i in range(n):
            amplitude = rng.normal(self.parameters['Microsaccade_amplitude_arcmin_MEAN'],
                                   self.parameters['Microsaccade_amplitude_arcmin_STD'])
            while amplitude < self.parameters['Minimum_microsaccade_amplitude_arcmin']:
                amplitude = rng.normal(self.parameters['Microsaccade_amplitude_arcmin_MEAN'],
                                       self.parameters['Microsaccade_amplitude_arcmin_STD'])
            amplitudes[i] = amplitude

        return amplitudes

    def microsaccadePeakSpeeds(self, amplitudes, rng):
        '''Selects a peak speed (arcmin/s) for each amplitude from a normal
        distribution centred on the main sequence.'''

        expected_deg = mainSequencePeakSpeed(amplitudes, self.parameters['Main_sequence_factor']) / 60.
        speeds_deg = rng.normal(expected_deg, self.parameters['Main_sequence_STD'])
        speeds_deg = numpy.maximum(speeds_deg, 0.1 * expected_deg)

        return 60. * speeds_deg

    def generateTimeSeries(self, duration_s, rng, keep_heat_map=True):
        '''Generates one raw fixational eye movement trace covering the
        stabilization period plus duration_s, plus one extra sample.

        Parameters
        ----------
        duration_s : float
            The duration (seconds) of the part of the trace that will be kept.
        rng : numpy.random.Generator
            The random generator for this trial. The same generator state and
            parameters reproduce the same trace.
        keep_heat_map : bool, optional
            Keep the heat map at every step. If False the trace carries no
            heat map series; the dynamics are unchanged.

        Returns
        -------
        raw : RawFixationTrace
            The generated trace.

        '''

        duration_steps = self.durationSteps(duration_s)
        t_steps = self.stabilization_steps + duration_steps + 1

        # Microsaccade timing, amplitudes, speeds and displacement profiles
        onsets = self.microsaccadeOnsets(t_steps, rng)
        n_saccades = onsets.shape[0]
        amplitudes = self.microsaccadeAmplitudes(n_saccades, rng)
        peak_speeds = self.microsaccadePeakSpeeds(amplitudes, rng)
        angle_noise = rng.normal(0.0, self.parameters['Microsaccade_direction_STD_radians'], size=n_saccades)
        uniform_angles = rng.uniform(0.0, 2 * numpy.pi, size=n_saccades)

        profiles = [microsaccadeProfile(amplitudes[i], peak_speeds[i], self.time_step) for i in range(n_saccades)]
        lengths = numpy.asarray([p.shape[0] for p in profiles], dtype=numpy.int64)
        onsets = separateOnsets(onsets, lengths)

        increments = numpy.zeros((n_saccades, max([1] + list(lengths))))
        for i in range(n_saccades):
            increments[i, :lengths[i]] = profiles[i]

        # Drift velocity noise, scaled so the stationary velocity standard
        # deviation matches the parameter file
        rho = numpy.exp(-self.time_step / self.parameters['Drift_correlation_time_seconds'])
        noise_std = self.parameters['Drift_speed_arcmin_per_second_STD'] * numpy.sqrt(1 - rho ** 2)
        velocity_noise = rng.normal(0.0, noise_std, size=(t_steps, 2))

        positions, heat_map = driftIterator(velocity_noise,
                                            onsets,
                                            increments,
                                            lengths,
                                            angle_noise,
                                            uniform_angles,
                                            rho,
                                            float(self.parameters['Fixation_potential_per_second']),
                                            float(self.parameters['Self_avoidance_strength']),
                                            int(self.parameters['Heat_map_size']),
                                            float(self.parameters['Heat_map_cell_arcmin']),
                                            numpy.exp(-self.parameters['Heat_map_relaxation_per_second'] * self.time_step),
                                            self.time_step,
                                            bool(keep_heat_map))
        if not keep_heat_map:
            heat_map = None

        # Saccades pushed past the end of the trace never start
        onsets = onsets[onsets < t_steps]

        time_axis = numpy.arange(t_steps) * self.time_step
        velocity = EMMA_toolkit.speedFromPositions(positions, self.time_step)

        return RawFixationTrace(time_axis, positions, heat_map, velocity, onsets,
                                self.time_step, self.stabilization_steps)

    def computeSingleTrial(self, duration_s, sample_duration_s, rng, keep_heat_map=True):
        '''Generates one trial and trims, recentres and resamples it.

        Parameters
        ----------
        duration_s : float
            The trial duration (seconds).
        sample_duration_s : float
            The sample duration (seconds) of the returned trajectory.
        rng : numpy.random.Generator
            The random generator for this trial.
        keep_heat_map : bool, optional
            Keep the heat map time series in the returned trajectory.

        Returns
        -------
        em_trajectory : trajectory.EyeMovementTrajectory
            The clean trajectory, starting at time 0 and position (0, 0).

        '''

        if not float(sample_duration_s) > 0:
            raise InvalidParameterError('The sample duration must be positive (got %r)' % sample_duration_s)
        if float(duration_s) < float(sample_duration_s):
            raise InvalidParameterError('The duration (%g s) is shorter than one sample (%g s)'
                                        % (duration_s, sample_duration_s))

        raw = self.generateTimeSeries(duration_s, rng, keep_heat_map=keep_heat_map)
        em_trajectory = trajectory.trimRecenterAndResample(raw, self.stabilization_steps, sample_duration_s,
                                                          keep_heat_map=keep_heat_map)

        if self.verbose:
            sys.stdout.write('Trial generated: %d samples, %d microsaccades\n'
                             % (em_trajectory.n_samples, em_trajectory.microsaccade_onsets.shape[0]))

        return em_trajectory


def mainSequencePeakSpeed(amplitude_arcmin, main_sequence_factor):
    '''Estimates the peak speed of a microsaccade from the main sequence. The
    amplitude (deg) is linearly related to the peak speed (deg/s) in log space
    with unit slope, so the peak speed is proportional to the amplitude.

    Parameters
    ----------
    amplitude_arcmin : float or array_like
        Microsaccade amplitude(s) in arcminutes.
    main_sequence_factor : float
        Peak speed (deg/s) per degree of amplitude.

    Returns
    -------
    peak_speed : float or array_like
        The expected peak speed(s) in arcminutes/second.

    '''

    log_amplitude_deg = numpy.log10(numpy.asarray(amplitude_arcmin, dtype=float) / 60.)
    peak_speed_deg = 10 ** (log_amplitude_deg + numpy.log10(main_sequence_factor))

    return 60. * peak_speed_deg


def microsaccadeProfile(amplitude, max_speed, time_resolution):
    ''' Generates the displacement per sample of a microsaccade with a
    Gaussian velocity profile.

    Parameters
    ----------
    amplitude : float
        The amplitude of the microsaccade (arcmin) - the distance traveled
        from the start to the end
    max_speed : float
        The maximum speed of the microsaccade (arcmin/second)
    time_resolution : float
        The time between motion samples (seconds)

    Returns
    -------
    increments : array_like
        The displacement (arcmin) along the microsaccade direction at each
        sample. The increments sum to the amplitude.

    '''

    # Width of the Gaussian whose integral at the given peak equals the amplitude
    stdev = amplitude / (max_speed * numpy.sqrt(2 * numpy.pi))

    # The microsaccade lasts while the speed exceeds 1% of its peak
    duration = 2 * numpy.sqrt(2 * numpy.log(100.0)) * stdev
    n_samples = max(int(numpy.ceil(duration / time_resolution)), 1)

    time = (numpy.arange(n_samples) + 0.5) * time_resolution
    velocity = EMMA_toolkit.functGaussian(time, 0.5 * n_samples * time_resolution, stdev)

    # Renormalise so the sampled profile covers exactly the amplitude
    increments = velocity / velocity.sum() * amplitude

    return increments


def separateOnsets(onsets, lengths):
    '''Delays any microsaccade that would start before the previous one has
    finished.'''

    onsets = numpy.array(onsets, dtype=numpy.int64)
    for i in range(1, onsets.shape[0]):
        onsets[i] = max(onsets[i], onsets[i - 1] + lengths[i - 1])

    return onsets


@jit(nopython=True)
def driftIterator(velocity_noise, onsets, increments, lengths, angle_noise, uniform_angles,
                  rho, fixation_potential, avoidance_strength, heat_map_size, cell_size, decay, time_step,
                  store_heat_maps):
    '''Iterates through the drift and microsaccade dynamics one time step at a
    time.

    Parameters
    ----------
    velocity_noise : array
        (N, 2) noise added to the drift velocity at each step.
    onsets : array
        Step indices at which microsaccades start.
    increments : array
        (n_saccades, max_length) displacement per step of each microsaccade.
    lengths : array
        The number of steps of each microsaccade.
    angle_noise : array
        Angular deviation of each microsaccade from the direction of the
        fixation centre (radians).
    uniform_angles : array
        Direction used for a microsaccade that starts exactly at the centre.
    rho : float
        Step-to-step correlation of the drift velocity.
    fixation_potential : float
        Pull towards the fixation centre (1/s).
    avoidance_strength : float
        Push down the heat map gradient.
    heat_map_size : int
        The number of heat map cells along each axis.
    cell_size : float
        The size of a heat map cell (arcmin).
    decay : float
        Heat map decay factor per step.
    time_step : float
        The time between steps (seconds).
    store_heat_maps : bool
        Keep a copy of the heat map at every step. If False only the final
        heat map is returned, as a single slice.

    Returns
    -------
    positions : array
        (N, 2) eye positions (x, y) in arcminutes.
    heat_maps : array
        (N, heat_map_size, heat_map_size) heat map at each step, or
        (1, heat_map_size, heat_map_size) if store_heat_maps is False.

    '''

    n_steps = velocity_noise.shape[0]
    n_saccades = onsets.shape[0]
    positions = numpy.zeros((n_steps, 2))
    n_stored = n_steps if store_heat_maps else 1
    heat_maps = numpy.zeros((n_stored, heat_map_size, heat_map_size))
    heat_map = numpy.zeros((heat_map_size, heat_map_size))
    half = heat_map_size // 2

    x = 0.0
    y = 0.0
    vx = 0.0
    vy = 0.0
    saccade = 0
    saccade_step = -1
    direction_x = 0.0
    direction_y = 0.0

    for k in range(n_steps):
        positions[k, 0] = x
        positions[k, 1] = y

        # Add the current location to the decaying heat map
        heat_map *= decay
        col = int(numpy.floor(x / cell_size + 0.5)) + half
        row = int(numpy.floor(y / cell_size + 0.5)) + half
        if row >= 0 and row < heat_map_size and col >= 0 and col < heat_map_size:
            heat_map[row, col] += time_step
        if store_heat_maps:
            heat_maps[k] = heat_map

        # Launch the next microsaccade, directed back towards the centre
        if saccade_step < 0 and saccade < n_saccades and k == onsets[saccade]:
            if x != 0.0 or y != 0.0:
                angle = numpy.arctan2(-y, -x) + angle_noise[saccade]
            else:
                angle = uniform_angles[saccade]
            direction_x = numpy.cos(angle)
            direction_y = numpy.sin(angle)
            saccade_step = 0

        if saccade_step >= 0:
            x += increments[saccade, saccade_step] * direction_x
            y += increments[saccade, saccade_step] * direction_y
            saccade_step += 1
            if saccade_step >= lengths[saccade]:
                saccade_step = -1
                saccade += 1
            continue

        # Self-avoidance: central difference of the heat map around the
        # current cell
        gradient_x = 0.0
        gradient_y = 0.0
        if row >= 1 and row < heat_map_size - 1 and col >= 1 and col < heat_map_size - 1:
            gradient_x = (heat_map[row, col + 1] - heat_map[row, col - 1]) / (2 * cell_size)
            gradient_y = (heat_map[row + 1, col] - heat_map[row - 1, col]) / (2 * cell_size)

        target_x = -fixation_potential * x - avoidance_strength * gradient_x
        target_y = -fixation_potential * y - avoidance_strength * gradient_y

        vx = rho * vx + (1 - rho) * target_x + velocity_noise[k, 0]
        vy = rho * vy + (1 - rho) * target_y + velocity_noise[k, 1]

        x += vx * time_step
        y += vy * time_step

    if not store_heat_maps:
        heat_maps[0] = heat_map

    return positions, heat_maps
