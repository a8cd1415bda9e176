'''
Trajectory
-------------------
A clean single-trial eye movement trajectory and the pipeline that turns a
raw generator trace into one: trim the stabilization period, recentre on the
first kept sample and resample to the requested sample duration.
'''

import numpy

from EMMA import EMMA_toolkit
from EMMA.errors import DimensionMismatchError, InvalidParameterError
from EMMA.resampling import resampleOnsets, smartInterpolation


def readOnly(data):
    '''Returns a read-only copy of an array (or None).'''

    if data is None:
        return None
    data = numpy.array(data)
    data.flags.writeable = False
    return data


class EyeMovementTrajectory:

    '''One trial's fixational eye movement trajectory. The arrays are
    read-only once the trajectory has been created.

    Attributes
    ----------
    time_axis : array_like
        (N,) time in seconds, starting at 0 with a uniform step.
    em_pos_arcmin : array_like
        (N, 2) eye position (x, y) in arcminutes, starting at (0, 0).
    velocity_arcmin_per_sec : array_like
        (N,) eye speed in arcminutes/second.
    microsaccade_onsets : array_like
        Indices into time_axis of the first sample of each microsaccade.
    sample_duration : float
        The time between samples (seconds).
    heat_map : array_like or None
        (N, G, G) visitation heat map at each sample.
    '''

    def __init__(self, time_axis, em_pos_arcmin, velocity_arcmin_per_sec, microsaccade_onsets,
                 sample_duration, heat_map=None):

        self.time_axis = readOnly(numpy.asarray(time_axis, dtype=float))
        self.em_pos_arcmin = readOnly(numpy.asarray(em_pos_arcmin, dtype=float))
        self.velocity_arcmin_per_sec = readOnly(numpy.asarray(velocity_arcmin_per_sec, dtype=float))
        self.microsaccade_onsets = readOnly(numpy.asarray(microsaccade_onsets, dtype=int))
        self.sample_duration = float(sample_duration)
        self.heat_map = readOnly(heat_map)

    @property
    def n_samples(self):
        return self.time_axis.shape[0]

    def emPosMicrons(self, microns_per_degree):
        '''Returns the eye positions in microns on the retina.'''
        return EMMA_toolkit.arcminToMicrons(self.em_pos_arcmin, microns_per_degree)

    def cropped(self, n_samples):
        '''Returns a trajectory holding only the first n_samples samples.'''

        if n_samples > self.n_samples:
            raise DimensionMismatchError('Cannot crop %d samples to %d' % (self.n_samples, n_samples))

        onsets = self.microsaccade_onsets[self.microsaccade_onsets < n_samples]
        heat_map = None if self.heat_map is None else self.heat_map[:n_samples]

        return EyeMovementTrajectory(self.time_axis[:n_samples], self.em_pos_arcmin[:n_samples],
                                     self.velocity_arcmin_per_sec[:n_samples], onsets,
                                     self.sample_duration, heat_map=heat_map)


def resampledLength(duration_steps, time_step, sample_duration):
    '''The number of samples in a trimmed trajectory of duration_steps
    generator steps after resampling to sample_duration. The trimmed
    trajectory ends at (duration_steps - 1) * time_step.'''

    t_end = (duration_steps - 1) * time_step
    return int(numpy.floor(t_end / sample_duration + 1e-9)) + 1


def trimRecenterAndResample(raw, stabilization_steps, sample_duration, keep_heat_map=True, kind='linear'):
    '''Turns a raw generator trace into a clean trajectory.

    Parameters
    ----------
    raw : fixation_simulation.RawFixationTrace
        The raw trace, including the stabilization period and one trailing
        sample.
    stabilization_steps : int
        The number of leading steps to discard.
    sample_duration : float
        The sample duration (seconds) of the returned trajectory. If it
        differs from the generator time step the trajectory is resampled.
    keep_heat_map : bool, optional
        Keep the heat map time series in the result.
    kind : str, optional
        The interpolation kind used within drift segments.

    Returns
    -------
    em_trajectory : EyeMovementTrajectory
        The trimmed, recentred and resampled trajectory.

    '''

    # Trim: only keep samples after the stabilization time, dropping the last
    kept_steps = numpy.arange(stabilization_steps, raw.t_steps - 1)
    if kept_steps.shape[0] == 0:
        raise InvalidParameterError('No samples remain after removing %d stabilization steps'
                                    % stabilization_steps)

    time_axis = raw.time_axis[kept_steps]
    em_pos = raw.em_pos_arcmin[kept_steps]
    velocity = raw.velocity_arcmin_per_sec[kept_steps]
    heat_map = raw.heat_map[kept_steps] if keep_heat_map and raw.heat_map is not None else None

    onsets = numpy.asarray(raw.microsaccade_onsets, dtype=int) - stabilization_steps
    onsets = onsets[(onsets >= 0) & (onsets < kept_steps.shape[0])]

    # Re-center
    time_axis = time_axis - time_axis[0]
    em_pos = em_pos - em_pos[0]

    # Resample in time according to the requested sample duration
    if abs(raw.time_step - sample_duration) > 100 * numpy.spacing(sample_duration):
        old_time_axis = time_axis
        n_samples = resampledLength(kept_steps.shape[0], raw.time_step, sample_duration)
        time_axis = numpy.arange(n_samples) * sample_duration

        em_pos = smartInterpolation(old_time_axis, em_pos, time_axis, onsets=onsets, kind=kind)
        velocity = smartInterpolation(old_time_axis, velocity, time_axis, onsets=onsets, kind=kind)
        if heat_map is not None:
            heat_map = smartInterpolation(old_time_axis, heat_map, time_axis, onsets=onsets, kind=kind)
        onsets = resampleOnsets(old_time_axis, onsets, time_axis)

    return EyeMovementTrajectory(time_axis, em_pos, velocity, onsets, sample_duration, heat_map=heat_map)
