'''
Resampling
-------------------
Functions for resampling eye movement time series onto a new time axis.
Microsaccades are rapid jumps between slow drift segments, so every
inter-saccade segment is interpolated on its own and interpolation is never
carried across a saccade onset.
'''

import numpy

from scipy.interpolate import interp1d

from EMMA.errors import DimensionMismatchError, InvalidParameterError, OutOfRangeError

# Minimum number of samples needed by each interp1d kind
MIN_POINTS = {'linear': 2, 'nearest': 2, 'previous': 2, 'next': 2, 'quadratic': 3, 'cubic': 4}

# Fraction of the smallest source interval by which a target time may exceed
# the source axis before it is treated as out of range
RANGE_TOLERANCE = 1e-6


def checkTimeAxis(old_time):
    '''Checks that a source time axis is one dimensional and strictly
    increasing, returning it as a float array.'''

    old_time = numpy.asarray(old_time, dtype=float)
    if old_time.ndim != 1 or old_time.shape[0] == 0:
        raise InvalidParameterError('The source time axis must be a non-empty 1D array')
    if numpy.any(numpy.diff(old_time) <= 0):
        raise InvalidParameterError('The source time axis must be strictly increasing')

    return old_time


def clampToRange(old_time, new_time):
    '''Checks that the target times lie within the source time axis and clamps
    values that exceed it only by rounding error.

    Parameters
    ----------
    old_time : array_like
        The source time axis (strictly increasing).
    new_time : array_like
        The target time axis.

    Returns
    -------
    new_time : array_like
        The target times, clamped to [old_time[0], old_time[-1]].

    '''

    new_time = numpy.asarray(new_time, dtype=float)
    if old_time.shape[0] > 1:
        tolerance = RANGE_TOLERANCE * numpy.min(numpy.diff(old_time))
    else:
        tolerance = RANGE_TOLERANCE * max(abs(old_time[0]), 1e-3)

    if new_time.size > 0:
        if new_time.min() < old_time[0] - tolerance or new_time.max() > old_time[-1] + tolerance:
            raise OutOfRangeError('Resampling times [%g, %g] extend beyond the source time axis [%g, %g]'
                                  % (new_time.min(), new_time.max(), old_time[0], old_time[-1]))

    return numpy.clip(new_time, old_time[0], old_time[-1])


def segmentStarts(onsets, n_samples):
    '''Returns the first source index of each interpolation segment. The first
    segment always starts at 0 and every microsaccade onset starts a new one.
    '''

    starts = [0]
    if onsets is not None:
        onsets = numpy.unique(numpy.asarray(onsets, dtype=int))
        starts += [int(o) for o in onsets if 0 < o < n_samples]

    return numpy.asarray(starts, dtype=int)


def smartInterpolation(old_time, data, new_time, onsets=None, kind='linear'):
    '''Resamples a (multi-channel) time series onto a new time axis. Each
    segment between consecutive microsaccade onsets is an independent
    interpolation domain; target times that fall in the gap between the last
    sample of one segment and the first sample of the next take the last
    value of the earlier segment, so no intermediate positions are invented
    across a saccade.

    Parameters
    ----------
    old_time : array_like
        The source time axis (seconds). Must be strictly increasing but need
        not be uniform.
    data : array_like
        The data sampled at old_time. Time runs along axis 0; any number of
        further axes is allowed (e.g. (N, 2) positions, (N,) velocity or an
        (N, G, G) heat map).
    new_time : array_like
        The target time axis. Values must lie within the source axis,
        otherwise an OutOfRangeError is raised; nothing is extrapolated.
    onsets : array_like, optional
        Indices into old_time of the first sample of each microsaccade. If
        None the whole series is a single segment.
    kind : str, optional
        The interp1d interpolation kind used within segments. Segments with too
        few samples for the requested kind are interpolated linearly. The
        default is 'linear'.

    Returns
    -------
    resampled : array_like
        The data at new_time, with shape (len(new_time),) + data.shape[1:].

    '''

    if kind not in MIN_POINTS:
        raise InvalidParameterError('Unsupported interpolation kind "%s"' % kind)

    old_time = checkTimeAxis(old_time)
    data = numpy.asarray(data, dtype=float)
    if data.shape[0] != old_time.shape[0]:
        raise DimensionMismatchError('Data has %d samples but the time axis has %d'
                                     % (data.shape[0], old_time.shape[0]))

    new_time = clampToRange(old_time, new_time)
    n_samples = old_time.shape[0]
    starts = segmentStarts(onsets, n_samples)

    resampled = numpy.zeros((new_time.shape[0],) + data.shape[1:])

    # Assign every target time to the segment it falls in
    segment_index = numpy.searchsorted(old_time[starts], new_time, side='right') - 1

    for j in range(starts.shape[0]):
        selected = numpy.where(segment_index == j)[0]
        if selected.shape[0] == 0:
            continue

        start = starts[j]
        stop = starts[j + 1] if j + 1 < starts.shape[0] else n_samples
        segment_time = old_time[start:stop]
        segment_data = data[start:stop]

        times = new_time[selected]
        inside = times <= segment_time[-1]

        # Hold the last value of the segment up to the next onset
        resampled[selected[~inside]] = segment_data[-1]

        if not numpy.any(inside):
            continue

        if segment_time.shape[0] == 1:
            resampled[selected[inside]] = segment_data[0]
            continue

        segment_kind = kind if segment_time.shape[0] >= MIN_POINTS[kind] else 'linear'
        interpolator = interp1d(segment_time, segment_data, kind=segment_kind, axis=0,
                                assume_sorted=True)
        resampled[selected[inside]] = interpolator(times[inside])

    return resampled


def resampleOnsets(old_time, onsets, new_time):
    '''Maps microsaccade onset indices from one time axis to another. Each
    onset moves to the first new sample at or after its onset time.

    Parameters
    ----------
    old_time : array_like
        The source time axis.
    onsets : array_like
        Onset indices into old_time.
    new_time : array_like
        The target time axis (increasing).

    Returns
    -------
    new_onsets : array_like
        Sorted, unique onset indices in [0, len(new_time)).

    '''

    old_time = numpy.asarray(old_time, dtype=float)
    new_time = numpy.asarray(new_time, dtype=float)
    onsets = numpy.asarray(onsets, dtype=int)
    onsets = onsets[(onsets >= 0) & (onsets < old_time.shape[0])]
    if onsets.shape[0] == 0 or new_time.shape[0] == 0:
        return numpy.zeros((0), dtype=int)

    onset_times = old_time[onsets]
    new_onsets = numpy.searchsorted(new_time, onset_times - 1e-9, side='left')
    new_onsets = new_onsets[new_onsets < new_time.shape[0]]

    return numpy.unique(new_onsets).astype(int)
