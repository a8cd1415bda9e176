'''
Absorptions
-------------------
Functions for applying eye movement paths to cone absorptions. The photon
volume is computed (externally) over a mosaic padded by the largest eye
displacement along each axis; the absorptions seen by the original mosaic at
each eye movement sample are the window of that volume shifted by the eye
position.
'''

import numpy

from EMMA.errors import DimensionMismatchError, InvalidParameterError, PaddingMismatchError

NOISE_FLAGS = ('none', 'frozen', 'random')


def checkEMPath(em_path):
    '''Checks that an eye movement path is (n, 2) or (n_trials, n, 2) and
    rounds it to whole pattern units.'''

    em_path = numpy.asarray(em_path, dtype=float)
    if em_path.ndim not in (2, 3) or em_path.shape[-1] != 2:
        raise DimensionMismatchError('An eye movement path must have shape (n, 2) or (n_trials, n, 2), got %s'
                                     % (em_path.shape,))

    return numpy.round(em_path).astype(int)


def paddingForEMPath(em_path):
    '''Computes the padding needed to apply an eye movement path.

    Parameters
    ----------
    em_path : array_like
        (n, 2) or (n_trials, n, 2) eye positions (x, y) in pattern units.

    Returns
    -------
    pad_rows : int
        The largest absolute vertical displacement.
    pad_cols : int
        The largest absolute horizontal displacement.

    '''

    em_path = checkEMPath(em_path)
    if em_path.size == 0:
        return 0, 0

    pad_rows = int(numpy.max(numpy.abs(em_path[..., 1])))
    pad_cols = int(numpy.max(numpy.abs(em_path[..., 0])))

    return pad_rows, pad_cols


def checkPadding(volume_shape, em_path, pad_rows, pad_cols):
    '''Checks that a padded volume and its padding can hold every window of
    the path, returning the size (rows, cols) of the unpadded mosaic.'''

    if pad_rows < 0 or pad_cols < 0:
        raise PaddingMismatchError('Padding must not be negative (got %d, %d)' % (pad_rows, pad_cols))

    rows = volume_shape[0] - 2 * pad_rows
    cols = volume_shape[1] - 2 * pad_cols
    if rows < 1 or cols < 1:
        raise PaddingMismatchError('A volume of size %s cannot carry padding of (%d, %d)'
                                   % (volume_shape[:2], pad_rows, pad_cols))

    needed_rows, needed_cols = paddingForEMPath(em_path)
    if needed_rows > pad_rows or needed_cols > pad_cols:
        raise PaddingMismatchError('The eye movement path needs padding of (%d, %d) but only (%d, %d) was given'
                                   % (needed_rows, needed_cols, pad_rows, pad_cols))

    return rows, cols


def applyEMPath(photon_volume, em_path, pad_rows, pad_cols):
    '''Extracts the absorptions seen by the unpadded mosaic at each eye
    movement sample.

    A positive vertical eye movement adds to the row index and a positive
    horizontal eye movement subtracts from the column index, since the image
    moves across the retina in the opposite direction to a horizontal eye
    movement.

    Parameters
    ----------
    photon_volume : array_like
        (rows + 2 * pad_rows, cols + 2 * pad_cols, T) noise-free photon
        counts. T must be 1 (the same frame at every eye position) or equal
        to the number of eye movement samples (frame k at sample k).
    em_path : array_like
        (n, 2) eye positions (x, y) in pattern units. Values are rounded to
        whole units.
    pad_rows : int
        The number of padding rows on each side of the volume.
    pad_cols : int
        The number of padding columns on each side of the volume.

    Returns
    -------
    absorptions : array_like
        (rows, cols, n) absorptions; the eye movement time base becomes the
        absorption time base.

    '''

    photon_volume = numpy.asarray(photon_volume, dtype=float)
    if photon_volume.ndim == 2:
        photon_volume = photon_volume[:, :, numpy.newaxis]
    if photon_volume.ndim != 3:
        raise DimensionMismatchError('The photon volume must be 2D or 3D, got %dD' % photon_volume.ndim)

    em_path = checkEMPath(em_path)
    if em_path.ndim != 2:
        raise DimensionMismatchError('applyEMPath takes a single (n, 2) path; apply trials one at a time')

    n_positions = em_path.shape[0]
    n_frames = photon_volume.shape[2]
    if n_frames != 1 and n_frames != n_positions:
        raise DimensionMismatchError('The photon volume has %d frames but the path has %d samples'
                                     % (n_frames, n_positions))

    pad_rows = int(pad_rows)
    pad_cols = int(pad_cols)
    rows, cols = checkPadding(photon_volume.shape, em_path, pad_rows, pad_cols)

    absorptions = numpy.zeros((rows, cols, n_positions))
    for k in range(n_positions):
        frame = 0 if n_frames == 1 else k
        row_start = pad_rows + em_path[k, 1]
        col_start = pad_cols - em_path[k, 0]
        absorptions[:, :, k] = photon_volume[row_start:row_start + rows, col_start:col_start + cols, frame]

    return absorptions


def applyEMPathLMS(lms_volume, em_path, pattern, pad_rows, pad_cols):
    '''Applies an eye movement path to a single full-LMS frame, picking at
    each site the channel of the cone type found there.

    Parameters
    ----------
    lms_volume : array_like
        (rows + 2 * pad_rows, cols + 2 * pad_cols, 3) noise-free photon
        counts for L, M and S cones at every site.
    em_path : array_like
        (n, 2) eye positions (x, y) in pattern units.
    pattern : array_like
        (rows, cols) cone type labels (0 null, 1 L, 2 M, 3 S).
    pad_rows : int
        The number of padding rows on each side of the volume.
    pad_cols : int
        The number of padding columns on each side of the volume.

    Returns
    -------
    absorptions : array_like
        (rows, cols, n) absorptions. Null sites are 0.

    '''

    lms_volume = numpy.asarray(lms_volume, dtype=float)
    if lms_volume.ndim != 3 or lms_volume.shape[2] != 3:
        raise DimensionMismatchError('A full LMS volume must have shape (rows, cols, 3), got %s'
                                     % (lms_volume.shape,))

    pattern = numpy.asarray(pattern, dtype=int)
    rows, cols = checkPadding(lms_volume.shape, checkEMPath(em_path), int(pad_rows), int(pad_cols))
    if pattern.shape != (rows, cols):
        raise DimensionMismatchError('The pattern shape %s does not match the unpadded size (%d, %d)'
                                     % (pattern.shape, rows, cols))

    n_positions = checkEMPath(em_path).shape[0]
    absorptions = numpy.zeros((rows, cols, n_positions))
    for cone_type in range(1, 4):
        sites = pattern == cone_type
        if not numpy.any(sites):
            continue
        cone_absorptions = applyEMPath(lms_volume[:, :, cone_type - 1], em_path, pad_rows, pad_cols)
        absorptions[sites] = cone_absorptions[sites]

    return absorptions


def photonNoise(absorptions, noise_flag='random', seed=1):
    '''Adds Poisson photon noise to noise-free absorptions.

    Parameters
    ----------
    absorptions : array_like
        Noise-free mean photon counts.
    noise_flag : str, optional
        'random' draws fresh noise, 'frozen' draws noise from the given seed
        and 'none' returns the absorptions unchanged.
    seed : int, optional
        The seed used when noise_flag is 'frozen'. The default is 1.

    Returns
    -------
    noisy_absorptions : array_like
        The absorptions with photon noise added.

    '''

    if noise_flag not in NOISE_FLAGS:
        raise InvalidParameterError('noise_flag must be one of %s (got %r)' % (NOISE_FLAGS, noise_flag))

    absorptions = numpy.asarray(absorptions, dtype=float)
    if noise_flag == 'none':
        return numpy.copy(absorptions)

    if numpy.any(absorptions < 0):
        raise InvalidParameterError('Photon counts must not be negative')

    if noise_flag == 'frozen':
        rng = numpy.random.default_rng(seed)
    else:
        rng = numpy.random.default_rng()

    return rng.poisson(absorptions).astype(float)


def computeAbsorptions(mosaic, photon_volume_fn, em_paths, noise_flag='none', seed=1, full_lms=False):
    '''Computes the absorptions of a mosaic for one or more eye movement
    paths.

    Parameters
    ----------
    mosaic : cone_mosaic.ConeMosaic
        The (unpadded) mosaic.
    photon_volume_fn : callable
        Called once with the padded mosaic; returns its noise-free photon
        volume, (rows, cols, T) or (rows, cols, 3) if full_lms is True.
    em_paths : array_like
        (n, 2) or (n_trials, n, 2) eye positions (x, y) in pattern units.
    noise_flag : str, optional
        Photon noise mode, see photonNoise. The default is 'none'.
    seed : int, optional
        The seed used when noise_flag is 'frozen'.
    full_lms : bool, optional
        The photon volume is a single full-LMS frame.

    Returns
    -------
    absorptions : array_like
        (rows, cols, n) for a single path or (n_trials, rows, cols, n) for
        per-trial paths. Null sites of a hex mosaic are 0.

    '''

    if noise_flag not in NOISE_FLAGS:
        raise InvalidParameterError('noise_flag must be one of %s (got %r)' % (NOISE_FLAGS, noise_flag))

    em_paths = checkEMPath(em_paths)
    single_path = em_paths.ndim == 2
    if single_path:
        em_paths = em_paths[numpy.newaxis]

    # Pad the mosaic for the largest displacement over all trials
    pad_rows, pad_cols = paddingForEMPath(em_paths)
    padded_mosaic = mosaic.padded(pad_rows, pad_cols)

    photon_volume = numpy.asarray(photon_volume_fn(padded_mosaic), dtype=float)
    if photon_volume.ndim == 2:
        photon_volume = photon_volume[:, :, numpy.newaxis]
    if photon_volume.shape[:2] != (padded_mosaic.rows, padded_mosaic.cols):
        raise DimensionMismatchError('The photon volume size %s does not match the padded mosaic (%d, %d)'
                                     % (photon_volume.shape[:2], padded_mosaic.rows, padded_mosaic.cols))

    n_trials, n_positions = em_paths.shape[:2]
    absorptions = numpy.zeros((n_trials, mosaic.rows, mosaic.cols, n_positions))
    for trial in range(n_trials):
        if full_lms:
            absorptions[trial] = applyEMPathLMS(photon_volume, em_paths[trial], mosaic.pattern, pad_rows, pad_cols)
        else:
            absorptions[trial] = applyEMPath(photon_volume, em_paths[trial], pad_rows, pad_cols)

    # Null sites carry no response; noise is only added at active sites
    active = mosaic.activeMask()
    absorptions[:, ~active, :] = 0.0
    if noise_flag != 'none':
        absorptions[:, active, :] = photonNoise(absorptions[:, active, :], noise_flag=noise_flag, seed=seed)

    if single_path:
        return absorptions[0]
    return absorptions


def absorptionTimeAxis(n_samples, integration_time):
    '''The time (seconds) of each absorption frame.'''
    return numpy.arange(n_samples) * integration_time
