'''
EMMA toolkit
-------------------
Useful functions called within other modules: profiles, unit conversions
between arcminutes, microns and cone mosaic pattern units, and seeding.
'''

import numpy


def functGaussian(x, mean, stdev):
    '''Calculates a Gaussian function

        Parameters
        ----------
        x : array_like
            A 1D array containing the samples
        mean : float
            The mean (centre) of the Gaussian
        stdev : float
            The standard deviation (width) of the Gaussian.


        Returns
        -------
        gaussian_profile : array_like
            The computed profile.

    '''
    gaussian_profile = numpy.exp(-(x - mean) ** 2 / (2 * stdev ** 2))

    return gaussian_profile


def speedFromPositions(positions, time_step):
    '''Computes the speed (magnitude of the velocity) of a 2D position time
    series using central differences.

        Parameters
        ----------
        positions : array_like
            An (N, 2) array of (x, y) positions.
        time_step : float
            The time between samples (seconds).

        Returns
        -------
        speed : array_like
            An (N,) array of speeds, in position units per second.

    '''

    positions = numpy.asarray(positions, dtype=float)
    if positions.shape[0] < 2:
        return numpy.zeros((positions.shape[0]))

    velocity = numpy.gradient(positions, time_step, axis=0)
    speed = numpy.sqrt(velocity[:, 0] ** 2 + velocity[:, 1] ** 2)

    return speed


##########################
# UNIT CONVERSION        #
##########################

def arcminToMicrons(positions_arcmin, microns_per_degree):
    '''Converts positions in arcminutes of visual angle to microns on the
    retinal surface.

        Parameters
        ----------
        positions_arcmin : array_like
            Positions in arcminutes.
        microns_per_degree : float
            The number of microns on the retinal suface per degree of visual
            angle.

        Returns
        -------
        positions_microns : array_like
            Positions in microns.

    '''

    positions_microns = numpy.asarray(positions_arcmin, dtype=float) / 60. * microns_per_degree

    return positions_microns


def micronsToArcmin(positions_microns, microns_per_degree):
    '''Converts positions in microns on the retina to arcminutes of visual
    angle. This is the inverse of arcminToMicrons.
    '''

    positions_arcmin = numpy.asarray(positions_microns, dtype=float) / microns_per_degree * 60.

    return positions_arcmin


def micronsToPatternUnits(positions_microns, pattern_sample_size_microns, round_to_int=True):
    '''Converts positions in microns to units of the cone mosaic pattern
    (pixel) size.

        Parameters
        ----------
        positions_microns : array_like
            Positions in microns.
        pattern_sample_size_microns : float
            The pitch of the rectangular array backing the cone mosaic.
        round_to_int : bool, optional
            Round to the nearest whole pattern sample (the default), which is
            what the absorption windowing expects.

        Returns
        -------
        positions_pattern : array_like
            Positions in pattern units.

    '''

    positions_pattern = numpy.asarray(positions_microns, dtype=float) / pattern_sample_size_microns
    if round_to_int:
        positions_pattern = numpy.round(positions_pattern).astype(int)

    return positions_pattern


def patternUnitsToMicrons(positions_pattern, pattern_sample_size_microns):
    '''Converts positions in cone mosaic pattern units to microns.'''
    return numpy.asarray(positions_pattern, dtype=float) * pattern_sample_size_microns


###########
# SEEDING #
###########

def trialSeedSequences(seed, n_trials):
    '''Derives one independent seed sequence per trial from a master seed.
    Trial i always receives the same child sequence for a given master seed,
    whatever order the trials are computed in.

        Parameters
        ----------
        seed : int or None
            The master seed. If None, fresh entropy is taken from the
            operating system and the result is not reproducible unless the
            returned entropy is reused.
        n_trials : int
            The number of trials.

        Returns
        -------
        entropy : int
            The entropy of the master seed sequence.
        children : list
            A list of n_trials numpy.random.SeedSequence objects.

    '''

    master = numpy.random.SeedSequence(seed)
    children = master.spawn(n_trials)

    return master.entropy, children
