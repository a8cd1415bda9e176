'''
Cone mosaic
-------------------
The geometry of a cone mosaic as needed to couple eye movements to
absorptions: the rectangular array backing the mosaic, the cone type at each
site, the pattern pitch and the integration time. Hexagonally packed mosaics
are held on the same rectangular array, with null sites where there is no
cone.
'''

import numpy
import yaml

from EMMA.errors import InvalidParameterError

# Cone type labels used in the mosaic pattern
NULL_CONE = 0
L_CONE = 1
M_CONE = 2
S_CONE = 3


class RectangularLayout:

    '''Every site of the backing array holds a cone.'''

    def activeMask(self, pattern):
        return numpy.ones(pattern.shape, dtype=bool)

    def padded(self, pad_rows, pad_cols):
        return RectangularLayout()


class HexPackedLayout:

    '''Only a subset of the sites of the backing array hold a cone; the
    others are null sites that carry no response.
    '''

    def __init__(self, null_mask):
        self.null_mask = numpy.asarray(null_mask, dtype=bool)

    def activeMask(self, pattern):
        if self.null_mask.shape != pattern.shape:
            raise InvalidParameterError('The null mask shape %s does not match the pattern shape %s'
                                        % (self.null_mask.shape, pattern.shape))
        return ~self.null_mask

    def padded(self, pad_rows, pad_cols):
        return HexPackedLayout(numpy.pad(self.null_mask, ((pad_rows, pad_rows), (pad_cols, pad_cols)),
                                         mode='constant', constant_values=True))


def defaultPattern(rows, cols, densities=(0.6, 0.3, 0.1)):
    '''Fills a rows x cols array with L, M and S cone labels in the given
    proportions. The assignment is deterministic, so the same size always
    gives the same pattern.'''

    n_sites = rows * cols
    counts = numpy.round(numpy.asarray(densities) / numpy.sum(densities) * n_sites).astype(int)
    labels = numpy.concatenate([numpy.full(counts[0], L_CONE),
                                numpy.full(counts[1], M_CONE),
                                numpy.full(max(n_sites - counts[0] - counts[1], 0), S_CONE)])[:n_sites]

    rng = numpy.random.default_rng(0)
    pattern = rng.permutation(labels).reshape((rows, cols))

    return pattern


class ConeMosaic:

    '''A ConeMosaic class. Instances describe the geometry of a mosaic; they
    do not compute responses themselves.
    '''

    def __init__(self, rows, cols, integration_time, microns_per_degree=300.0,
                 pattern_sample_size_microns=2.0, pattern=None, layout=None):

        '''Creates an instance of a ConeMosaic object.

        Parameters
        ----------
        rows : int
            The number of rows of the backing array.
        cols : int
            The number of columns of the backing array.
        integration_time : float
            The cone integration time (seconds). This is also the sample
            duration of eye movements computed for this mosaic.
        microns_per_degree : float, optional
            The number of microns on the retinal suface per degree of visual
            angle.
        pattern_sample_size_microns : float, optional
            The pitch of the backing array (microns).
        pattern : array_like, optional
            (rows, cols) cone type labels (0 null, 1 L, 2 M, 3 S). The default
            is a fixed random L/M/S assignment.
        layout : RectangularLayout or HexPackedLayout, optional
            The default is a rectangular layout.

        '''

        if int(rows) < 1 or int(cols) < 1:
            raise InvalidParameterError('A mosaic needs at least one row and one column (got %r x %r)' % (rows, cols))
        if not float(integration_time) > 0:
            raise InvalidParameterError('The integration time must be positive (got %r)' % integration_time)
        if not float(microns_per_degree) > 0 or not float(pattern_sample_size_microns) > 0:
            raise InvalidParameterError('Microns per degree and the pattern sample size must be positive')

        self.rows = int(rows)
        self.cols = int(cols)
        self.integration_time = float(integration_time)
        self.microns_per_degree = float(microns_per_degree)
        self.pattern_sample_size_microns = float(pattern_sample_size_microns)

        if pattern is None:
            pattern = defaultPattern(self.rows, self.cols)
        self.pattern = numpy.asarray(pattern, dtype=int)
        if self.pattern.shape != (self.rows, self.cols):
            raise InvalidParameterError('The pattern shape %s does not match the mosaic size (%d, %d)'
                                        % (self.pattern.shape, self.rows, self.cols))
        if numpy.any(self.pattern < NULL_CONE) or numpy.any(self.pattern > S_CONE):
            raise InvalidParameterError('Pattern labels must be 0 (null), 1 (L), 2 (M) or 3 (S)')

        if layout is None:
            layout = RectangularLayout()
        self.layout = layout

        # Fails early if a hex null mask does not fit the pattern
        self.layout.activeMask(self.pattern)

    @classmethod
    def hexPacked(cls, pattern, integration_time, microns_per_degree=300.0, pattern_sample_size_microns=2.0):
        '''Creates a hexagonally packed mosaic whose null sites are the
        pattern entries equal to 0.'''

        pattern = numpy.asarray(pattern, dtype=int)
        if pattern.ndim != 2:
            raise InvalidParameterError('The pattern must be a 2D array')

        return cls(pattern.shape[0], pattern.shape[1], integration_time,
                   microns_per_degree=microns_per_degree,
                   pattern_sample_size_microns=pattern_sample_size_microns,
                   pattern=pattern,
                   layout=HexPackedLayout(pattern == NULL_CONE))

    @classmethod
    def fromParameterFile(cls, mosaic_parameter_file):
        '''Creates a mosaic from a yaml parameter file. A "pattern" entry, if
        present, is a list of rows of cone labels; a "layout" entry of "hex"
        treats the 0 labels of that pattern as null sites.'''

        with open(mosaic_parameter_file, 'r') as f:
            parameters = yaml.safe_load(f)

        try:
            integration_time = parameters['integration_time_seconds']
            microns_per_degree = parameters.get('microns_per_degree', 300.0)
            pattern_sample_size = parameters.get('pattern_sample_size_microns', 2.0)
        except (KeyError, AttributeError) as error:
            raise InvalidParameterError('Malformed mosaic parameter file %s: %r' % (mosaic_parameter_file, error))

        if parameters.get('layout', 'rectangular') == 'hex':
            if 'pattern' not in parameters:
                raise InvalidParameterError('A hex mosaic parameter file must give its pattern')
            return cls.hexPacked(parameters['pattern'], integration_time, microns_per_degree, pattern_sample_size)

        if 'rows' not in parameters or 'cols' not in parameters:
            raise InvalidParameterError('Malformed mosaic parameter file %s: rows and cols are required'
                                        % mosaic_parameter_file)

        return cls(parameters['rows'], parameters['cols'], integration_time,
                   microns_per_degree=microns_per_degree,
                   pattern_sample_size_microns=pattern_sample_size,
                   pattern=parameters.get('pattern'))

    @property
    def pixels_per_degree(self):
        return self.microns_per_degree / self.pattern_sample_size_microns

    def activeMask(self):
        '''A (rows, cols) boolean array marking the sites that hold a cone.'''
        return self.layout.activeMask(self.pattern)

    def padded(self, pad_rows, pad_cols):
        '''Returns a copy of this mosaic enlarged by pad_rows rows above and
        below and pad_cols columns left and right. The added sites are null.
        '''

        pad_rows = int(pad_rows)
        pad_cols = int(pad_cols)
        if pad_rows < 0 or pad_cols < 0:
            raise InvalidParameterError('Padding must not be negative (got %d, %d)' % (pad_rows, pad_cols))

        pattern = numpy.pad(self.pattern, ((pad_rows, pad_rows), (pad_cols, pad_cols)),
                            mode='constant', constant_values=NULL_CONE)

        return ConeMosaic(self.rows + 2 * pad_rows, self.cols + 2 * pad_cols, self.integration_time,
                          microns_per_degree=self.microns_per_degree,
                          pattern_sample_size_microns=self.pattern_sample_size_microns,
                          pattern=pattern,
                          layout=self.layout.padded(pad_rows, pad_cols))

    def timeAxis(self, n_samples):
        '''The absorption time axis for n_samples integration periods.'''
        return numpy.arange(n_samples) * self.integration_time
