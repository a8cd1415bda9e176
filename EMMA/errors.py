'''
Errors
-------------------
Exceptions raised by EMMA. All of them abort the call in progress; none are
retried internally.
'''


class EMMAError(ValueError):
    '''Base class for EMMA errors.'''


class InvalidParameterError(EMMAError):
    '''A duration, sample duration, trial count, parameter file entry or
    mosaic description is missing or out of its allowed range.'''


class OutOfRangeError(EMMAError):
    '''A resampling target time lies outside the source time axis.'''


class PaddingMismatchError(EMMAError):
    '''The padding of a photon volume is too small for the eye movement path
    applied to it.'''


class DimensionMismatchError(EMMAError):
    '''Arrays that must share a length (time samples, trial samples) do not.'''
