"""
Exception types raised by the hand-eye coordinate pipeline.
"""


class HandEyeError(Exception):
    """Base class for all errors raised by this package."""


class TransformFileError(HandEyeError, OSError):
    """A transform file is missing or cannot be opened."""


class FrameFileError(HandEyeError, OSError):
    """A point cloud capture file is missing or cannot be read."""


class OutputFileError(HandEyeError, OSError):
    """An output file (point cloud export or image) could not be written."""


class BlockNotFoundError(HandEyeError, LookupError):
    """The named matrix block is not present in a transform file."""


class ShapeError(HandEyeError, ValueError):
    """A matrix block does not have the expected dimensions."""


class GridIndexError(HandEyeError, IndexError):
    """Out of range access into a point grid."""


class NormalizationError(HandEyeError, ValueError):
    """Range normalization cannot be performed."""


class EmptyRangeError(NormalizationError):
    """No valid samples to compute a range from."""


class DegenerateRangeError(NormalizationError):
    """Source range has zero (or negative) width."""


class SolverFailure(HandEyeError):
    """The hand-eye solver did not produce a transform."""


class SessionStateError(HandEyeError):
    """Operation not allowed in the current calibration session state."""


class SessionAborted(HandEyeError):
    """Operator input ended before calibration was requested."""


class ConfigError(HandEyeError, ValueError):
    """Invalid configuration value."""
