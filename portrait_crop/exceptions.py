"""
Exceptions raised at the boundary of the crop engine.

Inside the engine every input maps to some crop; only caller contract
violations surface as errors.
"""


class ReframeError(Exception):
    """Base exception for all portrait crop errors."""
    pass


class PreconditionError(ReframeError, ValueError):
    """Raised when a caller hands the engine input it must not receive."""
    pass


class InvalidDetectionError(PreconditionError):
    """Raised for detections with malformed geometry or confidence."""
    pass


class InvalidSimilarityError(PreconditionError):
    """Raised when a frame similarity score lies outside [0, 1]."""
    pass


class FrameOrderError(PreconditionError):
    """Raised when frames reach a job out of temporal order."""
    pass


class VideoSourceError(ReframeError):
    """Raised when a source video cannot be opened or read."""
    pass
