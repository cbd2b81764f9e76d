"""
Exception types raised by framefolder.

Only unrecoverable conditions are raised. Problems with optional metadata
(timestamps, exposures, poses, photometric files) are logged and degrade to
"not available" instead.
"""


class FrameFolderError(RuntimeError):
    """Base class for fatal dataset errors."""


class DatasetOpenError(FrameFolderError):
    """The dataset directory or archive could not be opened."""


class ArchiveBufferOverflowError(FrameFolderError):
    """An archive entry did not fit into the grown decode buffer."""


class ImageDecodeError(FrameFolderError):
    """The image codec could not decode a frame."""


class CalibrationError(FrameFolderError):
    """The geometric calibration file is missing or malformed."""
