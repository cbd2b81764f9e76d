# framefolder - Image-Folder Dataset Reader for Direct Visual Odometry
# ===================================================================
#
# Reads monocular image sequences stored as a plain directory or a .zip
# archive, undistorts each frame on demand, and aligns frames with
# timestamps, exposure times and ground-truth camera poses.

__version__ = "0.1.0"

from .config import ReaderConfig, PhotometricMode
from .errors import (
    FrameFolderError,
    DatasetOpenError,
    ArchiveBufferOverflowError,
    ImageDecodeError,
    CalibrationError,
)
from .reader import ImageFolderReader

__all__ = [
    "ReaderConfig",
    "PhotometricMode",
    "FrameFolderError",
    "DatasetOpenError",
    "ArchiveBufferOverflowError",
    "ImageDecodeError",
    "CalibrationError",
    "ImageFolderReader",
]
