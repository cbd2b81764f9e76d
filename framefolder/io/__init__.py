# Dataset storage access
# ======================
#
# Enumerates frames in a directory or .zip archive and decodes them into
# 8-bit grayscale images.

from .image_codec import read_image_bw_8u, read_stream_bw_8u
from .storage import (
    FrameEntry,
    FrameStorage,
    DirectoryStorage,
    ZipArchiveStorage,
    list_directory,
    is_archive_path,
    open_storage,
)

__all__ = [
    "read_image_bw_8u",
    "read_stream_bw_8u",
    "FrameEntry",
    "FrameStorage",
    "DirectoryStorage",
    "ZipArchiveStorage",
    "list_directory",
    "is_archive_path",
    "open_storage",
]
