"""
Frame Storage Backends
======================

This module provides:
- FrameEntry: One frame locator and its stable index
- FrameStorage: Abstract base class for "give me image i" access
- DirectoryStorage: Frames stored as individual files in a directory
- ZipArchiveStorage: Frames stored as entries of a .zip archive

Both backends sort their locators lexicographically once at construction,
so frame ``i`` refers to the same image regardless of how the dataset is
stored. Backend selection happens once, in ``open_storage()``.
"""

import logging
import os
import zipfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from ..errors import DatasetOpenError, ArchiveBufferOverflowError
from .image_codec import read_image_bw_8u, read_stream_bw_8u

logger = logging.getLogger(__name__)

_PSEUDO_ENTRIES = ('.', '..')


@dataclass(frozen=True)
class FrameEntry:
    """
    A single frame in the dataset.

    Attributes:
        index: 0-based position in the sorted locator list
        locator: Absolute file path (directory backend) or entry name
            (archive backend)
    """
    index: int
    locator: str


def is_archive_path(path: str) -> bool:
    """True if ``path`` names a .zip archive (decided by suffix only)."""
    path = str(path)
    return len(path) > 4 and path[-4:] == '.zip'


def list_directory(path: str) -> List[str]:
    """
    List the files of a directory as rooted paths, sorted ascending.

    Names that are already absolute are kept unchanged; everything else is
    prefixed with ``path`` (a trailing '/' is added if missing).

    Raises:
        DatasetOpenError: If the directory cannot be listed
    """
    path = str(path)
    try:
        names = os.listdir(path)
    except OSError as e:
        raise DatasetOpenError(f"Cannot read image directory {path}: {e}") from e

    if not path.endswith('/'):
        path = path + '/'

    files = []
    for name in names:
        if name in _PSEUDO_ENTRIES:
            continue
        files.append(name if name.startswith('/') else path + name)
    files.sort()
    return files


class FrameStorage(ABC):
    """
    Abstract base class for frame storage backends.

    A FrameStorage owns the ordered locator list and knows how to turn a
    frame index into a decoded 8-bit grayscale image. The list is fixed
    after construction.
    """

    def __init__(self, root: str, locators: List[str]):
        self.root = str(root)
        self._locators = list(locators)

    def __len__(self) -> int:
        return len(self._locators)

    @property
    def locators(self) -> List[str]:
        """Sorted frame locators (copy)."""
        return list(self._locators)

    @property
    def entries(self) -> List[FrameEntry]:
        return [FrameEntry(i, loc) for i, loc in enumerate(self._locators)]

    def locator(self, index: int) -> str:
        self._check_index(index)
        return self._locators[index]

    def set_original_size(self, width: int, height: int) -> None:
        """Tell the backend the distorted image size. Unused by default."""
        pass

    def _check_index(self, index: int) -> None:
        if index < 0 or index >= len(self._locators):
            raise IndexError(f"Frame index {index} out of range [0, {len(self._locators)})")

    @abstractmethod
    def read_image(self, index: int) -> np.ndarray:
        """
        Decode frame ``index`` as an HxW uint8 image.

        The returned array belongs to the caller.

        Raises:
            IndexError: If index is outside [0, len(self))
            ImageDecodeError: If the codec cannot decode the frame
        """
        pass

    def close(self) -> None:
        """Release backend resources. Safe to call more than once."""
        pass


class DirectoryStorage(FrameStorage):
    """
    Frames stored as image files in a single directory.

    Holds no mutable state across reads, so concurrent ``read_image`` calls
    on one instance are safe.
    """

    def __init__(self, path: str):
        super().__init__(path, list_directory(path))
        logger.info(f"Found {len(self)} files in directory {self.root}")

    def read_image(self, index: int) -> np.ndarray:
        return read_image_bw_8u(self.locator(index))


class ZipArchiveStorage(FrameStorage):
    """
    Frames stored as entries of a .zip archive.

    Entries are read into a reusable byte buffer before decoding. The buffer
    is sized from the original (distorted) image size:

        width * height * multiplier + slack

    and allocated on first use. If an entry fills more than
    ``width * height * multiplier`` bytes, the multiplier is scaled by
    ``growth``, a fresh buffer is allocated and the entry is read once more.
    Overflowing the grown buffer as well raises ArchiveBufferOverflowError.

    The buffer is shared by all reads, so one instance must not be used from
    several threads at once.

    Args:
        path: Path to the .zip archive
        multiplier: Initial bytes-per-pixel budget. Default: 6
        growth: Factor applied to the multiplier on overflow. Default: 5
        slack: Extra bytes on top of every buffer. Default: 10000
    """

    def __init__(self, path: str, multiplier: int = 6, growth: int = 5, slack: int = 10000):
        try:
            archive = zipfile.ZipFile(str(path), 'r')
        except (OSError, zipfile.BadZipFile) as e:
            raise DatasetOpenError(f"Error reading archive {path}: {e}") from e

        names = archive.namelist()
        locators = sorted(n for n in names if n not in _PSEUDO_ENTRIES)
        super().__init__(path, locators)

        self._archive: Optional[zipfile.ZipFile] = archive
        self._multiplier = multiplier
        self._growth = growth
        self._slack = slack
        self._original_size: Optional[Tuple[int, int]] = None
        self._buffer: Optional[bytearray] = None
        self.reallocations = 0

        logger.info(f"Got {len(names)} entries and {len(self)} files in archive {self.root}")

    def set_original_size(self, width: int, height: int) -> None:
        """Set the distorted image size used to budget the read buffer."""
        self._original_size = (int(width), int(height))

    @property
    def buffer_size(self) -> int:
        """Current buffer capacity in bytes (0 before first read)."""
        return 0 if self._buffer is None else len(self._buffer)

    def _expected_bytes(self) -> int:
        if self._original_size is None:
            raise RuntimeError("set_original_size() must be called before reading from the archive")
        width, height = self._original_size
        return width * height * self._multiplier

    def _read_entry(self, name: str) -> int:
        """Read entry ``name`` into the buffer, stopping when it is full."""
        view = memoryview(self._buffer)
        total = 0
        with self._archive.open(name, 'r') as fle:
            while total < len(view):
                n = fle.readinto(view[total:])
                if not n:
                    break
                total += n
        view.release()
        return total

    def read_bytes(self, index: int) -> memoryview:
        """
        Read the raw (encoded) bytes of frame ``index``.

        The returned view aliases the internal buffer and is only valid until
        the next read.
        """
        name = self.locator(index)
        if self._archive is None:
            raise RuntimeError(f"Archive {self.root} is closed")

        expected = self._expected_bytes()
        if self._buffer is None:
            self._buffer = bytearray(expected + self._slack)

        readbytes = self._read_entry(name)
        if readbytes > expected:
            logger.warning(
                f"Read {readbytes}/{len(self._buffer)} bytes for file {name}. Increasing buffer."
            )
            self._multiplier *= self._growth
            expected = self._expected_bytes()
            self._buffer = bytearray(expected + self._slack)
            self.reallocations += 1

            readbytes = self._read_entry(name)
            if readbytes > expected:
                raise ArchiveBufferOverflowError(
                    f"Buffer still too small for {name} (read {readbytes}/{len(self._buffer)} bytes)"
                )

        return memoryview(self._buffer)[:readbytes]

    def read_image(self, index: int) -> np.ndarray:
        data = self.read_bytes(index)
        try:
            return read_stream_bw_8u(data, name=self._locators[index])
        finally:
            data.release()

    def close(self) -> None:
        if self._archive is not None:
            self._archive.close()
            self._archive = None
        self._buffer = None


def open_storage(
    path: str,
    multiplier: int = 6,
    growth: int = 5,
    slack: int = 10000,
) -> FrameStorage:
    """
    Open the storage backend for a dataset root.

    Paths ending in '.zip' are opened as archives, anything else as a
    directory. The buffer arguments only apply to archives.

    Raises:
        DatasetOpenError: If the directory or archive cannot be opened
    """
    if is_archive_path(path):
        return ZipArchiveStorage(path, multiplier=multiplier, growth=growth, slack=slack)
    return DirectoryStorage(path)
