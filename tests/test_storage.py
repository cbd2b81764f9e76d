"""Frame index ordering and archive buffer handling."""

import os
import zipfile

import numpy as np
import pytest

from framefolder.errors import ArchiveBufferOverflowError, DatasetOpenError
from framefolder.io.storage import (
    DirectoryStorage,
    ZipArchiveStorage,
    is_archive_path,
    list_directory,
    open_storage,
)

from conftest import FRAME_NAMES, HEIGHT, WIDTH


def test_is_archive_path():
    assert is_archive_path("/data/seq/images.zip")
    assert not is_archive_path("/data/seq/images")
    assert not is_archive_path(".zip")
    assert not is_archive_path("/data/seq/images.ZIP")


def test_list_directory_is_sorted_and_rooted(sequence):
    files = list_directory(str(sequence.image_dir))
    assert [os.path.basename(f) for f in files] == sorted(FRAME_NAMES)
    assert all(f.startswith(str(sequence.image_dir) + "/") for f in files)

    # Trailing slash does not double up
    again = list_directory(str(sequence.image_dir) + "/")
    assert again == files


def test_list_directory_missing_raises(tmp_path):
    with pytest.raises(DatasetOpenError):
        list_directory(str(tmp_path / "nope"))


def test_open_storage_selects_backend(sequence):
    dir_storage = open_storage(str(sequence.image_dir))
    zip_storage = open_storage(str(sequence.archive))
    try:
        assert isinstance(dir_storage, DirectoryStorage)
        assert isinstance(zip_storage, ZipArchiveStorage)
    finally:
        zip_storage.close()


def test_backends_give_same_order(sequence):
    dir_storage = DirectoryStorage(str(sequence.image_dir))
    with zipfile.ZipFile(sequence.archive) as zf:
        assert zf.namelist() != sorted(FRAME_NAMES)

    zip_storage = ZipArchiveStorage(str(sequence.archive))
    try:
        assert len(dir_storage) == len(zip_storage) == len(FRAME_NAMES)
        assert zip_storage.locators == sorted(FRAME_NAMES)
        assert [os.path.basename(p) for p in dir_storage.locators] == zip_storage.locators
        assert [e.index for e in zip_storage.entries] == list(range(len(FRAME_NAMES)))
    finally:
        zip_storage.close()


def test_order_is_deterministic(sequence):
    first = DirectoryStorage(str(sequence.image_dir)).locators
    second = DirectoryStorage(str(sequence.image_dir)).locators
    assert first == second


def test_read_image_matches_written_frames(sequence):
    dir_storage = DirectoryStorage(str(sequence.image_dir))
    zip_storage = ZipArchiveStorage(str(sequence.archive))
    zip_storage.set_original_size(WIDTH, HEIGHT)
    try:
        for i, name in enumerate(zip_storage.locators):
            from_dir = dir_storage.read_image(i)
            from_zip = zip_storage.read_image(i)
            assert from_dir.dtype == np.uint8
            assert from_dir.shape == (HEIGHT, WIDTH)
            np.testing.assert_array_equal(from_dir, sequence.frames[name])
            np.testing.assert_array_equal(from_zip, sequence.frames[name])
    finally:
        zip_storage.close()


def test_read_image_out_of_range(sequence):
    storage = DirectoryStorage(str(sequence.image_dir))
    with pytest.raises(IndexError):
        storage.read_image(len(storage))
    with pytest.raises(IndexError):
        storage.read_image(-1)


def test_bad_archive_raises(tmp_path):
    bogus = tmp_path / "images.zip"
    bogus.write_bytes(b"this is not a zip file")
    with pytest.raises(DatasetOpenError):
        ZipArchiveStorage(str(bogus))
    with pytest.raises(DatasetOpenError):
        ZipArchiveStorage(str(tmp_path / "missing.zip"))


@pytest.fixture
def payload_archive(tmp_path):
    """Archive of raw byte entries sized around the 100x100 buffer limits."""
    w, h = 100, 100
    sizes = {
        "a_small": 1000,
        "b_medium": w * h * 6 + 10000 + 5000,   # beyond the first buffer
        "c_huge": w * h * 30 + 20000,           # beyond the grown buffer
    }
    path = tmp_path / "payload.zip"
    with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for name, size in sizes.items():
            zf.writestr(name, bytes([len(name)]) * size)
    storage = ZipArchiveStorage(str(path))
    storage.set_original_size(w, h)
    yield storage, sizes
    storage.close()


def test_buffer_allocated_lazily(payload_archive):
    storage, sizes = payload_archive
    assert storage.buffer_size == 0

    data = storage.read_bytes(0)
    assert len(data) == sizes["a_small"]
    assert storage.buffer_size == 100 * 100 * 6 + 10000
    assert storage.reallocations == 0


def test_buffer_grows_once_and_is_kept(payload_archive):
    storage, sizes = payload_archive

    data = storage.read_bytes(1)
    assert len(data) == sizes["b_medium"]
    assert bytes(data[:4]) == bytes([len("b_medium")]) * 4
    assert storage.reallocations == 1
    assert storage.buffer_size == 100 * 100 * 30 + 10000

    # Grown buffer is reused
    storage.read_bytes(0)
    storage.read_bytes(1)
    assert storage.reallocations == 1
    assert storage.buffer_size == 100 * 100 * 30 + 10000


def test_buffer_overflow_after_growth_is_fatal(payload_archive):
    storage, _ = payload_archive
    with pytest.raises(ArchiveBufferOverflowError):
        storage.read_bytes(2)


def test_read_before_size_is_known(sequence):
    storage = ZipArchiveStorage(str(sequence.archive))
    try:
        with pytest.raises(RuntimeError):
            storage.read_bytes(0)
    finally:
        storage.close()


def test_closed_archive_cannot_be_read(sequence):
    storage = ZipArchiveStorage(str(sequence.archive))
    storage.set_original_size(WIDTH, HEIGHT)
    storage.close()
    storage.close()
    with pytest.raises(RuntimeError):
        storage.read_image(0)
