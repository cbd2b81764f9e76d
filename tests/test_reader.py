"""End-to-end ImageFolderReader behaviour on directory and archive datasets."""

import os

import numpy as np
import pytest

import framefolder.reader as reader_module
from framefolder import DatasetOpenError, ImageFolderReader, ReaderConfig
from framefolder.geometry.transforms import BLENDER_TO_PIPELINE
from framefolder.io.storage import open_storage

from conftest import FRAME_NAMES, HEIGHT, RADTAN_CALIB, WIDTH

N = len(FRAME_NAMES)


def open_reader(sequence, zipped=False, **kwargs):
    path = sequence.archive if zipped else sequence.image_dir
    return ImageFolderReader(str(path), str(sequence.calib_file), **kwargs)


@pytest.mark.parametrize("zipped", [False, True])
def test_frame_count_and_order(sequence, zipped):
    with open_reader(sequence, zipped) as reader:
        assert reader.num_images == len(reader) == N
        assert [os.path.basename(f) for f in reader.files] == sorted(FRAME_NAMES)
        assert reader.is_zipped == zipped


def test_backends_produce_identical_images(sequence):
    sequence.write_calib(RADTAN_CALIB)
    with open_reader(sequence) as dir_reader, open_reader(sequence, zipped=True) as zip_reader:
        assert dir_reader.num_images == zip_reader.num_images
        for i in range(dir_reader.num_images):
            a = dir_reader.calibrated_image(i)
            b = zip_reader.calibrated_image(i)
            assert a.image.shape == (HEIGHT, WIDTH)
            np.testing.assert_array_equal(a.image, b.image)


@pytest.mark.parametrize("zipped", [False, True])
def test_raw_image(sequence, zipped):
    with open_reader(sequence, zipped) as reader:
        name = os.path.basename(reader.files[2])
        np.testing.assert_array_equal(reader.raw_image(2), sequence.frames[name])
        with pytest.raises(IndexError):
            reader.raw_image(N)


def test_timestamps_without_times_file(sequence):
    with open_reader(sequence) as reader:
        assert reader.timestamps == [] and reader.exposures == []
        assert reader.timestamp(3) == pytest.approx(0.3)
        assert reader.timestamp(N) == 0
        assert reader.timestamp(-1) == 0


def test_timestamps_and_exposures_loaded(sequence):
    sequence.write_times([f"{i} {100 + i * 0.05:.2f} {10 + i}" for i in range(N)])
    with open_reader(sequence) as reader:
        assert reader.timestamp(0) == 100.0
        assert reader.timestamp(2) == pytest.approx(100.10)
        assert reader.timestamp(N) == 0
        assert reader.timestamp(-1) == 0
        assert reader.exposure(4) == 14.0

        frame = reader.calibrated_image(4)
        assert frame.exposure_time == 14.0
        assert frame.timestamp == pytest.approx(100.20)


def test_timestamp_mismatch_discards_both(sequence):
    sequence.write_times([f"{i} {i * 0.05:.2f} 10" for i in range(N - 1)])
    with open_reader(sequence) as reader:
        assert reader.timestamps == [] and reader.exposures == []
        frame = reader.calibrated_image(1)
        assert frame.exposure_time == 1.0
        assert frame.timestamp == 0.0


def test_bad_exposures_keep_timestamps(sequence):
    lines = [f"{i} {i * 0.05:.2f} 10" for i in range(N)]
    # Three unknown exposures in a row: the middle one cannot be repaired
    lines[1] = "1 0.05"
    lines[2] = "2 0.10"
    lines[3] = "3 0.15"
    sequence.write_times(lines)
    with open_reader(sequence) as reader:
        assert len(reader.timestamps) == N
        assert reader.exposures == []
        assert reader.exposure(2) == 1.0


def test_poses_loaded_by_position(sequence):
    sequence.write_poses([
        "timestamp,x,y,z,qw,qx,qy,qz",
        "0,0,0,0,1,0,0,0",
        "40,1,2,3,1,0,0,0",
    ])
    with open_reader(sequence, poses_file=str(sequence.poses_file)) as reader:
        poses = reader.camera_poses
        assert len(poses) == 2
        np.testing.assert_allclose(poses[0].rotation, BLENDER_TO_PIPELINE, atol=1e-12)
        np.testing.assert_allclose(reader.pose(1).translation, [1, 3, -2], atol=1e-12)
        assert reader.pose(2) is None
        assert reader.pose(-1) is None
        assert [r.timestamp_ms for r in reader.pose_records] == [0.0, 40.0]

        poses.clear()
        assert len(reader.camera_poses) == 2


def test_calibration_accessors(sequence):
    with open_reader(sequence) as reader:
        np.testing.assert_allclose(reader.original_calib(), [40, 40, 31.5, 23.5])
        assert reader.original_calib().dtype == np.float32
        assert reader.original_dimensions() == (WIDTH, HEIGHT)

        K, w, h = reader.calib_mono()
        assert (w, h) == (WIDTH, HEIGHT)
        np.testing.assert_allclose(K, [[40, 0, 31.5], [0, 40, 23.5], [0, 0, 1]])

        gc = reader.global_calibration()
        assert (gc.width, gc.height) == (WIDTH, HEIGHT)
        assert gc.levels[0].width == WIDTH
        assert reader.photometric_gamma() is None


def test_missing_directory(tmp_path, sequence):
    with pytest.raises(DatasetOpenError):
        ImageFolderReader(str(tmp_path / "nothing"), str(sequence.calib_file))


def test_archive_buffer_budget_from_config(sequence):
    config = ReaderConfig(archive_buffer_multiplier=1, archive_buffer_slack=100)
    with open_reader(sequence, zipped=True, config=config) as reader:
        # Random PNG frames are larger than one byte per pixel
        reader.raw_image(0)
        assert reader._storage.reallocations == 1


def test_archive_closed_when_side_files_fail(sequence, monkeypatch):
    opened = []

    def recording_open_storage(*args, **kwargs):
        storage = open_storage(*args, **kwargs)
        opened.append(storage)
        return storage

    def broken_poses(filepath):
        raise PermissionError("denied")

    monkeypatch.setattr(reader_module, "open_storage", recording_open_storage)
    monkeypatch.setattr(reader_module, "load_camera_poses", broken_poses)
    with pytest.raises(PermissionError):
        open_reader(sequence, zipped=True, poses_file=str(sequence.poses_file))
    assert len(opened) == 1
    with pytest.raises(RuntimeError):
        opened[0].read_bytes(0)


def test_bad_bytes_in_side_files(sequence):
    sequence.times_file.write_bytes(
        b"".join(f"{i} {i * 0.05:.2f} 10\n".encode() for i in range(N)) + b"\xff\xfe junk\n")
    sequence.poses_file.write_bytes(b"\xb0C header\n0,1,0,0,1,0,0,0\n")
    with open_reader(sequence, poses_file=str(sequence.poses_file)) as reader:
        assert len(reader.timestamps) == N
        assert len(reader.camera_poses) == 1
