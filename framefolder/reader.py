"""
Image Folder Reader
===================

The entry point of framefolder. ImageFolderReader ties together:

- A storage backend (directory or .zip archive) holding the frames
- An Undistorter built from the calibration, gamma and vignette files
- Timestamps and exposures from ``<parent>/times.txt``
- Optional ground-truth poses exported from Blender

Example usage:
    from framefolder import ImageFolderReader

    with ImageFolderReader(
        "/data/seq_01/images.zip",
        calib_file="/data/seq_01/camera.txt",
        gamma_file="/data/seq_01/pcalib.txt",
        vignette_file="/data/seq_01/vignette.png",
        poses_file="/data/seq_01/poses.csv",
    ) as reader:
        calib = reader.global_calibration()
        for i in range(reader.num_images):
            frame = reader.calibrated_image(i)
            gt = reader.pose(i)

Everything except the archive read buffer is loaded once in the constructor
and does not change afterwards.
"""

import logging
from typing import List, Optional, Tuple

import numpy as np

from .calibration.undistort import GlobalCalibration, ImageAndExposure, Undistorter
from .config import ReaderConfig
from .geometry.transforms import RigidTransform
from .io.storage import FrameEntry, FrameStorage, is_archive_path, open_storage
from .metadata.poses import PoseRecord, load_camera_poses
from .metadata.timestamps import enforce_consistency, load_timestamps

logger = logging.getLogger(__name__)


class ImageFolderReader:
    """
    Random-access reader for a monocular image sequence.

    Args:
        path: Image directory, or a path ending in '.zip' for an archive
        calib_file: Geometric calibration file
        gamma_file: Optional inverse response file
        vignette_file: Optional vignette image (used only with a gamma file)
        poses_file: Optional Blender pose CSV
        config: Reader settings. Default: ReaderConfig()

    Raises:
        DatasetOpenError: If the directory or archive cannot be opened
        CalibrationError: If the calibration file is unusable

    Thread safety:
        Archive-backed readers share one read buffer and must not be used
        from several threads at once. Directory-backed readers may be.
    """

    def __init__(
        self,
        path: str,
        calib_file: str,
        gamma_file: Optional[str] = None,
        vignette_file: Optional[str] = None,
        poses_file: Optional[str] = None,
        config: Optional[ReaderConfig] = None,
    ):
        self.path = str(path)
        self.calib_file = calib_file
        self.poses_file = poses_file
        self.config = config or ReaderConfig()

        self._storage: FrameStorage = open_storage(
            self.path,
            multiplier=self.config.archive_buffer_multiplier,
            growth=self.config.archive_buffer_growth,
            slack=self.config.archive_buffer_slack,
        )
        self.timestamps: List[float]
        self.exposures: List[float]
        self.pose_records: List[PoseRecord]
        self._camera_poses: List[RigidTransform]
        try:
            self.undistorter = Undistorter.from_file(calib_file, gamma_file, vignette_file, self.config)

            self.width_org, self.height_org = self.undistorter.original_size
            self.width, self.height = self.undistorter.size
            self._storage.set_original_size(self.width_org, self.height_org)

            self.timestamps, self.exposures = load_timestamps(self.path, self.num_images)

            self.pose_records, self._camera_poses = load_camera_poses(poses_file)
            # Exposures are already consistent here; kept as a final check.
            self.timestamps, self.exposures = enforce_consistency(
                self.timestamps, self.exposures, self.num_images
            )
        except Exception:
            self._storage.close()
            raise

        logger.info(f"ImageFolderReader: got {self.num_images} files in {self.path}")

    # ------------------------------------------------------------------
    # Lifecycle

    def close(self) -> None:
        """Release the archive handle and read buffer."""
        self._storage.close()

    def __enter__(self) -> "ImageFolderReader":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Frames

    @property
    def num_images(self) -> int:
        return len(self._storage)

    def __len__(self) -> int:
        return self.num_images

    @property
    def entries(self) -> List[FrameEntry]:
        return self._storage.entries

    @property
    def files(self) -> List[str]:
        """Sorted frame locators (paths or archive entry names)."""
        return self._storage.locators

    @property
    def is_zipped(self) -> bool:
        return is_archive_path(self.path)

    def timestamp(self, id: int) -> float:
        """
        Capture time of frame ``id`` in seconds.

        Out-of-range ids give 0. Without loaded timestamps, frames are
        assumed to be ``config.default_frame_interval`` apart.
        """
        if id < 0 or id >= self.num_images:
            return 0.0
        if not self.timestamps:
            return id * self.config.default_frame_interval
        return self.timestamps[id]

    def exposure(self, id: int) -> float:
        """Exposure of frame ``id`` in milliseconds, 1.0 when unknown."""
        if id < 0 or id >= self.num_images:
            raise IndexError(f"Frame index {id} out of range [0, {self.num_images})")
        if not self.exposures:
            return 1.0
        return self.exposures[id]

    def raw_image(self, id: int) -> np.ndarray:
        """Decoded HxW uint8 frame at the original (distorted) size."""
        return self._storage.read_image(id)

    def calibrated_image(self, id: int) -> ImageAndExposure:
        """Undistorted, photometrically corrected frame ``id``."""
        raw = self.raw_image(id)
        exposure = self.exposures[id] if self.exposures else 1.0
        stamp = self.timestamps[id] if self.timestamps else 0.0
        result = self.undistorter.undistort(raw, exposure, stamp)
        del raw
        return result

    # ------------------------------------------------------------------
    # Ground truth

    @property
    def camera_poses(self) -> List[RigidTransform]:
        """Pipeline camera-to-world poses in file order. May be shorter than num_images."""
        return list(self._camera_poses)

    def pose(self, id: int) -> Optional[RigidTransform]:
        """Ground-truth pose of frame ``id``, or None when not available."""
        if 0 <= id < len(self._camera_poses):
            return self._camera_poses[id]
        return None

    # ------------------------------------------------------------------
    # Calibration

    def original_calib(self) -> np.ndarray:
        """Source camera parameters (fx, fy, cx, cy, distortion...) as float32."""
        return self.undistorter.original_parameters.astype(np.float32)

    def original_dimensions(self) -> Tuple[int, int]:
        return self.undistorter.original_size

    def calib_mono(self) -> Tuple[np.ndarray, int, int]:
        """Target intrinsics and size as (K, width, height)."""
        return self.undistorter.K.astype(np.float32), self.width, self.height

    def global_calibration(self) -> GlobalCalibration:
        """Target calibration with image pyramid for the tracking front-end."""
        K, w, h = self.calib_mono()
        return GlobalCalibration.from_intrinsics(w, h, K, max_levels=self.config.pyramid_levels)

    def photometric_gamma(self) -> Optional[np.ndarray]:
        """Rescaled inverse response G, or None without photometric calibration."""
        return self.undistorter.photometric_gamma
