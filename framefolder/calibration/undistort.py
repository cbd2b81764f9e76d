"""
Geometric Undistortion
======================

This module provides:
- ImageAndExposure: A calibrated float image with its exposure and timestamp
- Undistorter: Remaps raw images onto an undistorted pinhole target camera
- GlobalCalibration: Target intrinsics plus image pyramid, passed explicitly
  to downstream tracking components

Calibration file format (four lines):

    RadTan 0.52 0.67 0.49 0.51 -0.02 0.01 0.001 0.0    # model + parameters
    752 480                                            # input width height
    crop                                               # crop | full | none | fx fy cx cy 0
    640 480                                            # output width height

A bare line of five numbers is read as ``fx fy cx cy omega`` (FOV, or
Pinhole when omega is 0), and a bare line of eight numbers as RadTan.
Intrinsics with cx < 1 and cy < 1 are relative to the image size and are
rescaled to pixels with a -0.5 offset, so that integer pixel coordinates
refer to pixel centres.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np

from ..config import ReaderConfig
from ..errors import CalibrationError
from .camera_models import CameraModel, create_camera_model
from .photometric import PhotometricUndistorter

logger = logging.getLogger(__name__)

# Below this many pixels the pyramid stops halving.
MIN_PYRAMID_PIXELS = 5000


@dataclass
class ImageAndExposure:
    """
    An undistorted, photometrically corrected frame.

    Attributes:
        image: HxW float32 intensities
        exposure_time: Exposure in milliseconds (1.0 if unknown)
        timestamp: Capture time in seconds (0.0 if unknown)
    """
    image: np.ndarray
    exposure_time: float = 1.0
    timestamp: float = 0.0

    @property
    def width(self) -> int:
        return int(self.image.shape[1])

    @property
    def height(self) -> int:
        return int(self.image.shape[0])


@dataclass
class PyramidLevel:
    width: int
    height: int
    K: np.ndarray


@dataclass
class GlobalCalibration:
    """
    Target camera calibration for the tracking front-end.

    Returned by ImageFolderReader.global_calibration() and handed to the
    components that need image sizes and intrinsics at every pyramid level.
    """
    width: int
    height: int
    K: np.ndarray
    levels: List[PyramidLevel] = field(default_factory=list)

    @classmethod
    def from_intrinsics(cls, width: int, height: int, K: np.ndarray, max_levels: int = 5) -> "GlobalCalibration":
        """
        Build the pyramid by halving while both sides stay even and the
        level keeps more than MIN_PYRAMID_PIXELS pixels.
        """
        K = np.asarray(K, dtype=np.float64)
        num_levels = 1
        w_lvl, h_lvl = width, height
        while (w_lvl % 2 == 0 and h_lvl % 2 == 0
               and w_lvl * h_lvl > MIN_PYRAMID_PIXELS and num_levels < max_levels):
            w_lvl //= 2
            h_lvl //= 2
            num_levels += 1

        logger.info(
            f"Using pyramid levels 0 to {num_levels - 1}. "
            f"Coarsest resolution: {w_lvl} x {h_lvl}"
        )
        if w_lvl > 100 and h_lvl > 100:
            logger.warning(
                f"Coarsest pyramid level is {w_lvl} x {h_lvl}; "
                "image sizes divisible by a larger power of two are recommended"
            )
        if num_levels < 3:
            logger.warning(f"Only {num_levels} pyramid levels available")

        fx, fy, cx, cy = K[0, 0], K[1, 1], K[0, 2], K[1, 2]
        levels = []
        for lvl in range(num_levels):
            scale = float(1 << lvl)
            K_lvl = np.array([
                [fx / scale, 0.0, (cx + 0.5) / scale - 0.5],
                [0.0, fy / scale, (cy + 0.5) / scale - 0.5],
                [0.0, 0.0, 1.0],
            ])
            levels.append(PyramidLevel(width >> lvl, height >> lvl, K_lvl))
        return cls(width=width, height=height, K=K.copy(), levels=levels)

    @property
    def num_levels(self) -> int:
        return len(self.levels)


def _is_relative(params: Sequence[float]) -> bool:
    return params[2] < 1 and params[3] < 1


def _relative_to_pixels(params: Sequence[float], width: int, height: int) -> List[float]:
    params = list(params)
    params[0] *= width
    params[1] *= height
    params[2] = params[2] * width - 0.5
    params[3] = params[3] * height - 0.5
    return params


def _parse_numbers(tokens: Sequence[str], path: str, what: str) -> List[float]:
    try:
        return [float(t) for t in tokens]
    except ValueError:
        raise CalibrationError(f"Calibration {path}: cannot parse {what}: {' '.join(tokens)}")


def _parse_size(line: str, path: str, what: str) -> Tuple[int, int]:
    values = _parse_numbers(line.split(), path, what)
    if len(values) != 2 or values[0] <= 0 or values[1] <= 0:
        raise CalibrationError(f"Calibration {path}: invalid {what}: {line.strip()!r}")
    return int(values[0]), int(values[1])


@dataclass
class CalibrationSpec:
    """Contents of a calibration file, intrinsics already in pixels."""
    camera: CameraModel
    original_size: Tuple[int, int]
    target_mode: str
    target_parameters: Optional[List[float]]
    size: Tuple[int, int]


def read_calibration_file(path: str) -> CalibrationSpec:
    """
    Parse a geometric calibration file.

    Raises:
        CalibrationError: If the file is missing or malformed
    """
    try:
        with open(path, 'r') as f:
            lines = [line for line in f.read().splitlines() if line.strip()]
    except OSError as e:
        raise CalibrationError(f"Cannot read calibration file {path}: {e}") from e
    if len(lines) < 4:
        raise CalibrationError(f"Calibration {path}: expected 4 lines, got {len(lines)}")

    tokens = lines[0].split()
    if tokens and tokens[0][0].isalpha():
        model_name, raw = tokens[0], _parse_numbers(tokens[1:], path, "camera parameters")
    else:
        raw = _parse_numbers(tokens, path, "camera parameters")
        if len(raw) == 8:
            model_name = "RadTan"
        elif len(raw) == 5:
            model_name = "Pinhole" if raw[4] == 0 else "FOV"
        else:
            raise CalibrationError(f"Calibration {path}: cannot infer camera model from {len(raw)} parameters")

    if len(raw) < 4:
        raise CalibrationError(f"Calibration {path}: too few camera parameters")

    original_size = _parse_size(lines[1], path, "input size")
    if _is_relative(raw):
        raw = _relative_to_pixels(raw, *original_size)

    try:
        camera = create_camera_model(model_name, raw)
    except ValueError as e:
        raise CalibrationError(f"Calibration {path}: {e}") from e

    mode_line = lines[2].strip()
    target_parameters = None
    if mode_line in ("crop", "full", "none"):
        target_mode = mode_line
    else:
        target_mode = "explicit"
        target_parameters = _parse_numbers(mode_line.split(), path, "output calibration")
        if len(target_parameters) != 5:
            raise CalibrationError(f"Calibration {path}: output calibration needs 'fx fy cx cy 0'")

    size = _parse_size(lines[3], path, "output size")
    return CalibrationSpec(camera, original_size, target_mode, target_parameters, size)


def _border_pixels(width: int, height: int) -> Tuple[np.ndarray, ...]:
    """Pixel coordinates along the left, right, top and bottom image edges."""
    ys = np.arange(height, dtype=np.float64)
    xs = np.arange(width, dtype=np.float64)
    left = (np.zeros_like(ys), ys)
    right = (np.full_like(ys, width - 1), ys)
    top = (xs, np.zeros_like(xs))
    bottom = (xs, np.full_like(xs, height - 1))
    return left, right, top, bottom


def make_optimal_K(camera: CameraModel, original_size: Tuple[int, int], size: Tuple[int, int], crop: bool) -> np.ndarray:
    """
    Target intrinsics that show the whole source image (``crop=False``) or
    only valid pixels (``crop=True``).

    The border of the original image is undistorted; "full" fits the
    bounding box of all border points into the output, "crop" the box
    enclosed by the four edges.
    """
    w_org, h_org = original_size
    left, right, top, bottom = (camera.undistort_points(u, v) for u, v in _border_pixels(w_org, h_org))

    if crop:
        min_x, max_x = np.max(left[0]), np.min(right[0])
        min_y, max_y = np.max(top[1]), np.min(bottom[1])
    else:
        all_x = np.concatenate([e[0] for e in (left, right, top, bottom)])
        all_y = np.concatenate([e[1] for e in (left, right, top, bottom)])
        min_x, max_x = np.min(all_x), np.max(all_x)
        min_y, max_y = np.min(all_y), np.max(all_y)

    if not np.all(np.isfinite([min_x, max_x, min_y, max_y])) or max_x <= min_x or max_y <= min_y:
        raise CalibrationError(
            f"Cannot compute {'crop' if crop else 'full'} rectification for {camera!r}"
        )

    w, h = size
    K = np.eye(3)
    K[0, 0] = (w - 1) / (max_x - min_x)
    K[1, 1] = (h - 1) / (max_y - min_y)
    K[0, 2] = -min_x * K[0, 0]
    K[1, 2] = -min_y * K[1, 1]
    return K


class Undistorter:
    """
    Maps raw distorted images to an undistorted pinhole target camera.

    Remap tables are computed once at construction. When the source camera
    has no distortion and the target equals the source, images pass through
    without resampling.

    Args:
        camera: Source distortion model (pixel intrinsics)
        original_size: Source image (width, height)
        size: Target image (width, height)
        K: Target 3x3 intrinsic matrix
        photometric: Optional PhotometricUndistorter applied before remapping
        use_exposure: If False, exposure_time is always reported as 1
    """

    def __init__(
        self,
        camera: CameraModel,
        original_size: Tuple[int, int],
        size: Tuple[int, int],
        K: np.ndarray,
        photometric: Optional[PhotometricUndistorter] = None,
        use_exposure: bool = True,
    ):
        self.camera = camera
        self.original_size = (int(original_size[0]), int(original_size[1]))
        self.size = (int(size[0]), int(size[1]))
        self.K = np.asarray(K, dtype=np.float64)
        self.photometric = photometric
        self.use_exposure = use_exposure

        self.passthrough = (
            camera.is_distortion_free
            and self.size == self.original_size
            and np.allclose(self.K, camera.K)
        )
        self._map_x: Optional[np.ndarray] = None
        self._map_y: Optional[np.ndarray] = None
        if not self.passthrough:
            self._map_x, self._map_y = self._compute_maps()

        logger.info(
            f"Undistorter: {camera!r} {self.original_size[0]}x{self.original_size[1]} -> "
            f"{self.size[0]}x{self.size[1]} fx={self.K[0, 0]:.2f} fy={self.K[1, 1]:.2f} "
            f"cx={self.K[0, 2]:.2f} cy={self.K[1, 2]:.2f}"
            + (" (passthrough)" if self.passthrough else "")
        )

    @classmethod
    def from_file(
        cls,
        calib_file: str,
        gamma_file: Optional[str] = None,
        vignette_file: Optional[str] = None,
        config: Optional[ReaderConfig] = None,
    ) -> "Undistorter":
        """
        Build an undistorter from calibration, gamma and vignette files.

        Raises:
            CalibrationError: If the calibration file is unusable
        """
        config = config or ReaderConfig()
        spec = read_calibration_file(calib_file)
        camera, w_org, h_org = spec.camera, spec.original_size[0], spec.original_size[1]
        w, h = spec.size

        if spec.target_mode == "none":
            if (w, h) != (w_org, h_org):
                raise CalibrationError(
                    "Rectification mode 'none' requires input and output dimensions to match"
                )
            K = camera.K
        elif spec.target_mode == "explicit":
            params = spec.target_parameters
            if _is_relative(params):
                params = _relative_to_pixels(params, w, h)
            else:
                logger.warning(f"Output calibration {params[:4]} does not look relative, using it as pixels")
            K = np.array([[params[0], 0.0, params[2]], [0.0, params[1], params[3]], [0.0, 0.0, 1.0]])
        else:
            K = make_optimal_K(camera, (w_org, h_org), (w, h), crop=spec.target_mode == "crop")

        photometric = None
        if gamma_file:
            photometric = PhotometricUndistorter(
                gamma_file, vignette_file, w_org, h_org, mode=config.photometric_mode
            )
        return cls(camera, (w_org, h_org), (w, h), K, photometric=photometric, use_exposure=config.use_exposure)

    def _compute_maps(self) -> Tuple[np.ndarray, np.ndarray]:
        w, h = self.size
        u, v = np.meshgrid(np.arange(w, dtype=np.float64), np.arange(h, dtype=np.float64))
        x = (u - self.K[0, 2]) / self.K[0, 0]
        y = (v - self.K[1, 2]) / self.K[1, 1]
        map_x, map_y = self.camera.distort(x, y)

        # Samples outside the source image read as zero
        w_org, h_org = self.original_size
        invalid = ~np.isfinite(map_x) | ~np.isfinite(map_y)
        invalid |= (map_x < 0) | (map_x > w_org - 1) | (map_y < 0) | (map_y > h_org - 1)
        map_x = np.where(invalid, -1.0, map_x)
        map_y = np.where(invalid, -1.0, map_y)
        return map_x.astype(np.float32), map_y.astype(np.float32)

    @property
    def original_parameters(self) -> np.ndarray:
        return self.camera.parameters

    @property
    def photometric_gamma(self) -> Optional[np.ndarray]:
        if self.photometric is None:
            return None
        return self.photometric.G

    def undistort(self, image: np.ndarray, exposure: float = 1.0, timestamp: float = 0.0) -> ImageAndExposure:
        """
        Undistort one raw 8-bit grayscale image.

        Args:
            image: HxW uint8 image of the original size
            exposure: Exposure time in milliseconds (<= 0 means unknown)
            timestamp: Capture time in seconds

        Raises:
            ValueError: If the image size does not match the calibration
        """
        w_org, h_org = self.original_size
        if image.shape[:2] != (h_org, w_org):
            raise ValueError(
                f"Undistort: got image of size {image.shape[1]}x{image.shape[0]}, "
                f"expected {w_org}x{h_org}"
            )

        if self.photometric is not None:
            corrected, exposure_time = self.photometric.process(image, exposure)
        else:
            corrected, exposure_time = image.astype(np.float32), exposure
        if not self.use_exposure:
            exposure_time = 1.0

        if self.passthrough:
            out = corrected
        else:
            out = cv2.remap(
                corrected, self._map_x, self._map_y,
                interpolation=cv2.INTER_LINEAR,
                borderMode=cv2.BORDER_CONSTANT,
                borderValue=0,
            )
        return ImageAndExposure(image=out, exposure_time=float(exposure_time), timestamp=float(timestamp))
