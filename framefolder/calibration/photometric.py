"""
Photometric calibration: inverse camera response (gamma) and vignette.

The gamma file holds the inverse response G on its first line as
whitespace-separated floats, one per raw intensity (at least 256). G has to
be strictly increasing and is rescaled to [0, 255].

The vignette is an 8- or 16-bit grayscale image of the original (distorted)
size, normalized so that its maximum is 1. Calibrated intensities are
divided by it.
"""

import logging
from typing import Optional, Tuple

import cv2
import numpy as np

from ..config import PhotometricMode

logger = logging.getLogger(__name__)

GAMMA_MIN_ENTRIES = 256


def read_gamma_file(path: str) -> Optional[np.ndarray]:
    """Read and rescale an inverse response, or None if it is unusable."""
    try:
        with open(path, 'r') as f:
            first = f.readline()
    except OSError as e:
        logger.warning(f"Cannot read photometric calibration {path}: {e}")
        return None

    try:
        G = np.array([float(v) for v in first.split()], dtype=np.float32)
    except ValueError:
        logger.warning(f"Photometric calibration {path}: first line is not numeric")
        return None

    if len(G) < GAMMA_MIN_ENTRIES:
        logger.warning(
            f"Photometric calibration {path}: got {len(G)} entries in first line, "
            f"expected at least {GAMMA_MIN_ENTRIES}"
        )
        return None
    if np.any(np.diff(G) <= 0):
        logger.warning(f"Photometric calibration {path}: G has to be strictly increasing")
        return None

    g_min, g_max = float(G[0]), float(G[-1])
    return (255.0 * (G - g_min) / (g_max - g_min)).astype(np.float32)


def read_vignette(path: str, width: int, height: int) -> Optional[np.ndarray]:
    """Read a vignette image normalized to max 1, or None if unusable."""
    vignette = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
    if vignette is None:
        logger.warning(f"Cannot read vignette image {path}")
        return None
    if vignette.ndim == 3:
        vignette = cv2.cvtColor(vignette, cv2.COLOR_BGR2GRAY)
    if vignette.shape != (height, width):
        logger.warning(
            f"Invalid vignette image size {vignette.shape[1]}x{vignette.shape[0]}, "
            f"expected {width}x{height}"
        )
        return None

    vignette = vignette.astype(np.float32)
    v_max = float(vignette.max())
    if v_max <= 0 or np.any(vignette <= 0):
        logger.warning(f"Vignette image {path} contains non-positive values")
        return None
    return vignette / v_max


class PhotometricUndistorter:
    """
    Applies the inverse response and vignette correction to raw images.

    Missing or invalid files disable the corresponding correction with a
    warning; the undistorter then passes raw intensities through.

    Args:
        gamma_file: Path to the inverse response file, or None
        vignette_file: Path to the vignette image, or None
        width, height: Original (distorted) image size
        mode: Which corrections to apply
    """

    def __init__(
        self,
        gamma_file: Optional[str],
        vignette_file: Optional[str],
        width: int,
        height: int,
        mode: PhotometricMode = PhotometricMode.GAMMA_VIGNETTE,
    ):
        self.width = width
        self.height = height
        self.mode = PhotometricMode(mode)
        self.G: Optional[np.ndarray] = None
        self.vignette: Optional[np.ndarray] = None
        self._vignette_inv: Optional[np.ndarray] = None

        if gamma_file:
            self.G = read_gamma_file(gamma_file)
        if self.G is not None and vignette_file:
            self.vignette = read_vignette(vignette_file, width, height)
            if self.vignette is not None:
                self._vignette_inv = 1.0 / self.vignette

        logger.info(
            f"Photometric calibration: mode={self.mode.name}, "
            f"gamma={'yes' if self.G is not None else 'no'}, "
            f"vignette={'yes' if self.vignette is not None else 'no'}"
        )

    @property
    def valid(self) -> bool:
        return self.G is not None

    def process(self, image: np.ndarray, exposure_time: float) -> Tuple[np.ndarray, float]:
        """
        Photometrically correct a raw 8-bit image.

        Raw intensities are passed through unchanged when no gamma is
        loaded, the mode is NONE, or the exposure is unknown (<= 0).

        Returns:
            (float32 image, exposure_time)
        """
        if not self.valid or exposure_time <= 0 or self.mode == PhotometricMode.NONE:
            return image.astype(np.float32), exposure_time

        out = self.G[image]
        if self.mode == PhotometricMode.GAMMA_VIGNETTE and self._vignette_inv is not None:
            out = out * self._vignette_inv
        return out.astype(np.float32, copy=False), exposure_time
