"""
Grayscale image decoding.

Thin wrappers over OpenCV returning HxW uint8 arrays. Colour images are
converted to grayscale; 16-bit images are reduced to 8 bits by OpenCV.
"""

import logging
from typing import Union

import cv2
import numpy as np

from ..errors import ImageDecodeError

logger = logging.getLogger(__name__)


def read_image_bw_8u(path: str) -> np.ndarray:
    """Read an image file from disk as 8-bit grayscale."""
    img = cv2.imread(str(path), cv2.IMREAD_GRAYSCALE)
    if img is None:
        raise ImageDecodeError(f"Failed to load image: {path}")
    return img


def read_stream_bw_8u(data: Union[bytes, bytearray, memoryview], name: str = "<stream>") -> np.ndarray:
    """
    Decode an in-memory encoded image (PNG, JPEG, ...) as 8-bit grayscale.

    Args:
        data: Encoded image bytes. Only the bytes passed are read, so callers
            holding an oversized buffer must slice it first.
        name: Used in error messages only.
    """
    buf = np.frombuffer(data, dtype=np.uint8)
    img = cv2.imdecode(buf, cv2.IMREAD_GRAYSCALE)
    if img is None:
        raise ImageDecodeError(f"Failed to decode image {name} ({len(buf)} bytes)")
    return img
