"""
Camera Distortion Models
========================

Each model maps between normalized (undistorted) camera coordinates and
pixel coordinates of the original, distorted image:

    distort(x, y)          -> (u, v)  pixel in the original image
    undistort_points(u, v) -> (x, y)  normalized coordinates

Supported models and their calibration-file parameters:

    Pinhole        fx fy cx cy 0
    RadTan         fx fy cx cy k1 k2 p1 p2      (OpenCV radial-tangential)
    FOV            fx fy cx cy omega             (ATAN / field-of-view)
    KannalaBrandt  fx fy cx cy k1 k2 k3 k4      (equidistant fisheye)
    EquiDistant    same as KannalaBrandt
"""

from abc import ABC, abstractmethod
from typing import Dict, Sequence, Tuple, Type

import cv2
import numpy as np


class CameraModel(ABC):
    """
    Base class for distortion models.

    Args:
        fx, fy, cx, cy: Pinhole intrinsics in pixels
        distortion: Model-specific distortion coefficients
    """

    name = "base"
    num_distortion = 0

    def __init__(self, fx: float, fy: float, cx: float, cy: float, distortion: Sequence[float] = ()):
        self.fx = float(fx)
        self.fy = float(fy)
        self.cx = float(cx)
        self.cy = float(cy)
        self.distortion = np.asarray(list(distortion), dtype=np.float64)
        if len(self.distortion) != self.num_distortion:
            raise ValueError(
                f"{self.name} expects {self.num_distortion} distortion parameters, "
                f"got {len(self.distortion)}"
            )

    @property
    def K(self) -> np.ndarray:
        return np.array([
            [self.fx, 0.0, self.cx],
            [0.0, self.fy, self.cy],
            [0.0, 0.0, 1.0],
        ])

    @property
    def parameters(self) -> np.ndarray:
        """fx, fy, cx, cy followed by the distortion coefficients."""
        return np.concatenate([[self.fx, self.fy, self.cx, self.cy], self.distortion])

    @property
    def is_distortion_free(self) -> bool:
        return not np.any(self.distortion)

    def _to_pixels(self, x: np.ndarray, y: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        return self.fx * x + self.cx, self.fy * y + self.cy

    def _to_normalized(self, u: np.ndarray, v: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        return (u - self.cx) / self.fx, (v - self.cy) / self.fy

    @abstractmethod
    def distort(self, x: np.ndarray, y: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        pass

    @abstractmethod
    def undistort_points(self, u: np.ndarray, v: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}({', '.join(f'{p:g}' for p in self.parameters)})"


class PinholeModel(CameraModel):
    name = "Pinhole"
    num_distortion = 0

    def distort(self, x, y):
        return self._to_pixels(np.asarray(x, dtype=np.float64), np.asarray(y, dtype=np.float64))

    def undistort_points(self, u, v):
        return self._to_normalized(np.asarray(u, dtype=np.float64), np.asarray(v, dtype=np.float64))


class RadTanModel(CameraModel):
    name = "RadTan"
    num_distortion = 4

    def distort(self, x, y):
        x = np.asarray(x, dtype=np.float64)
        y = np.asarray(y, dtype=np.float64)
        k1, k2, p1, p2 = self.distortion
        r2 = x * x + y * y
        radial = 1.0 + k1 * r2 + k2 * r2 * r2
        xd = x * radial + 2.0 * p1 * x * y + p2 * (r2 + 2.0 * x * x)
        yd = y * radial + p1 * (r2 + 2.0 * y * y) + 2.0 * p2 * x * y
        return self._to_pixels(xd, yd)

    def undistort_points(self, u, v):
        u = np.asarray(u, dtype=np.float64)
        pts = np.stack([u.ravel(), np.asarray(v, dtype=np.float64).ravel()], axis=-1).reshape(-1, 1, 2)
        out = cv2.undistortPoints(pts, self.K, self.distortion).reshape(-1, 2)
        return out[:, 0].reshape(u.shape), out[:, 1].reshape(u.shape)


class FOVModel(CameraModel):
    name = "FOV"
    num_distortion = 1

    def distort(self, x, y):
        x = np.asarray(x, dtype=np.float64)
        y = np.asarray(y, dtype=np.float64)
        omega = self.distortion[0]
        r = np.sqrt(x * x + y * y)
        if omega == 0:
            return self._to_pixels(x, y)
        d2t = 2.0 * np.tan(omega / 2.0)
        with np.errstate(divide='ignore', invalid='ignore'):
            fac = np.where(r > 0, np.arctan(r * d2t) / (omega * r), 1.0)
        return self._to_pixels(fac * x, fac * y)

    def undistort_points(self, u, v):
        xd, yd = self._to_normalized(np.asarray(u, dtype=np.float64), np.asarray(v, dtype=np.float64))
        omega = self.distortion[0]
        if omega == 0:
            return xd, yd
        d2t = 2.0 * np.tan(omega / 2.0)
        rd = np.sqrt(xd * xd + yd * yd)
        with np.errstate(divide='ignore', invalid='ignore'):
            fac = np.where(rd > 0, np.tan(rd * omega) / (d2t * rd), 1.0)
        return fac * xd, fac * yd


class KannalaBrandtModel(CameraModel):
    name = "KannalaBrandt"
    num_distortion = 4

    def distort(self, x, y):
        x = np.asarray(x, dtype=np.float64)
        y = np.asarray(y, dtype=np.float64)
        k1, k2, k3, k4 = self.distortion
        r = np.sqrt(x * x + y * y)
        theta = np.arctan(r)
        theta2 = theta * theta
        thetad = theta * (1.0 + theta2 * (k1 + theta2 * (k2 + theta2 * (k3 + theta2 * k4))))
        with np.errstate(divide='ignore', invalid='ignore'):
            scale = np.where(r > 1e-8, thetad / r, 1.0)
        return self._to_pixels(x * scale, y * scale)

    def undistort_points(self, u, v):
        u = np.asarray(u, dtype=np.float64)
        pts = np.stack([u.ravel(), np.asarray(v, dtype=np.float64).ravel()], axis=-1).reshape(-1, 1, 2)
        out = cv2.fisheye.undistortPoints(pts, self.K, self.distortion.reshape(4, 1)).reshape(-1, 2)
        return out[:, 0].reshape(u.shape), out[:, 1].reshape(u.shape)


class EquiDistantModel(KannalaBrandtModel):
    name = "EquiDistant"


CAMERA_MODELS: Dict[str, Type[CameraModel]] = {
    cls.name: cls
    for cls in (PinholeModel, RadTanModel, FOVModel, KannalaBrandtModel, EquiDistantModel)
}


def create_camera_model(name: str, parameters: Sequence[float]) -> CameraModel:
    """
    Instantiate a model from its calibration-file name and parameter list.

    Pinhole takes five parameters in the file (the fifth must be 0).

    Raises:
        ValueError: For unknown models or wrong parameter counts
    """
    if name not in CAMERA_MODELS:
        raise ValueError(f"Unknown camera model '{name}', expected one of {sorted(CAMERA_MODELS)}")
    cls = CAMERA_MODELS[name]
    params = [float(p) for p in parameters]
    if cls is PinholeModel:
        if len(params) != 5 or params[4] != 0:
            raise ValueError(f"Pinhole expects 'fx fy cx cy 0', got {params}")
        params = params[:4]
    if len(params) != 4 + cls.num_distortion:
        raise ValueError(f"{name} expects {4 + cls.num_distortion} parameters, got {len(params)}")
    return cls(*params[:4], distortion=params[4:])
