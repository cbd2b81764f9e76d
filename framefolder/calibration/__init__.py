# Camera calibration
# ==================
#
# Geometric undistortion onto a pinhole target camera plus optional
# photometric correction (inverse response and vignette).

from .camera_models import (
    CameraModel,
    PinholeModel,
    RadTanModel,
    FOVModel,
    KannalaBrandtModel,
    EquiDistantModel,
    create_camera_model,
)
from .photometric import PhotometricUndistorter, read_gamma_file, read_vignette
from .undistort import (
    ImageAndExposure,
    GlobalCalibration,
    PyramidLevel,
    CalibrationSpec,
    Undistorter,
    read_calibration_file,
    make_optimal_K,
)

__all__ = [
    "CameraModel",
    "PinholeModel",
    "RadTanModel",
    "FOVModel",
    "KannalaBrandtModel",
    "EquiDistantModel",
    "create_camera_model",
    "PhotometricUndistorter",
    "read_gamma_file",
    "read_vignette",
    "ImageAndExposure",
    "GlobalCalibration",
    "PyramidLevel",
    "CalibrationSpec",
    "Undistorter",
    "read_calibration_file",
    "make_optimal_K",
]
