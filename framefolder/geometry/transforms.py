"""
Rigid Transforms and Ground-Truth Pose Conversion
=================================================

Ground-truth poses are authored in Blender and exported as a world-to-camera
translation plus a (w, x, y, z) orientation quaternion in Blender's
right-handed world frame. The odometry pipeline expects camera-to-world
poses in its own frame, where

    pipeline x = -blender x
    pipeline y = -blender z
    pipeline z =  blender y

The conversion is: build the Blender world-to-camera transform, invert it,
then apply the basis change on the left. Changing basis before inverting
gives a different (wrong) pose.
"""

from dataclasses import dataclass, field
from typing import Sequence, Tuple

import numpy as np
from scipy.spatial.transform import Rotation


# Blender world frame -> pipeline world frame
BLENDER_TO_PIPELINE = np.array([
    [-1.0, 0.0, 0.0],
    [0.0, 0.0, -1.0],
    [0.0, 1.0, 0.0],
])
BLENDER_TO_PIPELINE.setflags(write=False)

# Pipeline world frame -> Blender world frame
PIPELINE_TO_BLENDER = BLENDER_TO_PIPELINE.T.copy()
PIPELINE_TO_BLENDER.setflags(write=False)


@dataclass
class RigidTransform:
    """
    A rotation plus translation, ``x' = R @ x + t``.

    Attributes:
        rotation: 3x3 orthonormal rotation matrix
        translation: 3-vector
    """
    rotation: np.ndarray = field(default_factory=lambda: np.eye(3))
    translation: np.ndarray = field(default_factory=lambda: np.zeros(3))

    def __post_init__(self):
        self.rotation = np.asarray(self.rotation, dtype=np.float64).reshape(3, 3)
        self.translation = np.asarray(self.translation, dtype=np.float64).reshape(3)

    @classmethod
    def identity(cls) -> "RigidTransform":
        return cls()

    @classmethod
    def from_matrix(cls, matrix: np.ndarray) -> "RigidTransform":
        """Build from a 4x4 (or 3x4) homogeneous matrix."""
        matrix = np.asarray(matrix, dtype=np.float64)
        return cls(matrix[:3, :3], matrix[:3, 3])

    @property
    def matrix(self) -> np.ndarray:
        """4x4 homogeneous matrix."""
        T = np.eye(4)
        T[:3, :3] = self.rotation
        T[:3, 3] = self.translation
        return T

    def inverse(self) -> "RigidTransform":
        R_inv = self.rotation.T
        return RigidTransform(R_inv, -R_inv @ self.translation)

    def __matmul__(self, other: "RigidTransform") -> "RigidTransform":
        if not isinstance(other, RigidTransform):
            return NotImplemented
        return RigidTransform(
            self.rotation @ other.rotation,
            self.rotation @ other.translation + self.translation,
        )

    def quaternion_wxyz(self) -> np.ndarray:
        """Rotation as a unit quaternion in (w, x, y, z) order."""
        x, y, z, w = Rotation.from_matrix(self.rotation).as_quat()
        return np.array([w, x, y, z])


def quaternion_wxyz_to_matrix(q: Sequence[float]) -> np.ndarray:
    """
    Convert a (w, x, y, z) quaternion to a 3x3 rotation matrix.

    The quaternion is normalized first. The zero quaternion maps to the
    identity and a quaternion with non-finite components to an all-NaN
    matrix, so such records still occupy their slot in a pose list.
    """
    w, x, y, z = (float(v) for v in q)
    if not np.all(np.isfinite([w, x, y, z])):
        return np.full((3, 3), np.nan)
    if w * w + x * x + y * y + z * z == 0.0:
        return np.eye(3)
    # scipy expects scalar-last
    return Rotation.from_quat([x, y, z, w]).as_matrix()


def external_to_pipeline(
    translation: Sequence[float],
    quaternion_wxyz: Sequence[float],
) -> RigidTransform:
    """
    Convert a Blender world-to-camera pose to a pipeline camera-to-world pose.

    Args:
        translation: Blender world-to-camera translation (x, y, z)
        quaternion_wxyz: Blender world-to-camera orientation (w, x, y, z)

    Returns:
        Camera-to-world RigidTransform in the pipeline frame. For the
        identity input the rotation equals BLENDER_TO_PIPELINE and the
        translation is zero.
    """
    blender_world_to_camera = RigidTransform(
        quaternion_wxyz_to_matrix(quaternion_wxyz),
        translation,
    )
    blender_camera_to_world = blender_world_to_camera.inverse()

    # Basis change only, no translation
    blender_to_pipeline = RigidTransform(BLENDER_TO_PIPELINE, np.zeros(3))
    return blender_to_pipeline @ blender_camera_to_world


def pipeline_to_external(pose: RigidTransform) -> Tuple[np.ndarray, np.ndarray]:
    """
    Inverse of external_to_pipeline.

    Used to write estimated trajectories back out in Blender's convention.

    Returns:
        (translation, quaternion_wxyz) of the Blender world-to-camera pose
    """
    pipeline_to_blender = RigidTransform(PIPELINE_TO_BLENDER, np.zeros(3))
    blender_camera_to_world = pipeline_to_blender @ pose
    blender_world_to_camera = blender_camera_to_world.inverse()
    return blender_world_to_camera.translation.copy(), blender_world_to_camera.quaternion_wxyz()
