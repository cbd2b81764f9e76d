# Geometry helpers
# ================
#
# Rigid transforms and the conversion of Blender ground-truth poses into
# the odometry pipeline's coordinate frame.

from .transforms import (
    RigidTransform,
    BLENDER_TO_PIPELINE,
    PIPELINE_TO_BLENDER,
    quaternion_wxyz_to_matrix,
    external_to_pipeline,
    pipeline_to_external,
)

__all__ = [
    "RigidTransform",
    "BLENDER_TO_PIPELINE",
    "PIPELINE_TO_BLENDER",
    "quaternion_wxyz_to_matrix",
    "external_to_pipeline",
    "pipeline_to_external",
]
