"""
Ground-Truth Pose Loading
=========================

Reads the pose CSV exported from Blender. One pose per line:

    timestamp_ms, x, y, z, qw, qx, qy, qz

for instance

    40,0.000000,0.001338,0.000000,0.707107,0.707107,0.000000,0.000000

Translation and orientation describe Blender's world-to-camera transform.
Lines with any other number of fields, or with a field that is not a
number (headers included), are skipped. Records with an all-zero
quaternion or non-finite values are kept so that later poses stay on
their frames.

Poses are matched to frames by position: the n-th parsed line belongs to
frame n. Timestamps are kept but not used for matching, so a skipped line
shifts every later pose by one frame.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

import numpy as np

from ..geometry.transforms import RigidTransform, external_to_pipeline

logger = logging.getLogger(__name__)

POSE_FIELDS = 8


@dataclass
class PoseRecord:
    """
    A pose line as written by Blender.

    Attributes:
        timestamp_ms: Frame time in milliseconds
        translation: World-to-camera translation (3,)
        quaternion_wxyz: World-to-camera orientation (4,) in (w, x, y, z) order
    """
    timestamp_ms: float
    translation: np.ndarray
    quaternion_wxyz: np.ndarray

    def to_pipeline(self) -> RigidTransform:
        return external_to_pipeline(self.translation, self.quaternion_wxyz)


def parse_pose_line(line: str) -> Optional[PoseRecord]:
    """Parse one CSV line, or return None if it is not a pose record."""
    parts = line.split(',')
    if len(parts) != POSE_FIELDS:
        return None
    try:
        values = np.array([float(p) for p in parts])
    except ValueError:
        return None
    return PoseRecord(
        timestamp_ms=float(values[0]),
        translation=values[1:4],
        quaternion_wxyz=values[4:8],
    )


def load_camera_poses(filepath: Optional[str]) -> Tuple[List[PoseRecord], List[RigidTransform]]:
    """
    Load and convert all poses of a Blender pose file.

    Args:
        filepath: Pose CSV path. None, a missing file or an unreadable
            file gives no poses.

    Returns:
        (records, poses) - raw records and their pipeline camera-to-world
        transforms, both in file order
    """
    if not filepath:
        return [], []
    path = Path(filepath)
    if not path.is_file():
        logger.warning(f"Pose file not found: {filepath}")
        return [], []

    records: List[PoseRecord] = []
    poses: List[RigidTransform] = []
    skipped = 0
    try:
        with open(path, 'r', encoding='utf-8', errors='replace') as f:
            for line_no, line in enumerate(f, start=1):
                record = parse_pose_line(line)
                if record is None:
                    if line.strip():
                        skipped += 1
                        logger.debug(f"Skipping pose line {line_no}: {line.strip()!r}")
                    continue

                pose = record.to_pipeline()
                logger.debug(
                    f"Pose {len(poses)}: t={record.translation.tolist()} "
                    f"q={record.quaternion_wxyz.tolist()} -> t'={pose.translation.tolist()}"
                )
                records.append(record)
                poses.append(pose)
    except OSError as e:
        logger.warning(f"Could not read pose file {filepath}: {e}")
        return [], []

    if skipped:
        # Positional matching: later poses now belong to earlier frames
        logger.warning(
            f"Skipped {skipped} malformed lines in {filepath}; "
            "pose-to-frame association is by line order"
        )
    logger.info(f"Loaded {len(poses)} camera poses from {filepath}")
    return records, poses
