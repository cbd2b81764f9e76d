# Per-frame metadata
# ==================
#
# Timestamps, exposure times and ground-truth camera poses stored in text
# files beside the images.

from .timestamps import (
    TimestampRecord,
    times_file_for,
    parse_times_line,
    read_times_file,
    repair_exposures,
    enforce_consistency,
    load_timestamps,
)
from .poses import PoseRecord, parse_pose_line, load_camera_poses

__all__ = [
    "TimestampRecord",
    "times_file_for",
    "parse_times_line",
    "read_times_file",
    "repair_exposures",
    "enforce_consistency",
    "load_timestamps",
    "PoseRecord",
    "parse_pose_line",
    "load_camera_poses",
]
