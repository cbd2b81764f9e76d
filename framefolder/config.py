"""
Reader Configuration
====================

Settings that control how an image folder is read and calibrated. All
values have defaults matching the behaviour expected by the odometry
front-end, so a plain ``ReaderConfig()`` is usually enough.

Example:
    config = ReaderConfig.from_yaml("configs/reader.yaml")
    reader = ImageFolderReader(path, calib, config=config)

YAML layout (all keys optional):
    photometric_mode: 2        # 0 = none, 1 = gamma, 2 = gamma + vignette
    use_exposure: true
    pyramid_levels: 5
    archive_buffer_multiplier: 6
    archive_buffer_growth: 5
    archive_buffer_slack: 10000
    default_frame_interval: 0.1
"""

import logging
from dataclasses import dataclass, fields, asdict
from enum import IntEnum
from pathlib import Path
from typing import Any, Dict, Union

import yaml

logger = logging.getLogger(__name__)


class PhotometricMode(IntEnum):
    """Which parts of the photometric calibration are applied."""
    NONE = 0
    GAMMA = 1
    GAMMA_VIGNETTE = 2


@dataclass
class ReaderConfig:
    """
    Configuration for ImageFolderReader.

    Attributes:
        photometric_mode: Photometric correction to apply when gamma and
            vignette files are available.
        use_exposure: If False, every calibrated image reports an exposure
            time of 1 regardless of times.txt.
        pyramid_levels: Number of levels in the derived GlobalCalibration
            pyramid. Level 0 is the full-resolution target image.
        archive_buffer_multiplier: Initial archive read buffer holds
            ``width * height * multiplier + slack`` bytes.
        archive_buffer_growth: Factor applied to the multiplier when a
            frame does not fit into the initial buffer.
        archive_buffer_slack: Extra bytes added to every archive buffer.
        default_frame_interval: Seconds between frames reported by
            ``timestamp()`` when no timestamps were loaded.
    """
    photometric_mode: PhotometricMode = PhotometricMode.GAMMA_VIGNETTE
    use_exposure: bool = True
    pyramid_levels: int = 5
    archive_buffer_multiplier: int = 6
    archive_buffer_growth: int = 5
    archive_buffer_slack: int = 10000
    default_frame_interval: float = 0.1

    def __post_init__(self):
        self.photometric_mode = PhotometricMode(int(self.photometric_mode))
        if self.pyramid_levels < 1:
            raise ValueError(f"pyramid_levels must be >= 1, got {self.pyramid_levels}")
        if self.archive_buffer_multiplier < 1 or self.archive_buffer_growth < 1:
            raise ValueError("archive buffer multiplier and growth must be >= 1")
        if self.archive_buffer_slack < 0:
            raise ValueError(f"archive_buffer_slack must be >= 0, got {self.archive_buffer_slack}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReaderConfig":
        """Build a config from a plain dict, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown reader config keys: {sorted(unknown)}")
        return cls(**data)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "ReaderConfig":
        """Load a config from a YAML file. An empty file gives the defaults."""
        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Reader config {path} must contain a mapping")
        logger.info(f"Loaded reader config from {path}")
        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d['photometric_mode'] = int(self.photometric_mode)
        return d
