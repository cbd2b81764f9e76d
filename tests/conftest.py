"""Shared fixtures: small synthetic sequences on disk."""

import zipfile
from pathlib import Path

import cv2
import numpy as np
import pytest

WIDTH = 64
HEIGHT = 48
FRAME_NAMES = ["img_0.png", "img_1.png", "img_10.png", "img_11.png", "img_2.png", "img_3.png"]

PINHOLE_CALIB = f"Pinhole 40 40 31.5 23.5 0\n{WIDTH} {HEIGHT}\nnone\n{WIDTH} {HEIGHT}\n"
RADTAN_CALIB = (
    f"RadTan 0.6 0.8 0.5 0.5 -0.05 0.01 0.001 -0.001\n"
    f"{WIDTH} {HEIGHT}\ncrop\n{WIDTH} {HEIGHT}\n"
)


def make_frames(n=len(FRAME_NAMES), width=WIDTH, height=HEIGHT, seed=0):
    rng = np.random.default_rng(seed)
    return [rng.integers(0, 256, size=(height, width), dtype=np.uint8) for _ in range(n)]


def write_text(path, text):
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return str(path)


class Sequence:
    """Paths of a synthetic sequence: images/, images.zip and side files."""

    def __init__(self, root: Path):
        self.root = root
        self.image_dir = root / "images"
        self.archive = root / "images.zip"
        self.times_file = root / "times.txt"
        self.calib_file = root / "camera.txt"
        self.poses_file = root / "poses.csv"
        self.frames = {}

    def write_times(self, lines):
        write_text(self.times_file, "\n".join(lines) + "\n")

    def write_poses(self, lines):
        write_text(self.poses_file, "\n".join(lines) + "\n")

    def write_calib(self, text):
        write_text(self.calib_file, text)


@pytest.fixture
def sequence(tmp_path):
    """A six-frame sequence stored both as a directory and as a zip."""
    seq = Sequence(tmp_path / "seq")
    seq.image_dir.mkdir(parents=True)
    for name, img in zip(FRAME_NAMES, make_frames()):
        assert cv2.imwrite(str(seq.image_dir / name), img)
        seq.frames[name] = img

    with zipfile.ZipFile(seq.archive, "w") as zf:
        # Written unsorted on purpose
        for name in reversed(FRAME_NAMES):
            zf.write(seq.image_dir / name, arcname=name)

    seq.write_calib(PINHOLE_CALIB)
    return seq
