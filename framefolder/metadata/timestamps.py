"""
Timestamp and Exposure Loading
==============================

Reads ``times.txt``, which lives next to the image folder (or archive):

    <dataset>/
        images/  or  images.zip
        times.txt

Each line is ``<id> <timestamp> [<exposure>]``. Timestamps are in seconds,
exposures in milliseconds; a missing exposure is stored as 0 ("unknown").
Lines that do not parse are skipped. As with C's ``%f``, an exposure
token is read up to its first non-numeric character (``12ms`` is 12).

After parsing, ``enforce_consistency`` repairs isolated unknown exposures
and drops collections that do not line up with the images.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

TIMES_FILE_NAME = "times.txt"

_LEADING_NUMBER = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


@dataclass
class TimestampRecord:
    frame_id: int
    timestamp: float
    exposure: float = 0.0


def times_file_for(dataset_path: str) -> str:
    """
    Location of times.txt for a dataset root.

    The file sits in the directory containing the root, i.e. everything up
    to the last '/' of the root path.
    """
    dataset_path = str(dataset_path)
    cut = dataset_path.rfind('/')
    base = dataset_path[:cut] if cut >= 0 else dataset_path
    return base + "/" + TIMES_FILE_NAME


def parse_times_line(line: str) -> Optional[TimestampRecord]:
    """Parse one times.txt line, or return None if it is not a record."""
    parts = line.split()
    if len(parts) < 2:
        return None
    try:
        frame_id = int(parts[0])
        stamp = float(parts[1])
    except ValueError:
        return None

    exposure = 0.0
    if len(parts) >= 3:
        match = _LEADING_NUMBER.match(parts[2])
        if match:
            exposure = float(match.group())
    return TimestampRecord(frame_id, stamp, exposure)


def read_times_file(filepath: str) -> List[TimestampRecord]:
    """
    Read all parsable records of a times file in file order.

    A missing or unreadable file yields an empty list. Undecodable bytes
    are replaced, so the affected line fails to parse and is skipped.
    """
    path = Path(filepath)
    if not path.is_file():
        logger.info(f"No timestamp file at {filepath}")
        return []

    records = []
    try:
        with open(path, 'r', encoding='utf-8', errors='replace') as f:
            for line in f:
                record = parse_times_line(line)
                if record is not None:
                    records.append(record)
    except OSError as e:
        logger.warning(f"Could not read timestamp file {filepath}: {e}")
        return []
    logger.debug(f"Parsed {len(records)} timestamp records from {filepath}")
    return records


def repair_exposures(exposures: Sequence[float]) -> List[float]:
    """
    Fill unknown (zero) exposures from their immediate neighbours.

    Each zero is replaced by the mean of the positive values directly to its
    left and right. Neighbours are taken from the input, so a repaired value
    never feeds into the repair of the next index. Zeros with no positive
    neighbour stay zero.

    Example:
        [0, 5, 0, 0, 8, 0] -> [5, 5, 5, 8, 8, 8]
    """
    source = list(exposures)
    repaired = list(source)
    for i, value in enumerate(source):
        if value != 0:
            continue
        total, num = 0.0, 0
        if i > 0 and source[i - 1] > 0:
            total += source[i - 1]
            num += 1
        if i + 1 < len(source) and source[i + 1] > 0:
            total += source[i + 1]
            num += 1
        if num > 0:
            repaired[i] = total / num
    return repaired


def enforce_consistency(
    timestamps: Sequence[float],
    exposures: Sequence[float],
    num_images: int,
) -> Tuple[List[float], List[float]]:
    """
    Repair exposures and discard collections that do not match the images.

    Timestamps gate exposures, never the other way round:
    1. If the timestamp count differs from num_images, both are dropped.
    2. If the exposure count differs from num_images, or an exposure is
       still zero after repair, only the exposures are dropped.

    Returns:
        (timestamps, exposures) - each either empty or num_images long
    """
    timestamps = list(timestamps)
    exposures = repair_exposures(exposures)

    exposures_good = len(exposures) == num_images and all(e != 0 for e in exposures)

    if len(timestamps) != num_images:
        if timestamps:
            logger.warning(
                f"Got {len(timestamps)} timestamps for {num_images} images, "
                "discarding timestamps and exposures"
            )
        timestamps = []
        exposures = []

    if len(exposures) != num_images or not exposures_good:
        if exposures:
            logger.warning("Exposures incomplete or unrepairable, discarding exposures")
        exposures = []

    logger.info(
        f"Got {num_images} images and {len(timestamps)} timestamps "
        f"and {len(exposures)} exposures"
    )
    return timestamps, exposures


def load_timestamps(dataset_path: str, num_images: int) -> Tuple[List[float], List[float]]:
    """
    Load and validate timestamps and exposures for a dataset root.

    Returns:
        (timestamps, exposures) after enforce_consistency
    """
    records = read_times_file(times_file_for(dataset_path))
    timestamps = [r.timestamp for r in records]
    exposures = [r.exposure for r in records]
    return enforce_consistency(timestamps, exposures, num_images)
