"""
KEYPOINT GEOMETRY
=================
Pure helpers for angles, distances and confidence-weighted averages over
normalized keypoints. Nothing here holds state or raises on bad numbers:
degenerate input comes back as NaN and callers decide what to do with it.
"""

import math
from typing import Iterable, Sequence

import numpy as np

from .models import Keypoint

# Side lengths below this are treated as coincident points
EPS = 1e-9


def distance(a, b):
    """Euclidean distance between two points with .x/.y attributes."""
    return float(np.hypot(a.x - b.x, a.y - b.y))


def angle_between(a, b, c):
    """
    Calculate the angle at vertex b formed by rays b->a and b->c.

    Uses the law of cosines over the three side lengths.

    PARAMETERS:
        a, b, c: Keypoints (anything with .x and .y)

    RETURNS:
        Angle in degrees (0-180), or NaN for a degenerate triangle
        (b coincides with a or c)

    EXAMPLE:
        Elbow angle: shoulder-elbow-wrist
        - 180° = arm straight
        - 40° = fully curled
    """
    side_bc = distance(b, c)  # opposite a
    side_ac = distance(a, c)  # opposite b
    side_ab = distance(a, b)  # opposite c

    denom = 2.0 * side_ab * side_bc
    if denom < EPS:
        return float("nan")

    cosang = (side_ab ** 2 + side_bc ** 2 - side_ac ** 2) / denom
    cosang = np.clip(cosang, -1.0, 1.0)  # rounding can push it just outside
    return float(np.degrees(np.arccos(cosang)))


def is_valid_angle(angle) -> bool:
    return angle is not None and math.isfinite(angle) and 0.0 <= angle <= 180.0


def is_plausible_position(value) -> bool:
    """Normalized coordinate sanity check. Exactly 0 means the detector gave up."""
    return value is not None and math.isfinite(value) and 0.0 < value <= 1.0


def weighted_average(values: Sequence[float], confidences: Sequence[float], floor: float = 0.1) -> float:
    """
    Confidence-weighted mean of symmetric measurements (left/right hip etc.).

    Each weight is max(floor, confidence) so a badly detected side still
    contributes a little but cannot drag the result around.
    """
    weights = np.maximum(floor, np.asarray(confidences, dtype=float))
    total = float(np.sum(weights))
    if total < EPS:
        return float("nan")
    return float(np.dot(np.asarray(values, dtype=float), weights) / total)


def count_visible(keypoints: Iterable[Keypoint], threshold: float) -> int:
    return sum(1 for kp in keypoints if kp.confidence > threshold)


def region_visible(keypoints: Sequence[Keypoint], threshold: float, quorum: int) -> bool:
    """True when at least `quorum` of the region's keypoints clear `threshold`."""
    return count_visible(keypoints, threshold) >= quorum
