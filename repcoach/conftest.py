"""Shared pytest fixtures: a controllable clock, synthetic poses and a fake pose model."""

import math
from types import SimpleNamespace

import numpy as np
import pytest

from repcoach import models
from repcoach.models import Keypoint, Pose


class FakeClock:
    def __init__(self, start=0.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds
        return self.now

    def set(self, value):
        self.now = value
        return self.now


# A person standing square to the camera, arms hanging straight
STANDING = {
    models.NOSE: (0.50, 0.10),
    models.LEFT_EYE: (0.48, 0.08),
    models.RIGHT_EYE: (0.52, 0.08),
    models.LEFT_EAR: (0.46, 0.09),
    models.RIGHT_EAR: (0.54, 0.09),
    models.LEFT_SHOULDER: (0.45, 0.25),
    models.RIGHT_SHOULDER: (0.55, 0.25),
    models.LEFT_ELBOW: (0.45, 0.45),
    models.RIGHT_ELBOW: (0.55, 0.45),
    models.LEFT_WRIST: (0.45, 0.60),
    models.RIGHT_WRIST: (0.55, 0.60),
    models.LEFT_HIP: (0.46, 0.50),
    models.RIGHT_HIP: (0.54, 0.50),
    models.LEFT_KNEE: (0.45, 0.70),
    models.RIGHT_KNEE: (0.55, 0.70),
    models.LEFT_ANKLE: (0.45, 0.90),
    models.RIGHT_ANKLE: (0.55, 0.90),
}


def make_pose(overrides=None, confidence=0.9, score=0.95):
    """
    Build a 17-point pose from the standing layout.

    overrides: {index: (x, y) or (x, y, confidence)}
    """
    points = dict(STANDING)
    confidences = {i: confidence for i in points}
    for idx, value in (overrides or {}).items():
        points[idx] = value[:2]
        if len(value) == 3:
            confidences[idx] = value[2]
    keypoints = tuple(
        Keypoint(points[i][0], points[i][1], confidences[i]) for i in range(models.NUM_KEYPOINTS)
    )
    return Pose(keypoints, score)


def squat_pose(hip_y, knee_y=0.5, confidence=0.9, ankle_y=0.9):
    return make_pose({
        models.LEFT_HIP: (0.46, hip_y, confidence),
        models.RIGHT_HIP: (0.54, hip_y, confidence),
        models.LEFT_KNEE: (0.45, knee_y, confidence),
        models.RIGHT_KNEE: (0.55, knee_y, confidence),
        models.LEFT_ANKLE: (0.45, ankle_y, confidence),
        models.RIGHT_ANKLE: (0.55, ankle_y, confidence),
    })


def _wrist(elbow, angle_deg, side, length=0.15):
    # Upper arm points straight up from the elbow; rotate the forearm away from it
    theta = math.radians(angle_deg)
    dx = length * math.sin(theta) * (1 if side == "left" else -1)
    dy = -length * math.cos(theta)
    return (elbow[0] + dx, elbow[1] + dy)


def arm_pose(left_angle=None, right_angle=None, confidence=0.9, base=None):
    """
    Pose with the given elbow angles. None keeps that arm straight (180°).
    """
    overrides = dict(base or {})
    for side, angle, shoulder_idx, elbow_idx, wrist_idx in (
        ("left", left_angle, models.LEFT_SHOULDER, models.LEFT_ELBOW, models.LEFT_WRIST),
        ("right", right_angle, models.RIGHT_SHOULDER, models.RIGHT_ELBOW, models.RIGHT_WRIST),
    ):
        if angle is None:
            angle = 180.0
        elbow = STANDING[elbow_idx]
        overrides[shoulder_idx] = STANDING[shoulder_idx] + (confidence,)
        overrides[elbow_idx] = elbow + (confidence,)
        overrides[wrist_idx] = _wrist(elbow, angle, side) + (confidence,)
    return make_pose(overrides)


class FakeSpeaker:
    """Records utterances; completion is reported only when a test calls finish()."""

    def __init__(self):
        self.on_done = None
        self.on_error = None
        self.spoken = []
        self.stops = 0
        self.fail = False

    def speak(self, text, rate=1.0):
        if self.fail:
            raise RuntimeError("speaker unavailable")
        self.spoken.append(text)

    def stop(self):
        self.stops += 1

    def finish(self):
        self.on_done()

    def error(self, exc=None):
        self.on_error(exc or RuntimeError("synthesis failed"))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def speaker():
    return FakeSpeaker()


# ----- stand-ins for ultralytics results -----

class FakeTensor:
    def __init__(self, array):
        self.array = np.asarray(array, dtype=float)

    def cpu(self):
        return self

    def numpy(self):
        return self.array

    def __len__(self):
        return len(self.array)


class FakeKeypoints:
    def __init__(self, xy, conf):
        self.xy = FakeTensor(xy)
        self.conf = FakeTensor(conf)

    def __len__(self):
        return len(self.xy)


class FakeBoxes:
    def __init__(self, conf):
        self.conf = FakeTensor(conf)

    def __len__(self):
        return len(self.conf)


class FakePoseModel:
    """
    Callable like a YOLO model. Returns one person whose normalized
    [x, y, conf] rows are `self.rows`, scaled to the frame size.
    """

    def __init__(self, rows):
        self.rows = np.asarray(rows, dtype=float)
        self.calls = 0

    def __call__(self, frame, verbose=False):
        self.calls += 1
        h, w = frame.shape[:2]
        xy = self.rows[None, :, :2] * [w, h]
        conf = self.rows[None, :, 2]
        return [SimpleNamespace(keypoints=FakeKeypoints(xy, conf), boxes=FakeBoxes([0.9]))]
