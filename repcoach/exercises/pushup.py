"""
PUSH-UP MODULE (simplified)
===========================
Elbow-angle rep counter with a single body-line form check. Works best
with the camera side-on.
"""

from dataclasses import dataclass
from typing import List, NamedTuple, Optional, Tuple

from .. import geometry
from ..feedback import FeedbackTemplate
from ..models import (
    LEFT_ANKLE, LEFT_ARM, LEFT_HIP, LEFT_SHOULDER,
    RIGHT_ANKLE, RIGHT_ARM, RIGHT_HIP, RIGHT_SHOULDER,
    ExerciseState, Pose, RepCounterState,
)
from .base import MachineThresholds, RepStateMachine

PUSHUP_DOWN_ANGLE = 90         # Elbow angle below this = "down"
PUSHUP_UP_ANGLE = 150          # Elbow angle above this = "up" (rep)
PUSHUP_DEBOUNCE = 0.6
BODY_LINE_ANGLE = 150          # Shoulder-hip-ankle below this = hips sagging / piking
ANGLE_CONFIDENCE = 0.2


@dataclass
class PushupThresholds(MachineThresholds):
    down_angle: float = PUSHUP_DOWN_ANGLE
    up_angle: float = PUSHUP_UP_ANGLE
    debounce: float = PUSHUP_DEBOUNCE
    body_line_angle: float = BODY_LINE_ANGLE
    angle_confidence: float = ANGLE_CONFIDENCE

    def __post_init__(self):
        super().__post_init__()
        if self.down_angle >= self.up_angle:
            raise ValueError("down_angle must be below up_angle")


class PushupReading(NamedTuple):
    angle: float
    body_angle: Optional[float]


class PushupStateMachine(RepStateMachine):
    """up → down when elbows bend past down_angle, down → up (rep) past up_angle."""

    exercise_id = "push-ups"
    open_state = ExerciseState.UP
    closed_state = ExerciseState.DOWN
    thresholds_class = PushupThresholds
    regions = (LEFT_ARM, RIGHT_ARM)

    def __init__(self, thresholds: Optional[PushupThresholds] = None):
        super().__init__(thresholds)
        self.body_line_feedback = self.template("body_line")
        self.completed_feedback = self.template("movement", "completed")

    def measure(self, pose: Pose) -> Optional[PushupReading]:
        th = self.thresholds
        angles = [a for a in (self.limb_angle(pose, LEFT_ARM, th.angle_confidence),
                              self.limb_angle(pose, RIGHT_ARM, th.angle_confidence))
                  if a is not None]
        if not angles:
            return None
        return PushupReading(min(angles), self._body_angle(pose))

    def _body_angle(self, pose: Pose) -> Optional[float]:
        th = self.thresholds
        sides = [
            [pose[LEFT_SHOULDER], pose[LEFT_HIP], pose[LEFT_ANKLE]],
            [pose[RIGHT_SHOULDER], pose[RIGHT_HIP], pose[RIGHT_ANKLE]],
        ]
        sides = [s for s in sides if all(p.confidence > th.visibility_threshold for p in s)]
        if not sides:
            return None
        best = max(sides, key=lambda s: sum(p.confidence for p in s))
        angle = geometry.angle_between(*best)
        return angle if geometry.is_valid_angle(angle) else None

    def step(self, reading: PushupReading, state: RepCounterState, now: float,
             elapsed: float) -> Tuple[RepCounterState, List[FeedbackTemplate]]:
        th = self.thresholds
        candidates = []

        if (elapsed > th.feedback_interval and reading.body_angle is not None
                and reading.body_angle < th.body_line_angle):
            candidates.append(self.body_line_feedback)

        if state.current_state == ExerciseState.UP and reading.angle < th.down_angle:
            return self.transition(state, ExerciseState.DOWN, now), candidates

        if state.current_state == ExerciseState.DOWN and reading.angle > th.up_angle:
            candidates.append(self.completed_feedback)
            return self.transition(state, ExerciseState.UP, now), candidates

        return state, candidates
