"""
SQUAT MODULE
============
Contains all squat-specific logic:
- Thresholds and constants
- State machine for rep counting (hip height vs knee height)
- Depth / stance / movement feedback rules
"""

from dataclasses import dataclass
from typing import List, NamedTuple, Optional, Tuple

from .. import geometry
from ..feedback import FeedbackTemplate
from ..models import (
    LEFT_ANKLE, LEFT_HIP, LEFT_KNEE, LEFT_LEG,
    RIGHT_ANKLE, RIGHT_HIP, RIGHT_KNEE, RIGHT_LEG,
    ExerciseState, Pose, RepCounterState,
)
from .base import MachineThresholds, RepStateMachine

# ========================================
# SQUAT THRESHOLDS & CONSTANTS
# ========================================

# Image y grows downward: hip_y > knee_y means the hip is below the knee.
SQUAT_DOWN_THRESHOLD = 0.05    # Hip this far below knee = "down"
SQUAT_UP_THRESHOLD = 0.02      # Hip this far above knee = back "up" (rep)
SQUAT_DEBOUNCE = 0.8           # Seconds between accepted state changes

MIN_KNEE_WIDTH = 0.08          # Narrower than this = knees caving in
DEFAULT_KNEE_WIDTH = 0.15      # Used when one knee is poorly detected
BEGIN_SQUAT_MARGIN = 0.05      # Hip within this of knee height = starting to descend
MIN_TIME_IN_DOWN = 2.0         # Seconds at the bottom before "push up" guidance

EXCELLENT_DEPTH_RATIO = 0.5    # (hip-ankle)/(knee-ankle) below this = excellent depth
GOOD_DEPTH_RATIO = 0.7


@dataclass
class SquatThresholds(MachineThresholds):
    down_threshold: float = SQUAT_DOWN_THRESHOLD
    up_threshold: float = SQUAT_UP_THRESHOLD
    debounce: float = SQUAT_DEBOUNCE
    min_knee_width: float = MIN_KNEE_WIDTH
    default_knee_width: float = DEFAULT_KNEE_WIDTH
    begin_squat_margin: float = BEGIN_SQUAT_MARGIN
    min_time_in_down: float = MIN_TIME_IN_DOWN
    excellent_depth_ratio: float = EXCELLENT_DEPTH_RATIO
    good_depth_ratio: float = GOOD_DEPTH_RATIO

    def __post_init__(self):
        super().__post_init__()
        # The two bands around knee height must not touch, or noise at the
        # boundary flips the state every frame.
        if self.down_threshold + self.up_threshold <= 0:
            raise ValueError("down_threshold + up_threshold must leave a hysteresis gap")
        if self.excellent_depth_ratio > self.good_depth_ratio:
            raise ValueError("excellent_depth_ratio must not exceed good_depth_ratio")


class SquatReading(NamedTuple):
    hip_y: float
    knee_y: float
    knee_width: float
    ankle_y: Optional[float]


# ========================================
# SQUAT STATE MACHINE
# ========================================

class SquatStateMachine(RepStateMachine):
    """
    State machine for tracking squat repetitions.

    STATES:
        - "up": Standing (hips above knees)
        - "down": Squatting (hips at or below knee level)

    REP COUNTING:
        - One rep = complete cycle of up → down → up
        - up → down:  hip_y > knee_y + down_threshold
        - down → up:  hip_y < knee_y - up_threshold   (REP!)
        - The gap between the two bands is the hysteresis that stops
          jitter around knee height from double counting
    """

    exercise_id = "squats"
    open_state = ExerciseState.UP
    closed_state = ExerciseState.DOWN
    thresholds_class = SquatThresholds
    regions = (LEFT_LEG, RIGHT_LEG)

    def __init__(self, thresholds: Optional[SquatThresholds] = None):
        super().__init__(thresholds)
        self.stance_feedback = self.template("stance")
        self.depth_feedback = {
            "excellent": self.template("depth", "excellent"),
            "good": self.template("depth", "good"),
            "partial": self.template("depth", "partial"),
        }
        self.descending_feedback = self.template("movement", "descending")
        self.ascending_feedback = self.template("movement", "ascending")
        self.completed_feedback = self.template("movement", "completed")

    def measure(self, pose: Pose) -> Optional[SquatReading]:
        th = self.thresholds
        lh, rh = pose[LEFT_HIP], pose[RIGHT_HIP]
        lk, rk = pose[LEFT_KNEE], pose[RIGHT_KNEE]
        la, ra = pose[LEFT_ANKLE], pose[RIGHT_ANKLE]

        # Weighted averages favour the better-detected side
        hip_y = geometry.weighted_average([lh.y, rh.y], [lh.confidence, rh.confidence], th.confidence_floor)
        knee_y = geometry.weighted_average([lk.y, rk.y], [lk.confidence, rk.confidence], th.confidence_floor)

        if not (geometry.is_plausible_position(hip_y) and geometry.is_plausible_position(knee_y)):
            return None

        if lk.confidence > th.visibility_threshold and rk.confidence > th.visibility_threshold:
            knee_width = abs(lk.x - rk.x)
        else:
            knee_width = th.default_knee_width

        ankle_y = None
        if la.confidence > th.visibility_threshold and ra.confidence > th.visibility_threshold:
            ankle_y = geometry.weighted_average([la.y, ra.y], [la.confidence, ra.confidence], th.confidence_floor)
            if not geometry.is_plausible_position(ankle_y):
                ankle_y = None

        return SquatReading(hip_y, knee_y, knee_width, ankle_y)

    def step(self, reading: SquatReading, state: RepCounterState, now: float,
             elapsed: float) -> Tuple[RepCounterState, List[FeedbackTemplate]]:
        th = self.thresholds
        dwell_ok = elapsed > th.feedback_interval
        candidates = []

        if dwell_ok and reading.knee_width < th.min_knee_width:
            candidates.append(self.stance_feedback)

        if state.current_state == ExerciseState.UP and reading.hip_y > reading.knee_y + th.down_threshold:
            next_state = self.transition(state, ExerciseState.DOWN, now)
            depth = self._depth_feedback(reading)
            if depth is not None:
                candidates.append(depth)
            return next_state, candidates

        if state.current_state == ExerciseState.DOWN and reading.hip_y < reading.knee_y - th.up_threshold:
            next_state = self.transition(state, ExerciseState.UP, now)
            candidates.append(self.completed_feedback)
            return next_state, candidates

        # In-between: movement guidance
        if dwell_ok:
            if state.current_state == ExerciseState.UP:
                if reading.hip_y > reading.knee_y - th.begin_squat_margin:
                    candidates.append(self.descending_feedback)
            elif elapsed > th.min_time_in_down:
                candidates.append(self.ascending_feedback)

        return state, candidates

    def _depth_feedback(self, reading: SquatReading) -> Optional[FeedbackTemplate]:
        """Grade depth by where the hip sits between knee and ankle."""
        if reading.ankle_y is None:
            return None
        shin = reading.knee_y - reading.ankle_y
        if abs(shin) <= 0.01:
            return None
        ratio = (reading.hip_y - reading.ankle_y) / shin
        th = self.thresholds
        if ratio < th.excellent_depth_ratio:
            return self.depth_feedback["excellent"]
        if ratio < th.good_depth_ratio:
            return self.depth_feedback["good"]
        return self.depth_feedback["partial"]
