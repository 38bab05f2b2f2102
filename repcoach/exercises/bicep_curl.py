"""
BICEP CURL MODULE
=================
Contains all bicep-curl-specific logic:
- Thresholds and constants
- State machine for rep counting (elbow angle, either arm)
- Arm sync / elbow drift / movement feedback rules
"""

from dataclasses import dataclass
from typing import List, NamedTuple, Optional, Tuple

from ..feedback import FeedbackTemplate
from ..models import (
    LEFT_ARM, LEFT_ELBOW, LEFT_SHOULDER,
    RIGHT_ARM, RIGHT_ELBOW, RIGHT_SHOULDER,
    ExerciseState, Keypoint, Pose, RepCounterState,
)
from .base import MachineThresholds, RepStateMachine

# ========================================
# BICEP CURL THRESHOLDS & CONSTANTS
# ========================================

CONTRACTED_ANGLE = 80          # Elbow angle below this = "contracted"
EXTENDED_ANGLE = 140           # Elbow angle above this = "extended" (rep)
CURL_DEBOUNCE = 0.5

ANGLE_CONFIDENCE = 0.2         # Every arm point must clear this to compute an angle
ARM_SYNC_DIFFERENCE = 50       # Degrees between arms before "same pace" tip
ELBOW_DRIFT = 0.15             # Horizontal elbow-shoulder offset = elbow wandering
ELBOW_CONFIDENCE = 0.4
DEEP_CONTRACTION_ANGLE = 40    # Praise the squeeze below this
CONTINUE_CURL_ANGLE = 110      # Half-way up from extended
LOWER_ARM_ANGLE = 100          # Half-way down from contracted


@dataclass
class CurlThresholds(MachineThresholds):
    contracted_angle: float = CONTRACTED_ANGLE
    extended_angle: float = EXTENDED_ANGLE
    debounce: float = CURL_DEBOUNCE
    angle_confidence: float = ANGLE_CONFIDENCE
    arm_sync_difference: float = ARM_SYNC_DIFFERENCE
    elbow_drift: float = ELBOW_DRIFT
    elbow_confidence: float = ELBOW_CONFIDENCE
    deep_contraction_angle: float = DEEP_CONTRACTION_ANGLE
    continue_curl_angle: float = CONTINUE_CURL_ANGLE
    lower_arm_angle: float = LOWER_ARM_ANGLE

    def __post_init__(self):
        super().__post_init__()
        if self.contracted_angle >= self.extended_angle:
            raise ValueError("contracted_angle must be below extended_angle")


class CurlReading(NamedTuple):
    angle: float                   # primary (driving) elbow angle
    left_angle: Optional[float]
    right_angle: Optional[float]
    elbow: Keypoint                # active arm's elbow
    shoulder: Keypoint             # active arm's shoulder


# ========================================
# BICEP CURL STATE MACHINE
# ========================================

class BicepCurlStateMachine(RepStateMachine):
    """
    STATES:
        - "extended": Arm hanging straight
        - "contracted": Weight curled up

    REP COUNTING:
        extended → contracted when angle < contracted_angle
        contracted → extended when angle > extended_angle (REP!)

    The driving angle is the more-bent arm when both are reliable,
    otherwise whichever single arm is reliable.
    """

    exercise_id = "bicep-curls"
    open_state = ExerciseState.EXTENDED
    closed_state = ExerciseState.CONTRACTED
    thresholds_class = CurlThresholds
    regions = (LEFT_ARM, RIGHT_ARM)

    def __init__(self, thresholds: Optional[CurlThresholds] = None):
        super().__init__(thresholds)
        self.arm_sync_feedback = self.template("arm_sync")
        self.elbow_feedback = self.template("elbow_position")
        self.contracting_feedback = self.template("movement", "contracting")
        self.extending_feedback = self.template("movement", "extending")
        self.top_feedback = self.template("movement", "top_position")
        self.bottom_feedback = self.template("movement", "bottom_position")

    def measure(self, pose: Pose) -> Optional[CurlReading]:
        th = self.thresholds
        left = self.limb_angle(pose, LEFT_ARM, th.angle_confidence)
        right = self.limb_angle(pose, RIGHT_ARM, th.angle_confidence)

        if left is not None and (right is None or left <= right):
            return CurlReading(left, left, right, pose[LEFT_ELBOW], pose[LEFT_SHOULDER])
        if right is not None:
            return CurlReading(right, left, right, pose[RIGHT_ELBOW], pose[RIGHT_SHOULDER])
        return None

    def step(self, reading: CurlReading, state: RepCounterState, now: float,
             elapsed: float) -> Tuple[RepCounterState, List[FeedbackTemplate]]:
        th = self.thresholds
        dwell_ok = elapsed > th.feedback_interval
        candidates = []

        if dwell_ok:
            if reading.left_angle is not None and reading.right_angle is not None:
                if abs(reading.left_angle - reading.right_angle) > th.arm_sync_difference:
                    candidates.append(self.arm_sync_feedback)
            if (reading.elbow.confidence > th.elbow_confidence
                    and reading.shoulder.confidence > th.elbow_confidence
                    and abs(reading.elbow.x - reading.shoulder.x) > th.elbow_drift):
                candidates.append(self.elbow_feedback)

        angle = reading.angle

        if state.current_state == ExerciseState.EXTENDED and angle < th.contracted_angle:
            next_state = self.transition(state, ExerciseState.CONTRACTED, now)
            if dwell_ok and angle < th.deep_contraction_angle:
                candidates.append(self.top_feedback)
            return next_state, candidates

        if state.current_state == ExerciseState.CONTRACTED and angle > th.extended_angle:
            next_state = self.transition(state, ExerciseState.EXTENDED, now)
            candidates.append(self.bottom_feedback)
            return next_state, candidates

        if dwell_ok:
            if state.current_state == ExerciseState.EXTENDED and angle < th.continue_curl_angle:
                candidates.append(self.contracting_feedback)
            elif state.current_state == ExerciseState.CONTRACTED and angle > th.lower_arm_angle:
                candidates.append(self.extending_feedback)

        return state, candidates
