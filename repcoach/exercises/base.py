"""
REP STATE MACHINE BASE
======================
Shared pipeline for every exercise:

    pose + state ──> visibility gate ──> measure (aggregate + sanity check)
                 ──> debounce ──> exercise-specific step()

Each exercise subclass supplies:
    - exercise_id, open_state / closed_state
    - regions: the left/right keypoint triples that must be visible
    - measure(pose): a reading, or None when the frame is unreliable
    - step(reading, state, now, elapsed): transitions + feedback candidates

A machine never mutates the state it is given; it returns a new
RepCounterState inside a StepResult together with at most one feedback
candidate for the FeedbackManager.
"""

import logging
from dataclasses import dataclass, fields, replace
from typing import List, Optional, Sequence, Tuple

from .. import geometry
from ..feedback import FeedbackTemplate, FormFeedback, feedback_template
from ..models import ExerciseState, Pose, RepCounterState

logger = logging.getLogger(__name__)

# ========================================
# SHARED THRESHOLDS & CONSTANTS
# ========================================

VISIBILITY_THRESHOLD = 0.3      # Keypoint confidence needed to count as "seen"
VISIBILITY_QUORUM = 2           # Points out of 3 per side needed for a visible side
CONFIDENCE_FLOOR = 0.1          # Minimum weight a side gets in weighted averages
VISIBILITY_WARNING_DELAY = 3.0  # Seconds since last change before nagging about visibility
FEEDBACK_INTERVAL = 3.0         # Seconds in a phase before stance / guidance tips start


@dataclass
class MachineThresholds:
    """Tunables every exercise shares. Subclasses add their own transition thresholds."""
    visibility_threshold: float = VISIBILITY_THRESHOLD
    visibility_quorum: int = VISIBILITY_QUORUM
    confidence_floor: float = CONFIDENCE_FLOOR
    visibility_warning_delay: float = VISIBILITY_WARNING_DELAY
    feedback_interval: float = FEEDBACK_INTERVAL
    debounce: float = 0.5

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, (int, float)) and value < 0:
                raise ValueError(f"{type(self).__name__}.{f.name} must be >= 0, got {value}")
        if not 1 <= self.visibility_quorum <= 3:
            raise ValueError("visibility_quorum must be between 1 and 3")


@dataclass(frozen=True)
class StepResult:
    state: RepCounterState
    feedback: Optional[FormFeedback] = None


def pick_feedback(candidates: Sequence[FeedbackTemplate]) -> Optional[FeedbackTemplate]:
    """Highest priority wins; on a tie the first one raised wins."""
    if not candidates:
        return None
    return max(candidates, key=lambda t: t.priority)


# ========================================
# BASE STATE MACHINE
# ========================================

class RepStateMachine:
    exercise_id: str = ""
    open_state: ExerciseState = ExerciseState.UP
    closed_state: ExerciseState = ExerciseState.DOWN
    thresholds_class = MachineThresholds
    # ((left triple), (right triple)) - at least one side must be visible
    regions: Tuple[Tuple[int, int, int], ...] = ()

    def __init__(self, thresholds: Optional[MachineThresholds] = None):
        if thresholds is None:
            thresholds = self.thresholds_class()
        elif not isinstance(thresholds, self.thresholds_class):
            raise TypeError(
                f"{type(self).__name__} needs {self.thresholds_class.__name__}, "
                f"got {type(thresholds).__name__}"
            )
        self.thresholds = thresholds
        self.visibility_feedback = feedback_template(self.exercise_id, "visibility")

    def template(self, category: str, subcategory: Optional[str] = None) -> FeedbackTemplate:
        return feedback_template(self.exercise_id, category, subcategory)

    # ----- pipeline -----

    def process(self, pose: Pose, state: RepCounterState, now: float) -> StepResult:
        """
        Advance the machine by one frame.

        PARAMETERS:
            pose: the highest-priority pose of this frame
            state: current session state (never modified)
            now: clock reading in seconds

        RETURNS:
            StepResult(next_state, feedback_candidate_or_None)
        """
        th = self.thresholds
        elapsed = max(0.0, now - state.last_state_change)

        if not self.is_visible(pose):
            if elapsed >= th.visibility_warning_delay:
                logger.debug("%s: key body points not visible", self.exercise_id)
                return StepResult(state, self.visibility_feedback.build(now))
            return StepResult(state)

        try:
            reading = self.measure(pose)
        except (ValueError, ArithmeticError) as e:
            logger.debug("%s: error measuring pose: %s", self.exercise_id, e)
            reading = None

        if reading is None:
            logger.debug("%s: skipping transition, unreliable measurement", self.exercise_id)
            return StepResult(state)

        # Debounce: ignore jitter right after a state change
        if elapsed < th.debounce:
            return StepResult(state)

        next_state, candidates = self.step(reading, state, now, elapsed)
        chosen = pick_feedback(candidates)
        return StepResult(next_state, chosen.build(now) if chosen else None)

    def is_visible(self, pose: Pose) -> bool:
        th = self.thresholds
        return any(
            geometry.region_visible([pose[i] for i in side], th.visibility_threshold, th.visibility_quorum)
            for side in self.regions
        )

    def measure(self, pose: Pose):
        raise NotImplementedError

    def step(self, reading, state: RepCounterState, now: float,
             elapsed: float) -> Tuple[RepCounterState, List[FeedbackTemplate]]:
        raise NotImplementedError

    # ----- helpers for subclasses -----

    def transition(self, state: RepCounterState, new_state: ExerciseState, now: float) -> RepCounterState:
        """Move to new_state. Returning to the open state completes a rep."""
        rep_done = state.current_state == self.closed_state and new_state == self.open_state
        next_state = replace(
            state,
            current_state=new_state,
            rep_count=state.rep_count + 1 if rep_done else state.rep_count,
            last_state_change=now,
        )
        if rep_done:
            logger.info("%s rep completed! Total: %d", self.exercise_id, next_state.rep_count)
        else:
            logger.debug("%s: %s -> %s", self.exercise_id, state.current_state.value, new_state.value)
        return next_state

    def limb_angle(self, pose: Pose, limb: Tuple[int, int, int], min_confidence: float) -> Optional[float]:
        """
        Joint angle for a three-point limb, or None when it can't be trusted.

        The limb must be visible by quorum AND every point must clear
        min_confidence; the angle itself must pass the sanity check.
        """
        th = self.thresholds
        points = [pose[i] for i in limb]
        if not geometry.region_visible(points, th.visibility_threshold, th.visibility_quorum):
            return None
        if any(p.confidence <= min_confidence for p in points):
            return None
        angle = geometry.angle_between(*points)
        if not geometry.is_valid_angle(angle):
            logger.debug("%s: rejected angle %r", self.exercise_id, angle)
            return None
        return angle
