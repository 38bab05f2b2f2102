"""
DATA MODEL
==========
Plain value types shared by every part of the engine:
- Keypoint / Pose (what the pose estimator hands us each frame)
- Exercise (static catalog entry)
- RepCounterState (the per-session record the state machines advance)

Keypoint layout follows COCO / MoveNet / YOLOv8-pose (17 points):
    0: nose, 1-2: eyes, 3-4: ears, 5-6: shoulders,
    7-8: elbows, 9-10: wrists, 11-12: hips,
    13-14: knees, 15-16: ankles
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import FrozenSet, Optional, Sequence, Tuple

# ========================================
# KEYPOINT INDICES
# ========================================

NOSE = 0
LEFT_EYE = 1
RIGHT_EYE = 2
LEFT_EAR = 3
RIGHT_EAR = 4
LEFT_SHOULDER = 5
RIGHT_SHOULDER = 6
LEFT_ELBOW = 7
RIGHT_ELBOW = 8
LEFT_WRIST = 9
RIGHT_WRIST = 10
LEFT_HIP = 11
RIGHT_HIP = 12
LEFT_KNEE = 13
RIGHT_KNEE = 14
LEFT_ANKLE = 15
RIGHT_ANKLE = 16

NUM_KEYPOINTS = 17

# Three-point limbs used by the state machines (proximal, joint, distal)
LEFT_ARM = (LEFT_SHOULDER, LEFT_ELBOW, LEFT_WRIST)
RIGHT_ARM = (RIGHT_SHOULDER, RIGHT_ELBOW, RIGHT_WRIST)
LEFT_LEG = (LEFT_HIP, LEFT_KNEE, LEFT_ANKLE)
RIGHT_LEG = (RIGHT_HIP, RIGHT_KNEE, RIGHT_ANKLE)


# ========================================
# POSE TYPES
# ========================================

@dataclass(frozen=True)
class Keypoint:
    """One landmark: normalized (x, y) in [0, 1] plus detector confidence."""
    x: float
    y: float
    confidence: float


@dataclass(frozen=True)
class Pose:
    keypoints: Tuple[Keypoint, ...]
    score: float = 0.0

    def __post_init__(self):
        if len(self.keypoints) != NUM_KEYPOINTS:
            raise ValueError(
                f"Pose needs exactly {NUM_KEYPOINTS} keypoints, got {len(self.keypoints)}"
            )
        # Accept lists from callers but store an immutable tuple
        object.__setattr__(self, "keypoints", tuple(self.keypoints))

    def __getitem__(self, idx: int) -> Keypoint:
        return self.keypoints[idx]

    @classmethod
    def from_array(cls, rows: Sequence[Sequence[float]], score: float = 0.0) -> "Pose":
        """
        Build a pose from a (17, 3) array-like of [x, y, confidence] rows.

        PARAMETERS:
            rows: numpy array or nested list, one row per keypoint
            score: overall detection score for this person
        """
        keypoints = tuple(
            Keypoint(float(r[0]), float(r[1]), float(r[2])) for r in rows
        )
        return cls(keypoints=keypoints, score=float(score))


# ========================================
# EXERCISE TYPES
# ========================================

class ExerciseState(str, Enum):
    """Coarse body-position phase. Squats/push-ups use UP/DOWN, curls use EXTENDED/CONTRACTED."""
    UP = "up"
    DOWN = "down"
    EXTENDED = "extended"
    CONTRACTED = "contracted"


class Difficulty(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


@dataclass(frozen=True)
class Exercise:
    id: str
    name: str
    description: str
    target_muscles: FrozenSet[str]
    difficulty: Difficulty
    instructions: Tuple[str, ...]
    initial_state: ExerciseState


@dataclass(frozen=True)
class RepCounterState:
    """
    Authoritative per-session record.

    Frozen: state machines hand back a new instance (dataclasses.replace)
    instead of mutating the one the session holds.
    """
    current_state: ExerciseState
    rep_count: int = 0
    last_state_change: float = 0.0
    form_feedback: Optional[str] = None

    @classmethod
    def initial(cls, exercise: Exercise, now: float) -> "RepCounterState":
        return cls(
            current_state=exercise.initial_state,
            rep_count=0,
            last_state_change=now,
            form_feedback=None,
        )

    def with_feedback(self, message: Optional[str]) -> "RepCounterState":
        if message == self.form_feedback:
            return self
        return replace(self, form_feedback=message)
