"""
FEEDBACK PRIORITY MODULE
========================
Decides which form-feedback message is "active" (shown / announced):
- Priority levels and default minimum display durations
- The per-exercise message table, checked when this module is imported
- FeedbackManager: replace / expire / history / stability rules

HOW IT WORKS:
    Every frame, a state machine may propose a message. A candidate only
    becomes active when the current message has been up long enough AND
    the candidate is at least as important.
"""

import logging
import time
from collections import deque
from dataclasses import dataclass, replace
from enum import IntEnum
from typing import Callable, Dict, Optional, Tuple

from .catalog import EXERCISE_IDS

logger = logging.getLogger(__name__)

# ========================================
# FEEDBACK SETTINGS
# ========================================

MAX_FEEDBACK_AGE = 5.0         # Seconds before an un-renewed message is dropped
HISTORY_SIZE = 5               # Recent accepted messages kept for downstream checks
STABILITY_WINDOW = 1.0         # Seconds a message must stay unchanged to count as "stable"
MIN_FEEDBACK_INTERVAL = 1.0    # Never swap messages faster than this


class FeedbackPriority(IntEnum):
    """Higher value wins."""
    ENCOURAGEMENT = 1   # Positive reinforcement
    HELPFUL = 2         # General guidance and tips
    IMPORTANT = 3       # Form corrections that affect the exercise
    CRITICAL = 4        # Safety issues, visibility problems


# Minimum seconds a message stays up before something else may replace it
DEFAULT_MIN_DURATION: Dict[FeedbackPriority, float] = {
    FeedbackPriority.CRITICAL: 3.0,
    FeedbackPriority.IMPORTANT: 2.5,
    FeedbackPriority.HELPFUL: 2.0,
    FeedbackPriority.ENCOURAGEMENT: 1.5,
}


@dataclass(frozen=True)
class FormFeedback:
    message: str
    priority: FeedbackPriority
    timestamp: float
    min_display_duration: float


def create_feedback(message: str, priority: FeedbackPriority, now: float,
                    min_display_duration: Optional[float] = None) -> FormFeedback:
    """Stamp a message with its priority's default minimum duration unless one is given."""
    if min_display_duration is None:
        min_display_duration = DEFAULT_MIN_DURATION[priority]
    return FormFeedback(
        message=message,
        priority=FeedbackPriority(priority),
        timestamp=now,
        min_display_duration=min_display_duration,
    )


# ========================================
# MESSAGE TABLE
# ========================================

@dataclass(frozen=True)
class FeedbackTemplate:
    message: str
    priority: FeedbackPriority

    def build(self, now: float) -> FormFeedback:
        return create_feedback(self.message, self.priority, now)


TemplateKey = Tuple[str, str, Optional[str]]

FEEDBACK_MESSAGES: Dict[TemplateKey, FeedbackTemplate] = {
    # Squats
    ("squats", "visibility", None): FeedbackTemplate(
        "Position yourself so your hips and knees are visible", FeedbackPriority.CRITICAL),
    ("squats", "stance", None): FeedbackTemplate(
        "Keep your knees aligned with your feet, slightly wider stance", FeedbackPriority.IMPORTANT),
    ("squats", "depth", "excellent"): FeedbackTemplate(
        "Excellent depth! Great form!", FeedbackPriority.ENCOURAGEMENT),
    ("squats", "depth", "good"): FeedbackTemplate(
        "Good depth! Hold for a moment at the bottom", FeedbackPriority.ENCOURAGEMENT),
    ("squats", "depth", "partial"): FeedbackTemplate(
        "Good! Go as deep as comfortable for you", FeedbackPriority.ENCOURAGEMENT),
    ("squats", "movement", "descending"): FeedbackTemplate(
        "Begin lowering into your squat, keep chest up", FeedbackPriority.HELPFUL),
    ("squats", "movement", "ascending"): FeedbackTemplate(
        "Push through your heels to stand back up", FeedbackPriority.HELPFUL),
    ("squats", "movement", "completed"): FeedbackTemplate(
        "Good! Keep your back straight for the next rep", FeedbackPriority.ENCOURAGEMENT),

    # Bicep curls
    ("bicep-curls", "visibility", None): FeedbackTemplate(
        "Position yourself so your arms are visible", FeedbackPriority.CRITICAL),
    ("bicep-curls", "arm_sync", None): FeedbackTemplate(
        "Try to keep both arms moving at the same pace", FeedbackPriority.IMPORTANT),
    ("bicep-curls", "elbow_position", None): FeedbackTemplate(
        "Keep your elbow close to your body", FeedbackPriority.IMPORTANT),
    ("bicep-curls", "movement", "contracting"): FeedbackTemplate(
        "Continue curling upward", FeedbackPriority.HELPFUL),
    ("bicep-curls", "movement", "extending"): FeedbackTemplate(
        "Slowly lower your arm", FeedbackPriority.HELPFUL),
    ("bicep-curls", "movement", "top_position"): FeedbackTemplate(
        "Good contraction! Hold briefly at the top", FeedbackPriority.ENCOURAGEMENT),
    ("bicep-curls", "movement", "bottom_position"): FeedbackTemplate(
        "Good extension! Control the downward movement", FeedbackPriority.ENCOURAGEMENT),

    # Push-ups
    ("push-ups", "visibility", None): FeedbackTemplate(
        "Turn side-on so your arms and body are visible", FeedbackPriority.CRITICAL),
    ("push-ups", "body_line", None): FeedbackTemplate(
        "Keep your body in a straight line from head to heels", FeedbackPriority.IMPORTANT),
    ("push-ups", "movement", "completed"): FeedbackTemplate(
        "Nice push-up! Keep your core tight", FeedbackPriority.ENCOURAGEMENT),
}


def _validate_messages(table: Dict[TemplateKey, FeedbackTemplate]) -> None:
    for key, template in table.items():
        exercise_id, category, _ = key
        if exercise_id not in EXERCISE_IDS:
            raise ValueError(f"Feedback entry {key} names unknown exercise '{exercise_id}'")
        if not category:
            raise ValueError(f"Feedback entry {key} has no category")
        if not template.message.strip():
            raise ValueError(f"Feedback entry {key} has an empty message")
        if not isinstance(template.priority, FeedbackPriority):
            raise ValueError(f"Feedback entry {key} has invalid priority {template.priority!r}")


_validate_messages(FEEDBACK_MESSAGES)


def feedback_template(exercise_id: str, category: str, subcategory: Optional[str] = None) -> FeedbackTemplate:
    """
    Look up a message template.

    RAISES:
        KeyError for an unknown (exercise, category, subcategory). State
        machines resolve their templates in __init__.
    """
    key = (exercise_id, category, subcategory)
    try:
        return FEEDBACK_MESSAGES[key]
    except KeyError:
        raise KeyError(f"No feedback message for {key}") from None


# ========================================
# FEEDBACK MANAGER
# ========================================

class FeedbackManager:
    """
    Holds the single active FormFeedback for a session.

    RULES:
        - Replace: accepted if nothing is active, or the active message
          has been shown for its minimum duration AND the candidate's
          priority is >= the active one's.
        - Expire: the active message is dropped once its age exceeds
          max(min_display_duration, max_feedback_age).
        - History: last `history_size` accepted messages, newest first.
        - Stable: the active message text has not changed for `window` s.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic,
                 max_feedback_age: float = MAX_FEEDBACK_AGE,
                 history_size: int = HISTORY_SIZE,
                 stability_window: float = STABILITY_WINDOW,
                 min_feedback_interval: float = MIN_FEEDBACK_INTERVAL):
        self.clock = clock
        self.max_feedback_age = max_feedback_age
        self.stability_window = stability_window
        self.min_feedback_interval = min_feedback_interval
        self._history = deque(maxlen=history_size)
        self._active: Optional[FormFeedback] = None
        self._last_change = 0.0

    def _age(self, feedback: FormFeedback, now: float) -> float:
        # Clock may stall or step back; never report negative age
        return max(0.0, now - feedback.timestamp)

    def _is_expired(self, feedback: FormFeedback, now: float) -> bool:
        limit = max(feedback.min_display_duration, self.max_feedback_age)
        return self._age(feedback, now) > limit

    def _expire(self, now: float) -> None:
        if self._active is not None and self._is_expired(self._active, now):
            logger.debug("Feedback expired: %s", self._active.message)
            self._active = None

    def should_replace(self, candidate: FormFeedback, now: float) -> bool:
        self._expire(now)
        current = self._active
        if current is None:
            return True

        shown_for = self._age(current, now)
        if shown_for < max(current.min_display_duration, self.min_feedback_interval):
            return False

        return candidate.priority >= current.priority

    def propose(self, candidate: Optional[FormFeedback]) -> bool:
        """
        Offer a candidate message. Returns True if it became active.
        """
        if candidate is None:
            return False

        now = self.clock()
        if not self.should_replace(candidate, now):
            return False

        previous = self._active
        accepted = replace(candidate, timestamp=now)
        self._active = accepted
        self._history.appendleft(accepted)
        if previous is None or previous.message != accepted.message:
            self._last_change = now
            logger.debug("Feedback -> [%s] %s", accepted.priority.name, accepted.message)
        return True

    @property
    def active(self) -> Optional[FormFeedback]:
        self._expire(self.clock())
        return self._active

    def current_message(self) -> Optional[str]:
        active = self.active
        return active.message if active else None

    @property
    def history(self) -> Tuple[FormFeedback, ...]:
        return tuple(self._history)

    def is_stable(self, window: Optional[float] = None) -> bool:
        if window is None:
            window = self.stability_window
        now = self.clock()
        self._expire(now)
        if self._active is None:
            return False
        return max(0.0, now - self._last_change) >= window

    def clear(self) -> None:
        self._active = None
        self._history.clear()
        self._last_change = 0.0
