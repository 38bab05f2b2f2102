"""
REP COUNTING SESSION
====================
Owns the authoritative RepCounterState for one workout and ties together:
    pose frames ──> exercise state machine ──> FeedbackManager ──> listeners

Listeners (e.g. the speech queue) are plain objects with any of:
    on_rep_completed(rep_count)
    on_state_changed(old_state, new_state)
    on_feedback(form_feedback)
    on_reset()
"""

import logging
import time
from typing import Callable, List, Optional, Sequence

from .exercises import create_state_machine
from .exercises.base import MachineThresholds
from .feedback import FeedbackManager, FormFeedback
from .models import Exercise, ExerciseState, Pose, RepCounterState

logger = logging.getLogger(__name__)


class RepCountingSession:
    """
    Single-threaded controller: call process_frame() once per pose frame.

    PARAMETERS:
        exercise: catalog entry for the workout
        clock: monotonic seconds source (injectable for tests)
        thresholds: optional per-exercise threshold overrides
        feedback_manager: optional pre-configured FeedbackManager
    """

    def __init__(self, exercise: Exercise, clock: Callable[[], float] = time.monotonic,
                 thresholds: Optional[MachineThresholds] = None,
                 feedback_manager: Optional[FeedbackManager] = None):
        self.exercise = exercise
        self.clock = clock
        self._machine = create_state_machine(exercise.id, thresholds)
        if self._machine is None:
            logger.warning("No rep counter for exercise '%s'; frames will be ignored", exercise.id)
        self._feedback = feedback_manager or FeedbackManager(clock=clock)
        self._listeners: List[object] = []
        self._state = RepCounterState.initial(exercise, clock())

    # ----- read access -----

    @property
    def is_supported(self) -> bool:
        return self._machine is not None

    @property
    def state(self) -> RepCounterState:
        """Immutable snapshot; refreshes feedback expiry on read."""
        self._state = self._state.with_feedback(self._feedback.current_message())
        return self._state

    @property
    def rep_count(self) -> int:
        return self._state.rep_count

    @property
    def current_state(self) -> ExerciseState:
        return self._state.current_state

    def get_form_feedback(self) -> Optional[str]:
        return self._feedback.current_message()

    def current_feedback(self) -> Optional[FormFeedback]:
        return self._feedback.active

    def is_feedback_stable(self, window: Optional[float] = None) -> bool:
        return self._feedback.is_stable(window)

    # ----- listeners -----

    def add_listener(self, listener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, event: str, *args) -> None:
        for listener in list(self._listeners):
            handler = getattr(listener, event, None)
            if handler is None:
                continue
            try:
                handler(*args)
            except Exception:
                # A broken listener must never stop the frame loop
                logger.exception("Listener %r failed handling %s", listener, event)

    # ----- operations -----

    def process_frame(self, poses: Sequence[Pose]) -> RepCounterState:
        """
        Advance the session with one frame of poses.

        Only the first (highest-score) pose is used. Empty frames and
        unsupported exercises leave the state untouched.
        """
        if not poses or self._machine is None:
            return self.state

        previous = self._state
        result = self._machine.process(poses[0], previous, self.clock())

        accepted = self._feedback.propose(result.feedback)
        self._state = result.state.with_feedback(self._feedback.current_message())

        if self._state.current_state != previous.current_state:
            logger.debug("New rep state: %s", self._state)
            self._emit("on_state_changed", previous.current_state, self._state.current_state)
        if self._state.rep_count > previous.rep_count:
            self._emit("on_rep_completed", self._state.rep_count)
        if accepted:
            self._emit("on_feedback", self._feedback.active)

        return self._state

    def reset_counter(self) -> RepCounterState:
        """Back to the exercise's initial state. Safe to call any time, any number of times."""
        self._feedback.clear()
        self._state = RepCounterState.initial(self.exercise, self.clock())
        self._emit("on_reset")
        return self._state
