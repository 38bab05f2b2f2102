"""
WORKOUT
=======
Top-level object a front end drives: a RepCountingSession plus a timer,
pause/resume, optional voice announcements and an end-of-workout summary.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from .exercises.base import MachineThresholds
from .models import Exercise, Pose, RepCounterState
from .session import RepCountingSession
from .voice_feedback import SpeechQueue

logger = logging.getLogger(__name__)

READY_MESSAGE = "Get ready to start!"
STARTED_MESSAGE = "Start exercising! Stand in front of the camera."
PAUSED_MESSAGE = "Workout paused"
RESUMED_MESSAGE = "Workout resumed - keep going!"


def format_time(total_seconds: int) -> str:
    """Seconds -> "MM:SS"."""
    minutes, seconds = divmod(int(total_seconds), 60)
    return f"{minutes:02d}:{seconds:02d}"


class WorkoutTimer:
    """Stopwatch that only counts while running."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self._accumulated = 0.0
        self._started_at: Optional[float] = None

    @property
    def is_running(self) -> bool:
        return self._started_at is not None

    @property
    def elapsed(self) -> float:
        if self._started_at is None:
            return self._accumulated
        return self._accumulated + max(0.0, self.clock() - self._started_at)

    @property
    def seconds(self) -> int:
        return int(self.elapsed)

    def start(self) -> None:
        if self._started_at is None:
            self._started_at = self.clock()

    def pause(self) -> None:
        if self._started_at is not None:
            self._accumulated = self.elapsed
            self._started_at = None

    def reset(self) -> None:
        self._accumulated = 0.0
        self._started_at = None


@dataclass(frozen=True)
class WorkoutSummary:
    exercise: Exercise
    reps: int
    duration: int          # seconds of active (unpaused) exercise
    start_time: float      # wall clock, time.time()
    end_time: float


class Workout:
    """
    PARAMETERS:
        exercise: catalog entry
        speaker: optional speech collaborator; enables spoken reps/feedback
        clock: monotonic seconds source shared by every component
        thresholds: optional state machine overrides
    """

    def __init__(self, exercise: Exercise, speaker=None,
                 clock: Callable[[], float] = time.monotonic,
                 thresholds: Optional[MachineThresholds] = None,
                 stability_gate: bool = False):
        self.exercise = exercise
        self.clock = clock
        self.session = RepCountingSession(exercise, clock=clock, thresholds=thresholds)
        self.timer = WorkoutTimer(clock)
        self.speech: Optional[SpeechQueue] = None
        if speaker is not None:
            self.speech = SpeechQueue(speaker, clock=clock, stability_gate=stability_gate)
            self.speech.watch(self.session)
        self.is_active = False
        self.message = READY_MESSAGE
        self._start_time: Optional[float] = None

    def start(self) -> None:
        self.session.reset_counter()
        self.timer.reset()
        self.timer.start()
        self.is_active = True
        self._start_time = time.time()
        self.message = STARTED_MESSAGE
        logger.info("Workout started: %s", self.exercise.name)

    def pause(self) -> None:
        self.is_active = False
        self.timer.pause()
        if self.speech is not None:
            self.speech.stop()
        self.message = PAUSED_MESSAGE

    def resume(self) -> None:
        self.is_active = True
        self.timer.start()
        self.message = RESUMED_MESSAGE

    def reset(self) -> None:
        # The session's on_reset event also clears the speech queue
        self.session.reset_counter()
        self.timer.reset()
        if self.is_active:
            self.timer.start()

    def process_frame(self, poses: Sequence[Pose]) -> RepCounterState:
        if not self.is_active:
            return self.session.state
        state = self.session.process_frame(poses)
        if self.speech is not None:
            self.speech.pump()
        return state

    def finish(self) -> WorkoutSummary:
        self.is_active = False
        self.timer.pause()
        if self.speech is not None:
            self.speech.clear()
        end_time = time.time()
        summary = WorkoutSummary(
            exercise=self.exercise,
            reps=self.session.rep_count,
            duration=self.timer.seconds,
            start_time=self._start_time if self._start_time is not None else end_time,
            end_time=end_time,
        )
        logger.info("Workout finished: %s, %d reps in %s",
                    self.exercise.name, summary.reps, format_time(summary.duration))
        return summary
