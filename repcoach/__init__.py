"""
RepCoach: rep counting and form feedback from 2D pose keypoints.
"""

from .catalog import EXERCISES, UnknownExerciseError, get_exercise_by_id, require_exercise
from .feedback import FeedbackManager, FeedbackPriority, FormFeedback
from .models import Exercise, ExerciseState, Keypoint, Pose, RepCounterState
from .session import RepCountingSession
from .voice_feedback import SpeechQueue
from .workout import Workout, WorkoutSummary

__version__ = "0.1.0"
