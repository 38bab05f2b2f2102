"""
EXERCISE CATALOG
================
Static reference data for the supported exercises. Loaded once, never mutated.
"""

from typing import Optional

from .models import Difficulty, Exercise, ExerciseState


class UnknownExerciseError(KeyError):
    """Raised by require_exercise() when a workout is started with a bad id."""


EXERCISES = (
    Exercise(
        id="squats",
        name="Squats",
        description="Lower body strength exercise targeting quadriceps, glutes, and hamstrings",
        target_muscles=frozenset({"Quadriceps", "Glutes", "Hamstrings", "Core"}),
        difficulty=Difficulty.BEGINNER,
        instructions=(
            "Stand with feet shoulder-width apart",
            "Lower your body by bending your knees and hips",
            "Keep your chest up and knees behind your toes",
            "Lower until thighs are parallel to the floor",
            "Push through your heels to return to starting position",
        ),
        initial_state=ExerciseState.UP,
    ),
    Exercise(
        id="bicep-curls",
        name="Bicep Curls",
        description="Upper body exercise targeting the biceps",
        target_muscles=frozenset({"Biceps", "Forearms"}),
        difficulty=Difficulty.BEGINNER,
        instructions=(
            "Stand with feet shoulder-width apart",
            "Hold weights with arms extended down",
            "Keep elbows close to your sides",
            "Curl weights up by contracting biceps",
            "Slowly lower weights back to starting position",
        ),
        initial_state=ExerciseState.EXTENDED,
    ),
    Exercise(
        id="push-ups",
        name="Push-ups",
        description="Bodyweight pressing exercise for chest, shoulders, and triceps",
        target_muscles=frozenset({"Chest", "Shoulders", "Triceps", "Core"}),
        difficulty=Difficulty.INTERMEDIATE,
        instructions=(
            "Face the camera side-on",
            "Start in a high plank with hands under your shoulders",
            "Lower your chest by bending your elbows",
            "Keep your body in a straight line",
            "Press back up until your arms are straight",
        ),
        initial_state=ExerciseState.UP,
    ),
)

EXERCISE_IDS = frozenset(exercise.id for exercise in EXERCISES)

_BY_ID = {exercise.id: exercise for exercise in EXERCISES}


def get_exercise_by_id(exercise_id: str) -> Optional[Exercise]:
    """Returns None for an unknown id ("exercise unavailable")."""
    return _BY_ID.get(exercise_id)


def require_exercise(exercise_id: str) -> Exercise:
    exercise = _BY_ID.get(exercise_id)
    if exercise is None:
        raise UnknownExerciseError(exercise_id)
    return exercise
