import pytest

from repcoach.catalog import get_exercise_by_id
from repcoach.conftest import squat_pose
from repcoach.exercises import SquatStateMachine, SquatThresholds
from repcoach.feedback import FEEDBACK_MESSAGES, FeedbackPriority
from repcoach.models import ExerciseState, RepCounterState

DOWN_POSE = squat_pose(hip_y=0.60, knee_y=0.50)
UP_POSE = squat_pose(hip_y=0.40, knee_y=0.50)


def start_state(last_change=-10.0, current=ExerciseState.UP, reps=0):
    return RepCounterState(current_state=current, rep_count=reps, last_state_change=last_change)


def message(key):
    return FEEDBACK_MESSAGES[key].message


def test_down_then_up_counts_one_rep():
    machine = SquatStateMachine()
    result = machine.process(DOWN_POSE, start_state(), now=0.0)
    assert result.state.current_state == ExerciseState.DOWN
    assert result.state.rep_count == 0
    assert result.state.last_state_change == 0.0

    result = machine.process(UP_POSE, result.state, now=1.0)
    assert result.state.current_state == ExerciseState.UP
    assert result.state.rep_count == 1


def test_input_state_is_not_mutated():
    machine = SquatStateMachine()
    state = start_state()
    machine.process(DOWN_POSE, state, now=0.0)
    assert state.current_state == ExerciseState.UP


def test_hysteresis_band_never_transitions():
    machine = SquatStateMachine()
    for current in (ExerciseState.UP, ExerciseState.DOWN):
        state = start_state(current=current)
        now = 0.0
        # Oscillate inside the gap: knee - up_threshold < hip < knee + down_threshold
        for hip_y in [0.49, 0.54, 0.485, 0.545, 0.50] * 4:
            now += 1.0
            state = machine.process(squat_pose(hip_y, 0.50), state, now).state
        assert state.current_state == current
        assert state.rep_count == 0


def test_debounce_blocks_second_transition():
    machine = SquatStateMachine()
    state = machine.process(DOWN_POSE, start_state(), now=0.0).state
    assert state.current_state == ExerciseState.DOWN

    result = machine.process(UP_POSE, state, now=0.3)
    assert result.state is state
    assert result.feedback is None

    state = machine.process(UP_POSE, state, now=0.9).state
    assert state.current_state == ExerciseState.UP
    assert state.rep_count == 1


def test_rep_count_is_monotonic_one_per_cycle():
    machine = SquatStateMachine()
    state = start_state()
    now = 0.0
    counts = []
    for _ in range(5):
        for pose in (DOWN_POSE, DOWN_POSE, UP_POSE, UP_POSE):
            now += 1.0
            state = machine.process(pose, state, now).state
            counts.append(state.rep_count)
    assert state.rep_count == 5
    assert all(b - a in (0, 1) for a, b in zip(counts, counts[1:]))


def test_closing_transition_never_counts():
    machine = SquatStateMachine()
    state = machine.process(DOWN_POSE, start_state(reps=3), now=0.0).state
    assert state.rep_count == 3


def test_invisible_legs_never_change_state():
    machine = SquatStateMachine()
    state = start_state(last_change=0.0)
    for i, hip_y in enumerate([0.9, 0.1, 0.9, 0.1, 0.9]):
        result = machine.process(squat_pose(hip_y, 0.5, confidence=0.1), state, now=float(i))
        assert result.state is state
    assert state.current_state == ExerciseState.UP
    assert state.rep_count == 0


def test_visibility_warning_after_delay():
    machine = SquatStateMachine()
    state = start_state(last_change=0.0)
    hidden = squat_pose(0.6, 0.5, confidence=0.1)

    assert machine.process(hidden, state, now=1.0).feedback is None

    feedback = machine.process(hidden, state, now=3.5).feedback
    assert feedback.message == message(("squats", "visibility", None))
    assert feedback.priority == FeedbackPriority.CRITICAL


def test_unreliable_positions_skip_frame():
    machine = SquatStateMachine()
    state = start_state()
    # Hips reported at the frame edge (y=0) with high confidence
    result = machine.process(squat_pose(0.0, 0.5), state, now=0.0)
    assert result.state is state
    assert result.feedback is None


def test_one_sided_occlusion_uses_confident_side():
    from repcoach import models
    from repcoach.conftest import make_pose

    machine = SquatStateMachine()
    # Left leg clearly in a deep squat, right hip misdetected high with low confidence
    pose = make_pose({
        models.LEFT_HIP: (0.46, 0.62, 0.95),
        models.RIGHT_HIP: (0.54, 0.20, 0.05),
        models.LEFT_KNEE: (0.45, 0.50, 0.95),
        models.RIGHT_KNEE: (0.55, 0.50, 0.95),
    })
    state = machine.process(pose, start_state(), now=0.0).state
    assert state.current_state == ExerciseState.DOWN


def test_narrow_stance_feedback_after_dwell():
    from repcoach import models
    from repcoach.conftest import make_pose

    machine = SquatStateMachine()
    pose = make_pose({
        models.LEFT_HIP: (0.48, 0.40),
        models.RIGHT_HIP: (0.52, 0.40),
        models.LEFT_KNEE: (0.48, 0.50),
        models.RIGHT_KNEE: (0.52, 0.50),
    })
    state = start_state(last_change=0.0)
    assert machine.process(pose, state, now=1.0).feedback is None
    feedback = machine.process(pose, state, now=4.0).feedback
    assert feedback.message == message(("squats", "stance", None))


def test_depth_feedback_on_descent():
    machine = SquatStateMachine()
    # ratio = (0.85 - 0.9) / (0.5 - 0.9) = 0.125 -> excellent
    result = machine.process(squat_pose(0.85, 0.50), start_state(), now=0.0)
    assert result.feedback.message == message(("squats", "depth", "excellent"))


def test_completed_feedback_on_rep():
    machine = SquatStateMachine()
    state = start_state(current=ExerciseState.DOWN)
    result = machine.process(UP_POSE, state, now=0.0)
    assert result.feedback.message == message(("squats", "movement", "completed"))


def test_ascending_guidance_when_holding_bottom():
    machine = SquatStateMachine()
    state = start_state(last_change=0.0, current=ExerciseState.DOWN)
    hold = squat_pose(0.52, 0.50)
    assert machine.process(hold, state, now=1.0).feedback is None
    feedback = machine.process(hold, state, now=3.5).feedback
    assert feedback.message == message(("squats", "movement", "ascending"))


def test_thresholds_are_tunable():
    machine = SquatStateMachine(SquatThresholds(down_threshold=0.15, up_threshold=0.05))
    # 0.10 below the knee is no longer deep enough
    state = machine.process(DOWN_POSE, start_state(), now=0.0).state
    assert state.current_state == ExerciseState.UP


def test_thresholds_without_gap_rejected():
    with pytest.raises(ValueError):
        SquatThresholds(down_threshold=-0.05, up_threshold=0.02)


def test_wrong_thresholds_type_rejected():
    from repcoach.exercises import CurlThresholds
    with pytest.raises(TypeError):
        SquatStateMachine(CurlThresholds())


def test_catalog_initial_state_matches_machine():
    assert get_exercise_by_id("squats").initial_state == SquatStateMachine.open_state
