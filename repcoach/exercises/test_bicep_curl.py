import pytest

from repcoach import models
from repcoach.conftest import arm_pose, make_pose
from repcoach.exercises import BicepCurlStateMachine, CurlThresholds
from repcoach.feedback import FEEDBACK_MESSAGES
from repcoach.models import ExerciseState, Keypoint, Pose, RepCounterState


def start_state(last_change=-1.0, current=ExerciseState.EXTENDED, reps=0):
    return RepCounterState(current_state=current, rep_count=reps, last_state_change=last_change)


def message(*key):
    if len(key) == 2:
        key = key + (None,)
    return FEEDBACK_MESSAGES[key].message


def hide(pose, indices, confidence=0.05):
    keypoints = list(pose.keypoints)
    for i in indices:
        kp = keypoints[i]
        keypoints[i] = Keypoint(kp.x, kp.y, confidence)
    return Pose(tuple(keypoints), pose.score)


def test_curl_up_then_down_counts_rep():
    machine = BicepCurlStateMachine()
    state = machine.process(arm_pose(35, 35), start_state(), now=0.0).state
    assert state.current_state == ExerciseState.CONTRACTED
    assert state.rep_count == 0

    result = machine.process(arm_pose(150, 150), state, now=1.0)
    assert result.state.current_state == ExerciseState.EXTENDED
    assert result.state.rep_count == 1
    assert result.feedback.message == message("bicep-curls", "movement", "bottom_position")


def test_debounce_after_contraction():
    machine = BicepCurlStateMachine()
    state = machine.process(arm_pose(35, 35), start_state(), now=0.0).state
    assert machine.process(arm_pose(150, 150), state, now=0.2).state is state
    assert machine.process(arm_pose(150, 150), state, now=0.6).state.rep_count == 1


def test_between_thresholds_holds_state():
    machine = BicepCurlStateMachine()
    for current in (ExerciseState.EXTENDED, ExerciseState.CONTRACTED):
        state = start_state(current=current)
        for i, angle in enumerate([85, 120, 100, 135, 90]):
            state = machine.process(arm_pose(angle, angle), state, now=float(i)).state
        assert state.current_state == current
        assert state.rep_count == 0


def test_more_bent_arm_drives_the_count():
    machine = BicepCurlStateMachine()
    reading = machine.measure(arm_pose(60, 120))
    assert reading.angle == pytest.approx(60, abs=0.01)
    assert reading.left_angle == pytest.approx(60, abs=0.01)
    assert reading.right_angle == pytest.approx(120, abs=0.01)

    state = machine.process(arm_pose(60, 120), start_state(), now=0.0).state
    assert state.current_state == ExerciseState.CONTRACTED


def test_single_visible_arm_is_enough():
    machine = BicepCurlStateMachine()
    pose = hide(arm_pose(right_angle=35), [models.LEFT_SHOULDER, models.LEFT_ELBOW, models.LEFT_WRIST])
    reading = machine.measure(pose)
    assert reading.left_angle is None
    assert reading.angle == pytest.approx(35, abs=0.01)

    state = machine.process(pose, start_state(), now=0.0).state
    assert state.current_state == ExerciseState.CONTRACTED


def test_degenerate_arm_is_unreliable():
    machine = BicepCurlStateMachine()
    # Wrists detected on top of the elbows
    pose = make_pose({
        models.LEFT_WRIST: (0.45, 0.45),
        models.RIGHT_WRIST: (0.55, 0.45),
    })
    assert machine.measure(pose) is None
    state = start_state()
    assert machine.process(pose, state, now=0.0).state is state


def test_low_confidence_point_excludes_arm():
    machine = BicepCurlStateMachine()
    # Two arm points still clear the quorum, but the wrist is below the angle floor
    pose = hide(arm_pose(35, None), [models.LEFT_WRIST], confidence=0.15)
    reading = machine.measure(pose)
    assert reading.left_angle is None
    assert reading.angle == pytest.approx(180, abs=0.01)


def test_arm_sync_outranks_top_position():
    machine = BicepCurlStateMachine()
    result = machine.process(arm_pose(35, 150), start_state(last_change=-10.0), now=0.0)
    assert result.state.current_state == ExerciseState.CONTRACTED
    assert result.feedback.message == message("bicep-curls", "arm_sync")


def test_top_position_praise_for_deep_curl():
    machine = BicepCurlStateMachine()
    result = machine.process(arm_pose(30, 35), start_state(last_change=-10.0), now=0.0)
    assert result.feedback.message == message("bicep-curls", "movement", "top_position")


def test_elbow_drift_feedback():
    machine = BicepCurlStateMachine()
    pose = make_pose({
        models.LEFT_ELBOW: (0.65, 0.45),
        models.LEFT_WRIST: (0.65, 0.60),
    })
    result = machine.process(pose, start_state(last_change=-10.0), now=0.0)
    assert result.state.current_state == ExerciseState.EXTENDED
    assert result.feedback.message == message("bicep-curls", "elbow_position")


def test_contracting_guidance_half_way_up():
    machine = BicepCurlStateMachine()
    result = machine.process(arm_pose(100, 100), start_state(last_change=-10.0), now=0.0)
    assert result.state.current_state == ExerciseState.EXTENDED
    assert result.feedback.message == message("bicep-curls", "movement", "contracting")


def test_hidden_arms_warn_after_delay():
    machine = BicepCurlStateMachine()
    arms = [models.LEFT_SHOULDER, models.LEFT_ELBOW, models.LEFT_WRIST,
            models.RIGHT_SHOULDER, models.RIGHT_ELBOW, models.RIGHT_WRIST]
    pose = hide(arm_pose(35, 35), arms)
    state = start_state(last_change=0.0)
    assert machine.process(pose, state, now=2.0).feedback is None
    result = machine.process(pose, state, now=3.0)
    assert result.state is state
    assert result.feedback.message == message("bicep-curls", "visibility")


def test_inverted_thresholds_rejected():
    with pytest.raises(ValueError):
        CurlThresholds(contracted_angle=150, extended_angle=140)
