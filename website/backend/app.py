"""
Flask Backend Server for RepCoach
Runs the rep-counting engine for browser clients over WebSocket.

The browser either runs its own pose estimator and sends keypoints
('process_poses'), or sends webcam frames for server-side YOLO
('process_frame'). Spoken announcements are sent back as 'speak' events;
the browser plays them and reports 'speech_done' / 'speech_error'.
"""

import base64
import logging
import time

import cv2
import numpy as np
from flask import Flask, jsonify, request
from flask_cors import CORS
from flask_socketio import SocketIO, emit

from repcoach.catalog import EXERCISES, get_exercise_by_id
from repcoach.models import Pose
from repcoach.workout import Workout, format_time

logger = logging.getLogger(__name__)

# Initialize Flask app
app = Flask(__name__)
app.config['SECRET_KEY'] = 'change-me'

# Enable CORS for frontend communication
CORS(app)

# Initialize SocketIO with CORS support
socketio = SocketIO(app, cors_allowed_origins="*", async_mode='threading')

# Store active workouts (session_id -> Workout)
active_workouts = {}

# Per-client pose sources (session_id -> YoloPoseSource), each with its own smoothing
pose_sources = {}

# Server-side YOLO model, loaded on the first 'process_frame' and shared by all clients
_pose_model = None

# Clock every Workout is driven by
session_clock = time.monotonic


class SocketSpeaker:
    """
    Speech collaborator that lives in the browser.

    speak() emits a 'speak' event to one client; completion comes back
    through the 'speech_done' / 'speech_error' handlers below.
    """

    def __init__(self, sid):
        self.sid = sid
        self.on_done = None
        self.on_error = None
        self.is_speaking = False

    def speak(self, text, rate=1.0):
        self.is_speaking = True
        socketio.emit('speak', {'text': text, 'rate': rate}, to=self.sid)

    def stop(self):
        self.is_speaking = False
        socketio.emit('stop_speaking', {}, to=self.sid)

    def finished(self, error=None):
        self.is_speaking = False
        if error is not None:
            if self.on_error is not None:
                self.on_error(RuntimeError(error))
        elif self.on_done is not None:
            self.on_done()


def parse_poses(data):
    """
    Convert a JSON payload into Poses.

    Expected data:
        {'poses': [{'keypoints': [[x, y, c], ...] or [{'x':, 'y':, 'confidence':}, ...],
                    'score': float}, ...]}

    Raises ValueError for anything malformed.
    """
    if not isinstance(data, dict) or not isinstance(data.get('poses'), list):
        raise ValueError("payload must contain a 'poses' list")

    poses = []
    for raw in data['poses']:
        if not isinstance(raw, dict):
            raise ValueError("each pose must be an object")
        rows = []
        for kp in raw.get('keypoints', []):
            if isinstance(kp, dict):
                rows.append([kp.get('x'), kp.get('y'), kp.get('confidence', kp.get('score'))])
            else:
                rows.append(list(kp))
        try:
            poses.append(Pose.from_array(rows, score=raw.get('score', 0.0)))
        except (TypeError, IndexError) as e:
            raise ValueError(f"bad keypoint data: {e}") from None
    return poses


def state_payload(workout):
    state = workout.session.state
    feedback = workout.session.current_feedback()
    return {
        'rep_count': state.rep_count,
        'current_state': state.current_state.value,
        'form_feedback': state.form_feedback,
        'feedback_priority': feedback.priority.name.lower() if feedback else None,
        'elapsed': format_time(workout.timer.seconds),
        'message': workout.message,
    }


def get_pose_model():
    global _pose_model
    if _pose_model is None:
        from repcoach.realtime_detection import YoloPoseSource
        _pose_model = YoloPoseSource().model
    return _pose_model


def get_pose_source(sid):
    source = pose_sources.get(sid)
    if source is None:
        from repcoach.realtime_detection import YoloPoseSource
        source = YoloPoseSource(model=get_pose_model())
        pose_sources[sid] = source
    return source


# ========================================
# REST API ENDPOINTS
# ========================================

@app.route('/health')
def health():
    """Health check endpoint"""
    return jsonify({'status': 'healthy', 'active_sessions': len(active_workouts)})


@app.route('/exercises')
def list_exercises():
    return jsonify([
        {
            'id': e.id,
            'name': e.name,
            'description': e.description,
            'target_muscles': sorted(e.target_muscles),
            'difficulty': e.difficulty.value,
            'instructions': list(e.instructions),
            'initial_state': e.initial_state.value,
        }
        for e in EXERCISES
    ])


# ========================================
# WEBSOCKET EVENTS
# ========================================

@socketio.on('connect')
def handle_connect():
    logger.info("Client connected: %s", request.sid)
    emit('connected', {'message': 'Connected to RepCoach backend'})


@socketio.on('disconnect')
def handle_disconnect(*args):
    logger.info("Client disconnected: %s", request.sid)
    active_workouts.pop(request.sid, None)
    pose_sources.pop(request.sid, None)


@socketio.on('start_session')
def handle_start_session(data):
    """
    Expected data:
        {'exercise_id': 'squats' | 'bicep-curls' | 'push-ups', 'voice': bool}
    """
    data = data or {}
    exercise = get_exercise_by_id(data.get('exercise_id', ''))
    if exercise is None:
        emit('error', {'message': f"Unknown exercise: {data.get('exercise_id')}"})
        return

    speaker = SocketSpeaker(request.sid) if data.get('voice') else None
    workout = Workout(exercise, speaker=speaker, clock=session_clock)
    workout.start()
    active_workouts[request.sid] = workout
    pose_sources.pop(request.sid, None)
    logger.info("Starting session for %s: %s", request.sid, exercise.id)

    emit('session_started', {
        'exercise_id': exercise.id,
        'message': workout.message,
        'state': state_payload(workout),
    })


def _require_workout():
    workout = active_workouts.get(request.sid)
    if workout is None:
        emit('error', {'message': 'No active session. Please start a session first.'})
    return workout


@socketio.on('process_poses')
def handle_process_poses(data):
    """Keypoints from a browser-side pose estimator."""
    workout = _require_workout()
    if workout is None:
        return
    try:
        poses = parse_poses(data)
    except ValueError as e:
        emit('error', {'message': f'Invalid poses: {e}'})
        return
    workout.process_frame(poses)
    emit('frame_result', state_payload(workout))


@socketio.on('process_frame')
def handle_process_frame(data):
    """
    Expected data:
        {'frame': base64 encoded image string (data URL)}
    """
    workout = _require_workout()
    if workout is None:
        return
    try:
        frame_data = data['frame']
        if not isinstance(frame_data, str):
            raise ValueError("frame must be a base64 string")
        img_data = base64.b64decode(frame_data.split(',')[-1])
        if not img_data:
            raise ValueError("empty frame")
        frame = cv2.imdecode(np.frombuffer(img_data, np.uint8), cv2.IMREAD_COLOR)
        if frame is None:
            raise ValueError("could not decode image")
    except (KeyError, TypeError, ValueError, cv2.error) as e:
        emit('error', {'message': f'Error decoding frame: {e}'})
        return

    poses = get_pose_source(request.sid)(frame)
    workout.process_frame(poses)
    emit('frame_result', state_payload(workout))


@socketio.on('speech_done')
def handle_speech_done(*args):
    workout = active_workouts.get(request.sid)
    if workout is not None and workout.speech is not None:
        workout.speech.speaker.finished()
        workout.speech.pump()


@socketio.on('speech_error')
def handle_speech_error(data=None):
    workout = active_workouts.get(request.sid)
    if workout is not None and workout.speech is not None:
        message = (data or {}).get('message', 'speech synthesis error')
        workout.speech.speaker.finished(error=message)
        workout.speech.pump()


@socketio.on('pause_session')
def handle_pause_session(*args):
    workout = _require_workout()
    if workout is not None:
        workout.pause()
        emit('session_paused', state_payload(workout))


@socketio.on('resume_session')
def handle_resume_session(*args):
    workout = _require_workout()
    if workout is not None:
        workout.resume()
        emit('session_resumed', state_payload(workout))


@socketio.on('reset_session')
def handle_reset_session(*args):
    workout = _require_workout()
    if workout is not None:
        workout.reset()
        if request.sid in pose_sources:
            pose_sources[request.sid].reset()
        emit('session_reset', state_payload(workout))


@socketio.on('end_session')
def handle_end_session(*args):
    """End the current workout and send the summary."""
    workout = active_workouts.pop(request.sid, None)
    pose_sources.pop(request.sid, None)
    if workout is None:
        emit('error', {'message': 'No active session to end'})
        return

    summary = workout.finish()
    emit('session_ended', {
        'exercise_id': summary.exercise.id,
        'final_reps': summary.reps,
        'duration': summary.duration,
        'duration_text': format_time(summary.duration),
        'message': 'Session ended successfully',
    })
    logger.info("Session ended for %s. Final reps: %d", request.sid, summary.reps)


# ========================================
# RUN SERVER
# ========================================

if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO)
    print("\n" + "=" * 60)
    print("REPCOACH BACKEND SERVER")
    print("=" * 60)
    print("Server starting on http://localhost:5000")
    print("Press Ctrl+C to stop")
    print("=" * 60 + "\n")

    socketio.run(app, host='0.0.0.0', port=5000, debug=True)
