"""
REAL-TIME WEBCAM COACH
======================
Runs YOLOv8-pose on a webcam (or video file), feeds the poses into a
Workout and draws reps / phase / feedback on the frame.

Usage:
    python -m repcoach.realtime_detection --exercise squats
    repcoach --exercise bicep-curls --source video.mp4

Controls:
    'q' - Quit
    'p' - Pause/Resume
    'r' - Reset counter
"""

import argparse
import logging
import os
import sys

import cv2
import numpy as np
from ultralytics import YOLO

from .catalog import EXERCISES, get_exercise_by_id
from .models import NUM_KEYPOINTS, Pose
from .voice_feedback import VoiceSpeaker
from .workout import Workout, format_time

logger = logging.getLogger(__name__)

# ========================================
# CONFIGURATION PARAMETERS
# ========================================

# Video input source (0 = default webcam, or path to video file)
VIDEO_SOURCE = 0

# YOLOv8 detects 17 keypoints in COCO format:
#   0: nose, 1-2: eyes, 3-4: ears, 5-6: shoulders,
#   7-8: elbows, 9-10: wrists, 11-12: hips,
#   13-14: knees, 15-16: ankles
MODEL_PATH = os.path.join(os.path.dirname(__file__), "..", "models", "yolov8n-pose.pt")
FALLBACK_MODEL = "yolov8n-pose.pt"   # ultralytics downloads this on first use

SMOOTH_ALPHA = 0.35            # EWMA factor for keypoints (0=no change, 1=no smoothing)
DRAW_CONFIDENCE = 0.2          # Only draw keypoints above this confidence
WINDOW_NAME = "RepCoach"


# ========================================
# HELPER FUNCTIONS: Smoothing & Conversion
# ========================================

def smooth_kp(prev, new, alpha=SMOOTH_ALPHA):
    """
    Apply Exponential Weighted Moving Average (EWMA) smoothing to keypoints.

    Raw pose detection is jittery frame-to-frame; a light EWMA takes the
    edge off before the state machines see it.
    """
    if prev is None or prev.shape != new.shape:
        return new
    return alpha * new + (1 - alpha) * prev


def poses_from_result(result, frame_shape, prev=None, alpha=SMOOTH_ALPHA):
    """
    Convert one ultralytics Results object into normalized Poses.

    PARAMETERS:
        result: ultralytics Results for a single image
        frame_shape: (height, width, ...) of the source frame
        prev: previous (17, 3) array for the top pose, for smoothing
        alpha: smoothing factor

    RETURNS:
        (poses, top_array): poses sorted by detection score (highest first),
        and the smoothed (17, 3) array of the top pose (None if nobody seen)
    """
    keypoints = getattr(result, "keypoints", None)
    if keypoints is None or len(keypoints) == 0:
        return [], None

    h, w = frame_shape[:2]
    xy = keypoints.xy.cpu().numpy()
    if keypoints.conf is not None:
        conf = keypoints.conf.cpu().numpy()
    else:
        conf = np.ones(xy.shape[:2], dtype=float)

    if result.boxes is not None and len(result.boxes) == len(xy):
        scores = result.boxes.conf.cpu().numpy()
    else:
        scores = conf.mean(axis=1)

    order = np.argsort(-scores)
    poses = []
    top = None
    for rank, idx in enumerate(order):
        if xy[idx].shape[0] != NUM_KEYPOINTS:
            continue
        rows = np.column_stack([xy[idx, :, 0] / w, xy[idx, :, 1] / h, conf[idx]])
        rows[:, :2] = np.clip(rows[:, :2], 0.0, 1.0)
        if rank == 0:
            rows = smooth_kp(prev, rows, alpha)
            top = rows
        poses.append(Pose.from_array(rows, score=float(scores[idx])))
    return poses, top


class YoloPoseSource:
    """
    Lazily loaded YOLOv8-pose model producing normalized Poses per frame.

    The smoothing buffer belongs to one person's stream. Several sources
    can share one loaded model by passing it in as `model`.
    """

    def __init__(self, model_path=None, smooth_alpha=SMOOTH_ALPHA, model=None):
        if model_path is None:
            model_path = MODEL_PATH if os.path.exists(MODEL_PATH) else FALLBACK_MODEL
        self.model_path = model_path
        self.smooth_alpha = smooth_alpha
        self._model = model
        self._prev = None

    @property
    def model(self):
        if self._model is None:
            logger.info("Loading pose model from: %s", self.model_path)
            self._model = YOLO(self.model_path)
        return self._model

    def reset(self):
        self._prev = None

    def __call__(self, frame):
        results = self.model(frame, verbose=False)
        if not results:
            self._prev = None
            return []
        poses, self._prev = poses_from_result(results[0], frame.shape, self._prev, self.smooth_alpha)
        return poses


# ========================================
# DRAWING
# ========================================

def draw_overlay(frame, pose, state, feedback, elapsed_seconds=None):
    """Draw keypoints, rep count, phase and the active feedback subtitle."""
    h, w = frame.shape[:2]
    if pose is not None:
        for kp in pose.keypoints:
            if kp.confidence > DRAW_CONFIDENCE:
                cv2.circle(frame, (int(kp.x * w), int(kp.y * h)), 4, (0, 255, 0), -1)

    cv2.putText(frame, f"Reps: {state.rep_count}", (20, 40),
                cv2.FONT_HERSHEY_SIMPLEX, 1.0, (0, 255, 0), 2)
    cv2.putText(frame, f"Phase: {state.current_state.value}", (20, 80),
                cv2.FONT_HERSHEY_SIMPLEX, 0.8, (255, 255, 0), 2)
    if elapsed_seconds is not None:
        cv2.putText(frame, format_time(elapsed_seconds), (w - 120, 40),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.9, (255, 255, 255), 2)

    if feedback:
        y_pos = h - 30
        cv2.rectangle(frame, (10, y_pos - 25), (w - 10, y_pos + 5), (0, 0, 0), -1)
        cv2.putText(frame, feedback, (20, y_pos),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.7, (255, 255, 255), 2, cv2.LINE_AA)
    return frame


# ========================================
# MAIN EXECUTION
# ========================================

def choose_exercise():
    """Prompt the user to pick an exercise from the catalog."""
    print("\n" + "=" * 60)
    print("SELECT EXERCISE")
    print("=" * 60)
    for i, exercise in enumerate(EXERCISES, start=1):
        print(f"{i}. {exercise.name}")
    print("=" * 60)

    while True:
        choice = input(f"Enter your choice (1-{len(EXERCISES)}): ").strip()
        if choice.isdigit() and 1 <= int(choice) <= len(EXERCISES):
            return EXERCISES[int(choice) - 1]
        print("Invalid choice.")


def parse_arguments(argv=None):
    parser = argparse.ArgumentParser(description="RepCoach real-time rep counter")
    parser.add_argument("--exercise", choices=[e.id for e in EXERCISES],
                        help="Exercise to track (prompted if omitted)")
    parser.add_argument("--source", default=str(VIDEO_SOURCE),
                        help="Webcam index or video file path")
    parser.add_argument("--model", default=None, help="Path to a YOLOv8-pose model")
    parser.add_argument("--no-voice", action="store_true", help="Disable spoken feedback")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def main(argv=None):
    """Main function to run the real-time coach."""
    args = parse_arguments(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    exercise = get_exercise_by_id(args.exercise) if args.exercise else choose_exercise()
    source = int(args.source) if args.source.isdigit() else args.source

    speaker = None if args.no_voice else VoiceSpeaker()
    workout = Workout(exercise, speaker=speaker)
    pose_source = YoloPoseSource(args.model)

    cap = cv2.VideoCapture(source)
    if not cap.isOpened():
        print(f"Could not open video source: {args.source}")
        return 1

    cv2.namedWindow(WINDOW_NAME, cv2.WINDOW_NORMAL)
    cv2.resizeWindow(WINDOW_NAME, 1280, 720)

    print("\n" + "=" * 60)
    print("STARTING RepCoach")
    print("=" * 60)
    print(f"Exercise: {exercise.name}")
    for step in exercise.instructions:
        print(f"  - {step}")
    print("\nControls:")
    print("  'q' - Quit")
    print("  'p' - Pause/Resume")
    print("  'r' - Reset counter")
    print("=" * 60 + "\n")

    workout.start()
    try:
        while True:
            ret, frame = cap.read()
            if not ret:
                break

            key = cv2.waitKey(1) & 0xFF
            if key == ord("q"):
                break
            if key == ord("p"):
                if workout.is_active:
                    workout.pause()
                else:
                    workout.resume()
            if key == ord("r"):
                workout.reset()
                pose_source.reset()

            if not workout.is_active:
                cv2.putText(frame, "PAUSED (press 'p' to resume)", (20, 40),
                            cv2.FONT_HERSHEY_SIMPLEX, 1.0, (0, 200, 255), 2)
                cv2.imshow(WINDOW_NAME, frame)
                continue

            poses = pose_source(frame)
            state = workout.process_frame(poses)
            if not poses:
                cv2.putText(frame, "Person not detected", (20, 120),
                            cv2.FONT_HERSHEY_SIMPLEX, 1.0, (0, 0, 255), 2)

            draw_overlay(frame, poses[0] if poses else None, state,
                         workout.session.get_form_feedback(), workout.timer.seconds)
            cv2.imshow(WINDOW_NAME, frame)
    finally:
        summary = workout.finish()
        cap.release()
        cv2.destroyAllWindows()
        if speaker is not None:
            speaker.shutdown()

    print("\n" + "=" * 60)
    print("RepCoach SESSION ENDED")
    print("=" * 60)
    print(f"  {summary.exercise.name}: {summary.reps} reps in {format_time(summary.duration)}")
    print("=" * 60 + "\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
