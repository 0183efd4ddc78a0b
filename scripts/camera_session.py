#!/usr/bin/env python3
"""
Local Camera Exercise Session
=============================
Runs a Mooma exercise session against a webcam (or a video file) with
MediaPipe pose detection and an OpenCV overlay.

Keys: q = finish, p = pause/resume, r = restart

Usage Examples:
---------------
python scripts/camera_session.py --exercise pelvic-tilt
python scripts/camera_session.py --exercise diaphragmatic-breathing --camera 1
python scripts/camera_session.py --exercise squat --video media/squat.mp4 --headless
"""

import argparse
import logging
import sys
import time
from pathlib import Path

import cv2

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from core.database import init_firebase  # noqa: E402
from exercise_service.models import (  # noqa: E402
    ExerciseHistoryStore,
    ExerciseSession,
    PoseSourceUnavailableError,
    SessionState,
    get_exercise_by_id,
)
from exercise_service.models.pose_detector import PoseDetector  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("mooma.camera")

WINDOW_NAME = "Mooma Exercise"
COLORS = {
    True: (80, 200, 120),    # correct
    False: (60, 60, 230),    # incorrect
}


def draw_overlay(frame, session: ExerciseSession, result) -> None:
    """Text overlay: reps, phase and feedback."""
    target = session.exercise.target_reps or session.exercise.duration or "-"
    lines = [f"{session.exercise.name}  {session.reps}/{target}"]

    breathing = session.breathing_state()
    if breathing is not None:
        label = breathing.to_dict()["label"]
        lines.append(f"{label}  {breathing.display_countdown}")
    elif result is not None:
        lines.append(f"{result.phase_name}  {int(result.phase_progress * 100)}%")

    if session.state == SessionState.PAUSED:
        lines.append("PAUSED")
    if result is not None:
        lines.extend(result.feedback[:2])

    color = COLORS[bool(result and result.is_correct)]
    for i, text in enumerate(lines):
        cv2.putText(frame, text, (16, 32 + i * 28), cv2.FONT_HERSHEY_SIMPLEX, 0.7, color, 2, cv2.LINE_AA)


def run(args: argparse.Namespace) -> int:
    exercise = get_exercise_by_id(args.exercise)
    if exercise is None:
        logger.error(f"Exercise '{args.exercise}' not found")
        return 1

    source = args.video if args.video else args.camera
    cap = cv2.VideoCapture(source)
    if not cap.isOpened():
        logger.error(f"Could not open video source: {source}")
        return 1

    detector = None
    session = ExerciseSession(exercise, user_id=args.user_id)
    summary = None

    try:
        detector = PoseDetector(model_path=args.model)
        session.start()
        started = time.monotonic()
        result = None

        while True:
            ok, frame = cap.read()
            if not ok:
                logger.info("End of video stream")
                break

            if session.breathing_guide is not None:
                session.breathing_guide.tick()

            timestamp_ms = (time.monotonic() - started) * 1000
            rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
            landmarks = detector.detect(rgb, timestamp_ms)
            frame_result = session.process_frame(landmarks, timestamp=timestamp_ms)
            if frame_result is not None:
                result = frame_result

            if session.target_reached():
                logger.info("🎉 Target reached")
                break

            if args.headless:
                continue

            draw_overlay(frame, session, result)
            cv2.imshow(WINDOW_NAME, frame)
            key = cv2.waitKey(1) & 0xFF
            if key == ord("q"):
                break
            if key == ord("p"):
                if not session.pause():
                    session.resume()
            elif key == ord("r"):
                session.restart()

        summary = session.finish()

    except PoseSourceUnavailableError as e:
        logger.error(f"❌ {e}")
        return 1
    finally:
        cap.release()
        if detector is not None:
            detector.close()
        session.close()
        if not args.headless:
            cv2.destroyAllWindows()

    print("\n" + "=" * 50)
    print(f"  {summary.exercise_name}")
    print(f"  Reps: {summary.reps_completed}   Accuracy: {summary.accuracy}%   Duration: {summary.duration_seconds}s")
    print("=" * 50)

    if args.user_id:
        init_firebase()
        ExerciseHistoryStore().save_summary(args.user_id, summary)

    return 0


def parse_arguments() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(description="Run a Mooma exercise session on a local camera")
    parser.add_argument("-e", "--exercise", type=str, required=True, help="Exercise id (e.g. pelvic-tilt)")
    parser.add_argument("-c", "--camera", type=int, default=0, help="Camera index (default: 0)")
    parser.add_argument("--video", type=str, default=None, help="Video file instead of a camera")
    parser.add_argument("--model", type=str, default=None, help="Pose landmarker .task model path")
    parser.add_argument("-u", "--user-id", type=str, default=None, help="Save the summary for this user")
    parser.add_argument("--headless", action="store_true", help="No preview window")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args()


def main():
    """Main entry point."""
    args = parse_arguments()
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    sys.exit(run(args))


if __name__ == "__main__":
    main()
