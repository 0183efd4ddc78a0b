"""
MOOMA Exercise Service - Pose Detector

Thin wrapper around the MediaPipe Tasks PoseLandmarker (VIDEO mode).
One detector per camera stream; frame timestamps must increase.
"""

import logging
from pathlib import Path
from typing import List, Optional

import mediapipe as mp
import numpy as np
from mediapipe.tasks import python as mp_python
from mediapipe.tasks.python import vision

from core.config import settings

from .pose_utils import Landmark, PoseSourceUnavailableError


logger = logging.getLogger("mooma.exercise")


def resolve_model_path(model_path: Optional[str] = None) -> Path:
    path = Path(model_path or settings.POSE_MODEL_PATH)
    if not path.is_absolute():
        path = Path(__file__).resolve().parent.parent.parent / path
    return path


class PoseDetector:
    """
    Detects a single person's 33 landmarks per RGB frame.

    Usage:
        detector = PoseDetector()
        try:
            landmarks = detector.detect(rgb_frame, timestamp_ms)
        finally:
            detector.close()
    """

    def __init__(
        self,
        model_path: Optional[str] = None,
        min_detection_confidence: Optional[float] = None,
        min_tracking_confidence: Optional[float] = None,
    ):
        path = resolve_model_path(model_path)
        if not path.exists():
            raise PoseSourceUnavailableError(f"Pose model not found at '{path}'")

        detection = settings.POSE_MIN_DETECTION_CONFIDENCE if min_detection_confidence is None else min_detection_confidence
        tracking = settings.POSE_MIN_TRACKING_CONFIDENCE if min_tracking_confidence is None else min_tracking_confidence

        try:
            options = vision.PoseLandmarkerOptions(
                base_options=mp_python.BaseOptions(model_asset_path=str(path)),
                running_mode=vision.RunningMode.VIDEO,
                num_poses=1,
                min_pose_detection_confidence=detection,
                min_pose_presence_confidence=detection,
                min_tracking_confidence=tracking,
            )
            self._landmarker = vision.PoseLandmarker.create_from_options(options)
        except (RuntimeError, ValueError, OSError) as e:
            raise PoseSourceUnavailableError(f"Failed to load pose model: {e}") from e

        self._last_timestamp_ms = -1
        logger.info(f"✅ MediaPipe pose landmarker loaded: {path.name}")

    def detect(self, rgb_frame: np.ndarray, timestamp_ms: float) -> Optional[List[Landmark]]:
        """
        Detect landmarks in an RGB frame (H, W, 3).

        Returns:
            33 landmarks, or None when no person is in the frame
        """
        if self._landmarker is None:
            raise PoseSourceUnavailableError("Pose detector is closed")

        # VIDEO mode rejects non-increasing timestamps
        ts = max(int(timestamp_ms), self._last_timestamp_ms + 1)
        self._last_timestamp_ms = ts

        image = mp.Image(image_format=mp.ImageFormat.SRGB, data=np.ascontiguousarray(rgb_frame))
        result = self._landmarker.detect_for_video(image, ts)

        if not result.pose_landmarks:
            return None

        return [
            Landmark(
                x=lm.x,
                y=lm.y,
                z=lm.z,
                visibility=lm.visibility if lm.visibility is not None else 0.0,
            )
            for lm in result.pose_landmarks[0]
        ]

    def close(self):
        """Release the MediaPipe graph."""
        if self._landmarker is not None:
            self._landmarker.close()
            self._landmarker = None
            logger.info("🧹 Pose landmarker released")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
