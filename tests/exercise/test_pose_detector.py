"""Tests for the MediaPipe pose detector wrapper, with the landmarker stubbed out."""

import pytest

pytest.importorskip("mediapipe")

from core.config import settings
from exercise_service.models import PoseSourceUnavailableError
from exercise_service.models import pose_detector


class FakeLandmarker:

    def __init__(self):
        self.closed = False

    def close(self):
        self.closed = True


@pytest.fixture
def created(monkeypatch):
    """Capture the options the detector builds instead of loading a real graph."""
    captured = {}

    def create_from_options(options):
        captured["options"] = options
        captured["landmarker"] = FakeLandmarker()
        return captured["landmarker"]

    monkeypatch.setattr(pose_detector.vision.PoseLandmarker, "create_from_options", create_from_options)
    return captured


@pytest.fixture
def model_file(tmp_path):
    path = tmp_path / "pose_landmarker.task"
    path.write_bytes(b"model")
    return str(path)


def test_explicit_zero_confidence_is_kept(created, model_file):
    pose_detector.PoseDetector(model_file, min_detection_confidence=0.0, min_tracking_confidence=0.0)

    options = created["options"]
    assert options.min_pose_detection_confidence == 0.0
    assert options.min_pose_presence_confidence == 0.0
    assert options.min_tracking_confidence == 0.0


def test_confidence_defaults_come_from_settings(created, model_file):
    pose_detector.PoseDetector(model_file)

    options = created["options"]
    assert options.min_pose_detection_confidence == settings.POSE_MIN_DETECTION_CONFIDENCE
    assert options.min_tracking_confidence == settings.POSE_MIN_TRACKING_CONFIDENCE


def test_missing_model_is_unavailable(tmp_path):
    with pytest.raises(PoseSourceUnavailableError):
        pose_detector.PoseDetector(str(tmp_path / "missing.task"))


def test_close_releases_landmarker(created, model_file):
    with pose_detector.PoseDetector(model_file) as detector:
        pass

    assert created["landmarker"].closed
    with pytest.raises(PoseSourceUnavailableError):
        detector.detect(None, 0)
