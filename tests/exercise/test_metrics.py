"""Tests for metrics extraction and per-metric smoothing."""

import pytest

from exercise_service.models.metrics import MetricsSmoother, PoseMetrics, extract_metrics
from exercise_service.models.pose_utils import JointType

from conftest import bend_knees, lean_torso, raise_arms, standing_pose


def test_standing_pose_metrics(standing):
    m = extract_metrics(standing)

    assert m.spine_angle == pytest.approx(0.0, abs=1e-6)
    assert m.avg_elbow_angle == pytest.approx(180.0)
    assert m.avg_knee_angle == pytest.approx(180.0)
    assert m.avg_hip_angle == pytest.approx(180.0)
    assert m.left_arm_y > 0 and m.right_arm_y > 0
    assert m.shoulder_width == pytest.approx(1.0)
    assert m.confidence == pytest.approx(1.0)


@pytest.mark.parametrize("degrees", [-20, 12, 30])
def test_torso_lean_sets_spine_angle(standing, degrees):
    m = extract_metrics(lean_torso(standing, degrees))
    assert m.spine_angle == pytest.approx(degrees, abs=1e-6)
    assert m.avg_hip_angle == pytest.approx(180 - abs(degrees), abs=1e-6)


def test_bent_knees(standing):
    m = extract_metrics(bend_knees(standing, 80))
    assert m.left_knee_angle == pytest.approx(100.0)
    assert m.right_knee_angle == pytest.approx(100.0)


def test_raised_arms(standing):
    m = extract_metrics(raise_arms(standing, 160))
    assert m.avg_shoulder_angle == pytest.approx(160.0)
    assert m.left_arm_y < -15 and m.right_arm_y < -15
    assert m.left_arm_x > 0 and m.right_arm_x > 0


def test_empty_frame_has_no_metrics():
    assert extract_metrics([]) is None
    assert extract_metrics(None) is None


def test_missing_landmark_only_blanks_its_metrics(standing):
    frame = list(standing)
    frame[JointType.LEFT_WRIST.value] = None
    m = extract_metrics(frame)

    assert m.left_elbow_angle is None
    assert m.left_arm_y is None
    assert m.right_elbow_angle == pytest.approx(180.0)
    assert m.avg_elbow_angle == pytest.approx(180.0)
    assert m.confidence == pytest.approx(7 / 8)


def test_low_visibility_lowers_confidence():
    m = extract_metrics(standing_pose(visibility=0.2))
    assert m.confidence == pytest.approx(0.2)


class TestMetricsSmoother:

    def test_each_metric_smoothed_independently(self):
        smoother = MetricsSmoother(window_size=2)
        smoother.smooth(PoseMetrics(spine_angle=10.0, avg_knee_angle=100.0, confidence=1.0))
        out = smoother.smooth(PoseMetrics(spine_angle=20.0, avg_knee_angle=180.0, confidence=0.5))

        assert out.spine_angle == pytest.approx(15.0)
        assert out.avg_knee_angle == pytest.approx(140.0)
        assert out.confidence == pytest.approx(0.75)

    def test_unmeasurable_values_do_not_enter_the_window(self):
        smoother = MetricsSmoother(window_size=3)
        smoother.smooth(PoseMetrics(spine_angle=10.0, confidence=1.0))
        gap = smoother.smooth(PoseMetrics(spine_angle=None, confidence=1.0))
        after = smoother.smooth(PoseMetrics(spine_angle=20.0, confidence=1.0))

        assert gap.spine_angle is None
        assert after.spine_angle == pytest.approx(15.0)

    def test_reset(self):
        smoother = MetricsSmoother(window_size=3)
        smoother.smooth(PoseMetrics(spine_angle=50.0, confidence=1.0))
        smoother.reset()
        out = smoother.smooth(PoseMetrics(spine_angle=0.0, confidence=1.0))
        assert out.spine_angle == pytest.approx(0.0)
