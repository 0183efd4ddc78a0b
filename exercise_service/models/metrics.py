"""
MOOMA Exercise Service - Pose Metrics

Turns a raw landmark frame into the named scalar measurements the exercise
catalog and rep detector work with, and smooths them across frames.
"""

import math
from dataclasses import dataclass, fields, asdict, replace
from typing import Dict, List, Optional

from core.config import settings

from .pose_utils import (
    JointType,
    Landmark,
    LandmarkFrame,
    Smoother,
    angle_between,
    get_landmark,
    mean_of,
)


# Landmarks whose visibility makes up the frame confidence
CONFIDENCE_JOINTS = (
    JointType.LEFT_SHOULDER, JointType.RIGHT_SHOULDER,
    JointType.LEFT_HIP, JointType.RIGHT_HIP,
    JointType.LEFT_ELBOW, JointType.RIGHT_ELBOW,
    JointType.LEFT_WRIST, JointType.RIGHT_WRIST,
)

MIN_WIDTH = 0.01


@dataclass(frozen=True)
class PoseMetrics:
    """
    Per-frame measurements. None means the metric could not be measured.

    Angles are in degrees. Arm offsets and body lean are in hundredths of the
    image size: arm_y is positive when the wrist is below the shoulder,
    arm_x is positive when the wrist is outside the shoulder.
    """
    spine_angle: Optional[float] = None         # lean from vertical, + = shoulders right of hips
    body_lean_x: Optional[float] = None
    shoulder_width: Optional[float] = None      # relative to hip width
    knee_spread: Optional[float] = None         # relative to hip width

    left_elbow_angle: Optional[float] = None    # shoulder-elbow-wrist
    right_elbow_angle: Optional[float] = None
    avg_elbow_angle: Optional[float] = None
    left_shoulder_angle: Optional[float] = None  # hip-shoulder-elbow
    right_shoulder_angle: Optional[float] = None
    avg_shoulder_angle: Optional[float] = None
    left_hip_angle: Optional[float] = None      # shoulder-hip-knee
    right_hip_angle: Optional[float] = None
    avg_hip_angle: Optional[float] = None
    left_knee_angle: Optional[float] = None     # hip-knee-ankle
    right_knee_angle: Optional[float] = None
    avg_knee_angle: Optional[float] = None

    left_arm_y: Optional[float] = None
    right_arm_y: Optional[float] = None
    left_arm_x: Optional[float] = None
    right_arm_x: Optional[float] = None

    confidence: float = 0.0

    def get(self, name: str) -> Optional[float]:
        return getattr(self, name, None)

    def to_dict(self) -> Dict[str, Optional[float]]:
        return {
            k: (round(v, 2) if isinstance(v, float) else v)
            for k, v in asdict(self).items()
        }


METRIC_NAMES: List[str] = [f.name for f in fields(PoseMetrics)]


def _midpoint(p: Optional[Landmark], q: Optional[Landmark]):
    if p is None or q is None:
        return None
    return ((p.x + q.x) / 2, (p.y + q.y) / 2)


def _vertical_offset(wrist: Optional[Landmark], shoulder: Optional[Landmark]) -> Optional[float]:
    if wrist is None or shoulder is None:
        return None
    return (wrist.y - shoulder.y) * 100


def extract_metrics(landmarks: Optional[LandmarkFrame]) -> Optional[PoseMetrics]:
    """
    Compute the named metric set for one frame.

    Returns None when the frame holds no landmarks at all (person not
    detected). Individual metrics are None when their landmarks are
    missing or degenerate.
    """
    if not landmarks:
        return None

    def lm(joint: JointType) -> Optional[Landmark]:
        return get_landmark(landmarks, joint)

    l_shoulder, r_shoulder = lm(JointType.LEFT_SHOULDER), lm(JointType.RIGHT_SHOULDER)
    l_elbow, r_elbow = lm(JointType.LEFT_ELBOW), lm(JointType.RIGHT_ELBOW)
    l_wrist, r_wrist = lm(JointType.LEFT_WRIST), lm(JointType.RIGHT_WRIST)
    l_hip, r_hip = lm(JointType.LEFT_HIP), lm(JointType.RIGHT_HIP)
    l_knee, r_knee = lm(JointType.LEFT_KNEE), lm(JointType.RIGHT_KNEE)
    l_ankle, r_ankle = lm(JointType.LEFT_ANKLE), lm(JointType.RIGHT_ANKLE)

    visibilities = [lm(j).visibility if lm(j) is not None else 0.0 for j in CONFIDENCE_JOINTS]
    confidence = sum(visibilities) / len(visibilities)

    # Torso lean; screen y grows downwards
    spine_angle = None
    body_lean_x = None
    mid_shoulder = _midpoint(l_shoulder, r_shoulder)
    mid_hip = _midpoint(l_hip, r_hip)
    if mid_shoulder is not None and mid_hip is not None:
        dx = mid_shoulder[0] - mid_hip[0]
        dy = mid_hip[1] - mid_shoulder[1]
        if math.hypot(dx, dy) > 0:
            spine_angle = math.degrees(math.atan2(dx, dy))
        body_lean_x = dx * 100

    hip_width = abs(l_hip.x - r_hip.x) if l_hip is not None and r_hip is not None else None
    shoulder_width = None
    knee_spread = None
    if hip_width is not None:
        if l_shoulder is not None and r_shoulder is not None:
            shoulder_width = abs(l_shoulder.x - r_shoulder.x) / max(MIN_WIDTH, hip_width)
        if l_knee is not None and r_knee is not None:
            knee_spread = abs(l_knee.x - r_knee.x) / max(MIN_WIDTH, hip_width)

    left_elbow = angle_between(l_shoulder, l_elbow, l_wrist)
    right_elbow = angle_between(r_shoulder, r_elbow, r_wrist)
    left_shoulder = angle_between(l_hip, l_shoulder, l_elbow)
    right_shoulder = angle_between(r_hip, r_shoulder, r_elbow)
    left_hip = angle_between(l_shoulder, l_hip, l_knee)
    right_hip = angle_between(r_shoulder, r_hip, r_knee)
    left_knee = angle_between(l_hip, l_knee, l_ankle)
    right_knee = angle_between(r_hip, r_knee, r_ankle)

    # Outward is away from the other shoulder, whether or not the image is mirrored
    left_arm_x = None
    right_arm_x = None
    if l_shoulder is not None and r_shoulder is not None:
        side = 1.0 if l_shoulder.x >= r_shoulder.x else -1.0
        if l_wrist is not None:
            left_arm_x = (l_wrist.x - l_shoulder.x) * side * 100
        if r_wrist is not None:
            right_arm_x = (r_shoulder.x - r_wrist.x) * side * 100

    return PoseMetrics(
        spine_angle=spine_angle,
        body_lean_x=body_lean_x,
        shoulder_width=shoulder_width,
        knee_spread=knee_spread,
        left_elbow_angle=left_elbow,
        right_elbow_angle=right_elbow,
        avg_elbow_angle=mean_of(left_elbow, right_elbow),
        left_shoulder_angle=left_shoulder,
        right_shoulder_angle=right_shoulder,
        avg_shoulder_angle=mean_of(left_shoulder, right_shoulder),
        left_hip_angle=left_hip,
        right_hip_angle=right_hip,
        avg_hip_angle=mean_of(left_hip, right_hip),
        left_knee_angle=left_knee,
        right_knee_angle=right_knee,
        avg_knee_angle=mean_of(left_knee, right_knee),
        left_arm_y=_vertical_offset(l_wrist, l_shoulder),
        right_arm_y=_vertical_offset(r_wrist, r_shoulder),
        left_arm_x=left_arm_x,
        right_arm_x=right_arm_x,
        confidence=confidence,
    )


def is_visible(metrics: Optional[PoseMetrics], min_confidence: Optional[float] = None) -> bool:
    """True when the frame shows enough of the body to judge posture."""
    if min_confidence is None:
        min_confidence = settings.MIN_POSE_CONFIDENCE
    return metrics is not None and metrics.confidence >= min_confidence


class MetricsSmoother:
    """
    Applies an independent moving-average Smoother to every metric.

    Unmeasurable values (None) pass through as None and leave that metric's
    window untouched.
    """

    def __init__(self, window_size: int = 5):
        self.window_size = window_size
        self._smoothers: Dict[str, Smoother] = {
            name: Smoother(window_size) for name in METRIC_NAMES
        }

    def smooth(self, metrics: PoseMetrics) -> PoseMetrics:
        smoothed = {}
        for name, smoother in self._smoothers.items():
            value = metrics.get(name)
            smoothed[name] = smoother.add(value) if value is not None else None
        return replace(metrics, **smoothed)

    def reset(self):
        for smoother in self._smoothers.values():
            smoother.reset()
