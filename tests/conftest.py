"""
Shared fixtures for the Mooma backend tests.

Synthetic 33-landmark frames: a person standing square to the camera with
arms hanging, plus helpers to lean the torso, bend knees and raise arms by
rotating landmark groups about a joint.
"""

import math
from typing import Iterable, List, Sequence, Tuple

import pytest

from core.database import enable_mock_mode
from exercise_service.models.pose_utils import JointType, Landmark


# Standing pose, person's left on the image right
STANDING_POINTS = {
    JointType.NOSE: (0.5, 0.15),
    JointType.LEFT_EYE_INNER: (0.51, 0.14),
    JointType.LEFT_EYE: (0.52, 0.14),
    JointType.LEFT_EYE_OUTER: (0.53, 0.14),
    JointType.RIGHT_EYE_INNER: (0.49, 0.14),
    JointType.RIGHT_EYE: (0.48, 0.14),
    JointType.RIGHT_EYE_OUTER: (0.47, 0.14),
    JointType.LEFT_EAR: (0.55, 0.15),
    JointType.RIGHT_EAR: (0.45, 0.15),
    JointType.MOUTH_LEFT: (0.52, 0.18),
    JointType.MOUTH_RIGHT: (0.48, 0.18),
    JointType.LEFT_SHOULDER: (0.6, 0.3),
    JointType.RIGHT_SHOULDER: (0.4, 0.3),
    JointType.LEFT_ELBOW: (0.6, 0.45),
    JointType.RIGHT_ELBOW: (0.4, 0.45),
    JointType.LEFT_WRIST: (0.6, 0.6),
    JointType.RIGHT_WRIST: (0.4, 0.6),
    JointType.LEFT_PINKY: (0.61, 0.62),
    JointType.RIGHT_PINKY: (0.39, 0.62),
    JointType.LEFT_INDEX: (0.6, 0.63),
    JointType.RIGHT_INDEX: (0.4, 0.63),
    JointType.LEFT_THUMB: (0.59, 0.62),
    JointType.RIGHT_THUMB: (0.41, 0.62),
    JointType.LEFT_HIP: (0.6, 0.6),
    JointType.RIGHT_HIP: (0.4, 0.6),
    JointType.LEFT_KNEE: (0.6, 0.8),
    JointType.RIGHT_KNEE: (0.4, 0.8),
    JointType.LEFT_ANKLE: (0.6, 0.95),
    JointType.RIGHT_ANKLE: (0.4, 0.95),
    JointType.LEFT_HEEL: (0.61, 0.97),
    JointType.RIGHT_HEEL: (0.39, 0.97),
    JointType.LEFT_FOOT_INDEX: (0.62, 0.98),
    JointType.RIGHT_FOOT_INDEX: (0.38, 0.98),
}

UPPER_BODY = range(0, 23)
LEFT_ARM = (JointType.LEFT_ELBOW, JointType.LEFT_WRIST, JointType.LEFT_PINKY,
            JointType.LEFT_INDEX, JointType.LEFT_THUMB)
RIGHT_ARM = (JointType.RIGHT_ELBOW, JointType.RIGHT_WRIST, JointType.RIGHT_PINKY,
             JointType.RIGHT_INDEX, JointType.RIGHT_THUMB)


def standing_pose(visibility: float = 1.0) -> List[Landmark]:
    return [
        Landmark(x=STANDING_POINTS[j][0], y=STANDING_POINTS[j][1], z=0.0, visibility=visibility)
        for j in sorted(STANDING_POINTS, key=lambda j: j.value)
    ]


def rotate(
    frame: Sequence[Landmark],
    indices: Iterable[int],
    pivot: Tuple[float, float],
    degrees: float,
) -> List[Landmark]:
    """Rotate the given landmarks about a pivot (positive = clockwise on screen)."""
    theta = math.radians(degrees)
    cos_t, sin_t = math.cos(theta), math.sin(theta)
    px, py = pivot
    out = list(frame)
    for idx in indices:
        lm = out[idx]
        vx, vy = lm.x - px, lm.y - py
        out[idx] = Landmark(
            x=px + vx * cos_t - vy * sin_t,
            y=py + vx * sin_t + vy * cos_t,
            z=lm.z,
            visibility=lm.visibility,
        )
    return out


def lean_torso(frame: Sequence[Landmark], degrees: float) -> List[Landmark]:
    """Lean the upper body sideways about the hip midpoint; spine_angle becomes `degrees`."""
    l_hip, r_hip = frame[JointType.LEFT_HIP.value], frame[JointType.RIGHT_HIP.value]
    pivot = ((l_hip.x + r_hip.x) / 2, (l_hip.y + r_hip.y) / 2)
    return rotate(frame, UPPER_BODY, pivot, degrees)


def bend_knees(frame: Sequence[Landmark], degrees: float) -> List[Landmark]:
    """Swing both shins about the knees; the knee angle becomes 180 - degrees."""
    out = list(frame)
    for knee, lower in (
        (JointType.LEFT_KNEE, (JointType.LEFT_ANKLE, JointType.LEFT_HEEL, JointType.LEFT_FOOT_INDEX)),
        (JointType.RIGHT_KNEE, (JointType.RIGHT_ANKLE, JointType.RIGHT_HEEL, JointType.RIGHT_FOOT_INDEX)),
    ):
        k = out[knee.value]
        sign = -1 if knee == JointType.LEFT_KNEE else 1
        out = rotate(out, [j.value for j in lower], (k.x, k.y), sign * degrees)
    return out


def raise_arms(frame: Sequence[Landmark], degrees: float) -> List[Landmark]:
    """Raise both straight arms sideways about the shoulders (90 = shoulder height)."""
    out = list(frame)
    for shoulder, arm, sign in (
        (JointType.LEFT_SHOULDER, LEFT_ARM, -1),
        (JointType.RIGHT_SHOULDER, RIGHT_ARM, 1),
    ):
        s = out[shoulder.value]
        out = rotate(out, [j.value for j in arm], (s.x, s.y), sign * degrees)
    return out


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


@pytest.fixture
def standing():
    return standing_pose()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mock_db():
    """Fresh in-memory Firestore for each test."""
    enable_mock_mode()
    from core.database import get_database
    return get_database()
