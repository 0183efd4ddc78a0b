"""
MOOMA Exercise Service - Pose Geometry

Landmark schema, joint-angle geometry and the sliding-window smoother
shared by metrics extraction, exercise validation and rep detection.
"""

import math
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Deque, Dict, Iterable, List, Optional, Sequence

import numpy as np


NUM_LANDMARKS = 33
DEFAULT_TOLERANCE = 15.0

# Rays shorter than this are treated as unmeasurable
MIN_RAY_LENGTH = 1e-6

# Landmarks below this visibility, or this far outside the 0..1 image box, are unusable
MIN_LANDMARK_VISIBILITY = 0.1
OFFSCREEN_MARGIN = 0.5


class PoseSourceUnavailableError(RuntimeError):
    """The pose model or camera could not be opened. Fatal to the session."""


# ═══════════════════════════════════════════════════════════════════════════════
# LANDMARK SCHEMA
# ═══════════════════════════════════════════════════════════════════════════════

class JointType(Enum):
    """MediaPipe Pose landmark indices."""
    NOSE = 0
    LEFT_EYE_INNER = 1
    LEFT_EYE = 2
    LEFT_EYE_OUTER = 3
    RIGHT_EYE_INNER = 4
    RIGHT_EYE = 5
    RIGHT_EYE_OUTER = 6
    LEFT_EAR = 7
    RIGHT_EAR = 8
    MOUTH_LEFT = 9
    MOUTH_RIGHT = 10
    LEFT_SHOULDER = 11
    RIGHT_SHOULDER = 12
    LEFT_ELBOW = 13
    RIGHT_ELBOW = 14
    LEFT_WRIST = 15
    RIGHT_WRIST = 16
    LEFT_PINKY = 17
    RIGHT_PINKY = 18
    LEFT_INDEX = 19
    RIGHT_INDEX = 20
    LEFT_THUMB = 21
    RIGHT_THUMB = 22
    LEFT_HIP = 23
    RIGHT_HIP = 24
    LEFT_KNEE = 25
    RIGHT_KNEE = 26
    LEFT_ANKLE = 27
    RIGHT_ANKLE = 28
    LEFT_HEEL = 29
    RIGHT_HEEL = 30
    LEFT_FOOT_INDEX = 31
    RIGHT_FOOT_INDEX = 32


class AngleStatus(Enum):
    """Three-tier accuracy used for colour feedback and phase decisions."""
    CORRECT = "correct"
    CLOSE = "close"
    INCORRECT = "incorrect"


@dataclass(frozen=True)
class Landmark:
    """A single pose landmark in normalized image coordinates."""
    x: float
    y: float
    z: float = 0.0
    visibility: float = 1.0

    def to_numpy(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z], dtype=float)

    @property
    def is_finite(self) -> bool:
        return all(math.isfinite(v) for v in (self.x, self.y, self.z))

    @property
    def in_frame(self) -> bool:
        low, high = -OFFSCREEN_MARGIN, 1.0 + OFFSCREEN_MARGIN
        return low <= self.x <= high and low <= self.y <= high

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "z": self.z, "visibility": self.visibility}


LandmarkFrame = Sequence[Optional[Landmark]]


def get_landmark(landmarks: Optional[LandmarkFrame], joint: JointType) -> Optional[Landmark]:
    """
    Return the landmark for a joint, or None if the frame lacks a usable one.

    MediaPipe always reports all 33 points; joints it could not see come back
    with near-zero visibility or coordinates far off the image.
    """
    if not landmarks or joint.value >= len(landmarks):
        return None
    landmark = landmarks[joint.value]
    if landmark is None or not landmark.is_finite:
        return None
    if landmark.visibility < MIN_LANDMARK_VISIBILITY or not landmark.in_frame:
        return None
    return landmark


def landmarks_from_payload(points: Iterable[Dict[str, Any]]) -> List[Landmark]:
    """
    Convert JSON landmark dicts (as sent by a browser-side MediaPipe) to Landmarks.

    Raises:
        ValueError: if a point is missing x/y or has non-numeric coordinates
    """
    landmarks = []
    for idx, point in enumerate(points):
        try:
            landmarks.append(Landmark(
                x=float(point["x"]),
                y=float(point["y"]),
                z=float(point.get("z", 0.0)),
                visibility=float(point.get("visibility", 1.0)),
            ))
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Invalid landmark at index {idx}: {e}") from e
    return landmarks


# ═══════════════════════════════════════════════════════════════════════════════
# GEOMETRY
# ═══════════════════════════════════════════════════════════════════════════════

def angle_between(a: Optional[Landmark], b: Optional[Landmark], c: Optional[Landmark]) -> Optional[float]:
    """
    Angle at vertex b formed by rays b->a and b->c, in degrees within [0, 180].

    Uses the 2D (x, y) projection. Returns None when a point is missing or a
    ray has zero length, so unmeasurable angles never turn into NaN.
    """
    if a is None or b is None or c is None:
        return None

    ba = np.array([a.x - b.x, a.y - b.y], dtype=float)
    bc = np.array([c.x - b.x, c.y - b.y], dtype=float)

    if not (np.all(np.isfinite(ba)) and np.all(np.isfinite(bc))):
        return None
    if np.linalg.norm(ba) < MIN_RAY_LENGTH or np.linalg.norm(bc) < MIN_RAY_LENGTH:
        return None

    radians = np.arctan2(bc[1], bc[0]) - np.arctan2(ba[1], ba[0])
    angle = abs(float(np.degrees(radians)))

    if angle > 180.0:
        angle = 360.0 - angle

    return angle


def distance_3d(p: Landmark, q: Landmark) -> float:
    """Euclidean distance between two landmarks over (x, y, z)."""
    return float(np.linalg.norm(q.to_numpy() - p.to_numpy()))


def in_range(angle: Optional[float], target: float, tolerance: float = DEFAULT_TOLERANCE) -> bool:
    """Whether an angle lies within tolerance of the target."""
    if angle is None:
        return False
    return abs(angle - target) <= tolerance


def classify(angle: Optional[float], target: float, tolerance: float = DEFAULT_TOLERANCE) -> AngleStatus:
    """
    Classify a measurement against a target.

    correct   -> within tolerance
    close     -> within 2x tolerance
    incorrect -> anything else, including unmeasurable (None) values
    """
    if angle is None or not math.isfinite(angle):
        return AngleStatus.INCORRECT

    diff = abs(angle - target)
    if diff <= tolerance:
        return AngleStatus.CORRECT
    if diff <= tolerance * 2:
        return AngleStatus.CLOSE
    return AngleStatus.INCORRECT


def mean_of(*values: Optional[float]) -> Optional[float]:
    """Mean of the measurable values, None if none are measurable."""
    present = [v for v in values if v is not None]
    if not present:
        return None
    return sum(present) / len(present)


# ═══════════════════════════════════════════════════════════════════════════════
# SMOOTHING
# ═══════════════════════════════════════════════════════════════════════════════

class Smoother:
    """
    Moving average over the last `window_size` samples of a single metric.

    Use one instance per tracked metric; a window of 1 is a passthrough.
    """

    def __init__(self, window_size: int = 5):
        if window_size < 1:
            raise ValueError(f"window_size must be >= 1, got {window_size}")
        self.window_size = window_size
        self._values: Deque[float] = deque(maxlen=window_size)

    def add(self, value: float) -> float:
        """Add a sample and return the mean of the retained window."""
        self._values.append(value)
        return self.value

    @property
    def value(self) -> float:
        if not self._values:
            return 0.0
        return sum(self._values) / len(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def reset(self):
        self._values.clear()
