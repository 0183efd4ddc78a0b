"""
MOOMA Exercise Service Models

Pose geometry, exercise catalog and the rep/breathing state machines.
The MediaPipe-backed PoseDetector lives in .pose_detector and is imported
only where camera frames are decoded.
"""

from .pose_utils import (
    JointType,
    AngleStatus,
    Landmark,
    Smoother,
    angle_between,
    distance_3d,
    in_range,
    classify,
    landmarks_from_payload,
    PoseSourceUnavailableError,
)

from .metrics import PoseMetrics, MetricsSmoother, extract_metrics

from .exercise_library import (
    Difficulty,
    ExerciseCategory,
    ValidationStrategy,
    Exercise,
    ExerciseValidation,
    KeyAngle,
    EXERCISE_LIBRARY,
    TRIMESTER_PROGRAM,
    validate_pose,
    get_exercise_by_id,
    get_exercises_for_trimester,
    get_trimester_program,
)

from .rep_detection import (
    TrackingMode,
    PhaseCondition,
    Phase,
    RepConfig,
    RepDetector,
    RepDetectionResult,
    get_rep_config,
    create_rep_detector,
)

from .breathing_guide import BreathingPhase, BreathingState, BreathingGuide, BreathingTimer

from .exercise_session import (
    SessionState,
    FrameResult,
    SessionSummary,
    ExerciseSession,
    ExerciseHistoryStore,
    calculate_accuracy,
)

from .pregnancy import PregnancyMetrics, calculate_pregnancy_metrics, trimester_for_week

__all__ = [
    # Geometry
    "JointType",
    "AngleStatus",
    "Landmark",
    "Smoother",
    "angle_between",
    "distance_3d",
    "in_range",
    "classify",
    "landmarks_from_payload",
    "PoseSourceUnavailableError",
    # Metrics
    "PoseMetrics",
    "MetricsSmoother",
    "extract_metrics",
    # Catalog
    "Difficulty",
    "ExerciseCategory",
    "ValidationStrategy",
    "Exercise",
    "ExerciseValidation",
    "KeyAngle",
    "EXERCISE_LIBRARY",
    "TRIMESTER_PROGRAM",
    "validate_pose",
    "get_exercise_by_id",
    "get_exercises_for_trimester",
    "get_trimester_program",
    # Rep detection
    "TrackingMode",
    "PhaseCondition",
    "Phase",
    "RepConfig",
    "RepDetector",
    "RepDetectionResult",
    "get_rep_config",
    "create_rep_detector",
    # Breathing
    "BreathingPhase",
    "BreathingState",
    "BreathingGuide",
    "BreathingTimer",
    # Session
    "SessionState",
    "FrameResult",
    "SessionSummary",
    "ExerciseSession",
    "ExerciseHistoryStore",
    "calculate_accuracy",
    # Pregnancy
    "PregnancyMetrics",
    "calculate_pregnancy_metrics",
    "trimester_for_week",
]
