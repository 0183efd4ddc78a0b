"""
MOOMA Exercise Service - Exercise Session

Per-user session controller. Each ExerciseSession owns its own metrics
smoother and either a RepDetector or a BreathingGuide, plus the frame
accuracy counters. Nothing here is shared between sessions.

Per frame:
    landmarks -> validate() on raw landmarks (instant colour feedback)
    landmarks -> extract_metrics -> MetricsSmoother -> RepDetector (counting)
The BreathingGuide is ticked separately by a BreathingTimer.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from core.config import settings
from core.database import get_database
from shared.utils import get_now

from .breathing_guide import BreathingGuide, BreathingState
from .exercise_library import NOT_VISIBLE_FEEDBACK, Exercise, KeyAngle
from .metrics import MetricsSmoother, extract_metrics, is_visible
from .pose_utils import LandmarkFrame
from .rep_detection import (
    NOT_VISIBLE_PHASE,
    RepConfig,
    RepDetector,
    TrackingMode,
    get_rep_config,
)


logger = logging.getLogger("mooma.exercise")


class SessionState(Enum):
    """Exercise session states."""
    IDLE = "idle"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


@dataclass
class FrameResult:
    """Everything the UI needs to render one processed frame."""
    is_correct: bool
    feedback: List[str]
    phase_name: str
    phase_progress: float
    confidence: float
    rep_completed: bool
    reps: int
    target_reps: Optional[int]
    target_reached: bool
    elapsed_seconds: float
    visible: bool = True
    key_angles: List[KeyAngle] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_correct": self.is_correct,
            "feedback": self.feedback,
            "phase_name": self.phase_name,
            "phase_progress": round(self.phase_progress, 3),
            "confidence": round(self.confidence, 3),
            "rep_completed": self.rep_completed,
            "reps": self.reps,
            "target_reps": self.target_reps,
            "target_reached": self.target_reached,
            "elapsed_seconds": round(self.elapsed_seconds, 1),
            "visible": self.visible,
            "key_angles": [a.to_dict() for a in self.key_angles],
        }


@dataclass
class SessionSummary:
    """Result of a finished session, handed to the history store."""
    exercise_id: str
    exercise_name: str
    duration_seconds: int
    reps_completed: int
    accuracy: float
    feedback: List[str]
    timestamp: datetime
    target_reps: Optional[int] = None
    user_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "exercise_id": self.exercise_id,
            "exercise_name": self.exercise_name,
            "duration_seconds": self.duration_seconds,
            "reps_completed": self.reps_completed,
            "target_reps": self.target_reps,
            "accuracy": self.accuracy,
            "feedback": self.feedback,
            "timestamp": self.timestamp.isoformat(),
        }

    def to_record(self) -> Dict[str, Any]:
        """Firestore document for pregnancyData/{userId}/exerciseHistory."""
        return {
            "exerciseId": self.exercise_id,
            "exerciseType": self.exercise_name,
            "duration": self.duration_seconds,
            "repsCompleted": self.reps_completed,
            "accuracy": self.accuracy,
            "feedback": list(self.feedback),
            "timestamp": self.timestamp,
        }


def calculate_accuracy(correct_frames: int, validated_frames: int, fallback: Optional[float] = None) -> float:
    """Correct / validated frames as a percentage, or the fallback when nothing was validated."""
    if validated_frames <= 0:
        return settings.ACCURACY_FALLBACK if fallback is None else fallback
    return round(correct_frames / validated_frames * 100, 1)


# ═══════════════════════════════════════════════════════════════════════════════
# SESSION CONTROLLER
# ═══════════════════════════════════════════════════════════════════════════════

class ExerciseSession:
    """
    One live exercise session.

    Usage:
        session = ExerciseSession(get_exercise_by_id("pelvic-tilt"), user_id="abc")
        session.start()
        result = session.process_frame(landmarks, timestamp=ms)
        summary = session.finish()
    """

    def __init__(
        self,
        exercise: Exercise,
        user_id: Optional[str] = None,
        rep_config: Optional[RepConfig] = None,
        smoothing_window: Optional[int] = None,
        accuracy_fallback: Optional[float] = None,
        min_confidence: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.exercise = exercise
        self.user_id = user_id
        self.config = rep_config or get_rep_config(exercise.id) or RepConfig(mode=TrackingMode.TIMED)
        self.accuracy_fallback = accuracy_fallback
        self.min_confidence = settings.MIN_POSE_CONFIDENCE if min_confidence is None else min_confidence
        self._clock = clock

        self.smoother = MetricsSmoother(smoothing_window or settings.SMOOTHING_WINDOW)
        self.rep_detector: Optional[RepDetector] = None
        self.breathing_guide: Optional[BreathingGuide] = None

        if self.config.mode == TrackingMode.PHASE:
            self.rep_detector = RepDetector(self.config, min_confidence=self.min_confidence, clock=clock)
        elif self.config.mode == TrackingMode.BREATHING:
            pattern = self.config.breathing
            self.breathing_guide = BreathingGuide(
                pattern.breathe_in, pattern.hold, pattern.breathe_out, clock=clock,
            )

        self.state = SessionState.IDLE
        self.started_at: Optional[float] = None
        self.ended_at: Optional[float] = None
        self.validated_frames = 0
        self.correct_frames = 0
        self.dropped_frames = 0
        self.last_feedback: List[str] = []
        self._last_timestamp: Optional[float] = None

    # ── lifecycle ──────────────────────────────────────────────────────────────

    @property
    def mode(self) -> TrackingMode:
        return self.config.mode

    @property
    def is_active(self) -> bool:
        return self.state == SessionState.ACTIVE

    def start(self, now: Optional[float] = None):
        """Reset every piece of per-session state and begin tracking."""
        now = self._clock() if now is None else now
        self._reset_pipeline(now)
        self.state = SessionState.ACTIVE
        self.started_at = now
        self.ended_at = None
        if self.breathing_guide is not None:
            self.breathing_guide.start(now)
        logger.info(f"▶️ Session started: {self.exercise.id} (user: {self.user_id}, mode: {self.mode.value})")

    def restart(self, now: Optional[float] = None):
        logger.info(f"🔄 Session restarted: {self.exercise.id} (user: {self.user_id})")
        self.start(now)

    def pause(self) -> bool:
        if self.state != SessionState.ACTIVE:
            return False
        self.state = SessionState.PAUSED
        if self.breathing_guide is not None:
            self.breathing_guide.stop()
        logger.info(f"⏸️ Session paused: {self.exercise.id}")
        return True

    def resume(self, now: Optional[float] = None) -> bool:
        if self.state != SessionState.PAUSED:
            return False
        self.state = SessionState.ACTIVE
        if self.breathing_guide is not None:
            self.breathing_guide.resume(now)
        logger.info(f"▶️ Session resumed: {self.exercise.id}")
        return True

    def finish(self, now: Optional[float] = None) -> SessionSummary:
        """
        End the session and build its summary.

        Raises:
            RuntimeError: if the session was never started
        """
        if self.started_at is None:
            raise RuntimeError(f"Session for '{self.exercise.id}' was never started")

        if self.state != SessionState.COMPLETED:
            self.ended_at = self._clock() if now is None else now
        self.state = SessionState.COMPLETED
        if self.breathing_guide is not None:
            self.breathing_guide.stop()

        summary = SessionSummary(
            exercise_id=self.exercise.id,
            exercise_name=self.exercise.name,
            duration_seconds=int(self.elapsed_seconds(self.ended_at)),
            reps_completed=self.reps,
            accuracy=calculate_accuracy(self.correct_frames, self.validated_frames, self.accuracy_fallback),
            feedback=list(self.last_feedback),
            timestamp=get_now(),
            target_reps=self.exercise.target_reps,
            user_id=self.user_id,
        )
        logger.info(
            f"🏁 Session finished: {self.exercise.id} - reps: {summary.reps_completed}, "
            f"accuracy: {summary.accuracy}%, duration: {summary.duration_seconds}s"
        )
        return summary

    def close(self):
        """Tear down without a summary; safe to call more than once."""
        if self.breathing_guide is not None:
            self.breathing_guide.stop()
        if self.state != SessionState.COMPLETED:
            self.state = SessionState.COMPLETED
            self.ended_at = self._clock()

    def _reset_pipeline(self, now: float):
        self.smoother.reset()
        if self.rep_detector is not None:
            self.rep_detector.reset(now)
        if self.breathing_guide is not None:
            self.breathing_guide.reset()
        self.validated_frames = 0
        self.correct_frames = 0
        self.dropped_frames = 0
        self.last_feedback = []
        self._last_timestamp = None

    # ── progress ───────────────────────────────────────────────────────────────

    @property
    def reps(self) -> int:
        if self.rep_detector is not None:
            return self.rep_detector.total_reps
        if self.breathing_guide is not None:
            return self.breathing_guide.cycles
        return 0

    @property
    def accuracy(self) -> float:
        return calculate_accuracy(self.correct_frames, self.validated_frames, self.accuracy_fallback)

    def elapsed_seconds(self, now: Optional[float] = None) -> float:
        if self.started_at is None:
            return 0.0
        if now is None:
            now = self.ended_at if self.ended_at is not None else self._clock()
        return max(0.0, now - self.started_at)

    def target_reached(self, now: Optional[float] = None) -> bool:
        if self.exercise.target_reps is not None and self.mode != TrackingMode.TIMED:
            return self.reps >= self.exercise.target_reps
        if self.exercise.duration is not None:
            return self.elapsed_seconds(now) >= self.exercise.duration
        return False

    def breathing_state(self) -> Optional[BreathingState]:
        if self.breathing_guide is None:
            return None
        return self.breathing_guide.get_state()

    # ── per-frame pipeline ─────────────────────────────────────────────────────

    def process_frame(
        self,
        landmarks: Optional[LandmarkFrame],
        timestamp: Optional[float] = None,
        now: Optional[float] = None,
    ) -> Optional[FrameResult]:
        """
        Run one frame through validation and rep counting.

        Returns None when the session is not active or the frame is older
        than the last processed one.
        """
        if self.state != SessionState.ACTIVE:
            return None

        if timestamp is not None:
            if self._last_timestamp is not None and timestamp <= self._last_timestamp:
                self.dropped_frames += 1
                logger.debug(f"Dropped stale frame {timestamp} (last: {self._last_timestamp})")
                return None
            self._last_timestamp = timestamp

        now = self._clock() if now is None else now

        metrics = extract_metrics(landmarks)
        if not is_visible(metrics, self.min_confidence):
            return self._no_pose_result(now)

        # Instant feedback on raw landmarks
        validation = self.exercise.validate(landmarks, self.min_confidence)
        self.validated_frames += 1
        if validation.is_correct:
            self.correct_frames += 1
        self.last_feedback = validation.feedback

        phase_name = ""
        phase_progress = 0.0
        rep_completed = False
        visible = True
        confidence = metrics.confidence
        smoothed = self.smoother.smooth(metrics)

        if self.rep_detector is not None:
            detection = self.rep_detector.update(smoothed, now)
            phase_name = detection.phase_name
            phase_progress = detection.phase_progress
            confidence = detection.confidence
            rep_completed = detection.rep_completed
            visible = detection.visible
            if rep_completed:
                logger.info(f"✅ Rep {detection.total_reps} completed: {self.exercise.id}")
        elif self.breathing_guide is not None:
            breathing = self.breathing_guide.get_state()
            phase_name = breathing.phase.value
            # Cycle completions are reported by the breathing timer, not per frame
            phase_progress = 1.0 - breathing.countdown / breathing.total_duration if breathing.total_duration else 0.0
        else:
            phase_name = "hold"
            if self.exercise.duration:
                phase_progress = min(1.0, self.elapsed_seconds(now) / self.exercise.duration)

        return FrameResult(
            is_correct=validation.is_correct,
            feedback=validation.feedback,
            phase_name=phase_name,
            phase_progress=phase_progress,
            confidence=confidence,
            rep_completed=rep_completed,
            reps=self.reps,
            target_reps=self.exercise.target_reps,
            target_reached=self.target_reached(now),
            elapsed_seconds=self.elapsed_seconds(now),
            key_angles=validation.key_angles,
            visible=visible,
        )

    def _no_pose_result(self, now: float) -> FrameResult:
        return FrameResult(
            is_correct=False,
            feedback=[NOT_VISIBLE_FEEDBACK],
            phase_name=NOT_VISIBLE_PHASE,
            phase_progress=0.0,
            confidence=0.0,
            rep_completed=False,
            reps=self.reps,
            target_reps=self.exercise.target_reps,
            target_reached=self.target_reached(now),
            elapsed_seconds=self.elapsed_seconds(now),
            visible=False,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "exercise_id": self.exercise.id,
            "user_id": self.user_id,
            "state": self.state.value,
            "mode": self.mode.value,
            "reps": self.reps,
            "target_reps": self.exercise.target_reps,
            "duration": self.exercise.duration,
            "elapsed_seconds": round(self.elapsed_seconds(), 1),
            "accuracy": self.accuracy,
            "validated_frames": self.validated_frames,
            "correct_frames": self.correct_frames,
        }


# ═══════════════════════════════════════════════════════════════════════════════
# PERSISTENCE
# ═══════════════════════════════════════════════════════════════════════════════

class ExerciseHistoryStore:
    """
    Writes session summaries and tutorial flags under pregnancyData/{userId}.

    Works against Firestore or the in-memory mock transparently.
    """

    ROOT_COLLECTION = "pregnancyData"
    HISTORY_COLLECTION = "exerciseHistory"
    TUTORIAL_COLLECTION = "exerciseTutorials"

    def __init__(self, db=None):
        self._db = db

    @property
    def db(self):
        return self._db if self._db is not None else get_database()

    def _user_doc(self, user_id: str):
        return self.db.collection(self.ROOT_COLLECTION).document(user_id)

    def save_summary(self, user_id: str, summary: SessionSummary) -> bool:
        """Append a summary to the user's history. Returns False if the write failed."""
        try:
            self._user_doc(user_id).collection(self.HISTORY_COLLECTION).add(summary.to_record())
        except Exception as e:
            logger.error(f"❌ Failed to save exercise history for {user_id}: {e}")
            return False
        logger.info(f"💾 Exercise history saved: {summary.exercise_id} (user: {user_id})")
        return True

    def get_history(self, user_id: str) -> List[Dict[str, Any]]:
        docs = self._user_doc(user_id).collection(self.HISTORY_COLLECTION).stream()
        return [doc.to_dict() for doc in docs]

    def mark_tutorial_viewed(self, user_id: str, exercise_id: str):
        self._user_doc(user_id).collection(self.TUTORIAL_COLLECTION).document(exercise_id).set({
            "viewed": True,
            "timestamp": get_now(),
        })
        logger.info(f"📖 Tutorial marked viewed: {exercise_id} (user: {user_id})")

    def has_viewed_tutorial(self, user_id: str, exercise_id: str) -> bool:
        doc = self._user_doc(user_id).collection(self.TUTORIAL_COLLECTION).document(exercise_id).get()
        return bool(doc.exists)
