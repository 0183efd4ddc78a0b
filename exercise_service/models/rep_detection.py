"""
MOOMA Exercise Service - Rep Detection

Phase state machine that counts repetitions from smoothed pose metrics.

Each exercise is described as an ordered list of goal phases. The detector
waits in phase i until that phase's goal region has been held for a few
stable frames and a minimum dwell time; it then advances. Completing the
last phase wraps back to phase 0 and counts one repetition, gated by a
cooldown so noise can never inflate the count.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from core.config import settings

from .metrics import PoseMetrics


NOT_VISIBLE_PHASE = "📸 Pastikan tubuh terlihat"
NOT_VISIBLE_FEEDBACK = "Posisi tidak terdeteksi"


# ═══════════════════════════════════════════════════════════════════════════════
# CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════════

class TrackingMode(Enum):
    """How an exercise is counted."""
    PHASE = "phase"          # RepDetector
    BREATHING = "breathing"  # BreathingGuide
    TIMED = "timed"          # hold for the exercise duration


class Combine(Enum):
    ALL = "all"
    ANY = "any"


@dataclass(frozen=True)
class PhaseCondition:
    """Bound on one metric. Either bound may be omitted."""
    metric: str
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    absolute: bool = False

    def value_of(self, metrics: PoseMetrics) -> Optional[float]:
        value = metrics.get(self.metric)
        if value is None:
            return None
        return abs(value) if self.absolute else value

    def distance(self, value: float) -> float:
        """How far a value lies outside the bounds (0 when inside)."""
        if self.minimum is not None and value < self.minimum:
            return self.minimum - value
        if self.maximum is not None and value > self.maximum:
            return value - self.maximum
        return 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metric": self.metric,
            "min": self.minimum,
            "max": self.maximum,
            "absolute": self.absolute,
        }


@dataclass(frozen=True)
class Phase:
    """A named goal region in metric space."""
    name: str
    conditions: Tuple[PhaseCondition, ...]
    combine: Combine = Combine.ALL

    @property
    def metrics_watched(self) -> List[str]:
        return [c.metric for c in self.conditions]

    def distance(self, metrics: PoseMetrics) -> Optional[float]:
        """
        Distance from the goal region, 0 when satisfied.

        ALL sums the per-condition distances, ANY takes the closest one.
        Returns None if a watched metric is unmeasurable.
        """
        distances = []
        for condition in self.conditions:
            value = condition.value_of(metrics)
            if value is None:
                return None
            distances.append(condition.distance(value))

        if not distances:
            return 0.0
        if self.combine == Combine.ANY:
            return min(distances)
        return sum(distances)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "combine": self.combine.value,
            "conditions": [c.to_dict() for c in self.conditions],
        }


@dataclass(frozen=True)
class BreathingPattern:
    """Breathing durations in seconds."""
    breathe_in: float = 4.0
    hold: float = 2.0
    breathe_out: float = 4.0

    def to_dict(self) -> Dict[str, float]:
        return {"breathe_in": self.breathe_in, "hold": self.hold, "breathe_out": self.breathe_out}


@dataclass(frozen=True)
class RepConfig:
    """Tracking configuration for one exercise."""
    mode: TrackingMode
    phases: Tuple[Phase, ...] = ()
    min_phase_duration_ms: int = 300
    cooldown_ms: int = field(default_factory=lambda: settings.REP_COOLDOWN_MS)
    stable_frames_required: int = 3
    breathing: Optional[BreathingPattern] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"mode": self.mode.value}
        if self.mode == TrackingMode.BREATHING and self.breathing is not None:
            data["breathing"] = self.breathing.to_dict()
        elif self.mode == TrackingMode.PHASE:
            data.update({
                "phases": [p.to_dict() for p in self.phases],
                "min_phase_duration_ms": self.min_phase_duration_ms,
                "cooldown_ms": self.cooldown_ms,
                "stable_frames_required": self.stable_frames_required,
            })
        return data


@dataclass
class RepDetectionResult:
    """Per-frame output of the detector, consumed by the UI."""
    rep_completed: bool
    phase_index: int
    phase_name: str
    phase_progress: float
    feedback: str
    confidence: float
    total_reps: int
    visible: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rep_completed": self.rep_completed,
            "phase_index": self.phase_index,
            "phase_name": self.phase_name,
            "phase_progress": round(self.phase_progress, 3),
            "feedback": self.feedback,
            "confidence": round(self.confidence, 3),
            "total_reps": self.total_reps,
            "visible": self.visible,
        }


# ═══════════════════════════════════════════════════════════════════════════════
# REP DETECTOR
# ═══════════════════════════════════════════════════════════════════════════════

class RepDetector:
    """
    Counts repetitions by walking an exercise's goal phases in order.

    Usage:
        detector = RepDetector(get_rep_config("pelvic-tilt"))
        result = detector.update(smoothed_metrics)
        if result.rep_completed:
            ...
    """

    def __init__(
        self,
        config: RepConfig,
        min_confidence: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if config.mode != TrackingMode.PHASE or not config.phases:
            raise ValueError("RepDetector needs a phase configuration with at least one phase")

        self.config = config
        self.min_confidence = settings.MIN_POSE_CONFIDENCE if min_confidence is None else min_confidence
        self._clock = clock

        self.phase_index = 0
        self.total_reps = 0
        self._stable_frames = 0
        self._phase_started_at = 0.0
        self._last_rep_at: Optional[float] = None
        self._entry_distance: Optional[float] = None
        self.reset()

    @property
    def current_phase(self) -> Phase:
        return self.config.phases[self.phase_index]

    def reset(self, now: Optional[float] = None):
        """Back to phase 0 with zero reps and a fresh dwell clock."""
        self.phase_index = 0
        self.total_reps = 0
        self._stable_frames = 0
        self._phase_started_at = self._clock() if now is None else now
        self._last_rep_at = None
        self._entry_distance = None

    def update(self, metrics: Optional[PoseMetrics], now: Optional[float] = None) -> RepDetectionResult:
        """Feed one frame of smoothed metrics."""
        now = self._clock() if now is None else now
        phase = self.current_phase

        if metrics is None or metrics.confidence < self.min_confidence:
            return self._not_visible(metrics)

        distance = phase.distance(metrics)
        if distance is None:
            return self._not_visible(metrics)

        if self._entry_distance is None:
            self._entry_distance = distance

        confidence = metrics.confidence / (1.0 + distance / 10.0)

        if distance > 0:
            self._stable_frames = max(0, self._stable_frames - 1)
            return self._result(
                rep_completed=False,
                progress=self._progress(distance),
                feedback=f"🎯 Menuju: {phase.name}",
                confidence=confidence,
            )

        self._stable_frames += 1
        dwell_ms = (now - self._phase_started_at) * 1000
        ready = (
            self._stable_frames >= self.config.stable_frames_required
            and dwell_ms >= self.config.min_phase_duration_ms
        )
        if not ready:
            return self._result(False, 1.0, f"✅ {phase.name}", confidence)

        is_last = self.phase_index == len(self.config.phases) - 1
        if is_last:
            if self._last_rep_at is not None and (now - self._last_rep_at) * 1000 < self.config.cooldown_ms:
                return self._result(False, 1.0, f"✅ {phase.name}", confidence)
            self.total_reps += 1
            self._last_rep_at = now
            self._advance(0, now)
            return self._result(True, 0.0, "Gerakan sempurna!", confidence)

        self._advance(self.phase_index + 1, now)
        return self._result(False, 0.0, "Bagus! Lanjut ke fase berikutnya", confidence)

    def _advance(self, index: int, now: float):
        self.phase_index = index
        self._phase_started_at = now
        self._stable_frames = 0
        self._entry_distance = None

    def _progress(self, distance: float) -> float:
        if not self._entry_distance:
            return 0.0
        return min(1.0, max(0.0, 1.0 - distance / self._entry_distance))

    def _result(self, rep_completed: bool, progress: float, feedback: str, confidence: float) -> RepDetectionResult:
        return RepDetectionResult(
            rep_completed=rep_completed,
            phase_index=self.phase_index,
            phase_name=self.current_phase.name,
            phase_progress=progress,
            feedback=feedback,
            confidence=confidence,
            total_reps=self.total_reps,
        )

    def _not_visible(self, metrics: Optional[PoseMetrics]) -> RepDetectionResult:
        return RepDetectionResult(
            rep_completed=False,
            phase_index=self.phase_index,
            phase_name=NOT_VISIBLE_PHASE,
            phase_progress=0.0,
            feedback=NOT_VISIBLE_FEEDBACK,
            confidence=metrics.confidence if metrics is not None else 0.0,
            total_reps=self.total_reps,
            visible=False,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# REP CONFIGS
# ═══════════════════════════════════════════════════════════════════════════════
#
# arm_y: positive = wrist below shoulder, negative = wrist above shoulder
# knee_spread: knee distance relative to hip width

def _both_arms(minimum=None, maximum=None, absolute=False) -> Tuple[PhaseCondition, ...]:
    return (
        PhaseCondition("left_arm_y", minimum, maximum, absolute),
        PhaseCondition("right_arm_y", minimum, maximum, absolute),
    )


REP_CONFIGS: Dict[str, RepConfig] = {
    # Breathing
    "diaphragmatic-breathing": RepConfig(
        mode=TrackingMode.BREATHING,
        breathing=BreathingPattern(breathe_in=4, hold=2, breathe_out=4),
    ),
    "labor-breathing": RepConfig(
        mode=TrackingMode.BREATHING,
        breathing=BreathingPattern(breathe_in=4, hold=6, breathe_out=8),
    ),

    # Arms overhead and back down
    "seated-cat-cow": RepConfig(
        mode=TrackingMode.PHASE,
        phases=(
            Phase("Angkat ke Atas", _both_arms(maximum=-15), Combine.ANY),
            Phase("Tangan di Samping", _both_arms(minimum=10)),
        ),
        min_phase_duration_ms=300,
    ),

    # Chest fly: elbows bend when closing, extend when opening
    "scapular-retraction": RepConfig(
        mode=TrackingMode.PHASE,
        phases=(
            Phase("Tutup ke Depan", (PhaseCondition("avg_elbow_angle", maximum=90),)),
            Phase("Buka ke Samping", (PhaseCondition("avg_elbow_angle", minimum=130),)),
        ),
        min_phase_duration_ms=300,
    ),

    "pelvic-tilt": RepConfig(
        mode=TrackingMode.PHASE,
        phases=(
            Phase("Tilt Panggul", (PhaseCondition("spine_angle", minimum=12, absolute=True),)),
            Phase("Kembali Netral", (PhaseCondition("spine_angle", maximum=8, absolute=True),)),
        ),
        min_phase_duration_ms=400,
    ),

    "seated-row": RepConfig(
        mode=TrackingMode.PHASE,
        phases=(
            Phase("Tarik ke Belakang", (PhaseCondition("avg_elbow_angle", maximum=100),)),
            Phase("Tangan Lurus", (PhaseCondition("avg_elbow_angle", minimum=140),)),
        ),
        min_phase_duration_ms=300,
    ),

    # Alternate arms; arm height is easier to see than body lean
    "side-bend": RepConfig(
        mode=TrackingMode.PHASE,
        phases=(
            Phase("Angkat Tangan Kiri", (
                PhaseCondition("left_arm_y", maximum=-10),
                PhaseCondition("right_arm_y", minimum=0),
            )),
            Phase("Turunkan", _both_arms(minimum=5)),
            Phase("Angkat Tangan Kanan", (
                PhaseCondition("right_arm_y", maximum=-10),
                PhaseCondition("left_arm_y", minimum=0),
            )),
            Phase("Kedua Tangan Turun", _both_arms(minimum=5)),
        ),
        min_phase_duration_ms=300,
        stable_frames_required=2,
    ),

    "butterfly-sitting": RepConfig(
        mode=TrackingMode.PHASE,
        phases=(
            Phase("Buka Lutut", (PhaseCondition("knee_spread", minimum=2.0),)),
            Phase("Lutut Rapat", (PhaseCondition("knee_spread", maximum=1.5),)),
        ),
        min_phase_duration_ms=500,
        stable_frames_required=4,
    ),

    "arm-circles": RepConfig(
        mode=TrackingMode.PHASE,
        phases=(
            Phase("Angkat Tinggi", _both_arms(maximum=-20)),
            Phase("Turunkan", _both_arms(minimum=25)),
            Phase("Sejajar Bahu", _both_arms(maximum=20, absolute=True)),
        ),
        min_phase_duration_ms=300,
        stable_frames_required=2,
    ),

    "squat": RepConfig(
        mode=TrackingMode.PHASE,
        phases=(
            Phase("Turun", (PhaseCondition("avg_knee_angle", maximum=120),)),
            Phase("Berdiri", (PhaseCondition("avg_knee_angle", minimum=160),)),
        ),
        min_phase_duration_ms=500,
    ),

    "arm-raises": RepConfig(
        mode=TrackingMode.PHASE,
        phases=(
            Phase("Angkat Lengan", (PhaseCondition("avg_shoulder_angle", minimum=75),)),
            Phase("Turunkan Lengan", (PhaseCondition("avg_shoulder_angle", maximum=30),)),
        ),
        min_phase_duration_ms=400,
    ),

    "standing-balance": RepConfig(mode=TrackingMode.TIMED),
}


def get_rep_config(exercise_id: str) -> Optional[RepConfig]:
    """Tracking config for an exercise; None when the id is unknown."""
    return REP_CONFIGS.get(exercise_id)


def create_rep_detector(exercise_id: str, **kwargs) -> RepDetector:
    """
    Build a detector for a phase-tracked exercise.

    Raises:
        KeyError: unknown exercise id
        ValueError: the exercise is not phase-tracked
    """
    config = get_rep_config(exercise_id)
    if config is None:
        raise KeyError(exercise_id)
    return RepDetector(config, **kwargs)
