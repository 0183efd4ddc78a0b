"""
MOOMA Exercise Service - Exercise Library

Catalog of pregnancy-safe exercises. Each entry is plain data; its per-frame
form check is selected from a closed set of validation strategies, each a
table of posture checks classified with the shared three-tier classifier.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from .metrics import PoseMetrics, extract_metrics, is_visible
from .pose_utils import AngleStatus, LandmarkFrame, classify


# ═══════════════════════════════════════════════════════════════════════════════
# ENUMS AND DATA CLASSES
# ═══════════════════════════════════════════════════════════════════════════════

class Difficulty(Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class ExerciseCategory(Enum):
    BREATHING = "breathing"
    FLEXIBILITY = "flexibility"
    STRENGTH = "strength"
    RELAXATION = "relaxation"


class ValidationStrategy(Enum):
    """Per-frame form checks an exercise can use."""
    UPRIGHT_POSTURE = "upright_posture"
    ARMS_OVERHEAD = "arms_overhead"
    CHEST_FLY = "chest_fly"
    PELVIC_TILT = "pelvic_tilt"
    SIDE_BEND = "side_bend"
    ARM_CIRCLES = "arm_circles"
    SQUAT = "squat"
    ARM_RAISES = "arm_raises"
    STANDING = "standing"


@dataclass(frozen=True)
class PostureCheck:
    """One measurement compared against a target, or against a floor when at_least is set."""
    name: str
    metric: str
    target: float
    tolerance: float
    too_low: str   # hint when the measurement is below target
    too_high: str  # hint when the measurement is above target
    at_least: bool = False

    def status(self, value: Optional[float]) -> AngleStatus:
        if not self.at_least or value is None:
            return classify(value, self.target, self.tolerance)
        if value >= self.target:
            return AngleStatus.CORRECT
        if value >= self.target - self.tolerance:
            return AngleStatus.CLOSE
        return AngleStatus.INCORRECT


@dataclass
class KeyAngle:
    """Angle reading for the UI overlay."""
    name: str
    current: Optional[float]
    target: float
    status: AngleStatus

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "current": round(self.current, 1) if self.current is not None else None,
            "target": self.target,
            "status": self.status.value,
        }


@dataclass
class ExerciseValidation:
    """Result of checking one frame against an exercise's form rules."""
    is_correct: bool
    feedback: List[str] = field(default_factory=list)
    key_angles: List[KeyAngle] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_correct": self.is_correct,
            "feedback": self.feedback,
            "key_angles": [a.to_dict() for a in self.key_angles],
        }


@dataclass(frozen=True)
class Exercise:
    """Immutable catalog entry."""
    id: str
    name: str
    description: str
    instructions: Tuple[str, ...]
    difficulty: Difficulty
    trimester_safe: FrozenSet[int]
    category: ExerciseCategory
    validation: ValidationStrategy
    icon: str
    target_reps: Optional[int] = None
    duration: Optional[int] = None  # seconds, for timed exercises

    def validate(self, landmarks: Optional[LandmarkFrame], min_confidence: Optional[float] = None) -> ExerciseValidation:
        return validate_pose(self.validation, landmarks, min_confidence)

    def is_safe_for(self, trimester: int) -> bool:
        return trimester in self.trimester_safe

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "instructions": list(self.instructions),
            "target_reps": self.target_reps,
            "duration": self.duration,
            "difficulty": self.difficulty.value,
            "trimester_safe": sorted(self.trimester_safe),
            "category": self.category.value,
            "icon": self.icon,
        }


# ═══════════════════════════════════════════════════════════════════════════════
# POSTURE CHECKS
# ═══════════════════════════════════════════════════════════════════════════════

NOT_VISIBLE_FEEDBACK = "📸 Tubuh tidak terlihat, pastikan seluruh badan masuk kamera"

_SPINE_UPRIGHT = PostureCheck(
    name="Punggung", metric="spine_angle", target=0, tolerance=10,
    too_low="Tegakkan punggung, badan condong ke samping",
    too_high="Tegakkan punggung, badan condong ke samping",
)

_SPINE_RELAXED = PostureCheck(
    name="Punggung", metric="spine_angle", target=0, tolerance=15,
    too_low="Jaga punggung tetap tegak",
    too_high="Jaga punggung tetap tegak",
)

_ELBOWS_STRAIGHT = PostureCheck(
    name="Siku", metric="avg_elbow_angle", target=170, tolerance=15,
    too_low="Luruskan siku",
    too_high="Luruskan siku",
)

VALIDATION_CHECKS: Dict[ValidationStrategy, Tuple[PostureCheck, ...]] = {
    ValidationStrategy.UPRIGHT_POSTURE: (_SPINE_UPRIGHT,),
    ValidationStrategy.ARMS_OVERHEAD: (_SPINE_RELAXED, _ELBOWS_STRAIGHT),
    ValidationStrategy.CHEST_FLY: (
        _SPINE_UPRIGHT,
        PostureCheck(
            name="Bahu", metric="avg_shoulder_angle", target=90, tolerance=20,
            too_low="Angkat lengan sejajar bahu",
            too_high="Turunkan lengan sejajar bahu",
        ),
    ),
    ValidationStrategy.PELVIC_TILT: (
        PostureCheck(
            name="Pinggul", metric="avg_hip_angle", target=170, tolerance=15,
            too_low="Jangan membungkuk, gerakkan hanya pinggul",
            too_high="Miringkan pinggul sedikit lebih jauh",
        ),
    ),
    ValidationStrategy.SIDE_BEND: (
        PostureCheck(
            name="Punggung", metric="spine_angle", target=0, tolerance=20,
            too_low="Jangan terlalu jauh, tekuk punggung perlahan",
            too_high="Jangan terlalu jauh, tekuk punggung perlahan",
        ),
        PostureCheck(
            name="Siku", metric="avg_elbow_angle", target=160, tolerance=20,
            too_low="Luruskan siku saat mengangkat tangan",
            too_high="Luruskan siku saat mengangkat tangan",
        ),
    ),
    ValidationStrategy.ARM_CIRCLES: (_SPINE_RELAXED, _ELBOWS_STRAIGHT),
    ValidationStrategy.SQUAT: (
        PostureCheck(
            name="Lutut", metric="avg_knee_angle", target=100, tolerance=20,
            too_low="⚠️ Jangan terlalu dalam, lindungi lutut",
            too_high="Tekuk lutut lebih dalam",
        ),
        PostureCheck(
            name="Pinggul", metric="avg_hip_angle", target=90, tolerance=25,
            too_low="Angkat pinggul sedikit",
            too_high="Turunkan pinggul lebih rendah",
        ),
        PostureCheck(
            name="Jarak Lutut", metric="knee_spread", target=0.7, tolerance=0.15,
            too_low="⚠️ Jaga lutut sejajar dengan kaki",
            too_high="⚠️ Jaga lutut sejajar dengan kaki",
            at_least=True,
        ),
    ),
    ValidationStrategy.ARM_RAISES: (
        PostureCheck(
            name="Bahu", metric="avg_shoulder_angle", target=90, tolerance=15,
            too_low="Angkat lengan lebih tinggi, sejajar bahu",
            too_high="Turunkan sedikit, sejajar bahu",
        ),
        PostureCheck(
            name="Siku", metric="avg_elbow_angle", target=180, tolerance=20,
            too_low="Luruskan siku",
            too_high="Luruskan siku",
        ),
    ),
    ValidationStrategy.STANDING: (
        PostureCheck(
            name="Lutut", metric="avg_knee_angle", target=180, tolerance=20,
            too_low="Luruskan lutut, berdiri lebih tegak",
            too_high="Luruskan lutut, berdiri lebih tegak",
        ),
        _SPINE_UPRIGHT,
    ),
}


def evaluate_checks(
    metrics: Optional[PoseMetrics],
    checks: Tuple[PostureCheck, ...],
    min_confidence: Optional[float] = None,
) -> ExerciseValidation:
    """
    Classify each check; the frame is correct only if every check is correct.

    Feedback holds one hint per check that is close or incorrect, and is
    empty when the whole frame is correct. A frame whose landmark confidence
    is under min_confidence is reported as not visible.
    """
    if not is_visible(metrics, min_confidence):
        return ExerciseValidation(
            is_correct=False,
            feedback=[NOT_VISIBLE_FEEDBACK],
            key_angles=[KeyAngle(c.name, None, c.target, AngleStatus.INCORRECT) for c in checks],
        )

    feedback: List[str] = []
    key_angles: List[KeyAngle] = []

    for check in checks:
        value = metrics.get(check.metric)
        status = check.status(value)
        key_angles.append(KeyAngle(check.name, value, check.target, status))

        if status == AngleStatus.CORRECT:
            continue
        if value is None:
            hint = f"{check.name} tidak terlihat di kamera"
        elif value < check.target:
            hint = check.too_low
        else:
            hint = check.too_high
        if hint not in feedback:
            feedback.append(hint)

    is_correct = bool(key_angles) and all(a.status == AngleStatus.CORRECT for a in key_angles)
    return ExerciseValidation(is_correct=is_correct, feedback=feedback, key_angles=key_angles)


def validate_pose(
    strategy: ValidationStrategy,
    landmarks: Optional[LandmarkFrame],
    min_confidence: Optional[float] = None,
) -> ExerciseValidation:
    """Run a validation strategy against raw landmarks. Never raises for bad frames."""
    return evaluate_checks(extract_metrics(landmarks), VALIDATION_CHECKS[strategy], min_confidence)


# ═══════════════════════════════════════════════════════════════════════════════
# EXERCISE CATALOG
# ═══════════════════════════════════════════════════════════════════════════════

ALL_TRIMESTERS = frozenset({1, 2, 3})

EXERCISE_LIBRARY: Tuple[Exercise, ...] = (
    Exercise(
        id="diaphragmatic-breathing",
        name="Pernapasan Diafragma",
        description="Napas dalam ke perut untuk menenangkan tubuh dan pikiran",
        instructions=(
            "Duduk tegak dengan bahu rileks",
            "Letakkan satu tangan di perut",
            "Tarik napas lewat hidung, rasakan perut mengembang",
            "Tahan sebentar, lalu hembuskan perlahan lewat mulut",
        ),
        target_reps=5,
        difficulty=Difficulty.EASY,
        trimester_safe=ALL_TRIMESTERS,
        category=ExerciseCategory.BREATHING,
        validation=ValidationStrategy.UPRIGHT_POSTURE,
        icon="🌬️",
    ),
    Exercise(
        id="seated-cat-cow",
        name="Angkat Tangan ke Atas",
        description="Peregangan lengan dan punggung atas dalam posisi duduk",
        instructions=(
            "Duduk tegak dengan tangan di samping badan",
            "Angkat kedua tangan lurus ke atas kepala",
            "Tahan sejenak sambil menarik napas",
            "Turunkan kembali perlahan",
        ),
        target_reps=10,
        difficulty=Difficulty.EASY,
        trimester_safe=ALL_TRIMESTERS,
        category=ExerciseCategory.FLEXIBILITY,
        validation=ValidationStrategy.ARMS_OVERHEAD,
        icon="🙆‍♀️",
    ),
    Exercise(
        id="scapular-retraction",
        name="Chest Fly",
        description="Buka dan tutup lengan untuk menguatkan punggung atas dan dada",
        instructions=(
            "Duduk atau berdiri tegak",
            "Rentangkan kedua lengan ke samping sejajar bahu",
            "Bawa lengan ke depan seperti memeluk",
            "Buka kembali ke samping",
        ),
        target_reps=10,
        difficulty=Difficulty.EASY,
        trimester_safe=ALL_TRIMESTERS,
        category=ExerciseCategory.STRENGTH,
        validation=ValidationStrategy.CHEST_FLY,
        icon="🤗",
    ),
    Exercise(
        id="pelvic-tilt",
        name="Pelvic Tilt",
        description="Gerakan panggul untuk meredakan nyeri punggung bawah",
        instructions=(
            "Berdiri dengan kaki selebar pinggul",
            "Miringkan panggul perlahan",
            "Tahan 2 detik",
            "Kembali ke posisi netral",
        ),
        target_reps=10,
        difficulty=Difficulty.EASY,
        trimester_safe=ALL_TRIMESTERS,
        category=ExerciseCategory.FLEXIBILITY,
        validation=ValidationStrategy.PELVIC_TILT,
        icon="🍑",
    ),
    Exercise(
        id="seated-row",
        name="Seated Row",
        description="Tarik lengan ke belakang untuk postur yang lebih baik",
        instructions=(
            "Duduk tegak dengan lengan lurus ke depan",
            "Tarik siku ke belakang sambil merapatkan tulang belikat",
            "Tahan sejenak",
            "Luruskan kembali lengan ke depan",
        ),
        target_reps=12,
        difficulty=Difficulty.MEDIUM,
        trimester_safe=frozenset({2, 3}),
        category=ExerciseCategory.STRENGTH,
        validation=ValidationStrategy.UPRIGHT_POSTURE,
        icon="🚣‍♀️",
    ),
    Exercise(
        id="side-bend",
        name="Side Bend",
        description="Peregangan sisi tubuh dengan mengangkat tangan bergantian",
        instructions=(
            "Duduk tegak dengan kedua tangan di samping",
            "Angkat tangan kiri ke atas dan condongkan badan ke kanan",
            "Turunkan kembali",
            "Ulangi dengan tangan kanan",
        ),
        target_reps=8,
        difficulty=Difficulty.MEDIUM,
        trimester_safe=frozenset({1, 2}),
        category=ExerciseCategory.FLEXIBILITY,
        validation=ValidationStrategy.SIDE_BEND,
        icon="🌿",
    ),
    Exercise(
        id="labor-breathing",
        name="Napas Persalinan",
        description="Latihan napas panjang untuk persiapan persalinan",
        instructions=(
            "Duduk nyaman dengan punggung tegak",
            "Tarik napas dalam selama 4 hitungan",
            "Tahan napas selama 6 hitungan",
            "Hembuskan perlahan selama 8 hitungan",
        ),
        target_reps=4,
        difficulty=Difficulty.MEDIUM,
        trimester_safe=frozenset({2, 3}),
        category=ExerciseCategory.BREATHING,
        validation=ValidationStrategy.UPRIGHT_POSTURE,
        icon="🫁",
    ),
    Exercise(
        id="butterfly-sitting",
        name="Butterfly Sitting",
        description="Membuka panggul dan meregangkan paha bagian dalam",
        instructions=(
            "Duduk dengan telapak kaki saling menempel",
            "Jaga punggung tetap tegak",
            "Buka lutut perlahan ke samping",
            "Rapatkan kembali lutut",
        ),
        target_reps=10,
        difficulty=Difficulty.EASY,
        trimester_safe=ALL_TRIMESTERS,
        category=ExerciseCategory.RELAXATION,
        validation=ValidationStrategy.UPRIGHT_POSTURE,
        icon="🦋",
    ),
    Exercise(
        id="arm-circles",
        name="Putaran Lengan",
        description="Melancarkan peredaran darah di lengan dan bahu",
        instructions=(
            "Berdiri atau duduk dengan tangan di samping sejajar bahu",
            "Angkat kedua tangan tinggi ke atas",
            "Turunkan ke bawah dalam gerakan melingkar",
            "Kembali ke sejajar bahu",
        ),
        target_reps=10,
        difficulty=Difficulty.EASY,
        trimester_safe=ALL_TRIMESTERS,
        category=ExerciseCategory.STRENGTH,
        validation=ValidationStrategy.ARM_CIRCLES,
        icon="🔄",
    ),
    Exercise(
        id="squat",
        name="Squat Mooma",
        description="Squat ringan untuk menguatkan kaki dan panggul",
        instructions=(
            "Berdiri dengan kaki selebar bahu",
            "Turunkan tubuh seperti duduk di kursi",
            "Jaga lutut sejajar dengan kaki",
            "Kembali ke posisi awal",
        ),
        target_reps=10,
        difficulty=Difficulty.MEDIUM,
        trimester_safe=ALL_TRIMESTERS,
        category=ExerciseCategory.STRENGTH,
        validation=ValidationStrategy.SQUAT,
        icon="🏋️‍♀️",
    ),
    Exercise(
        id="arm-raises",
        name="Angkat Lengan",
        description="Latihan untuk menguatkan bahu dan lengan",
        instructions=(
            "Berdiri tegak dengan kaki rapat",
            "Angkat kedua lengan ke samping",
            "Luruskan siku",
            "Tahan sejajar bahu, lalu turunkan",
        ),
        target_reps=12,
        difficulty=Difficulty.EASY,
        trimester_safe=ALL_TRIMESTERS,
        category=ExerciseCategory.STRENGTH,
        validation=ValidationStrategy.ARM_RAISES,
        icon="💪",
    ),
    Exercise(
        id="standing-balance",
        name="Berdiri Tegak",
        description="Latihan keseimbangan dan postur",
        instructions=(
            "Berdiri tegak dengan kaki rapat",
            "Bahu rileks",
            "Pandangan lurus ke depan",
            "Tahan posisi ini",
        ),
        duration=30,
        difficulty=Difficulty.EASY,
        trimester_safe=ALL_TRIMESTERS,
        category=ExerciseCategory.RELAXATION,
        validation=ValidationStrategy.STANDING,
        icon="🧘‍♀️",
    ),
)

_EXERCISES_BY_ID: Dict[str, Exercise] = {ex.id: ex for ex in EXERCISE_LIBRARY}

TRIMESTER_PROGRAM: Dict[int, Tuple[str, ...]] = {
    1: ("diaphragmatic-breathing", "seated-cat-cow", "scapular-retraction"),
    2: ("pelvic-tilt", "seated-row", "side-bend"),
    3: ("labor-breathing", "butterfly-sitting", "arm-circles"),
}


def get_exercise_by_id(exercise_id: str) -> Optional[Exercise]:
    """Look up an exercise; None when the id is unknown."""
    return _EXERCISES_BY_ID.get(exercise_id)


def get_exercises_for_trimester(trimester: int) -> List[Exercise]:
    """Exercises considered safe for the given trimester."""
    return [ex for ex in EXERCISE_LIBRARY if ex.is_safe_for(trimester)]


def get_trimester_program(trimester: int) -> List[Exercise]:
    """The curated three-exercise program for a trimester ([] outside 1-3)."""
    return [_EXERCISES_BY_ID[ex_id] for ex_id in TRIMESTER_PROGRAM.get(trimester, ())]
