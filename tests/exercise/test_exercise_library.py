"""Tests for the exercise catalog and per-frame form validation."""

from dataclasses import replace

import pytest

from exercise_service.models.exercise_library import (
    EXERCISE_LIBRARY,
    NOT_VISIBLE_FEEDBACK,
    ExerciseCategory,
    ValidationStrategy,
    VALIDATION_CHECKS,
    evaluate_checks,
    get_exercise_by_id,
    get_exercises_for_trimester,
    get_trimester_program,
    validate_pose,
)
from exercise_service.models.metrics import PoseMetrics
from exercise_service.models.pose_utils import AngleStatus, JointType
from exercise_service.models.rep_detection import TrackingMode, get_rep_config

from conftest import bend_knees, lean_torso, raise_arms, standing_pose

KNEE_HINT = "⚠️ Jaga lutut sejajar dengan kaki"


class TestCatalog:

    def test_twelve_unique_exercises(self):
        ids = [e.id for e in EXERCISE_LIBRARY]
        assert len(ids) == 12
        assert len(set(ids)) == 12

    def test_lookup(self):
        assert get_exercise_by_id("pelvic-tilt").target_reps == 10
        assert get_exercise_by_id("does-not-exist") is None

    @pytest.mark.parametrize("trimester, expected", [
        (1, ["diaphragmatic-breathing", "seated-cat-cow", "scapular-retraction"]),
        (2, ["pelvic-tilt", "seated-row", "side-bend"]),
        (3, ["labor-breathing", "butterfly-sitting", "arm-circles"]),
    ])
    def test_trimester_program(self, trimester, expected):
        assert [e.id for e in get_trimester_program(trimester)] == expected

    def test_program_outside_pregnancy_is_empty(self):
        assert get_trimester_program(0) == []
        assert get_trimester_program(4) == []

    def test_trimester_safety_filter(self):
        first = {e.id for e in get_exercises_for_trimester(1)}
        third = {e.id for e in get_exercises_for_trimester(3)}
        assert "seated-row" not in first
        assert "labor-breathing" in third
        assert "side-bend" not in third

    def test_program_exercises_are_safe_for_their_trimester(self):
        for trimester in (1, 2, 3):
            assert all(e.is_safe_for(trimester) for e in get_trimester_program(trimester))

    def test_every_exercise_has_tracking_config(self):
        for exercise in EXERCISE_LIBRARY:
            config = get_rep_config(exercise.id)
            assert config is not None, exercise.id
            is_breathing = exercise.category == ExerciseCategory.BREATHING
            assert (config.mode == TrackingMode.BREATHING) == is_breathing

    def test_standing_balance_is_timed(self):
        exercise = get_exercise_by_id("standing-balance")
        assert exercise.duration == 30
        assert exercise.target_reps is None
        assert get_rep_config(exercise.id).mode == TrackingMode.TIMED

    def test_to_dict(self):
        data = get_exercise_by_id("labor-breathing").to_dict()
        assert data["category"] == "breathing"
        assert data["trimester_safe"] == [2, 3]
        assert isinstance(data["instructions"], list)


class TestValidation:

    def test_all_angles_at_target_is_correct(self, standing):
        result = get_exercise_by_id("standing-balance").validate(standing)
        assert result.is_correct
        assert result.feedback == []
        assert all(a.status == AngleStatus.CORRECT for a in result.key_angles)

    def test_knee_40_degrees_off_names_the_knee(self, standing):
        result = get_exercise_by_id("standing-balance").validate(bend_knees(standing, 40))
        assert not result.is_correct
        assert any("lutut" in f.lower() for f in result.feedback)

    def test_arm_raises_at_shoulder_height(self, standing):
        exercise = get_exercise_by_id("arm-raises")
        assert exercise.validate(raise_arms(standing, 90)).is_correct

        low = exercise.validate(raise_arms(standing, 50))
        assert not low.is_correct
        assert any("bahu" in f.lower() for f in low.feedback)

    def test_partial_correctness_is_not_correct(self, standing):
        # Elbows straight but arms hanging: shoulder check fails
        result = get_exercise_by_id("arm-raises").validate(standing)
        statuses = {a.name: a.status for a in result.key_angles}
        assert statuses["Siku"] == AngleStatus.CORRECT
        assert statuses["Bahu"] == AngleStatus.INCORRECT
        assert not result.is_correct

    def test_side_lean_breaks_upright_posture(self, standing):
        exercise = get_exercise_by_id("diaphragmatic-breathing")
        assert exercise.validate(standing).is_correct
        result = exercise.validate(lean_torso(standing, 25))
        assert not result.is_correct
        assert any("punggung" in f.lower() for f in result.feedback)

    def test_pelvic_tilt_accepts_small_tilt(self, standing):
        exercise = get_exercise_by_id("pelvic-tilt")
        assert exercise.validate(standing).is_correct
        assert exercise.validate(lean_torso(standing, 12)).is_correct

    @pytest.mark.parametrize("exercise", EXERCISE_LIBRARY, ids=lambda e: e.id)
    def test_empty_frame_is_not_visible(self, exercise):
        result = exercise.validate([])
        assert not result.is_correct
        assert result.feedback == [NOT_VISIBLE_FEEDBACK]

    @pytest.mark.parametrize("exercise", EXERCISE_LIBRARY, ids=lambda e: e.id)
    def test_partial_frame_never_raises(self, exercise, standing):
        result = exercise.validate(standing[:13])
        assert not result.is_correct
        assert result.feedback

    def test_every_strategy_has_checks(self):
        for strategy in ValidationStrategy:
            assert VALIDATION_CHECKS[strategy]
            assert validate_pose(strategy, None).is_correct is False

    @pytest.mark.parametrize("exercise", EXERCISE_LIBRARY, ids=lambda e: e.id)
    def test_barely_visible_body_is_not_visible(self, exercise):
        result = exercise.validate(standing_pose(visibility=0.05))
        assert not result.is_correct
        assert result.feedback == [NOT_VISIBLE_FEEDBACK]

    def test_off_image_body_is_not_visible(self, standing):
        shifted = [replace(lm, x=lm.x + 3.0) for lm in standing]
        result = get_exercise_by_id("standing-balance").validate(shifted)
        assert not result.is_correct
        assert result.feedback == [NOT_VISIBLE_FEEDBACK]

    def test_confidence_floor_is_configurable(self):
        frame = standing_pose(visibility=0.3)
        exercise = get_exercise_by_id("standing-balance")
        assert not exercise.validate(frame).is_correct
        assert exercise.validate(frame, min_confidence=0.2).is_correct


class TestSquatKneeTracking:

    SQUAT_CHECKS = VALIDATION_CHECKS[ValidationStrategy.SQUAT]

    def squat_metrics(self, knee_spread):
        return PoseMetrics(avg_knee_angle=100.0, avg_hip_angle=90.0, knee_spread=knee_spread, confidence=1.0)

    @pytest.mark.parametrize("spread", [0.7, 1.0, 1.6])
    def test_knees_over_feet_or_wider_pass(self, spread):
        result = evaluate_checks(self.squat_metrics(spread), self.SQUAT_CHECKS)
        assert result.is_correct
        assert result.feedback == []

    def test_knees_slightly_in_is_close(self):
        result = evaluate_checks(self.squat_metrics(0.6), self.SQUAT_CHECKS)
        statuses = {a.name: a.status for a in result.key_angles}
        assert statuses["Jarak Lutut"] == AngleStatus.CLOSE
        assert not result.is_correct
        assert result.feedback == [KNEE_HINT]

    def test_knees_caving_in_is_flagged(self, standing):
        frame = list(standing)
        frame[JointType.LEFT_KNEE.value] = replace(frame[JointType.LEFT_KNEE.value], x=0.55)
        frame[JointType.RIGHT_KNEE.value] = replace(frame[JointType.RIGHT_KNEE.value], x=0.45)

        squat = get_exercise_by_id("squat")
        assert KNEE_HINT in squat.validate(frame).feedback
        assert KNEE_HINT not in squat.validate(standing).feedback
