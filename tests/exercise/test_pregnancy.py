"""Tests for HPHT-based pregnancy week, trimester and due date."""

from datetime import date

import pytest

from exercise_service.models.pregnancy import (
    calculate_pregnancy_metrics,
    days_remaining,
    estimated_due_date,
    parse_date,
    stage_description,
    trimester_for_week,
    validate_hpht,
    week_and_day,
)

TODAY = date(2025, 6, 1)


@pytest.mark.parametrize("week, trimester", [
    (0, 0), (1, 1), (13, 1), (14, 2), (26, 2), (27, 3), (40, 3), (41, 4),
])
def test_trimester_boundaries(week, trimester):
    assert trimester_for_week(week) == trimester


def test_due_date_is_280_days_after_hpht():
    assert estimated_due_date("01-01-2025") == "08-10-2025"


def test_week_and_day():
    # 2025-03-01 to 2025-06-01 is 92 days
    assert week_and_day("01-03-2025", TODAY) == (13, 1)


def test_days_remaining_never_negative():
    assert days_remaining("11-06-2025", TODAY) == 10
    assert days_remaining("01-01-2025", TODAY) == 0


@pytest.mark.parametrize("value", ["", "2025-01-01", "32-01-2025", "abc"])
def test_parse_date_rejects_bad_input(value):
    with pytest.raises(ValueError):
        parse_date(value)


def test_full_metrics():
    metrics = calculate_pregnancy_metrics("01-01-2025", TODAY)

    assert metrics.pregnancy_week == 21
    assert metrics.pregnancy_day == 4
    assert metrics.trimester == 2
    assert metrics.trimester_label == "Trimester 2"
    assert metrics.estimated_due_date == "08-10-2025"
    assert metrics.days_remaining == 129
    assert metrics.gestational_age == "21 minggu 4 hari"
    assert metrics.stage == "Viabilitas janin"
    assert metrics.to_dict()["trimester"] == 2


def test_metrics_with_malformed_hpht_raises():
    with pytest.raises(ValueError):
        calculate_pregnancy_metrics("1/1/2025", TODAY)


def test_stage_description_extremes():
    assert stage_description(0) == "Belum hamil"
    assert stage_description(2) == "Awal kehamilan"
    assert stage_description(42) == "Sudah melahirkan"


@pytest.mark.parametrize("hpht, valid", [
    ("01-01-2025", True),
    ("02-06-2025", False),   # future
    ("01-01-2024", False),   # older than 42 weeks
    ("not-a-date", False),
])
def test_validate_hpht(hpht, valid):
    ok, message = validate_hpht(hpht, TODAY)
    assert ok is valid
    assert message
