"""
MOOMA Exercise Service - Pregnancy Calculator

Week, trimester and due date from HPHT (Hari Pertama Haid Terakhir,
first day of the last menstrual period), used to pick the trimester
exercise program.
"""

from dataclasses import dataclass, asdict
from datetime import date, datetime, timedelta
from typing import Any, Dict, Optional, Tuple


DATE_FORMAT = "%d-%m-%Y"
PREGNANCY_DAYS = 280       # 40 weeks
MAX_HPHT_AGE_DAYS = 294    # 42 weeks

TRIMESTER_LABELS = {
    0: "Sebelum Kehamilan",
    1: "Trimester 1",
    2: "Trimester 2",
    3: "Trimester 3",
    4: "Sudah Melahirkan",
}


@dataclass
class PregnancyMetrics:
    pregnancy_week: int
    pregnancy_day: int
    trimester: int
    trimester_label: str
    days_remaining: int
    estimated_due_date: str
    gestational_age: str
    stage: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def parse_date(value: str) -> date:
    """
    Parse a DD-MM-YYYY date.

    Raises:
        ValueError: empty or malformed input
    """
    if not value:
        raise ValueError("Date string is required")
    try:
        return datetime.strptime(value.strip(), DATE_FORMAT).date()
    except ValueError as e:
        raise ValueError(f"Invalid date '{value}'. Use DD-MM-YYYY") from e


def format_date(value: date) -> str:
    return value.strftime(DATE_FORMAT)


def estimated_due_date(hpht: str) -> str:
    return format_date(parse_date(hpht) + timedelta(days=PREGNANCY_DAYS))


def week_and_day(hpht: str, today: Optional[date] = None) -> Tuple[int, int]:
    days = ((today or date.today()) - parse_date(hpht)).days
    return days // 7, days % 7


def trimester_for_week(week: int) -> int:
    """0 before pregnancy, 1-3 by week, 4 after week 40."""
    if week < 1:
        return 0
    if week <= 13:
        return 1
    if week <= 26:
        return 2
    if week <= 40:
        return 3
    return 4


def days_remaining(due_date: str, today: Optional[date] = None) -> int:
    return max(0, (parse_date(due_date) - (today or date.today())).days)


def gestational_age(week: int, day: int) -> str:
    return f"{week} minggu {day} hari"


def stage_description(week: int) -> str:
    if week < 1:
        return "Belum hamil"
    stages = (
        (4, "Awal kehamilan"),
        (8, "Embrio berkembang"),
        (12, "Organ terbentuk"),
        (16, "Janin mulai bergerak"),
        (20, "Pertumbuhan janin"),
        (24, "Viabilitas janin"),
        (28, "Trimester 2 akhir"),
        (32, "Persiapan persalinan"),
        (36, "Janin posisi turun"),
        (40, "Siap melahirkan"),
    )
    for upper, label in stages:
        if week < upper:
            return label
    return "Sudah melahirkan"


def validate_hpht(hpht: str, today: Optional[date] = None) -> Tuple[bool, str]:
    """Check that HPHT is a real date, not in the future and not older than 42 weeks."""
    today = today or date.today()
    try:
        value = parse_date(hpht)
    except ValueError:
        return False, "Format tanggal tidak valid. Gunakan DD-MM-YYYY"
    if value > today:
        return False, "HPHT tidak boleh di masa depan"
    if value < today - timedelta(days=MAX_HPHT_AGE_DAYS):
        return False, "HPHT terlalu lama, mungkin sudah melahirkan"
    return True, "HPHT valid"


def calculate_pregnancy_metrics(hpht: str, today: Optional[date] = None) -> PregnancyMetrics:
    """
    All pregnancy figures for an HPHT date.

    Raises:
        ValueError: malformed HPHT
    """
    today = today or date.today()
    due = estimated_due_date(hpht)
    week, day = week_and_day(hpht, today)
    trimester = trimester_for_week(week)

    return PregnancyMetrics(
        pregnancy_week=week,
        pregnancy_day=day,
        trimester=trimester,
        trimester_label=TRIMESTER_LABELS[trimester],
        days_remaining=days_remaining(due, today),
        estimated_due_date=due,
        gestational_age=gestational_age(week, day),
        stage=stage_description(week),
    )
