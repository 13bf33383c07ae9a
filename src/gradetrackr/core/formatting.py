from __future__ import annotations

import math
from datetime import date

PLACEHOLDER = "--"

MONTH_ABBREVIATIONS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


def round_tenth(value: float) -> float:
    return math.floor(value * 10 + 0.5) / 10


def format_average(value: float | None) -> str:
    if value is None:
        return PLACEHOLDER
    return f"{round_tenth(value):.1f}"


def format_percentage(value: float | None) -> str:
    if value is None:
        return PLACEHOLDER
    return f"{math.floor(value + 0.5)}%"


def format_grade(value: float) -> str:
    # 7.0 -> "7", 7.5 -> "7.5"
    return f"{value:g}"


def format_month(period: date) -> str:
    return f"{MONTH_ABBREVIATIONS[period.month - 1]} '{period.year % 100:02d}"


def format_remaining(points: float) -> str:
    rounded = round_tenth(points)
    unit = "point" if rounded == 1 else "points"
    return f"{rounded:.1f} {unit} to go"


def grade_count_label(count: int) -> str:
    return f"{count} grade" if count == 1 else f"{count} grades"
