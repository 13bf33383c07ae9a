from __future__ import annotations

from datetime import date
from typing import Any

from gradetrackr.core.aggregator import MAX_GRADE, MIN_GRADE
from gradetrackr.core.models import AssessmentType


class ValidationError(ValueError):
    pass


def _to_float(raw: Any, label: str) -> float:
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return float(raw)
    text = str(raw or "").strip().replace(",", ".")
    if not text:
        raise ValidationError(f"{label} is required.")
    try:
        return float(text)
    except ValueError as exc:
        raise ValidationError(f"{label} must be a number.") from exc


def _is_blank(raw: Any) -> bool:
    return raw is None or (isinstance(raw, str) and not raw.strip())


def parse_grade_value(raw: Any) -> float:
    value = _to_float(raw, "Grade")
    if value < MIN_GRADE or value > MAX_GRADE:
        raise ValidationError("Grade must be between 1 and 10.")
    return value


def parse_weight(raw: Any) -> float:
    if _is_blank(raw):
        return 1.0
    weight = _to_float(raw, "Weight")
    if weight <= 0:
        raise ValidationError("Weight must be greater than 0.")
    return weight


def parse_target(raw: Any) -> float | None:
    if _is_blank(raw):
        return None
    target = _to_float(raw, "Target grade")
    if target < MIN_GRADE or target > MAX_GRADE:
        raise ValidationError("Target grade must be between 1 and 10.")
    return target


def parse_test_type(raw: Any) -> AssessmentType:
    if _is_blank(raw):
        return AssessmentType.SO
    try:
        return AssessmentType(str(raw).strip())
    except ValueError as exc:
        allowed = ", ".join(t.value for t in AssessmentType)
        raise ValidationError(f"Test type must be one of: {allowed}.") from exc


def parse_test_date(raw: Any) -> date:
    if isinstance(raw, date):
        return raw
    if _is_blank(raw):
        return date.today()
    try:
        return date.fromisoformat(str(raw).strip())
    except ValueError as exc:
        raise ValidationError("Date must be in YYYY-MM-DD format.") from exc


def parse_subject_name(raw: Any) -> str:
    name = str(raw or "").strip()
    if not name:
        raise ValidationError("Subject name is required.")
    return name


def parse_description(raw: Any) -> str | None:
    text = str(raw or "").strip()
    return text or None
