from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Sequence

from gradetrackr.core.models import Grade, Subject

PASS_THRESHOLD = 5.5
MIN_GRADE = 1.0
MAX_GRADE = 10.0
BUCKETS = range(1, 11)


@dataclass(frozen=True)
class SubjectAverage:
    subject_id: str
    name: str
    color: str
    average: float


@dataclass(frozen=True)
class TargetProgress:
    average: float
    target: float
    achieved: bool
    remaining: float
    percent: float


@dataclass(frozen=True)
class SubjectStats:
    subject: Subject
    grade_count: int
    average: float | None
    highest: float | None
    lowest: float | None
    pass_rate: float | None
    distribution: dict[int, int]
    timeline: list[Grade]
    progress: TargetProgress | None


@dataclass(frozen=True)
class DashboardStats:
    overall_average: float | None
    highest: float
    lowest: float
    pass_rate: float
    subject_averages: list[SubjectAverage]
    monthly: list[tuple[date, float]]
    distribution: dict[int, int]
    timeline: list[Grade] = field(default_factory=list)


def _totals(grades: Iterable[Grade]) -> tuple[float, float]:
    weighted = 0.0
    total_weight = 0.0
    for g in grades:
        weighted += g.value * g.weight
        total_weight += g.weight
    return weighted, total_weight


def weighted_average(grades: Iterable[Grade]) -> float | None:
    """Σ(value × weight) / Σ(weight), or None when there is nothing to average."""
    weighted, total_weight = _totals(grades)
    if total_weight == 0:
        return None
    return weighted / total_weight


def required_grade(current_grades: Sequence[Grade], target_average: float, next_weight: float = 1.0) -> float:
    """
    Grade needed on the next test (of weight next_weight) so that the weighted
    average lands exactly on target_average:

        x = (target × (W + next_weight) − S) / next_weight

    Not clamped: above 10 the target is out of reach, below 1 it is already
    secured.
    """
    if next_weight <= 0:
        raise ValueError("next_weight must be greater than 0")
    if not current_grades:
        return target_average
    weighted, total_weight = _totals(current_grades)
    return (target_average * (total_weight + next_weight) - weighted) / next_weight


def required_grade_verdict(required: float) -> str:
    if required > MAX_GRADE:
        return "not_achievable"
    if required < MIN_GRADE:
        return "already_achieved"
    return "attainable"


def pass_rate(grades: Sequence[Grade], threshold: float = PASS_THRESHOLD) -> float | None:
    if not grades:
        return None
    passing = sum(1 for g in grades if g.value >= threshold)
    return passing / len(grades) * 100


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def distribution(grades: Iterable[Grade]) -> dict[int, int]:
    counts = {bucket: 0 for bucket in BUCKETS}
    for g in grades:
        bucket = round_half_up(g.value)
        if bucket in counts:
            counts[bucket] += 1
    return counts


def monthly_average(grades: Iterable[Grade]) -> list[tuple[date, float]]:
    groups: dict[date, list[Grade]] = {}
    for g in grades:
        if g.test_date is None:
            continue
        period = g.test_date.replace(day=1)
        groups.setdefault(period, []).append(g)

    results: list[tuple[date, float]] = []
    for period in sorted(groups):
        average = weighted_average(groups[period])
        if average is not None:
            results.append((period, average))
    return results


def highest(grades: Iterable[Grade]) -> float | None:
    values = [g.value for g in grades]
    return max(values) if values else None


def lowest(grades: Iterable[Grade]) -> float | None:
    values = [g.value for g in grades]
    return min(values) if values else None


def is_passing(value: float, threshold: float = PASS_THRESHOLD) -> bool:
    return value >= threshold


def grade_tier(value: float | None) -> str | None:
    if value is None:
        return None
    if value >= 8:
        return "excellent"
    if value >= 6.5:
        return "good"
    if value >= PASS_THRESHOLD:
        return "sufficient"
    return "insufficient"


def timeline(grades: Iterable[Grade]) -> list[Grade]:
    # Undated grades sort first so the chart still shows them.
    return sorted(grades, key=lambda g: g.test_date or date.min)


def latest_grades(grades: Iterable[Grade], limit: int = 3) -> list[Grade]:
    return sorted(grades, key=lambda g: g.test_date or date.min, reverse=True)[:limit]


def grades_for_subject(grades: Iterable[Grade], subject_id: str) -> list[Grade]:
    return [g for g in grades if g.subject_id == subject_id]


def subject_averages(subjects: Iterable[Subject], grades: Sequence[Grade]) -> list[SubjectAverage]:
    results: list[SubjectAverage] = []
    for subject in subjects:
        average = weighted_average(grades_for_subject(grades, subject.id))
        if average is None:
            continue
        results.append(SubjectAverage(subject.id, subject.name, subject.color, average))
    return results


def overall_average(subjects: Iterable[Subject], grades: Sequence[Grade]) -> float | None:
    """Plain mean of the per-subject averages; every subject counts once."""
    averages = [row.average for row in subject_averages(subjects, grades)]
    if not averages:
        return None
    return sum(averages) / len(averages)


def target_progress(average: float | None, target: float | None) -> TargetProgress | None:
    if average is None or not target:
        return None
    achieved = average >= target
    return TargetProgress(
        average=average,
        target=target,
        achieved=achieved,
        remaining=0.0 if achieved else target - average,
        percent=min(average / target * 100, 100.0),
    )


def subject_stats(subject: Subject, grades: Sequence[Grade]) -> SubjectStats:
    own = grades_for_subject(grades, subject.id)
    average = weighted_average(own)
    return SubjectStats(
        subject=subject,
        grade_count=len(own),
        average=average,
        highest=highest(own),
        lowest=lowest(own),
        pass_rate=pass_rate(own),
        distribution=distribution(own),
        timeline=timeline(own),
        progress=target_progress(average, subject.target_grade),
    )


def dashboard_stats(subjects: Sequence[Subject], grades: Sequence[Grade]) -> DashboardStats | None:
    if not grades:
        return None
    return DashboardStats(
        overall_average=overall_average(subjects, grades),
        highest=max(g.value for g in grades),
        lowest=min(g.value for g in grades),
        pass_rate=pass_rate(grades) or 0.0,
        subject_averages=subject_averages(subjects, grades),
        monthly=monthly_average(grades),
        distribution=distribution(grades),
        timeline=timeline(grades),
    )
