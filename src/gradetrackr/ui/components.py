from typing import Callable, Dict, List, Optional, Sequence, Tuple
import flet as ft

from gradetrackr.core import aggregator
from gradetrackr.core.formatting import format_average, format_grade, format_remaining, grade_count_label
from gradetrackr.core.models import Grade, Subject

TIER_COLORS: Dict[Optional[str], str] = {
    "excellent": ft.Colors.GREEN_400,
    "good": ft.Colors.BLUE_400,
    "sufficient": ft.Colors.AMBER_400,
    "insufficient": ft.Colors.RED_400,
    None: ft.Colors.GREY_500,
}

BAR_MAX_WIDTH = 220


def tier_color(value: Optional[float]) -> str:
    return TIER_COLORS[aggregator.grade_tier(value)]


def build_bar(value: float, maximum: float = 10, color: str = ft.Colors.BLUE_400) -> ft.Container:
    ratio = value / maximum if maximum else 0
    width = max(4, int(BAR_MAX_WIDTH * ratio))
    return ft.Container(width=width, height=12, bgcolor=color, border_radius=6)


def bar_rows(rows: Sequence[Tuple[str, float, str]], maximum: float, color: str = ft.Colors.BLUE_400) -> List[ft.Control]:
    return [
        ft.Row(controls=[ft.Text(label, width=120), build_bar(value, maximum, color), ft.Text(value_text)])
        for label, value, value_text in rows
    ]


def stat_card(title: str, value: str, color: Optional[str] = None) -> ft.Card:
    return ft.Card(
        content=ft.Container(
            padding=12,
            width=170,
            content=ft.Column(
                controls=[
                    ft.Text(title, size=12, color=ft.Colors.GREY_600),
                    ft.Text(value, size=22, weight=ft.FontWeight.BOLD, color=color),
                ]
            ),
        )
    )


def progress_block(progress: Optional[aggregator.TargetProgress]) -> ft.Control:
    if progress is None:
        return ft.Container()
    color = ft.Colors.GREEN_400 if progress.achieved else ft.Colors.AMBER_400
    message = "Target reached!" if progress.achieved else format_remaining(progress.remaining)
    return ft.Column(
        controls=[
            ft.ProgressBar(value=progress.percent / 100, color=color, width=BAR_MAX_WIDTH),
            ft.Text(message, size=12),
        ]
    )


def subject_card(subject: Subject, grades: List[Grade], on_open: Callable[[str], None]) -> ft.Card:
    average = aggregator.weighted_average(grades)
    latest = aggregator.latest_grades(grades)
    progress = aggregator.target_progress(average, subject.target_grade)

    badges = [
        ft.Container(
            padding=ft.padding.symmetric(horizontal=8, vertical=2),
            border_radius=8,
            bgcolor=ft.Colors.GREEN_100 if aggregator.is_passing(grade.value) else ft.Colors.RED_100,
            content=ft.Text(f"{format_grade(grade.value)} ({grade.test_type.value})", size=12),
        )
        for grade in latest
    ]

    header = [
        ft.Container(width=12, height=12, bgcolor=subject.color, border_radius=6),
        ft.Text(subject.name, weight=ft.FontWeight.BOLD),
    ]
    if subject.target_grade:
        header.append(ft.Text(f"Target {format_grade(subject.target_grade)}", size=12))

    return ft.Card(
        content=ft.Container(
            padding=12,
            width=320,
            on_click=lambda _: on_open(subject.id),
            content=ft.Column(
                controls=[
                    ft.Row(controls=header),
                    ft.Text(grade_count_label(len(grades)), size=12),
                    ft.Text(format_average(average), size=26, weight=ft.FontWeight.BOLD, color=tier_color(average)),
                    ft.Row(controls=badges, wrap=True),
                    progress_block(progress),
                ]
            ),
        )
    )
