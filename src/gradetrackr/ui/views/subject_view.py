import logging
from typing import Callable, List
import flet as ft

from gradetrackr.core import aggregator
from gradetrackr.core.formatting import format_average, format_grade, format_percentage, grade_count_label
from gradetrackr.core.models import Grade
from gradetrackr.services.appwrite_service import AppwriteService, StorageServiceError
from gradetrackr.state.app_state import AppState
from gradetrackr.ui.components import bar_rows, progress_block, stat_card, tier_color


logger = logging.getLogger(__name__)


def _grade_row(grade: Grade, on_delete: Callable[[str], None]) -> ft.Card:
    details = grade.test_date.strftime("%d-%m-%Y") if grade.test_date else "-"
    if grade.description:
        details = f"{details} • {grade.description}"
    return ft.Card(
        content=ft.Container(
            padding=12,
            content=ft.Row(
                alignment=ft.MainAxisAlignment.SPACE_BETWEEN,
                controls=[
                    ft.Row(
                        controls=[
                            ft.Text(format_grade(grade.value), size=22, weight=ft.FontWeight.BOLD, color=tier_color(grade.value)),
                            ft.Column(
                                spacing=2,
                                controls=[
                                    ft.Text(grade.test_type.value, weight=ft.FontWeight.BOLD),
                                    ft.Text(details, size=12),
                                ],
                            ),
                        ]
                    ),
                    ft.Row(
                        controls=[
                            ft.Text(f"Weight: {format_grade(grade.weight)}x", size=12),
                            ft.IconButton(icon=ft.Icons.DELETE_OUTLINE, on_click=lambda _: on_delete(grade.id)),
                        ]
                    ),
                ],
            ),
        )
    )


def build_subject_view(
    page: ft.Page,
    app_state: AppState,
    store: AppwriteService,
    subject_id: str,
    on_back: Callable[[], None],
) -> ft.View:
    uid = app_state.session.uid
    status = ft.Text(color=ft.Colors.RED_400)

    subject = None
    grades: List[Grade] = []
    try:
        subject = store.get_subject(uid, subject_id)
        if subject is not None:
            grades = store.list_grades(uid, subject_id=subject_id)
    except StorageServiceError as exc:
        logger.warning("Failed to load subject %s: %s", subject_id, exc)
        status.value = "Could not load subject data."

    def set_status(message: str, is_error: bool = True) -> None:
        status.value = message
        status.color = ft.Colors.RED_400 if is_error else ft.Colors.GREEN_400
        page.update()

    def on_delete(grade_id: str) -> None:
        try:
            store.delete_grade(uid, grade_id)
        except StorageServiceError:
            set_status("Could not delete the grade.")
            return
        page.go(f"/subjects/{subject_id}")

    def on_delete_subject(_) -> None:
        try:
            store.delete_subject(uid, subject_id)
        except StorageServiceError:
            set_status("Could not delete the subject.")
            return
        on_back()

    header = [ft.Row(controls=[ft.Button("Back to Dashboard", on_click=lambda _: on_back())]), status]
    if subject is None:
        return ft.View(
            route=f"/subjects/{subject_id}",
            controls=[
                ft.AppBar(title=ft.Text("GradeTrackr - Subject")),
                ft.Container(padding=20, content=ft.Column(controls=[*header, ft.Text("Subject not found.")])),
            ],
        )

    stats = aggregator.subject_stats(subject, grades)
    body: List[ft.Control] = [
        *header,
        ft.Row(
            controls=[
                ft.Container(width=16, height=16, bgcolor=subject.color, border_radius=8),
                ft.Text(subject.name, size=26, weight=ft.FontWeight.BOLD),
                ft.Text(f"Target: {format_grade(subject.target_grade)}" if subject.target_grade else ""),
            ]
        ),
        ft.Text(grade_count_label(stats.grade_count)),
    ]

    if stats.grade_count == 0:
        body.append(ft.Text("No grades yet. Add your first grade for this subject from the dashboard."))
    else:
        max_count = max(stats.distribution.values()) or 1
        body.extend(
            [
                ft.Row(
                    wrap=True,
                    controls=[
                        stat_card("Average", format_average(stats.average)),
                        stat_card("Highest", format_grade(stats.highest), ft.Colors.GREEN_400),
                        stat_card("Lowest", format_grade(stats.lowest), ft.Colors.RED_400),
                        stat_card("Passing", format_percentage(stats.pass_rate)),
                    ],
                ),
                ft.Text("Progress over time", size=18, weight=ft.FontWeight.BOLD),
                *bar_rows(
                    [
                        (grade.test_date.strftime("%d %b") if grade.test_date else "-", grade.value, format_grade(grade.value))
                        for grade in stats.timeline
                    ],
                    10,
                    subject.color,
                ),
                ft.Text("Grade distribution", size=18, weight=ft.FontWeight.BOLD),
                *bar_rows(
                    [(str(bucket), count, str(count)) for bucket, count in stats.distribution.items()],
                    max_count,
                    subject.color,
                ),
            ]
        )
        if stats.progress is not None:
            body.extend(
                [
                    ft.Text("Target progress", size=18, weight=ft.FontWeight.BOLD),
                    ft.Text(
                        f"Current average {format_average(stats.progress.average)} / "
                        f"target {format_grade(stats.progress.target)}"
                    ),
                    progress_block(stats.progress),
                ]
            )
        body.append(ft.Divider())
        body.append(ft.Text("Grades", size=18, weight=ft.FontWeight.BOLD))
        body.extend(_grade_row(grade, on_delete) for grade in grades)

    body.append(ft.Divider())
    body.append(ft.OutlinedButton("Delete Subject", on_click=on_delete_subject))

    return ft.View(
        route=f"/subjects/{subject_id}",
        controls=[
            ft.AppBar(title=ft.Text(f"GradeTrackr - {subject.name}")),
            ft.Container(padding=20, content=ft.Column(scroll=ft.ScrollMode.AUTO, controls=body)),
        ],
    )
