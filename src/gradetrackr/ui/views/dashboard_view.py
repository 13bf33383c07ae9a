import logging
from typing import Callable, Dict, List
import flet as ft

from gradetrackr.core import aggregator
from gradetrackr.core.formatting import format_average, format_grade, format_month, format_percentage, round_tenth
from gradetrackr.core.models import AssessmentType, SUBJECT_COLORS
from gradetrackr.core.validation import (
    ValidationError,
    parse_description,
    parse_grade_value,
    parse_subject_name,
    parse_target,
    parse_test_date,
    parse_test_type,
    parse_weight,
)
from gradetrackr.services.appwrite_service import AppwriteService, StorageServiceError
from gradetrackr.state.app_state import AppState
from gradetrackr.ui.components import bar_rows, stat_card, subject_card


logger = logging.getLogger(__name__)

VERDICT_TEXT: Dict[str, str] = {
    "not_achievable": "Not achievable!",
    "already_achieved": "Already achieved!",
    "attainable": "",
}


def load_dashboard_data(app_state: AppState, store: AppwriteService) -> None:
    uid = app_state.session.uid
    if not uid:
        return
    app_state.profile = store.get_profile(uid)
    app_state.subjects = store.list_subjects(uid)
    app_state.grades = store.list_grades(uid)


def _stats_section(app_state: AppState) -> List[ft.Control]:
    stats = aggregator.dashboard_stats(app_state.subjects, app_state.grades)
    if stats is None:
        return [ft.Text("Add grades to see statistics.")]

    monthly_rows = [(format_month(period), average, format_average(average)) for period, average in stats.monthly]
    max_count = max(stats.distribution.values()) or 1
    distribution_rows = [(str(bucket), count, str(count)) for bucket, count in stats.distribution.items()]
    subject_rows = [(row.name, row.average, format_average(row.average)) for row in stats.subject_averages]

    return [
        ft.Row(
            wrap=True,
            controls=[
                stat_card("Overall average", format_average(stats.overall_average)),
                stat_card("Highest grade", format_grade(stats.highest), ft.Colors.GREEN_400),
                stat_card("Lowest grade", format_grade(stats.lowest), ft.Colors.RED_400),
                stat_card("Passing", format_percentage(stats.pass_rate)),
            ],
        ),
        ft.Text("Monthly average", size=18, weight=ft.FontWeight.BOLD),
        *bar_rows(monthly_rows, 10),
        ft.Text("Grade distribution", size=18, weight=ft.FontWeight.BOLD),
        *bar_rows(distribution_rows, max_count, ft.Colors.PURPLE_300),
        ft.Text("Averages per subject", size=18, weight=ft.FontWeight.BOLD),
        *bar_rows(subject_rows, 10, ft.Colors.AMBER_400),
    ]


def build_dashboard_view(
    page: ft.Page,
    app_state: AppState,
    store: AppwriteService,
    on_open_subject: Callable[[str], None],
    on_logout: Callable[[], None],
) -> ft.View:
    status = ft.Text(color=ft.Colors.RED_400)
    uid = app_state.session.uid

    try:
        load_dashboard_data(app_state, store)
    except StorageServiceError as exc:
        logger.warning("Failed to load dashboard for %s: %s", uid, exc)
        status.value = "Could not load your data. Please try again."

    def set_status(message: str, is_error: bool = True) -> None:
        status.value = message
        status.color = ft.Colors.RED_400 if is_error else ft.Colors.GREEN_400
        page.update()

    subject_options = [ft.dropdown.Option(subject.id, subject.name) for subject in app_state.subjects]

    # New subject form
    subject_name = ft.TextField(label="Subject name", width=260)
    subject_color = ft.Dropdown(
        label="Colour",
        width=160,
        value=SUBJECT_COLORS[0],
        options=[ft.dropdown.Option(color) for color in SUBJECT_COLORS],
    )
    subject_target = ft.TextField(label="Target grade (optional)", width=200)

    def on_add_subject(_):
        try:
            name = parse_subject_name(subject_name.value)
            target = parse_target(subject_target.value)
            store.create_subject(uid, name=name, color=subject_color.value or SUBJECT_COLORS[0], target_grade=target)
        except ValidationError as exc:
            set_status(str(exc))
            return
        except StorageServiceError:
            set_status("Could not add the subject. Please try again.")
            return
        page.go("/dashboard")

    # New grade form
    grade_subject = ft.Dropdown(label="Subject", width=220, options=list(subject_options))
    grade_value = ft.TextField(label="Grade", width=100, hint_text="7.5")
    grade_weight = ft.TextField(label="Weight", width=100, value="1")
    grade_type = ft.Dropdown(
        label="Type",
        width=160,
        value=AssessmentType.SO.value,
        options=[ft.dropdown.Option(t.value) for t in AssessmentType],
    )
    grade_date = ft.TextField(label="Date (YYYY-MM-DD)", width=180)
    grade_description = ft.TextField(label="Description", width=300, hint_text="Chapter 3 - Algebra")

    def on_add_grade(_):
        if not grade_subject.value:
            set_status("Select a subject and enter a grade.")
            return
        try:
            store.create_grade(
                uid,
                subject_id=grade_subject.value,
                value=parse_grade_value(grade_value.value),
                weight=parse_weight(grade_weight.value),
                test_type=parse_test_type(grade_type.value),
                description=parse_description(grade_description.value),
                test_date=parse_test_date(grade_date.value),
            )
        except ValidationError as exc:
            set_status(str(exc))
            return
        except StorageServiceError:
            set_status("Could not add the grade. Please try again.")
            return
        page.go("/dashboard")

    # Required grade calculator
    calc_subject = ft.Dropdown(label="Subject", width=220, options=list(subject_options))
    calc_target = ft.TextField(label="Desired average", width=150, hint_text="7.5")
    calc_weight = ft.TextField(label="Weight of next test", width=150, value="1")
    calc_current = ft.Text()
    calc_result = ft.Text(size=20, weight=ft.FontWeight.BOLD)
    calc_verdict = ft.Text(size=12)

    def on_calculate(_):
        if not calc_subject.value:
            set_status("Select a subject first.")
            return
        try:
            target = parse_target(calc_target.value)
            weight = parse_weight(calc_weight.value)
        except ValidationError as exc:
            set_status(str(exc))
            return
        if target is None:
            set_status("Enter a desired average.")
            return

        grades = app_state.grades_for(calc_subject.value)
        required = aggregator.required_grade(grades, target, weight)
        verdict = aggregator.required_grade_verdict(required)
        calc_current.value = f"Current average: {format_average(aggregator.weighted_average(grades))}"
        calc_result.value = f"You need: {round_tenth(required):.1f}"
        calc_result.color = (
            ft.Colors.RED_400 if verdict == "not_achievable"
            else ft.Colors.GREEN_400 if aggregator.is_passing(required) else ft.Colors.AMBER_400
        )
        calc_verdict.value = VERDICT_TEXT[verdict]
        status.value = ""
        page.update()

    greeting = app_state.profile.greeting_name(app_state.session.email)
    subject_cards = [
        subject_card(subject, app_state.grades_for(subject.id), on_open_subject) for subject in app_state.subjects
    ]
    if not subject_cards:
        subject_cards = [ft.Text("No subjects yet. Add your first subject to start tracking grades.")]

    return ft.View(
        route="/dashboard",
        controls=[
            ft.AppBar(title=ft.Text("GradeTrackr - Dashboard")),
            ft.Container(
                padding=20,
                content=ft.Column(
                    scroll=ft.ScrollMode.AUTO,
                    controls=[
                        ft.Row(
                            alignment=ft.MainAxisAlignment.SPACE_BETWEEN,
                            controls=[
                                ft.Text(f"Welcome back, {greeting}", size=24, weight=ft.FontWeight.BOLD),
                                ft.Row(
                                    controls=[
                                        ft.OutlinedButton("Refresh", on_click=lambda _: page.go("/dashboard")),
                                        ft.TextButton("Logout", on_click=lambda _: on_logout()),
                                    ]
                                ),
                            ],
                        ),
                        status,
                        ft.Row(
                            wrap=True,
                            controls=[
                                stat_card(
                                    "Overall average",
                                    format_average(aggregator.overall_average(app_state.subjects, app_state.grades)),
                                ),
                                stat_card("Subjects", str(len(app_state.subjects))),
                                stat_card("Grades", str(len(app_state.grades))),
                            ],
                        ),
                        ft.Divider(),
                        ft.Text("Subjects", size=20, weight=ft.FontWeight.BOLD),
                        ft.Row(wrap=True, controls=subject_cards),
                        ft.Row(
                            wrap=True,
                            controls=[subject_name, subject_color, subject_target, ft.Button("Add Subject", on_click=on_add_subject)],
                        ),
                        ft.Divider(),
                        ft.Text("New grade", size=20, weight=ft.FontWeight.BOLD),
                        ft.Row(wrap=True, controls=[grade_subject, grade_value, grade_weight, grade_type, grade_date]),
                        ft.Row(wrap=True, controls=[grade_description, ft.Button("Add Grade", on_click=on_add_grade)]),
                        ft.Divider(),
                        ft.Text("Statistics", size=20, weight=ft.FontWeight.BOLD),
                        *_stats_section(app_state),
                        ft.Divider(),
                        ft.Text("Grade calculator", size=20, weight=ft.FontWeight.BOLD),
                        ft.Text("Work out what you need on your next test to reach your target."),
                        ft.Row(wrap=True, controls=[calc_subject, calc_target, calc_weight]),
                        ft.Button("Calculate Required Grade", on_click=on_calculate),
                        calc_current,
                        calc_result,
                        calc_verdict,
                    ],
                ),
            ),
        ],
    )
