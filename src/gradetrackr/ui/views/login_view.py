import logging
from typing import Callable
import flet as ft

from gradetrackr.services.appwrite_service import AppwriteService, StorageServiceError
from gradetrackr.services.auth_service import AppwriteAuthService, AuthResult, AuthServiceError
from gradetrackr.state.app_state import AppState


logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


def build_login_view(
    page: ft.Page,
    app_state: AppState,
    auth: AppwriteAuthService,
    store: AppwriteService,
    on_authenticated: Callable[[], None],
) -> ft.View:
    email = ft.TextField(label="Email", width=350)
    password = ft.TextField(label="Password", password=True, can_reveal_password=True, width=350)
    status_text = ft.Text(color=ft.Colors.RED_400)

    def set_status(message: str, is_error: bool = True) -> None:
        status_text.value = message
        status_text.color = ft.Colors.RED_400 if is_error else ft.Colors.GREEN_400
        page.update()

    def complete_login(result: AuthResult) -> None:
        app_state.session.start(result)
        try:
            store.ensure_profile(result.uid)
        except StorageServiceError as exc:
            logger.warning("Could not initialise profile for %s: %s", result.uid, exc)
            set_status("Could not load your profile. Please try again.")
            return
        on_authenticated()

    def on_sign_in(_):
        if not email.value or not password.value:
            set_status("Email and password are required.")
            return

        try:
            complete_login(auth.sign_in(email.value.strip(), password.value))
        except AuthServiceError as exc:
            set_status(f"Sign in failed: {exc}")

    def on_sign_up(_):
        if not email.value or not password.value:
            set_status("Email and password are required.")
            return
        if len(password.value) < MIN_PASSWORD_LENGTH:
            set_status(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
            return

        try:
            complete_login(auth.sign_up(email.value.strip(), password.value))
        except AuthServiceError as exc:
            set_status(f"Sign up failed: {exc}")

    return ft.View(
        route="/login",
        controls=[
            ft.AppBar(title=ft.Text("GradeTrackr - Login")),
            ft.Container(
                alignment=ft.Alignment.CENTER,
                padding=20,
                content=ft.Column(
                    horizontal_alignment=ft.CrossAxisAlignment.CENTER,
                    controls=[
                        ft.Text("Welcome to GradeTrackr", size=30, weight=ft.FontWeight.BOLD),
                        ft.Text("Sign in or create an account to track your grades."),
                        email,
                        password,
                        ft.Row(
                            alignment=ft.MainAxisAlignment.CENTER,
                            controls=[
                                ft.Button("Sign In", on_click=on_sign_in),
                                ft.OutlinedButton("Sign Up", on_click=on_sign_up),
                            ],
                        ),
                        status_text,
                    ],
                ),
            ),
        ],
    )
