import logging
import flet as ft

from gradetrackr.services.appwrite_service import AppwriteService, StorageServiceError
from gradetrackr.services.auth_service import AppwriteAuthService, AuthServiceError
from gradetrackr.state.app_state import AppState
from gradetrackr.ui.views.dashboard_view import build_dashboard_view
from gradetrackr.ui.views.login_view import build_login_view
from gradetrackr.ui.views.subject_view import build_subject_view


logger = logging.getLogger(__name__)

SUBJECT_ROUTE_PREFIX = "/subjects/"


def main(page: ft.Page) -> None:
    page.title = "GradeTrackr"
    app_state = AppState()

    try:
        auth = AppwriteAuthService.from_settings()
        store = AppwriteService.from_settings()
    except (AuthServiceError, StorageServiceError) as exc:
        logger.error("Backend configuration error: %s", exc)
        page.add(ft.Text(f"Configuration error: {exc}", color=ft.Colors.RED_400))
        return

    def logout() -> None:
        try:
            auth.sign_out(app_state.session.session_secret or "")
        except AuthServiceError as exc:
            logger.warning("Sign out failed: %s", exc)
        app_state.reset()
        page.go("/login")

    def route_change(_) -> None:
        route = page.route or "/login"
        if route != "/login" and not app_state.session.is_authenticated:
            route = "/login"

        page.views.clear()
        if route == "/login":
            view = build_login_view(page, app_state, auth, store, on_authenticated=lambda: page.go("/dashboard"))
        elif route.startswith(SUBJECT_ROUTE_PREFIX):
            subject_id = route[len(SUBJECT_ROUTE_PREFIX):]
            view = build_subject_view(page, app_state, store, subject_id, on_back=lambda: page.go("/dashboard"))
        else:
            view = build_dashboard_view(
                page,
                app_state,
                store,
                on_open_subject=lambda subject_id: page.go(f"{SUBJECT_ROUTE_PREFIX}{subject_id}"),
                on_logout=logout,
            )
        page.views.append(view)
        page.update()

    page.on_route_change = route_change
    page.go("/login")
