from dataclasses import dataclass
import logging
from typing import Any, Dict, Optional, Union
import requests
from requests import RequestException

from gradetrackr.config.settings import settings


logger = logging.getLogger(__name__)

USER_EXISTS_MESSAGE = "An account with this e-mail address already exists."


class AuthServiceError(Exception):
    pass


@dataclass
class AuthResult:
    uid: str
    email: str
    session_secret: str
    session_id: str


@dataclass(frozen=True)
class Authenticated:
    user_id: str
    email: str


@dataclass(frozen=True)
class Anonymous:
    pass


AuthState = Union[Authenticated, Anonymous]


class AppwriteAuthService:
    ACCOUNT_PATH = "/account"
    LOGIN_PATH = "/account/sessions/email"
    CURRENT_SESSION_PATH = "/account/sessions/current"

    def __init__(self, endpoint: str, project_id: str, timeout: float = 15) -> None:
        if not endpoint:
            raise AuthServiceError("Missing APPWRITE_ENDPOINT in environment")
        if not project_id:
            raise AuthServiceError("Missing APPWRITE_PROJECT_ID in environment")
        self.endpoint = endpoint.rstrip("/")
        self.project_id = project_id
        self.timeout = timeout

    @classmethod
    def from_settings(cls) -> "AppwriteAuthService":
        return cls(settings.appwrite_endpoint, settings.appwrite_project_id)

    def sign_up(self, email: str, password: str, name: Optional[str] = None) -> AuthResult:
        payload = {
            "userId": "unique()",
            "email": email,
            "password": password,
        }
        if name and name.strip():
            payload["name"] = name.strip()
        try:
            self._request("POST", self.ACCOUNT_PATH, payload)
        except AuthServiceError as exc:
            if str(exc) == "user_already_exists":
                raise AuthServiceError(USER_EXISTS_MESSAGE) from exc
            raise
        return self.sign_in(email, password)

    def sign_in(self, email: str, password: str) -> AuthResult:
        payload = {
            "email": email,
            "password": password,
        }
        response = self._request("POST", self.LOGIN_PATH, payload)
        return self._to_result(response, email)

    def sign_out(self, session_secret: str) -> None:
        if not session_secret:
            return
        self._request("DELETE", self.CURRENT_SESSION_PATH, session_secret=session_secret)

    def current_user(self, session_secret: Optional[str]) -> AuthState:
        if not session_secret:
            return Anonymous()
        try:
            data = self._request("GET", self.ACCOUNT_PATH, session_secret=session_secret)
        except AuthServiceError as exc:
            logger.info("Session lookup rejected: %s", exc)
            return Anonymous()
        uid = str(data.get("$id") or "")
        if not uid:
            return Anonymous()
        return Authenticated(user_id=uid, email=str(data.get("email") or ""))

    def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        session_secret: Optional[str] = None,
    ) -> Dict[str, Any]:
        url = f"{self.endpoint}{path}"
        headers = {
            "X-Appwrite-Project": self.project_id,
            "Content-Type": "application/json",
        }
        if session_secret:
            headers["X-Appwrite-Session"] = session_secret
        try:
            res = requests.request(method, url, headers=headers, json=payload, timeout=self.timeout)
        except RequestException as exc:
            logger.warning("Auth backend unreachable: %s %s", method, path)
            raise AuthServiceError("AUTH_SERVICE_UNAVAILABLE") from exc

        if res.status_code == 204 or not res.content:
            if res.status_code >= 400:
                raise AuthServiceError("AUTH_ERROR")
            return {}

        try:
            data = res.json()
        except ValueError:
            raise AuthServiceError("AUTH_SERVICE_UNAVAILABLE")

        if res.status_code >= 400:
            error_key = str(data.get("type") or data.get("message") or "AUTH_ERROR")
            raise AuthServiceError(error_key)

        return data

    @staticmethod
    def _to_result(data: Dict[str, Any], email: str) -> AuthResult:
        session_id = str(data.get("$id") or "")
        session_secret = str(data.get("secret") or "")
        uid = str(data.get("userId") or "")
        if not uid:
            raise AuthServiceError("INVALID_APPWRITE_SESSION")
        return AuthResult(
            uid=uid,
            email=email,
            session_secret=session_secret,
            session_id=session_id,
        )
