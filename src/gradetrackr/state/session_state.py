from dataclasses import dataclass
from typing import Optional

from gradetrackr.services.auth_service import Anonymous, AuthResult, AuthState, Authenticated


@dataclass
class SessionState:
    uid: Optional[str] = None
    email: Optional[str] = None
    session_secret: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.uid and self.session_secret)

    @property
    def auth_state(self) -> AuthState:
        if self.is_authenticated:
            return Authenticated(user_id=self.uid, email=self.email or "")
        return Anonymous()

    def start(self, result: AuthResult) -> None:
        self.uid = result.uid
        self.email = result.email
        self.session_secret = result.session_secret

    def clear(self) -> None:
        self.uid = None
        self.email = None
        self.session_secret = None
