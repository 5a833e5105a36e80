from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

from models import UserAccess
from utils.access_control import (
    LOGIN_PATH,
    can_role_access_path,
    get_default_path_for_role,
    is_public_path,
)

logger = logging.getLogger(__name__)


class SessionPhase(str, Enum):
    LOGGED_OUT = "logged_out"
    AUTHENTICATING = "authenticating"
    ROLE_LOADING = "role_loading"
    READY = "ready"


class AuthSession:
    """Sign-in progress for one browser session.

    logged_out -> authenticating -> role_loading -> ready, and back to
    logged_out on a rejected credential, a missing role, or sign-out.
    """

    def __init__(self, auth_enabled: bool = True):
        self.auth_enabled = auth_enabled
        self.phase = SessionPhase.LOGGED_OUT
        self.user_id: Optional[str] = None
        self.email: Optional[str] = None
        self.access: Optional[UserAccess] = None

    @property
    def role(self) -> Optional[str]:
        return self.access.role if self.access else None

    @property
    def is_ready(self) -> bool:
        return self.phase is SessionPhase.READY

    def begin_login(self) -> None:
        self.sign_out()
        self.phase = SessionPhase.AUTHENTICATING

    def login_failed(self) -> None:
        self.sign_out()

    def authenticated(self, user_id: str, email: str) -> None:
        if self.phase is not SessionPhase.AUTHENTICATING:
            raise RuntimeError(f"cannot accept credentials while {self.phase.value}")
        self.user_id = user_id
        self.email = email
        self.phase = SessionPhase.ROLE_LOADING

    def role_resolved(self, access: Optional[UserAccess]) -> bool:
        """Finish sign-in; an account without a role cannot enter the app."""
        if self.phase is not SessionPhase.ROLE_LOADING:
            raise RuntimeError(f"cannot resolve a role while {self.phase.value}")
        if access is None or access.role is None:
            logger.warning("Sign-in refused for %s: no access role assigned", self.email)
            self.sign_out()
            return False
        self.access = access
        self.phase = SessionPhase.READY
        return True

    def sign_out(self) -> None:
        self.phase = SessionPhase.LOGGED_OUT
        self.user_id = None
        self.email = None
        self.access = None

    def guard_redirect(self, path: str) -> Optional[str]:
        """Where to send a request for ``path``, or ``None`` to let it through."""
        if not self.auth_enabled:
            return None
        if not self.is_ready:
            return None if is_public_path(path) else LOGIN_PATH
        default = get_default_path_for_role(self.role)
        if path == LOGIN_PATH or not can_role_access_path(self.role, path):
            return default
        return None
