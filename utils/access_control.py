from __future__ import annotations

import logging
from typing import Mapping, Optional, Sequence, TypeVar

from models import ROLE_ADMIN, ROLE_STUDENTS_ONLY
from utils.errors import AuthorizationError

logger = logging.getLogger(__name__)

LOGIN_PATH = "/login"
DASHBOARD_PATH = "/"
STUDENTS_PATH = "/students"
PUBLIC_PATHS = (LOGIN_PATH,)

NAV_ITEMS = (
    {"title": "Dashboard", "href": "/"},
    {"title": "Finance", "href": "/finance"},
    {"title": "Students", "href": "/students"},
    {"title": "Access Management", "href": "/access-management"},
    {"title": "Settings", "href": "/settings"},
)

LAST_ADMIN_MESSAGE = "At least one admin is required. Add another admin before removing this one."
SELF_TARGET_MESSAGE = "You cannot modify or delete your own account or access."
ADMIN_ONLY_MESSAGE = "Only admins can manage user access."

T = TypeVar("T", bound=Mapping)


def _under(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(f"{prefix}/")


def is_public_path(path: str) -> bool:
    return any(_under(path or "", p) for p in PUBLIC_PATHS)


def get_default_path_for_role(role: Optional[str]) -> str:
    return STUDENTS_PATH if role == ROLE_STUDENTS_ONLY else DASHBOARD_PATH


def can_role_access_path(role: Optional[str], path: str) -> bool:
    if is_public_path(path):
        return True
    if role == ROLE_ADMIN:
        return True
    if role == ROLE_STUDENTS_ONLY:
        return _under(path or "", STUDENTS_PATH)
    return False


def filter_nav_items_by_role(items: Sequence[T], role: Optional[str], auth_enabled: bool) -> list[T]:
    if not auth_enabled:
        return list(items)
    return [item for item in items if can_role_access_path(role, item["href"])]


def normalize_stored_role(role: Optional[str]) -> Optional[str]:
    """Map a stored role onto the app roles; the legacy 'teacher' role is students-only."""
    if role == ROLE_ADMIN:
        return ROLE_ADMIN
    if role in (ROLE_STUDENTS_ONLY, "teacher"):
        return ROLE_STUDENTS_ONLY
    return None


def ensure_access_change_allowed(
    actor_id: Optional[str],
    target_id: str,
    roles: Mapping[str, Optional[str]],
    next_role: Optional[str],
) -> None:
    """Authorize a role change or removal before anything is written.

    ``roles`` maps every known user id to its current role; ``next_role`` is
    the role the target ends up with (``None`` for revoke/delete).
    """
    if not actor_id or roles.get(actor_id) != ROLE_ADMIN:
        logger.warning("Non-admin %s tried to change access for %s", actor_id, target_id)
        raise AuthorizationError(ADMIN_ONLY_MESSAGE)
    if actor_id == target_id:
        raise AuthorizationError(SELF_TARGET_MESSAGE)
    if roles.get(target_id) == ROLE_ADMIN and next_role != ROLE_ADMIN:
        admins = sum(1 for role in roles.values() if role == ROLE_ADMIN)
        if admins <= 1:
            raise AuthorizationError(LAST_ADMIN_MESSAGE)


def ensure_admin(actor_id: Optional[str], roles: Mapping[str, Optional[str]]) -> None:
    if not actor_id or roles.get(actor_id) != ROLE_ADMIN:
        raise AuthorizationError(ADMIN_ONLY_MESSAGE)
