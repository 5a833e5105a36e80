"""Request-side helpers shared by the blueprints."""
from __future__ import annotations

from functools import wraps
from typing import Any, Callable, TypeVar, cast

from flask import current_app, g, jsonify, request, session

from utils.errors import ValidationError

F = TypeVar("F", bound=Callable[..., Any])

SESSION_TOKEN_KEY = "session_token"


def data_service():
    return current_app.extensions["coaching_data_service"]


def business_clock():
    return current_app.extensions["coaching_clock"]


def session_registry():
    return current_app.extensions["coaching_session_registry"]


def current_entry():
    """``(AuthSession, SnapshotStore)`` for this browser session, or ``None``."""
    return session_registry().get(session.get(SESSION_TOKEN_KEY))


def current_store():
    store = g.store
    if not store.loaded:
        store.load()
    return store


def json_payload() -> dict:
    """Body as a dict, from JSON or a classic form post."""
    if request.is_json:
        payload = request.get_json(silent=True)
        if payload is None:
            raise ValidationError("Request body must be valid JSON.")
        if not isinstance(payload, dict):
            raise ValidationError("Request body must be a JSON object.")
        return payload
    return request.form.to_dict()


def ok(status: int = 200, **body):
    return jsonify({"ok": True, **body}), status


def admin_required(func: F) -> F:
    """Reject non-admin sessions with 403 before the view runs."""

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any):
        store = getattr(g, "store", None)
        if store is None or not store.is_admin:
            return jsonify({"ok": False, "error": "Only admins can open this page."}), 403
        return func(*args, **kwargs)

    return cast(F, wrapper)
