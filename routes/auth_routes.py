from flask import Blueprint, current_app, jsonify, session

from extensions import limiter
from store import Actor, SnapshotStore
from utils.access_control import LOGIN_PATH, NAV_ITEMS, filter_nav_items_by_role, get_default_path_for_role
from utils.auth_session import AuthSession
from utils.web import SESSION_TOKEN_KEY, business_clock, current_entry, data_service, json_payload, ok, session_registry

auth_bp = Blueprint('auth', __name__)


def _login_limit() -> str:
    return current_app.config.get("LOGIN_RATE_LIMIT", "10 per minute")


@auth_bp.route('/login', methods=['GET'])
def login_status():
    entry = current_entry()
    phase = entry[0].phase.value if entry else "logged_out"
    return ok(phase=phase, authEnabled=current_app.config.get("AUTH_ENABLED", True))


@auth_bp.route('/login', methods=['POST'])
# Only credential posts count against the limit
@limiter.limit(_login_limit, methods=['POST'])
def login():
    payload = json_payload()
    email = (payload.get('email') or '').strip()
    password = payload.get('password') or ''
    if not email or not password:
        return jsonify({"ok": False, "error": "Enter your email and password."}), 400

    service = data_service()
    # Replace whatever session this browser had
    session_registry().discard(session.pop(SESSION_TOKEN_KEY, None))

    auth = AuthSession(auth_enabled=current_app.config.get("AUTH_ENABLED", True))
    auth.begin_login()
    user = service.authenticate(email, password)
    if user is None:
        auth.login_failed()
        current_app.logger.info("Failed sign-in for %s", email.lower())
        return jsonify({"ok": False, "error": "Invalid email or password."}), 401

    auth.authenticated(user.user_id, user.email)
    access = service.get_user_access(user.user_id)
    if not auth.role_resolved(access):
        return jsonify({
            "ok": False,
            "error": "Your account has no access role assigned. Ask an admin to grant access.",
        }), 403

    store = SnapshotStore(
        service,
        Actor.from_access(access),
        auth_enabled=auth.auth_enabled,
        clock=business_clock(),
    )
    session[SESSION_TOKEN_KEY] = session_registry().open(auth, store)
    current_app.logger.info("Signed in %s as %s", access.email, access.role)
    return ok(user=access.to_dict(), redirect=get_default_path_for_role(access.role))


@auth_bp.route('/logout', methods=['GET', 'POST'])
def logout():
    session_registry().discard(session.pop(SESSION_TOKEN_KEY, None))
    return ok(redirect=LOGIN_PATH)


@auth_bp.route('/session', methods=['GET'])
def session_info():
    auth_enabled = current_app.config.get("AUTH_ENABLED", True)
    entry = current_entry()
    if entry is None:
        return ok(
            phase="logged_out",
            authEnabled=auth_enabled,
            user=None,
            navItems=filter_nav_items_by_role(NAV_ITEMS, None, auth_enabled),
        )
    auth, store = entry
    role = store.actor.role
    return ok(
        phase=auth.phase.value if auth_enabled else "ready",
        authEnabled=auth_enabled,
        user=auth.access.to_dict() if auth.access else None,
        role=role,
        defaultPath=get_default_path_for_role(role),
        navItems=filter_nav_items_by_role(NAV_ITEMS, role, auth_enabled),
    )
