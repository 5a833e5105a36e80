import logging
from datetime import datetime
from functools import partial

from flask import Flask, g, jsonify, redirect, request, session

from config import Config
from extensions import limiter
from routes.access_routes import access_bp
from routes.auth_routes import auth_bp
from routes.dashboard_routes import dashboard_bp
from routes.finance_routes import finance_bp
from routes.settings_routes import settings_bp
from routes.student_routes import student_bp
from services import create_data_service
from services.mysql_store import MySQLAppDataService
from store import Actor, SessionRegistry, SnapshotStore
from utils.access_control import LOGIN_PATH
from utils.auth_session import AuthSession
from utils.errors import AppDataError
from utils.timezone_helpers import business_today
from utils.web import SESSION_TOKEN_KEY

logger = logging.getLogger(__name__)

# Reachable with or without a session
OPEN_PATHS = {"/healthz", "/session", "/logout", LOGIN_PATH}


def _bootstrap_db_safely(service) -> None:
    """Create missing tables; a database that is down must not block startup."""
    if not isinstance(service, MySQLAppDataService):
        return
    try:
        service.ensure_schema()
    except AppDataError as exc:
        logger.error("Schema bootstrap skipped: %s", exc.message)


def _owner_session(app):
    """Sign-in is off: every browser gets its own store acting as the owner."""
    registry = app.extensions["coaching_session_registry"]
    auth = AuthSession(auth_enabled=False)
    store = SnapshotStore(
        app.extensions["coaching_data_service"],
        Actor.owner(),
        auth_enabled=False,
        clock=app.extensions["coaching_clock"],
    )
    session[SESSION_TOKEN_KEY] = registry.open(auth, store)
    return auth, store


def create_app(config_object=Config, data_service=None):
    app = Flask(__name__)
    app.config.from_object(config_object)
    app.secret_key = app.config.get("SECRET_KEY")

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Backend is fixed for the life of the process
    service = data_service or create_data_service(app.config)
    app.extensions["coaching_data_service"] = service
    app.extensions["coaching_session_registry"] = SessionRegistry()
    app.extensions["coaching_clock"] = partial(business_today, app.config.get("APP_TIMEZONE"))
    started_at = datetime.now()

    limiter.init_app(app)

    app.register_blueprint(auth_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(finance_bp)
    app.register_blueprint(student_bp)
    app.register_blueprint(settings_bp)
    app.register_blueprint(access_bp)

    _bootstrap_db_safely(service)

    # ---------- AUTH GUARD ----------
    @app.before_request
    def require_login_for_app():
        path = request.path or "/"
        if path in OPEN_PATHS or path.startswith("/static/"):
            return None

        registry = app.extensions["coaching_session_registry"]
        entry = registry.get(session.get(SESSION_TOKEN_KEY))
        if entry is None and not app.config.get("AUTH_ENABLED", True):
            entry = _owner_session(app)
        auth = entry[0] if entry else AuthSession(auth_enabled=True)

        target = auth.guard_redirect(path)
        if target is None:
            if entry is not None:
                g.auth_session, g.store = entry
            return None
        if request.method == "GET":
            return redirect(target)
        status = 401 if target == LOGIN_PATH else 403
        message = "Sign in to continue." if status == 401 else "You do not have access to this page."
        return jsonify({"ok": False, "error": message, "redirect": target}), status

    # ---------- ERRORS ----------
    @app.errorhandler(AppDataError)
    def handle_app_error(exc):
        if exc.status_code >= 500:
            app.logger.error("%s %s failed: %s", request.method, request.path, exc.message)
        return jsonify({"ok": False, "error": exc.message}), exc.status_code

    @app.errorhandler(429)
    def handle_rate_limit(exc):
        return jsonify({"ok": False, "error": "Too many sign-in attempts. Try again shortly."}), 429

    # ---------- HEALTH ----------
    @app.route("/healthz")
    def healthz():
        """Liveness probe; does not touch the database."""
        up_secs = max(0, int((datetime.now() - started_at).total_seconds()))
        return jsonify({
            "ok": True,
            "status": "alive",
            "uptime_seconds": up_secs,
            "store": "mysql" if isinstance(service, MySQLAppDataService) else "mock",
        })

    return app


app = create_app()


if __name__ == "__main__":
    app.run(debug=False)
