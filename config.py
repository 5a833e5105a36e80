import os
from urllib.parse import urlparse

from dotenv import load_dotenv

load_dotenv()


def _truthy(val: str | None) -> bool:
    if not val:
        return False
    return val.strip().lower() in {"1", "true", "yes", "on", "y"}


class Config:
    # --------------------------
    # 🔹 Flask Configuration
    # --------------------------
    SECRET_KEY = os.environ.get("SECRET_KEY", "secret123")
    PROPAGATE_EXCEPTIONS = False
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = os.environ.get("SESSION_COOKIE_SAMESITE", "Lax")
    SESSION_COOKIE_SECURE = _truthy(os.environ.get("SESSION_COOKIE_SECURE", "0"))
    JSON_SORT_KEYS = False
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

    # --------------------------
    # 🔹 Backend selection (read once at startup)
    # --------------------------
    # False -> in-memory demo store, True -> MySQL tables
    USE_PERSISTENT_STORE = _truthy(os.environ.get("USE_PERSISTENT_STORE", "0"))
    # When disabled every visitor is treated as the single owner/admin
    AUTH_ENABLED = _truthy(os.environ.get("AUTH_ENABLED", "1"))

    # --------------------------
    # 🔹 MySQL Database
    # --------------------------
    DATABASE_URL = os.environ.get("DATABASE_URL", "")
    DB_HOST = os.environ.get("DB_HOST", "localhost")
    DB_PORT = int(os.environ.get("DB_PORT", "3306"))
    DB_USER = os.environ.get("DB_USER", "root")
    DB_PASSWORD = os.environ.get("DB_PASSWORD", "")
    DB_NAME = os.environ.get("DB_NAME", "coaching_admin")
    DB_CONNECT_TIMEOUT = int(os.environ.get("DB_CONNECT_TIMEOUT", "10"))

    # --------------------------
    # 🔹 Business calendar
    # --------------------------
    # Defines "today" for monthly dues and the dashboard's current month
    APP_TIMEZONE = os.environ.get("APP_TIMEZONE", "Asia/Kolkata")

    # --------------------------
    # 🔹 Demo / offline store
    # --------------------------
    MOCK_ADMIN_EMAIL = os.environ.get("MOCK_ADMIN_EMAIL", "owner@learnngrow.app")
    MOCK_ADMIN_PASSWORD = os.environ.get("MOCK_ADMIN_PASSWORD", "learnngrow")

    # --------------------------
    # 🔹 Rate limiting (Flask-Limiter)
    # --------------------------
    RATELIMIT_ENABLED = not _truthy(os.environ.get("DISABLE_RATE_LIMITING"))
    RATELIMIT_STORAGE_URI = os.environ.get("RATELIMIT_STORAGE_URI", "memory://")
    LOGIN_RATE_LIMIT = os.environ.get("LOGIN_RATE_LIMIT", "10 per minute")


def database_settings(cfg) -> dict:
    """Resolve MySQL connection kwargs from a config mapping.

    ``DATABASE_URL`` parts win over the individual ``DB_*`` keys.
    """
    settings = {
        "host": cfg.get("DB_HOST", "localhost"),
        "port": int(cfg.get("DB_PORT", 3306)),
        "user": cfg.get("DB_USER", "root"),
        "password": cfg.get("DB_PASSWORD", ""),
        "database": cfg.get("DB_NAME", "coaching_admin"),
        "connection_timeout": int(cfg.get("DB_CONNECT_TIMEOUT", 10)),
    }
    uri = cfg.get("DATABASE_URL") or ""
    if uri:
        parsed = urlparse(uri)
        # Only MySQL-style URIs carry usable parts
        if parsed.scheme.startswith("mysql"):
            if parsed.hostname:
                settings["host"] = parsed.hostname
            if parsed.port:
                settings["port"] = parsed.port
            if parsed.username:
                settings["user"] = parsed.username
            if parsed.password:
                settings["password"] = parsed.password
            if parsed.path and len(parsed.path) > 1:
                settings["database"] = parsed.path.lstrip("/")
    return settings
