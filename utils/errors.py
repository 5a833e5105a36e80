from __future__ import annotations

import mysql.connector
from mysql.connector import errorcode


class AppDataError(Exception):
    """A data operation failed; the message is safe to show to the operator."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AppDataError):
    status_code = 400


class AuthorizationError(AppDataError):
    status_code = 403


class NotFoundError(AppDataError):
    status_code = 404


class TransportError(AppDataError):
    status_code = 503


class SchemaDriftError(AppDataError):
    """Even the minimal required columns of a table are missing."""

    status_code = 500


TRANSPORT_ERRNOS = {
    errorcode.CR_CONN_HOST_ERROR,
    errorcode.CR_UNKNOWN_HOST,
    errorcode.CR_SERVER_GONE_ERROR,
    errorcode.CR_SERVER_LOST,
    errorcode.CR_CONNECTION_ERROR,
    errorcode.CR_SERVER_LOST_EXTENDED,
}

TRANSPORT_PATTERNS = (
    "connection refused",
    "can't connect",
    "lost connection",
    "server has gone away",
    "unknown mysql server host",
    "name or service not known",
    "temporary failure in name resolution",
    "network is unreachable",
    "timed out",
    "connection reset",
)


def error_text(exc: BaseException) -> str:
    msg = getattr(exc, "msg", None)
    return str(msg or exc or "Unknown network error")


def is_transport_failure(exc: BaseException) -> bool:
    if isinstance(exc, (ConnectionError, TimeoutError)):
        return True
    errno = getattr(exc, "errno", None)
    if isinstance(exc, mysql.connector.Error) and errno in TRANSPORT_ERRNOS:
        return True
    text = str(exc).lower()
    return any(p in text for p in TRANSPORT_PATTERNS)


def describe_transport_failure(action: str, exc: BaseException) -> str:
    if is_transport_failure(exc):
        return (
            f"Failed to {action}: Unable to reach the database server. "
            "Check DB_HOST/DB_PORT, credentials and network access."
        )
    return f"Failed to {action}: {error_text(exc)}"


def wrap_driver_error(action: str, exc: BaseException) -> AppDataError:
    """Translate a driver/socket failure into the app error taxonomy."""
    if isinstance(exc, AppDataError):
        return exc
    if is_transport_failure(exc):
        return TransportError(describe_transport_failure(action, exc))
    return AppDataError(describe_transport_failure(action, exc))
