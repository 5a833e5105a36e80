from mysql.connector import errors

from config import database_settings
from services import create_data_service
from services.mock import MockAppDataService
from services.mysql_store import MySQLAppDataService
from utils.errors import (
    AppDataError,
    TransportError,
    ValidationError,
    describe_transport_failure,
    is_transport_failure,
    wrap_driver_error,
)
from utils.security import PASSWORD_HASH_METHOD, hash_password, verify_password


def test_transport_failures_are_classified_by_errno_and_text():
    assert is_transport_failure(errors.OperationalError(msg="Lost connection to MySQL server during query", errno=2013))
    assert is_transport_failure(ConnectionRefusedError("[Errno 111] Connection refused"))
    assert is_transport_failure(RuntimeError("getaddrinfo: Name or service not known"))
    assert not is_transport_failure(errors.IntegrityError(msg="Duplicate entry 'a@b.c'", errno=1062))


def test_describe_transport_failure_message():
    msg = describe_transport_failure("save attendance", OSError("Connection refused"))
    assert msg.startswith("Failed to save attendance: Unable to reach the database server.")
    assert describe_transport_failure("save attendance", ValueError("boom")) == "Failed to save attendance: boom"


def test_wrap_driver_error_keeps_app_errors():
    original = ValidationError("Amount must be greater than zero.")
    assert wrap_driver_error("add transaction", original) is original
    wrapped = wrap_driver_error("add transaction", errors.InterfaceError(msg="2006: MySQL server has gone away", errno=2006))
    assert isinstance(wrapped, TransportError) and wrapped.status_code == 503
    generic = wrap_driver_error("add transaction", errors.DatabaseError(msg="Deadlock found", errno=1213))
    assert type(generic) is AppDataError and generic.status_code == 500


def test_database_url_overrides_individual_settings():
    settings = database_settings({
        "DB_HOST": "localhost",
        "DB_NAME": "ignored",
        "DATABASE_URL": "mysql+mysqlconnector://app:pw@db.internal:3307/coaching",
    })
    assert settings["host"] == "db.internal"
    assert settings["port"] == 3307
    assert (settings["user"], settings["password"], settings["database"]) == ("app", "pw", "coaching")
    assert settings["connection_timeout"] == 10


def test_non_mysql_urls_are_ignored():
    settings = database_settings({"DB_HOST": "h", "DATABASE_URL": "sqlite:///x.db"})
    assert settings["host"] == "h"


def test_backend_is_chosen_from_config():
    assert isinstance(create_data_service({"USE_PERSISTENT_STORE": False}), MockAppDataService)
    assert isinstance(create_data_service({"USE_PERSISTENT_STORE": True, "DB_HOST": "db"}), MySQLAppDataService)


def test_password_hashes_verify_and_plain_values_never_do():
    stored = hash_password("secret1")
    assert stored.startswith(PASSWORD_HASH_METHOD)
    assert verify_password(stored, "secret1")
    assert not verify_password(stored, "secret2")
    assert not verify_password("secret1", "secret1")
    assert not verify_password(None, "")
