import os
import sys
from datetime import date

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from app import create_app  # noqa: E402
from config import Config  # noqa: E402
from services.mock import MockAppDataService  # noqa: E402

TODAY = date(2026, 3, 20)
ADMIN_EMAIL = "owner@example.org"
ADMIN_PASSWORD = "owner-pass"


def fixed_clock():
    return TODAY


class AppTestConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret"
    USE_PERSISTENT_STORE = False
    AUTH_ENABLED = True
    RATELIMIT_ENABLED = False
    LOG_LEVEL = "WARNING"


@pytest.fixture
def service():
    return MockAppDataService(admin_email=ADMIN_EMAIL, admin_password=ADMIN_PASSWORD, clock=fixed_clock)


@pytest.fixture
def app(service):
    flask_app = create_app(AppTestConfig, data_service=service)
    flask_app.extensions["coaching_clock"] = fixed_clock
    return flask_app


@pytest.fixture
def client(app):
    with app.test_client() as c:
        yield c


def login(client, email=ADMIN_EMAIL, password=ADMIN_PASSWORD):
    return client.post("/login", json={"email": email, "password": password})
