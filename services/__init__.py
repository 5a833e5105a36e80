from __future__ import annotations

import logging
from functools import partial
from typing import Mapping

import mysql.connector

from config import database_settings
from services.base import AppDataService
from services.mock import MockAppDataService
from services.mysql_store import MySQLAppDataService
from utils.timezone_helpers import business_today

logger = logging.getLogger(__name__)


def create_data_service(config: Mapping) -> AppDataService:
    """Pick the backend once, at startup. Callers never see which one it is."""
    clock = partial(business_today, config.get("APP_TIMEZONE"))
    if config.get("USE_PERSISTENT_STORE"):
        settings = database_settings(config)
        logger.info(
            "Using MySQL data store at %s:%s/%s",
            settings["host"], settings["port"], settings["database"],
        )
        return MySQLAppDataService(partial(mysql.connector.connect, **settings), clock=clock)
    logger.info("Using in-memory demo data store")
    return MockAppDataService(
        admin_email=config.get("MOCK_ADMIN_EMAIL", "owner@learnngrow.app"),
        admin_password=config.get("MOCK_ADMIN_PASSWORD", "learnngrow"),
        clock=clock,
    )


__all__ = ["AppDataService", "MockAppDataService", "MySQLAppDataService", "create_data_service"]
