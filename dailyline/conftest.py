# dailyline/conftest.py
import os

import pytest

# Every test runs against a private in-memory SQLite database
TEST_DB_URL = "sqlite+pysqlite:///:memory:"
os.environ["TEST_DATABASE_URL"] = TEST_DB_URL
os.environ.setdefault("ENV", "test")
os.environ.setdefault("CONTINUITY_TIMEZONE", "Asia/Tokyo")


@pytest.fixture(scope="function", autouse=True)
def db():
    """
    Fresh schema per test.

    StaticPool keeps the single in-memory connection alive across sessions,
    so disposing the engine is what drops the data.
    """
    from dailyline.core.database import create_all_tables, dispose_engine, init_engine

    init_engine(TEST_DB_URL)
    create_all_tables()
    yield
    dispose_engine()


@pytest.fixture(scope="function", autouse=True)
def reset_state():
    from dailyline.core.metrics import METRICS
    from dailyline.features.continuity.service import reset_continuity_service

    METRICS.reset()
    reset_continuity_service()
    yield
    reset_continuity_service()


@pytest.fixture
def cron_secret(monkeypatch):
    from dailyline.core.config import settings

    monkeypatch.setattr(settings, "CRON_SECRET", "test-cron-secret")
    return "test-cron-secret"
