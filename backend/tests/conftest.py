"""Shared fixtures.

The settings are read at import time, so the environment is pointed at an
in-memory SQLite database before anything from taskflow is imported.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from datetime import date  # noqa: E402

import pytest  # noqa: E402

from taskflow.config import get_settings  # noqa: E402
from taskflow.schemas.records import UserRecord  # noqa: E402
from tests.fakes import (  # noqa: E402
    FakeActivityRecorder,
    FakeMailer,
    FakeNotificationStore,
    FakeProjectRepository,
    FakeReminderRepository,
    FakeTaskRepository,
    FakeUserRepository,
)


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def users() -> FakeUserRepository:
    """A small org chart.

    1 staff (team 10, dept 100)      2 staff (team 10, dept 100)
    3 manager (team 10, dept 100)    4 manager (team 20, dept 100)
    5 director (dept 100)            6 HR
    7 staff (team 20, dept 200)      8 manager (team 20, dept 100)
    """
    return FakeUserRepository(
        [
            UserRecord(user_id=1, access_level=0, team_id=10, department_id=100, full_name="Alice Staff", email="alice@example.com"),
            UserRecord(user_id=2, access_level=0, team_id=10, department_id=100, full_name="Bob Staff", email="bob@example.com"),
            UserRecord(user_id=3, access_level=1, team_id=10, department_id=100, full_name="Carol Manager", email="carol@example.com"),
            UserRecord(user_id=4, access_level=1, team_id=20, department_id=100, full_name="Dan Manager"),
            UserRecord(user_id=5, access_level=2, department_id=100, full_name="Erin Director", email="erin@example.com"),
            UserRecord(user_id=6, access_level=3, full_name="Hana HR"),
            UserRecord(user_id=7, access_level=0, team_id=20, department_id=200, email="gus@example.com"),
            UserRecord(user_id=8, access_level=1, team_id=20, department_id=100, full_name="Ivy Manager"),
        ]
    )


@pytest.fixture
def tasks() -> FakeTaskRepository:
    return FakeTaskRepository()


@pytest.fixture
def projects() -> FakeProjectRepository:
    return FakeProjectRepository()


@pytest.fixture
def activity() -> FakeActivityRecorder:
    return FakeActivityRecorder()


@pytest.fixture
def notification_store() -> FakeNotificationStore:
    return FakeNotificationStore()


@pytest.fixture
def reminders() -> FakeReminderRepository:
    return FakeReminderRepository()


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def due() -> date:
    return date(2025, 3, 10)
