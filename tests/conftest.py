"""Shared pytest fixtures."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
import sys
from typing import Generator

import pytest
from flask import Flask

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from ccis_connect.app import create_app
from ccis_connect.config import TestingConfig
from ccis_connect.data_access import seed, users_dao
from ccis_connect.data_access.db import get_db, init_db
from ccis_connect.models.entities import Actor, Role
from ccis_connect.services import store

# A Monday morning, inside class hours.
FIXED_NOW = datetime(2025, 3, 10, 10, 0)


class _TestConfig(TestingConfig):
    DATABASE_URL: str = ""


class FakeTimer:
    """Stand-in for ``threading.Timer`` that only fires when told to."""

    def __init__(self, delay: float, callback) -> None:
        self.delay = delay
        self.callback = callback
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        self.callback()


class FakeTimerFactory:
    def __init__(self) -> None:
        self.timers: list[FakeTimer] = []

    def __call__(self, delay: float, callback) -> FakeTimer:
        timer = FakeTimer(delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def last(self) -> FakeTimer:
        return self.timers[-1]


@pytest.fixture()
def app(tmp_path: Path) -> Generator[Flask, None, None]:
    """Configure a Flask application for testing with a temp SQLite database."""

    db_path = tmp_path / "test.db"
    _TestConfig.DATABASE_URL = f"sqlite:///{db_path}"
    application = create_app(_TestConfig)
    with application.app_context():
        init_db(application)
        seed.seed()
    yield application


@pytest.fixture()
def client(app: Flask):
    """Flask test client."""

    return app.test_client()


@pytest.fixture()
def runner(app: Flask):
    """Flask CLI runner."""

    return app.test_cli_runner()


@pytest.fixture()
def db(app: Flask):
    """Provide a database connection for direct queries."""

    with app.app_context():
        yield get_db()


@pytest.fixture()
def app_ledger(app: Flask):
    """The ledger served by the test application."""

    return store.get_ledger(app)


@pytest.fixture()
def clock():
    """Adjustable clock; set ``clock.now`` to move time."""

    class _Clock:
        now = FIXED_NOW

        def __call__(self) -> datetime:
            return self.now

    return _Clock()


@pytest.fixture()
def timers() -> FakeTimerFactory:
    return FakeTimerFactory()


@pytest.fixture()
def ledger(clock, timers):
    """Fresh seeded ledger, detached from any app or database."""

    return seed.default_ledger(clock=clock, release_delay_seconds=600, timer_factory=timers)


@pytest.fixture()
def admin() -> Actor:
    return Actor("Ada Admin", Role.ADMIN, identity="ada.admin@ccis.edu")


@pytest.fixture()
def student() -> Actor:
    return Actor("Alice Student", Role.STUDENT, identity="alice@student.ccis.edu")


@pytest.fixture()
def faculty() -> Actor:
    return Actor("Fiona Faculty", Role.FACULTY, scheduled_rooms=("100A", "100B"), identity="fiona.faculty@ccis.edu")


@pytest.fixture()
def guest() -> Actor:
    return Actor("Guest")


@pytest.fixture()
def admin_user(app: Flask):
    with app.app_context():
        return users_dao.get_user_by_email("ada.admin@ccis.edu")


@pytest.fixture()
def faculty_user(app: Flask):
    with app.app_context():
        return users_dao.get_user_by_email("fiona.faculty@ccis.edu")


@pytest.fixture()
def student_user(app: Flask):
    with app.app_context():
        return users_dao.get_user_by_email("alice@student.ccis.edu")
