"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests. It
points the default database at a throwaway file so importing the settings
module never touches a real database, and provides factories that build an
isolated app (own settings, own SQLite file, own fake clock) per test.
"""

import os
import tempfile

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault(
    "DB_URL",
    "sqlite:///" + os.path.join(tempfile.mkdtemp(prefix="gatehouse-tests-"), "default.db"),
)
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("AUTH_BCRYPT_ROUNDS", "4")

from typing import Callable

import pytest
from fastapi.testclient import TestClient

from gatehouse.core.app_factory import create_app
from gatehouse.core.config import AuthSettings, DatabaseSettings, LogSettings, Settings

START_TIME = 1_700_000_000.0


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, now: float = START_TIME) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'gatehouse.db'}"


@pytest.fixture
def make_settings(db_url: str) -> Callable[..., Settings]:
    """Build Settings with a per-test database and fast bcrypt."""

    def _make(**overrides) -> Settings:
        values = {
            "db": DatabaseSettings(url=db_url),
            "auth": AuthSettings(bcrypt_rounds=4),
            "log": LogSettings(level="WARNING"),
        }
        values.update(overrides)
        return Settings(**values)

    return _make


@pytest.fixture
def make_client(make_settings, clock):
    """Build a TestClient around a fresh app; engines are disposed afterwards."""
    clients: list[TestClient] = []

    def _make(**overrides) -> TestClient:
        app = create_app(make_settings(**overrides), clock=clock)
        client = TestClient(app)
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.app.state.container.dispose()
