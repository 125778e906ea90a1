"""Pytest configuration and shared fixtures."""

from collections.abc import AsyncIterator
from datetime import UTC, datetime

import logfire
import pytest

from evv.core import clock, db_client
from evv.core.config import settings
from evv.core.schema import init_db
from evv.domain.schedule import Schedule
from evv.stores import schedule_store


# Keep spans local during tests
logfire.configure(send_to_logfire=False, console=False)


@pytest.fixture
def db_path(tmp_path, monkeypatch) -> str:
    """Point the db client at a fresh SQLite file for each test."""
    path = str(tmp_path / "evv_test.db")
    monkeypatch.setattr(settings, "sqlite_db_path", path)
    return path


@pytest.fixture
async def db(db_path) -> AsyncIterator[str]:
    """Initialized schema on a per-test database; the connection is closed afterwards."""
    await init_db()
    yield db_path
    await db_client.close_connection()


@pytest.fixture
def fixed_now(monkeypatch) -> datetime:
    """Freeze clock.utc_now at a known instant."""
    now = datetime(2026, 3, 2, 10, 0, tzinfo=UTC)
    monkeypatch.setattr(clock, "utc_now", lambda: now)
    return now


@pytest.fixture
async def schedule(db) -> Schedule:
    """A single upcoming schedule."""
    return await schedule_store.create(
        client_name="Alice Johnson",
        shift_time="09:00-12:00",
        location="12 Elm Street",
    )
