# ABOUTME: Pytest hooks and shared fixtures. Sets SECRET_KEY and an in-memory DB path before app/config load.
# ABOUTME: Provides an in-memory SQLite engine, a session factory on it, a settable clock and a GoalService.

import os
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone

import pytest
from dotenv import load_dotenv

load_dotenv()

# Required by core.config before any test imports api.main.
os.environ.setdefault("SECRET_KEY", "test-secret-for-pytest")
os.environ.setdefault("GOALS_DB_PATH", ":memory:")

from sqlmodel import Session, SQLModel, create_engine  # noqa: E402
from sqlmodel.pool import StaticPool  # noqa: E402

from goal_tracking.service import GoalService  # noqa: E402

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock for GoalService; tests move it forward explicitly."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


@pytest.fixture
def in_memory_engine():
    """Engine for in-memory SQLite; one DB per test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    return engine


@pytest.fixture
def fake_get_session(in_memory_engine):
    """Context manager that yields a session on the in-memory engine, shaped like core.database.get_session."""

    @contextmanager
    def _fake():
        with Session(in_memory_engine) as s:
            yield s

    return _fake


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def service(fake_get_session, clock):
    return GoalService(session_factory=fake_get_session, clock=clock)
