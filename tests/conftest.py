"""
Pytest configuration for all tests.
Sets up Python path to find the backend beatwatch package and provides an
in-memory database plus a deterministic clock.
"""

import sys
import os
import uuid
from datetime import datetime, timedelta

import pytest

# Add backend directory to Python path
backend_path = os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'backend'))
if backend_path not in sys.path:
    sys.path.insert(0, backend_path)

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from beatwatch.db.postgres import Base
from beatwatch import models  # noqa: F401 - registers models with Base


class FakeClock:
    """Callable clock that ticks one second per reading."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        value = self.now
        self.now = self.now + timedelta(seconds=1)
        return value

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def engine():
    """Fresh in-memory SQLite schema per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def clock():
    # 2026-10-19 08:00 in Asia/Manila
    return FakeClock(datetime(2026, 10, 19, 0, 0, 0))


@pytest.fixture
def personnel():
    """Stable personnel ids for a test."""
    return [uuid.uuid4() for _ in range(4)]


@pytest.fixture
def dispatcher_id():
    return uuid.uuid4()


@pytest.fixture
def make_beat(db_session, clock, dispatcher_id):
    """Factory creating a pending beat around Calapan with the given personnel."""
    from beatwatch.services.beat_registry import BeatRegistry

    def _make(personnel_ids=(), **overrides):
        fields = {
            "name": "Poblacion Beat 1",
            "center_lat": 13.4119,
            "center_lng": 121.1805,
            "radius_m": 500,
            "duty_start": "06:00",
            "duty_end": "18:00",
            "province": "Oriental Mindoro",
            "unit": "Calapan CPS",
            "sub_unit": "PCP 1",
        }
        fields.update(overrides)
        registry = BeatRegistry(db_session, clock=clock)
        return registry.create_beat(personnel_ids=list(personnel_ids), actor_id=dispatcher_id, **fields)

    return _make
