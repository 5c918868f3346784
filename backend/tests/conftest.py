# backend/tests/conftest.py
"""
Pytest configuration for the practice space scheduler.

Sets testing mode before any package import so settings, the conflict
snapshot cache and the day lock all stay in-process, then provides an
in-memory SQLite database per test.
"""

import os
import sys

# CRITICAL: Set testing mode BEFORE any package imports!
os.environ["is_testing"] = "true"
os.environ["cache_redis_enabled"] = "false"
os.environ["database_url"] = "sqlite://"

# Add the backend directory to Python path so imports work
backend_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, backend_dir)

from datetime import datetime
from typing import Iterator, List

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from practice_space.core.config import settings

settings.is_testing = True

from practice_space.database import Base
from practice_space.events import BookingEvent, EventPublisher
from practice_space.models import Booking, Closure, RecurringSeries  # noqa: F401

# Far enough ahead that nothing is "in the past" whatever day the suite runs.
FUTURE_DAY = datetime(2031, 3, 11)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def db(engine) -> Iterator[Session]:
    TestingSessionLocal = sessionmaker(
        autocommit=False, autoflush=False, bind=engine, expire_on_commit=False
    )
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def publisher() -> EventPublisher:
    """Isolated publisher so tests never see each other's subscribers."""
    return EventPublisher()


@pytest.fixture
def recorded_events(publisher: EventPublisher) -> List[BookingEvent]:
    events: List[BookingEvent] = []
    publisher.subscribe(events.append)
    return events


@pytest.fixture(autouse=True)
def _restore_settings():
    """Tests may tweak scheduling settings; put them back afterwards."""
    snapshot = settings.model_dump()
    yield
    for key, value in snapshot.items():
        setattr(settings, key, value)
