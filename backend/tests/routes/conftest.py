# backend/tests/routes/conftest.py
"""
Route fixtures.

The app runs against the per-test SQLite session and an isolated publisher,
with the venue clock frozen so status-dependent responses are stable.
"""

from datetime import datetime
from typing import Iterator
from unittest.mock import patch

from fastapi.testclient import TestClient
import pytest

from practice_space.api.dependencies.database import get_db
from practice_space.api.dependencies.services import get_cache_service_dep, get_publisher_dep
from practice_space.main import app

FROZEN_NOW = datetime(2031, 2, 1, 9, 0)


@pytest.fixture
def client(db, publisher) -> Iterator[TestClient]:
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_publisher_dep] = lambda: publisher
    app.dependency_overrides[get_cache_service_dep] = lambda: None
    with patch("practice_space.core.timezone_utils.venue_now", return_value=FROZEN_NOW):
        yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def create_reservation(client):
    def _create(start: str, end: str, owner_id: str = "member-1", **extra):
        payload = {"owner_id": owner_id, "start": start, "end": end, **extra}
        return client.post("/api/v1/reservations", json=payload)

    return _create
