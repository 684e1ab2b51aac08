"""Shared fixtures for API integration tests.

This module provides a TestClient whose SessionLifecycleManager is replaced,
through FastAPI's dependency override system, by a fresh manager driven by a
fixed clock.
"""

import pytest
from fastapi.testclient import TestClient

from api.dependencies import get_lifecycle_manager
from main import app
from tests.api.helpers import STUDENT
from tests.fixtures.core.managers import FixedClock, create_lifecycle_manager


@pytest.fixture
def client_with_manager():
    """Provide a TestClient with a fresh SessionLifecycleManager injected.

    Yields:
        A tuple of (TestClient, SessionLifecycleManager, FixedClock).

    Example:
        def test_something(client_with_manager):
            client, manager, clock = client_with_manager
            response = client.get("/health")
            assert response.status_code == 200
    """
    clock = FixedClock()
    manager = create_lifecycle_manager(clock=clock)
    app.dependency_overrides[get_lifecycle_manager] = lambda: manager

    client = TestClient(app)

    yield client, manager, clock

    app.dependency_overrides.clear()


@pytest.fixture
def client(client_with_manager):
    return client_with_manager[0]


@pytest.fixture
def session_id(client):
    """Start a session on the interrupting scenario and return its id."""
    response = client.post("/scenarios/scenario-interrupt/sessions", headers=STUDENT)
    assert response.status_code == 201, f"Failed to start session: {response.json()}"
    return response.json()["session"]["session_id"]
