"""Tests for the health check endpoint."""

import pytest
from fastapi.testclient import TestClient

from uploadcenter.api.dependencies import get_engine
from uploadcenter.main import app
from uploadcenter.models.queue import ItemStatus


@pytest.fixture
def client(engine):
    app.dependency_overrides[get_engine] = lambda: engine
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health_endpoint(client):
    """Test that the health endpoint returns correct response."""
    response = client.get("/health")

    assert response.status_code == 200

    data = response.json()

    assert data["status"] == "ok"
    assert data["service"] == "upload-center"
    assert data["version"] == "0.1.0"


def test_health_reports_queue_state(client, engine, png_file):
    """Test that readiness and per-status counts reflect the engine."""
    engine.enqueue_file(png_file)
    failed = engine.enqueue_file(png_file)
    engine._get_item(failed.id).status = ItemStatus.ERROR

    data = client.get("/health").json()

    assert data["ready"] is True
    assert data["processing"] is False
    assert data["active_account_id"] == "ik-1"
    assert data["accounts_loaded"] == 3
    assert data["queue"] == {
        "pending": 1,
        "compressing": 0,
        "uploading": 0,
        "success": 0,
        "error": 1,
    }


def test_health_not_ready_without_account(client, engine):
    engine.set_accounts([])

    data = client.get("/health").json()

    assert data["status"] == "ok"
    assert data["ready"] is False
    assert data["active_account_id"] is None
    assert data["accounts_loaded"] == 0


def test_health_not_ready_when_active_account_exhausted(client, engine):
    engine._exhausted.add("ik-1")

    data = client.get("/health").json()

    assert data["ready"] is False
    assert data["exhausted_accounts"] == 1
