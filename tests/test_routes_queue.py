"""Tests for the upload queue API routes."""

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from uploadcenter.api.dependencies import get_engine
from uploadcenter.main import app
from uploadcenter.models.queue import ItemStatus
from uploadcenter.queue.engine import UploadQueueEngine


@pytest.fixture
def client(engine):
    """Test client bound to the shared engine fixture."""
    app.dependency_overrides[get_engine] = lambda: engine
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_enqueue_files_partial_rejection(client, engine, png_bytes):
    """Test that valid files are queued and invalid ones reported."""
    response = client.post(
        "/api/v1/queue/files",
        files=[
            ("files", ("photo.png", png_bytes, "image/png")),
            ("files", ("setup.exe", b"MZ", "application/x-msdownload")),
        ],
        data={"compression_enabled": "true", "compression_format": "webp", "compression_quality": "70"},
    )

    assert response.status_code == 201
    data = response.json()
    assert len(data["added"]) == 1
    assert data["added"][0]["status"] == "pending"
    assert data["added"][0]["compression_settings"] == {"enabled": True, "format": "webp", "quality": 70}
    assert data["rejected"][0]["name"] == "setup.exe"
    assert len(engine.items()) == 1


def test_enqueue_files_all_rejected(client, engine):
    response = client.post(
        "/api/v1/queue/files",
        files=[("files", ("empty.png", b"", "image/png"))],
    )

    assert response.status_code == 400
    assert "empty.png" in response.json()["detail"]
    assert engine.items() == []


def test_enqueue_single_file_with_custom_name(client, png_bytes):
    response = client.post(
        "/api/v1/queue/files",
        files=[("files", ("photo.png", png_bytes, "image/png"))],
        data={"custom_name": "holiday"},
    )

    assert response.status_code == 201
    assert response.json()["added"][0]["custom_name"] == "holiday"


def test_enqueue_single_file_with_blank_custom_name(client, engine, png_bytes):
    """Test that an empty custom_name field yields a random short name."""
    response = client.post(
        "/api/v1/queue/files",
        files=[("files", ("photo.png", png_bytes, "image/png"))],
        data={"custom_name": ""},
    )

    assert response.status_code == 201
    custom_name = engine.items()[0].custom_name
    assert custom_name is not None
    assert len(custom_name) == 5
    assert response.json()["added"][0]["custom_name"] == custom_name


def test_enqueue_files_without_custom_name_keeps_original(client, engine, png_bytes):
    response = client.post(
        "/api/v1/queue/files",
        files=[("files", ("photo.png", png_bytes, "image/png"))],
    )

    assert response.status_code == 201
    assert engine.items()[0].custom_name is None
    assert response.json()["added"][0]["name"] == "photo.png"


def test_enqueue_files_rejects_bad_quality(client, png_bytes):
    response = client.post(
        "/api/v1/queue/files",
        files=[("files", ("photo.png", png_bytes, "image/png"))],
        data={"compression_quality": "150"},
    )

    assert response.status_code == 400


def test_enqueue_url(client):
    response = client.post(
        "/api/v1/queue/urls",
        json={"source_url": "https://example.com/cat.jpg", "custom_name": "kitty"},
    )

    assert response.status_code == 201
    data = response.json()
    assert data["source_url"] == "https://example.com/cat.jpg"
    assert data["name"] == "kitty"
    assert data["file_type"] == "image/jpeg"

    response = client.post("/api/v1/queue/urls", json={"source_url": "not a url"})
    assert response.status_code == 400


def test_queue_snapshot(client, engine, png_file):
    engine.enqueue_file(png_file)

    response = client.get("/api/v1/queue")

    assert response.status_code == 200
    data = response.json()
    assert data["processing"] is False
    assert data["active_account_id"] == "ik-1"
    assert data["exhausted_account_ids"] == []
    assert len(data["items"]) == 1


def test_update_item(client, engine, png_file):
    item = engine.enqueue_file(png_file, custom_name="first")

    response = client.patch(f"/api/v1/queue/{item.id}", json={"custom_name": "second"})
    assert response.status_code == 200
    assert response.json()["custom_name"] == "second"

    # Omitting custom_name leaves it alone
    response = client.patch(
        f"/api/v1/queue/{item.id}",
        json={"compression_settings": {"enabled": True, "format": "jpeg", "quality": 40}},
    )
    assert response.json()["custom_name"] == "second"
    assert response.json()["compression_settings"]["format"] == "jpeg"

    response = client.patch(f"/api/v1/queue/{item.id}", json={"custom_name": None})
    assert response.json()["custom_name"] is None

    response = client.patch("/api/v1/queue/missing", json={"custom_name": "x"})
    assert response.status_code == 404


def test_retry_pending_item_conflicts(client, engine, png_file):
    item = engine.enqueue_file(png_file)

    response = client.post(f"/api/v1/queue/{item.id}/retry")

    assert response.status_code == 409


def test_retry_failed(client, engine, png_file):
    item = engine.enqueue_file(png_file)
    engine._get_item(item.id).status = ItemStatus.ERROR

    response = client.post("/api/v1/queue/retry-failed")

    assert response.json() == {"retried": 1}
    assert engine.get(item.id).status == ItemStatus.PENDING


def test_remove_and_clear(client, engine, png_file):
    first = engine.enqueue_file(png_file)
    engine.enqueue_file(png_file)
    engine.enqueue_file(png_file)

    assert client.delete(f"/api/v1/queue/{first.id}").status_code == 204
    assert client.delete(f"/api/v1/queue/{first.id}").status_code == 404

    response = client.delete("/api/v1/queue")
    assert response.json() == {"removed": 2}


def test_remove_active_item_conflicts(client, engine, png_file):
    item = engine.enqueue_file(png_file)
    engine._get_item(item.id).status = ItemStatus.UPLOADING

    assert client.delete(f"/api/v1/queue/{item.id}").status_code == 409
    assert client.delete("/api/v1/queue").status_code == 409


def test_notifications_after_rejection(client):
    client.post("/api/v1/queue/files", files=[("files", ("empty.png", b"", "image/png"))])

    response = client.get("/api/v1/queue/notifications")

    assert response.status_code == 200
    assert response.json()[-1]["level"] == "error"
    assert "empty" in response.json()[-1]["message"]


def test_start_and_pause():
    """Test that start/pause toggle the engine driver."""
    engine = MagicMock(spec=UploadQueueEngine)
    engine.is_processing = True
    engine.active_account = None
    engine.exhausted_accounts = frozenset()
    engine.selected_category_id = None
    engine.items.return_value = []
    app.dependency_overrides[get_engine] = lambda: engine
    try:
        client = TestClient(app)

        response = client.post("/api/v1/queue/start")
        assert response.status_code == 200
        assert response.json()["processing"] is True
        engine.start.assert_called_once()

        client.post("/api/v1/queue/pause")
        engine.pause.assert_called_once()
    finally:
        app.dependency_overrides.clear()
