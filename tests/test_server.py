"""Tests for the FastAPI progress server."""

import time
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

from card_uploads.core.api import CardUploadAPI
from card_uploads.core.models import UploaderConfig
from card_uploads.server.main import create_app


@pytest.fixture
def client(board):
    config = UploaderConfig(
        api_url="http://board.test",
        ledger_path=":memory:",
        chunk_size=4,
        backoff_base=0.0,
        cleanup_delay=60,
    )

    def api_factory():
        return CardUploadAPI(config, http_transport=httpx.MockTransport(board))

    with TestClient(create_app(api_factory=api_factory)) as test_client:
        yield test_client


def wait_for_status(client, upload_id, expected, timeout=5.0):
    deadline = time.monotonic() + timeout
    while True:
        body = client.get(f"/api/v1/uploads/{upload_id}").json()
        if body["status"] == expected or time.monotonic() > deadline:
            return body
        time.sleep(0.01)


def start_upload(client, data=b"0123456789", card_id=7):
    response = client.post(
        "/api/v1/uploads",
        files={"file": ("notes.txt", data, "text/plain")},
        data={"card_id": str(card_id)},
    )
    assert response.status_code == 201
    return response.json()


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_upload_progress_is_served(client, board):
    started = start_upload(client)
    assert started["file_name"] == "notes.txt"
    assert started["file_size"] == 10

    body = wait_for_status(client, started["upload_id"], "completed")

    assert body["status"] == "completed"
    assert body["uploaded_bytes"] == 10
    assert body["progress_percent"] == 100.0
    assert board.chunk_indexes == [0, 1, 2]

    listing = client.get("/api/v1/uploads").json()
    assert listing["total_count"] == 1
    assert listing["uploads"][0]["upload_id"] == started["upload_id"]


def test_unknown_upload_is_404(client):
    assert client.get("/api/v1/uploads/upload-missing").status_code == 404
    assert client.post("/api/v1/uploads/upload-missing/pause").status_code == 404
    assert client.post("/api/v1/uploads/upload-missing/resume").status_code == 404


def test_invalid_transitions_are_409(client):
    started = start_upload(client)
    wait_for_status(client, started["upload_id"], "completed")

    response = client.post(f"/api/v1/uploads/{started['upload_id']}/pause")
    assert response.status_code == 409

    response = client.post(f"/api/v1/uploads/{started['upload_id']}/resume")
    assert response.status_code == 409


def test_failed_upload_can_be_cancelled(client, board):
    board.fail_chunk_status = 503
    started = start_upload(client)

    body = wait_for_status(client, started["upload_id"], "failed")
    assert body["status"] == "failed"
    assert "chunk 0" in body["error"]

    response = client.delete(f"/api/v1/uploads/{started['upload_id']}")
    assert response.status_code == 200
    assert response.json()["success"] is True
    assert board.requests[-1].method == "DELETE"
    assert client.get(f"/api/v1/uploads/{started['upload_id']}").status_code == 404


def test_cancel_removes_spooled_file(client, board):
    board.fail_chunk_status = 503
    started = start_upload(client)
    upload_id = started["upload_id"]
    wait_for_status(client, upload_id, "failed")

    spool_path = Path(client.app.state.spool_paths[upload_id])
    assert spool_path.read_bytes() == b"0123456789"

    response = client.delete(f"/api/v1/uploads/{upload_id}")

    assert response.status_code == 200
    assert not spool_path.exists()
    assert upload_id not in client.app.state.spool_paths


def test_completed_upload_spool_is_removed_after_cleanup(board):
    config = UploaderConfig(
        api_url="http://board.test",
        ledger_path=":memory:",
        chunk_size=4,
        backoff_base=0.0,
        cleanup_delay=0,
    )

    def api_factory():
        return CardUploadAPI(config, http_transport=httpx.MockTransport(board))

    with TestClient(create_app(api_factory=api_factory)) as test_client:
        upload_id = start_upload(test_client)["upload_id"]
        spool_paths = test_client.app.state.spool_paths
        deadline = time.monotonic() + 5.0
        while upload_id in spool_paths and time.monotonic() < deadline:
            time.sleep(0.01)

        assert upload_id not in spool_paths
        assert board.chunk_indexes == [0, 1, 2]
        assert test_client.get(f"/api/v1/uploads/{upload_id}").status_code == 404
