"""Pytest configuration and fixtures for card_uploads tests."""

import asyncio
import json
import re
from collections import defaultdict

import httpx
import pytest
import pytest_asyncio

from card_uploads.core.exceptions import NetworkError
from card_uploads.core.finalizer import Finalizer
from card_uploads.core.ledger import UploadLedger
from card_uploads.core.models import Attachment
from card_uploads.core.orchestrator import UploadOrchestrator
from card_uploads.core.sources import BytesSource
from card_uploads.core.transport import ChunkTransport


class FakeEndpoint:
    """In-memory stand-in for the board API upload endpoint."""

    def __init__(self):
        self.attempts = []
        self.chunks = []
        self.completed = []
        self.cancelled = []
        self.chunk_failures = {}
        self.finalize_failures = 0
        self.gates = {}
        self.entered = defaultdict(asyncio.Event)

    def hold(self, chunk_index: int) -> asyncio.Event:
        """Block transfers of ``chunk_index`` until the returned event is set."""
        gate = asyncio.Event()
        self.gates[chunk_index] = gate
        return gate

    def acknowledged(self, upload_id=None):
        return [index for uid, index, _ in self.chunks if upload_id in (None, uid)]

    def received_bytes(self, upload_id) -> bytes:
        return b"".join(data for uid, _, data in self.chunks if uid == upload_id)

    async def submit_chunk(self, upload_id, chunk_index, data, total_chunks):
        self.attempts.append(chunk_index)
        self.entered[chunk_index].set()
        gate = self.gates.get(chunk_index)
        if gate is not None:
            await gate.wait()
        if self.chunk_failures.get(chunk_index, 0) > 0:
            self.chunk_failures[chunk_index] -= 1
            raise NetworkError("POST /api/upload/chunk failed with status 503", 503)
        self.chunks.append((upload_id, chunk_index, bytes(data)))

    async def complete_upload(self, upload_id, file_name, file_size, card_id):
        if self.finalize_failures > 0:
            self.finalize_failures -= 1
            raise NetworkError("POST /api/upload/finalize failed with status 500", 500)
        self.completed.append((upload_id, file_name, file_size, card_id))
        return Attachment(
            id=len(self.completed),
            file_name=file_name,
            file_url=f"http://board.test/api/files/download/{file_name}",
            file_size=file_size,
            card_id=card_id,
        )

    async def cancel_upload(self, upload_id, file_name):
        self.cancelled.append((upload_id, file_name))


class BoardAPI:
    """Recording request handler for httpx.MockTransport."""

    CHUNK_INDEX = re.compile(rb'name="chunkIndex"\r\n\r\n(\d+)\r\n')

    def __init__(self):
        self.requests = []
        self.chunk_indexes = []
        self.fail_chunk_status = None
        self.fail_finalize_status = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/api/upload/init":
            return httpx.Response(
                200,
                json={
                    "uploadId": "server-side",
                    "fileName": request.url.params["fileName"],
                    "chunkSize": 3,
                },
            )
        if path == "/api/upload/chunk":
            if self.fail_chunk_status:
                return httpx.Response(self.fail_chunk_status, text="unavailable")
            self.chunk_indexes.append(int(self.CHUNK_INDEX.search(request.content).group(1)))
            return httpx.Response(200)
        if path == "/api/upload/finalize":
            if self.fail_finalize_status:
                return httpx.Response(self.fail_finalize_status, text="finalize failed")
            body = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "id": 11,
                    "fileName": body["fileName"],
                    "fileUrl": f"/api/files/download/{body['fileName']}",
                    "fileSize": body["fileSize"],
                    "cardId": body["cardId"],
                },
            )
        if path == "/api/upload/cancel":
            return httpx.Response(200)
        return httpx.Response(404)


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Poll ``predicate`` until it is true, yielding to the event loop."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def ledger():
    """Throwaway in-memory ledger."""
    store = UploadLedger(":memory:")
    yield store
    store.close()


@pytest.fixture
def endpoint():
    return FakeEndpoint()


@pytest.fixture
def board():
    """Mocked board API speaking HTTP through httpx.MockTransport."""
    return BoardAPI()


@pytest.fixture
def sleeps():
    """Backoff delays requested by the transport."""
    return []


@pytest.fixture
def fake_sleep(sleeps):
    async def _sleep(delay: float) -> None:
        sleeps.append(delay)

    return _sleep


@pytest.fixture
def progress_events():
    return []


@pytest_asyncio.fixture
async def orchestrator(ledger, endpoint, fake_sleep, progress_events):
    """Orchestrator with 4-byte chunks, instant backoff and a long cleanup delay."""
    transport = ChunkTransport(endpoint, sleep=fake_sleep)
    finalizer = Finalizer(endpoint, ledger, cleanup_delay=60)
    orch = UploadOrchestrator(
        ledger, transport, finalizer, chunk_size=4, progress_callback=progress_events.append
    )
    yield orch
    await orch.aclose()


@pytest.fixture
def source():
    """Ten-byte source: chunks of 4, 4 and 2 bytes."""
    return BytesSource("notes.txt", b"0123456789")
