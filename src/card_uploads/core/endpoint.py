"""Async client for the board API's resumable upload endpoints."""

import logging
from typing import Any, Dict, Optional

import httpx

from .exceptions import NetworkError
from .models import Attachment, UploadInitResponse

logger = logging.getLogger(__name__)


class UploadEndpoint:
    """Client for the remote side of resumable uploads.

    Every method is a single network call. Failures surface as NetworkError;
    retrying is left to the caller.
    """

    INIT_PATH = "/api/upload/init"
    CHUNK_PATH = "/api/upload/chunk"
    FINALIZE_PATH = "/api/upload/finalize"
    CANCEL_PATH = "/api/upload/cancel"

    def __init__(
        self,
        base_url: str,
        api_token: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the endpoint client.

        Args:
            base_url: Board API base URL
            api_token: Bearer token sent with every request
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests pass a MockTransport)
        """
        headers = {"Authorization": f"Bearer {api_token}"} if api_token else {}
        self.base_url = base_url.rstrip("/")
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = await self.client.request(method, path, **kwargs)
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            logger.debug(f"{method} {path} returned {status_code}: {e.response.text}")
            raise NetworkError(
                f"{method} {path} failed with status {status_code}", status_code
            ) from e
        except httpx.HTTPError as e:
            logger.debug(f"{method} {path} failed: {e}")
            raise NetworkError(f"{method} {path} failed: {e}") from e

    @staticmethod
    def _json(response: httpx.Response) -> Dict[str, Any]:
        try:
            return response.json()
        except ValueError as e:
            raise NetworkError(f"Invalid JSON from {response.request.url}") from e

    async def init_upload(self, file_name: str, file_size: int) -> UploadInitResponse:
        """Ask the server to open an upload and report its chunk size."""
        response = await self._request(
            "POST", self.INIT_PATH, params={"fileName": file_name, "fileSize": file_size}
        )
        return UploadInitResponse.model_validate(self._json(response))

    async def submit_chunk(
        self,
        upload_id: str,
        chunk_index: int,
        data: bytes,
        total_chunks: int,
    ) -> None:
        """Send one chunk; returns once the server has acknowledged it."""
        await self._request(
            "POST",
            self.CHUNK_PATH,
            data={
                "uploadId": upload_id,
                "chunkIndex": str(chunk_index),
                "totalChunks": str(total_chunks),
            },
            files={"chunk": (f"{upload_id}.part{chunk_index}", data, "application/octet-stream")},
        )

    async def complete_upload(
        self,
        upload_id: str,
        file_name: str,
        file_size: int,
        card_id: int,
    ) -> Optional[Attachment]:
        """Assemble the acknowledged chunks into an attachment of ``card_id``."""
        response = await self._request(
            "POST",
            self.FINALIZE_PATH,
            json={
                "uploadId": upload_id,
                "cardId": card_id,
                "fileName": file_name,
                "fileSize": file_size,
            },
        )
        if not response.content:
            return None
        return Attachment.model_validate(self._json(response))

    async def cancel_upload(self, upload_id: str, file_name: str) -> None:
        """Tell the server to discard the chunks of an abandoned upload."""
        await self._request(
            "DELETE", self.CANCEL_PATH, params={"uploadId": upload_id, "fileName": file_name}
        )

    async def aclose(self) -> None:
        await self.client.aclose()
