"""Programmatic API for card uploads."""

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Union

import httpx

from .client import AttachmentsClient
from .endpoint import UploadEndpoint
from .exceptions import CardUploadError, UploadCancelledError
from .finalizer import Finalizer
from .ledger import UploadLedger
from .models import (
    DEFAULT_LEDGER_PATH,
    Attachment,
    UploaderConfig,
    UploadProgress,
    UploadRecord,
    UploadStatus,
)
from .orchestrator import ProgressCallback, UploadOrchestrator
from .sources import FileSource
from .transport import ChunkTransport

logger = logging.getLogger(__name__)


class CardUploadAPI:
    """High-level API for uploading files to cards."""

    def __init__(
        self,
        config: Optional[UploaderConfig] = None,
        ledger: Optional[UploadLedger] = None,
        progress_callback: Optional[ProgressCallback] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the upload API.

        Args:
            config: Client configuration (or from CARD_UPLOADS_* env vars)
            ledger: Ledger to use instead of the one at ``config.ledger_path``
            progress_callback: Called with an UploadProgress on every change
            http_transport: Optional httpx transport for the upload endpoint
            sleep: Coroutine used for retry backoff
        """
        self.config = config or UploaderConfig.from_env()
        self._owns_ledger = ledger is None
        self.ledger = ledger if ledger is not None else UploadLedger(self.config.ledger_path)

        self.endpoint = UploadEndpoint(
            self.config.api_url,
            self.config.api_token,
            timeout=self.config.timeout,
            transport=http_transport,
        )
        self.transport = ChunkTransport(
            self.endpoint,
            max_retries=self.config.max_retries,
            backoff_base=self.config.backoff_base,
            backoff_max=self.config.backoff_max,
            sleep=sleep,
        )
        self.finalizer = Finalizer(
            self.endpoint, self.ledger, cleanup_delay=self.config.cleanup_delay
        )
        self.orchestrator = UploadOrchestrator(
            self.ledger,
            self.transport,
            self.finalizer,
            chunk_size=self.config.chunk_size,
            progress_callback=progress_callback,
        )
        self.attachments = AttachmentsClient(
            self.config.api_url, self.config.api_token, timeout=self.config.timeout
        )

    async def __aenter__(self) -> "CardUploadAPI":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # Resumable uploads
    async def start_upload(
        self,
        local_path: Union[str, Path],
        card_id: int,
        chunk_size: Optional[int] = None,
        negotiate_chunk_size: bool = False,
    ) -> str:
        """Start a resumable upload in the background.

        Args:
            local_path: Local file path
            card_id: Card to attach the file to
            chunk_size: Chunk size (default: from config)
            negotiate_chunk_size: Ask the endpoint for its chunk size first

        Returns:
            Upload ID
        """
        source = FileSource(local_path)
        if negotiate_chunk_size:
            init = await self.endpoint.init_upload(source.name, source.size)
            logger.debug(f"Endpoint chunk size for {source.name}: {init.chunk_size}")
            chunk_size = init.chunk_size
        return await self.orchestrator.start(source, card_id, chunk_size=chunk_size)

    async def pause(self, upload_id: str) -> UploadRecord:
        return await self.orchestrator.pause(upload_id)

    async def resume(
        self, upload_id: str, local_path: Optional[Union[str, Path]] = None
    ) -> UploadRecord:
        """Resume an upload, optionally re-supplying its file."""
        source = FileSource(local_path) if local_path is not None else None
        return await self.orchestrator.resume(upload_id, source)

    async def cancel(self, upload_id: str, notify_remote: bool = True) -> None:
        await self.orchestrator.cancel(upload_id, notify_remote=notify_remote)

    async def wait(self, upload_id: str) -> Optional[Attachment]:
        """Wait for an upload to stop and return its attachment.

        Raises:
            UploadCancelledError: If the upload was paused or cancelled
            TransferExhaustedError: If a chunk failed on every attempt
            FinalizeError: If the completion call failed
            CardUploadError: If the upload failed for another reason
        """
        record, attachment = await self.orchestrator.wait_outcome(upload_id)
        if record is None or record.status == UploadStatus.PAUSED:
            raise UploadCancelledError(upload_id)
        if record.status == UploadStatus.FAILED:
            failure = self.orchestrator.get_failure(upload_id)
            if failure is not None:
                raise failure
            raise CardUploadError(record.error or "Upload failed", {"upload_id": upload_id})
        return attachment

    def get_progress(self, upload_id: str) -> Optional[UploadProgress]:
        return self.orchestrator.get_progress(upload_id)

    def list_uploads(self) -> List[UploadProgress]:
        """Progress of every upload in the ledger."""
        return self.orchestrator.get_all_progress()

    # Whole-file operations
    async def upload_file(
        self,
        local_path: Union[str, Path],
        card_id: int,
        resumable: Optional[bool] = None,
    ) -> Optional[Attachment]:
        """Upload a file to a card and wait for the attachment.

        Files above ``config.resumable_threshold`` use a resumable upload,
        smaller ones a single request, unless ``resumable`` says otherwise.
        """
        local_path = Path(local_path)
        if resumable is None:
            resumable = local_path.stat().st_size > self.config.resumable_threshold

        if not resumable:
            return await asyncio.to_thread(self.attachments.upload_file, card_id, local_path)

        upload_id = await self.start_upload(local_path, card_id)
        return await self.wait(upload_id)

    def list_attachments(self, card_id: int) -> List[Attachment]:
        return self.attachments.list_attachments(card_id)

    def delete_attachment(self, attachment_id: int) -> bool:
        return self.attachments.delete_attachment(attachment_id)

    async def aclose(self) -> None:
        """Pause running uploads and release network and ledger resources."""
        await self.orchestrator.aclose()
        await self.endpoint.aclose()
        self.attachments.session.close()
        if self._owns_ledger:
            self.ledger.close()


# Convenience functions for quick usage
async def upload_file(
    local_path: Union[str, Path],
    card_id: int,
    api_url: Optional[str] = None,
    api_token: Optional[str] = None,
) -> Optional[Attachment]:
    """Quick function to upload a file to a card."""
    config = UploaderConfig.from_env(api_url=api_url, api_token=api_token)
    async with CardUploadAPI(config) as api:
        return await api.upload_file(local_path, card_id)


def list_uploads(ledger_path: Optional[str] = None) -> List[UploadProgress]:
    """Quick function to list uploads recorded in a ledger."""
    with UploadLedger(ledger_path or DEFAULT_LEDGER_PATH) as ledger:
        return [UploadProgress.from_record(record) for record in ledger.get_all()]
