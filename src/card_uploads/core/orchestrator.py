"""Lifecycle management of resumable uploads.

Each upload runs as its own asyncio task that sends chunks strictly in order
and advances the ledger cursor only after the endpoint acknowledged the
chunk. Pausing or cancelling cancels the upload's token; the running loop
notices it at its next suspension point and stops without writing.
"""

import asyncio
import logging
import secrets
import string
import time
from typing import Callable, Dict, List, Optional, Tuple

from .cancellation import CancelToken
from .exceptions import (
    CardUploadError,
    FinalizeError,
    LedgerMissError,
    SourceMismatchError,
    SourceUnavailableError,
    TransferError,
    UploadCancelledError,
    UploadStateError,
)
from .finalizer import Finalizer
from .ledger import UploadLedger
from .models import Attachment, UploadProgress, UploadRecord, UploadStatus
from .planner import CHUNK_SIZE, chunk_range, count_chunks
from .sources import FileSource, UploadSource
from .transport import ChunkTransport

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[UploadProgress], None]
RetireListener = Callable[[str], None]
Outcome = Tuple[Optional[UploadRecord], Optional[Attachment]]

_ID_ALPHABET = string.ascii_lowercase + string.digits


class UploadOrchestrator:
    """Starts, pauses, resumes and cancels resumable uploads."""

    def __init__(
        self,
        ledger: UploadLedger,
        transport: ChunkTransport,
        finalizer: Finalizer,
        chunk_size: int = CHUNK_SIZE,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        """Initialize the orchestrator.

        Args:
            ledger: Store of upload records
            transport: Chunk transport used for every chunk
            finalizer: Completes uploads once every chunk is acknowledged
            chunk_size: Default chunk size for new uploads
            progress_callback: Optional callback, called with an UploadProgress
                after every persisted change
        """
        self.ledger = ledger
        self.transport = transport
        self.finalizer = finalizer
        self.chunk_size = chunk_size
        self.progress_callback = progress_callback

        self._tokens: Dict[str, CancelToken] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._sources: Dict[str, UploadSource] = {}
        self._attachments: Dict[str, Optional[Attachment]] = {}
        self._failures: Dict[str, CardUploadError] = {}
        self._retire_listeners: List[RetireListener] = []
        self.finalizer.on_cleanup = self._retire

    def generate_upload_id(self) -> str:
        """Return a fresh id of the form ``upload-<epoch ms>-<9 chars>``."""
        while True:
            suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
            upload_id = f"upload-{int(time.time() * 1000)}-{suffix}"
            if self.ledger.get(upload_id) is None:
                return upload_id

    def _save(self, record: UploadRecord) -> UploadRecord:
        self.ledger.save(record)
        if self.progress_callback:
            try:
                self.progress_callback(UploadProgress.from_record(record))
            except Exception as e:
                logger.warning(f"Progress callback error: {e}")
        return record

    def _require(self, upload_id: str) -> UploadRecord:
        record = self.ledger.get(upload_id)
        if record is None:
            raise LedgerMissError(upload_id)
        return record

    def is_active(self, upload_id: str) -> bool:
        """Return True while a chunk loop for ``upload_id`` is running."""
        task = self._tasks.get(upload_id)
        return task is not None and not task.done()

    def add_retire_listener(self, listener: RetireListener) -> None:
        """Call ``listener(upload_id)`` whenever an upload's record is retired.

        A record is retired when it is cancelled or when a completed upload
        is cleaned up after the grace delay.
        """
        self._retire_listeners.append(listener)

    def _retire(self, upload_id: str) -> None:
        self._sources.pop(upload_id, None)
        self._attachments.pop(upload_id, None)
        self._failures.pop(upload_id, None)
        for listener in self._retire_listeners:
            try:
                listener(upload_id)
            except Exception as e:
                logger.warning(f"{upload_id}: retire listener error: {e}")

    def _launch(self, upload_id: str) -> None:
        self._failures.pop(upload_id, None)
        token = CancelToken(upload_id)
        self._tokens[upload_id] = token
        self._tasks[upload_id] = asyncio.ensure_future(self._run(upload_id, token))

    async def start(
        self,
        source: UploadSource,
        card_id: int,
        chunk_size: Optional[int] = None,
    ) -> str:
        """Register a new upload and start sending it in the background.

        Returns:
            The new upload id; the transfer itself continues after this returns
        """
        chunk_size = chunk_size or self.chunk_size
        upload_id = self.generate_upload_id()
        record = UploadRecord(
            upload_id=upload_id,
            file_name=source.name,
            file_size=source.size,
            card_id=card_id,
            chunk_size=chunk_size,
            total_chunks=count_chunks(source.size, chunk_size),
            source_path=source.path,
        )
        self._save(record)
        self._sources[upload_id] = source
        logger.info(
            f"{upload_id}: starting upload of {source.name} ({source.size} bytes, "
            f"{record.total_chunks} chunks) to card {card_id}"
        )
        self._launch(upload_id)
        return upload_id

    async def _run(self, upload_id: str, token: CancelToken) -> Outcome:
        try:
            try:
                record = await self._chunk_loop(upload_id, token)
            except Exception as e:
                logger.exception(f"{upload_id}: upload failed unexpectedly: {e}")
                record = self.ledger.get(upload_id)
                if record is not None and not token.cancelled:
                    record = self._save(record.evolve(status=UploadStatus.FAILED, error=str(e)))
            # The attachment is read here, before a cleanup can retire it
            return record, self._attachments.get(upload_id)
        finally:
            if self._tokens.get(upload_id) is token:
                del self._tokens[upload_id]
            if self._tasks.get(upload_id) is asyncio.current_task():
                del self._tasks[upload_id]

    async def _chunk_loop(self, upload_id: str, token: CancelToken) -> Optional[UploadRecord]:
        record = self.ledger.get(upload_id)
        if record is None or token.cancelled:
            return record
        if record.status == UploadStatus.PENDING:
            record = self._save(record.evolve(status=UploadStatus.UPLOADING))
        source = self._sources.get(upload_id)

        while True:
            record = self.ledger.get(upload_id)
            if record is None or token.cancelled:
                return record
            if record.status != UploadStatus.UPLOADING:
                logger.info(f"{upload_id}: stopping at chunk {record.uploaded_chunks}, status is {record.status.value}")
                return record
            if record.uploaded_chunks >= record.total_chunks:
                break

            chunk = chunk_range(record.uploaded_chunks, record.file_size, record.chunk_size)
            data = source.read(chunk.start, chunk.end)
            try:
                await self.transport.transfer(
                    upload_id, chunk.index, data, record.total_chunks, token
                )
            except UploadCancelledError:
                return self.ledger.get(upload_id)
            except TransferError as e:
                record = self.ledger.get(upload_id)
                if record is None:
                    return None
                logger.error(f"{upload_id}: upload failed: {e}")
                self._failures[upload_id] = e
                return self._save(record.evolve(status=UploadStatus.FAILED, error=str(e)))

            record = self.ledger.get(upload_id)
            if record is None:
                return None
            record = self._save(
                record.evolve(uploaded_chunks=max(record.uploaded_chunks, chunk.index + 1))
            )
            logger.debug(
                f"{upload_id}: {record.uploaded_chunks}/{record.total_chunks} chunks uploaded"
            )

        return await self._finalize(record)

    async def _finalize(self, record: UploadRecord) -> Optional[UploadRecord]:
        upload_id = record.upload_id
        try:
            attachment = await self.finalizer.finalize(record)
        except FinalizeError as e:
            current = self.ledger.get(upload_id)
            if current is None:
                return None
            self._failures[upload_id] = e
            return self._save(current.evolve(status=UploadStatus.FAILED, error=str(e)))

        current = self.ledger.get(upload_id)
        if current is None:
            return None
        self._attachments[upload_id] = attachment
        self._sources.pop(upload_id, None)
        logger.info(f"{upload_id}: upload of {current.file_name} completed")
        return self._save(current.evolve(status=UploadStatus.COMPLETED))

    async def pause(self, upload_id: str) -> UploadRecord:
        """Stop sending chunks of an uploading upload, keeping its progress.

        Raises:
            LedgerMissError: If the upload is unknown
            UploadStateError: If the upload is neither uploading nor paused
        """
        record = self._require(upload_id)
        if record.status == UploadStatus.PAUSED:
            return record
        if record.status != UploadStatus.UPLOADING:
            raise UploadStateError(upload_id, record.status.value, "pause")

        token = self._tokens.pop(upload_id, None)
        if token is not None:
            token.cancel()
        logger.info(f"{upload_id}: paused at chunk {record.uploaded_chunks}/{record.total_chunks}")
        return self._save(record.evolve(status=UploadStatus.PAUSED))

    def _resolve_source(
        self, record: UploadRecord, source: Optional[UploadSource]
    ) -> Optional[UploadSource]:
        upload_id = record.upload_id
        source = source or self._sources.get(upload_id)
        if source is None and record.source_path:
            try:
                source = FileSource(record.source_path, name=record.file_name)
            except (OSError, ValueError) as e:
                logger.debug(f"{upload_id}: cannot reopen {record.source_path}: {e}")
        if source is None:
            if record.is_complete:
                return None
            raise SourceUnavailableError(upload_id)

        if source.size != record.file_size:
            raise SourceMismatchError(upload_id, "file_size", record.file_size, source.size)
        if source.name != record.file_name:
            raise SourceMismatchError(upload_id, "file_name", record.file_name, source.name)
        return source

    async def resume(
        self, upload_id: str, source: Optional[UploadSource] = None
    ) -> UploadRecord:
        """Continue a paused or failed upload from its persisted cursor.

        A record left ``pending`` or ``uploading`` by a process that is gone
        can be resumed as well. The file is taken from ``source``, from the
        source this orchestrator already holds, or reopened from the recorded
        path, and must match the record's name and size. A record whose
        chunks were all acknowledged only retries the finalize call.

        Raises:
            LedgerMissError: If the upload is unknown
            UploadStateError: If the upload is completed or already running
            SourceUnavailableError: If no source for the file can be found
            SourceMismatchError: If the source differs from the record
        """
        record = self._require(upload_id)
        if record.status == UploadStatus.COMPLETED or (
            record.status in (UploadStatus.PENDING, UploadStatus.UPLOADING)
            and self.is_active(upload_id)
        ):
            raise UploadStateError(upload_id, record.status.value, "resume")

        source = self._resolve_source(record, source)

        previous = self._tasks.get(upload_id)
        if previous is not None and not previous.done():
            await asyncio.gather(previous, return_exceptions=True)
        record = self._require(upload_id)
        # Another resume may have launched a loop while the old one unwound
        if self.is_active(upload_id) or record.status == UploadStatus.COMPLETED:
            raise UploadStateError(upload_id, record.status.value, "resume")

        if source is not None:
            self._sources[upload_id] = source
        record = self._save(record.evolve(status=UploadStatus.UPLOADING))
        logger.info(
            f"{upload_id}: resuming at chunk {record.uploaded_chunks}/{record.total_chunks}"
        )
        self._launch(upload_id)
        return record

    async def cancel(self, upload_id: str, notify_remote: bool = True) -> None:
        """Stop an upload and delete its record, whatever its status.

        When ``notify_remote`` is set and the upload had not completed, the
        endpoint is asked to discard its chunks after the record is gone.
        """
        token = self._tokens.pop(upload_id, None)
        if token is not None:
            token.cancel()

        record = self.ledger.get(upload_id)
        self.ledger.delete(upload_id)
        self.finalizer.cancel_cleanup(upload_id)
        if record is None:
            return
        self._retire(upload_id)

        logger.info(f"{upload_id}: cancelled while {record.status.value}")
        if notify_remote and record.status != UploadStatus.COMPLETED:
            await self.transport.endpoint.cancel_upload(upload_id, record.file_name)

    async def wait_outcome(self, upload_id: str) -> Outcome:
        """Wait for the chunk loop of ``upload_id`` to stop.

        Cancelling the waiter does not stop the upload itself.

        Returns:
            The record as the loop left it (None if it was cancelled) and the
            attachment of a completed upload
        """
        task = self._tasks.get(upload_id)
        if task is None:
            return self.ledger.get(upload_id), self._attachments.get(upload_id)
        return await asyncio.shield(task)

    async def wait(self, upload_id: str) -> Optional[UploadRecord]:
        record, _ = await self.wait_outcome(upload_id)
        return record

    def get_attachment(self, upload_id: str) -> Optional[Attachment]:
        """Attachment returned by the endpoint, until the record is cleaned up."""
        return self._attachments.get(upload_id)

    def get_failure(self, upload_id: str) -> Optional[CardUploadError]:
        """Error that failed the last run of ``upload_id`` in this process."""
        return self._failures.get(upload_id)

    def get_progress(self, upload_id: str) -> Optional[UploadProgress]:
        record = self.ledger.get(upload_id)
        return UploadProgress.from_record(record) if record else None

    def get_all_progress(self) -> List[UploadProgress]:
        return [UploadProgress.from_record(record) for record in self.ledger.get_all()]

    async def aclose(self) -> None:
        """Pause every running upload and wait for the loops to stop."""
        for upload_id in list(self._tasks):
            record = self.ledger.get(upload_id)
            if record is not None and record.status == UploadStatus.UPLOADING:
                await self.pause(upload_id)
        for token in list(self._tokens.values()):
            token.cancel()
        await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)
        await self.finalizer.aclose()
