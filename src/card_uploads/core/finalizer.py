"""Completion of fully transferred uploads."""

import asyncio
import logging
from typing import Callable, Dict, Optional

from .endpoint import UploadEndpoint
from .exceptions import FinalizeError, NetworkError
from .ledger import UploadLedger
from .models import Attachment, UploadRecord

logger = logging.getLogger(__name__)

CLEANUP_DELAY = 5.0


class Finalizer:
    """Turns acknowledged chunks into an attachment and retires the record."""

    def __init__(
        self,
        endpoint: UploadEndpoint,
        ledger: UploadLedger,
        cleanup_delay: float = CLEANUP_DELAY,
    ):
        self.endpoint = endpoint
        self.ledger = ledger
        self.cleanup_delay = cleanup_delay
        self._cleanups: Dict[str, asyncio.Task] = {}
        self.on_cleanup: Optional[Callable[[str], None]] = None

    async def finalize(self, record: UploadRecord) -> Optional[Attachment]:
        """Call the remote completion and schedule removal of the record.

        The completion call is attempted once; a failure raises FinalizeError
        and leaves the record in place for an explicit retry.
        """
        logger.info(f"{record.upload_id}: finalizing {record.file_name} for card {record.card_id}")
        try:
            attachment = await self.endpoint.complete_upload(
                record.upload_id, record.file_name, record.file_size, record.card_id
            )
        except NetworkError as e:
            logger.error(f"{record.upload_id}: finalize failed: {e}")
            raise FinalizeError(record.upload_id, f"Failed to finalize upload: {e}") from e

        self.schedule_cleanup(record.upload_id)
        return attachment

    def schedule_cleanup(self, upload_id: str) -> None:
        """Delete the ledger record after the grace delay."""
        self.cancel_cleanup(upload_id)
        self._cleanups[upload_id] = asyncio.ensure_future(self._cleanup(upload_id))

    def cancel_cleanup(self, upload_id: str) -> None:
        task = self._cleanups.pop(upload_id, None)
        if task is not None and not task.done():
            task.cancel()

    async def _cleanup(self, upload_id: str) -> None:
        try:
            await asyncio.sleep(self.cleanup_delay)
            self._remove(upload_id)
        finally:
            if self._cleanups.get(upload_id) is asyncio.current_task():
                del self._cleanups[upload_id]

    def _remove(self, upload_id: str) -> None:
        self.ledger.delete(upload_id)
        logger.debug(f"{upload_id}: removed completed upload from ledger")
        if self.on_cleanup is not None:
            self.on_cleanup(upload_id)

    async def drain(self) -> None:
        """Wait for every scheduled cleanup to run."""
        while self._cleanups:
            await asyncio.gather(*list(self._cleanups.values()), return_exceptions=True)

    async def aclose(self) -> None:
        """Skip the grace delay of pending cleanups and remove their records now."""
        pending = dict(self._cleanups)
        for task in pending.values():
            task.cancel()
        await asyncio.gather(*pending.values(), return_exceptions=True)
        for upload_id in pending:
            self._remove(upload_id)
        self._cleanups.clear()
