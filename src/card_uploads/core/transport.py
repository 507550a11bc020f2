"""Single-chunk transfer with bounded retries."""

import asyncio
import logging
from typing import Awaitable, Callable

from .cancellation import CancelToken
from .endpoint import UploadEndpoint
from .exceptions import NetworkError, TransferError, TransferExhaustedError, UploadCancelledError

logger = logging.getLogger(__name__)

MAX_RETRIES = 3


class ChunkTransport:
    """Transfers one chunk as a unit, retrying failed attempts with backoff."""

    def __init__(
        self,
        endpoint: UploadEndpoint,
        max_retries: int = MAX_RETRIES,
        backoff_base: float = 1.0,
        backoff_max: float = 30.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the transport.

        Args:
            endpoint: Endpoint client used for each attempt
            max_retries: Total attempts per chunk before giving up
            backoff_base: Backoff unit in seconds, doubled per failed attempt
            backoff_max: Ceiling for a single backoff delay in seconds
            sleep: Coroutine used to wait between attempts
        """
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.endpoint = endpoint
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self._sleep = sleep

    def backoff(self, attempt: int) -> float:
        """Delay after failed attempt number ``attempt`` (1-based)."""
        return min((2**attempt) * self.backoff_base, self.backoff_max)

    async def transfer(
        self,
        upload_id: str,
        chunk_index: int,
        data: bytes,
        total_chunks: int,
        cancel_token: CancelToken,
    ) -> None:
        """Send one chunk and wait for its acknowledgment.

        Raises:
            UploadCancelledError: If ``cancel_token`` fires before the chunk is acknowledged
            TransferExhaustedError: If every attempt failed
        """
        for attempt in range(1, self.max_retries + 1):
            try:
                await cancel_token.guard(
                    self.endpoint.submit_chunk(upload_id, chunk_index, data, total_chunks)
                )
                logger.debug(f"{upload_id}: chunk {chunk_index + 1}/{total_chunks} acknowledged")
                return
            except UploadCancelledError:
                logger.info(f"{upload_id}: chunk {chunk_index} transfer cancelled")
                raise
            except NetworkError as exc:
                error = TransferError(str(exc), chunk_index)

            logger.warning(f"{upload_id}: chunk {chunk_index} attempt {attempt} failed: {error}")
            if attempt == self.max_retries:
                logger.error(
                    f"{upload_id}: chunk {chunk_index} exceeded max_retries ({self.max_retries})"
                )
                raise TransferExhaustedError(chunk_index, self.max_retries) from error

            delay = self.backoff(attempt)
            logger.info(f"{upload_id}: retrying chunk {chunk_index} in {delay:.1f}s...")
            await cancel_token.guard(self._sleep(delay))
