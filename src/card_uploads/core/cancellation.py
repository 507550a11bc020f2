"""Cooperative cancellation for in-flight transfers."""

import asyncio
from typing import Awaitable, Optional, TypeVar

from .exceptions import UploadCancelledError

T = TypeVar("T")


class CancelToken:
    """Cancellation signal shared by an orchestrator loop and its transfers.

    Cancelling never interrupts running code; it is observed only where a
    transfer awaits through :meth:`guard` or checks :attr:`cancelled`.
    """

    def __init__(self, upload_id: Optional[str] = None) -> None:
        self.upload_id = upload_id
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise UploadCancelledError(self.upload_id)

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token is cancelled first.

        When cancellation wins, the pending work is cancelled and
        UploadCancelledError is raised.
        """
        if self.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise UploadCancelledError(self.upload_id)
        work = asyncio.ensure_future(awaitable)
        watcher = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({work, watcher}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if not watcher.done():
                watcher.cancel()
            if not work.done():
                work.cancel()
                await asyncio.gather(work, return_exceptions=True)

        if work.cancelled():
            raise UploadCancelledError(self.upload_id)
        if self.cancelled and work.exception() is not None:
            raise UploadCancelledError(self.upload_id)
        return work.result()
