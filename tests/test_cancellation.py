"""Tests for CancelToken."""

import asyncio

import pytest

from card_uploads.core.cancellation import CancelToken
from card_uploads.core.exceptions import UploadCancelledError


@pytest.mark.asyncio
async def test_guard_returns_result_of_work():
    token = CancelToken("upload-1")

    async def work():
        return 42

    assert await token.guard(work()) == 42


@pytest.mark.asyncio
async def test_guard_refuses_to_start_once_cancelled():
    token = CancelToken("upload-1")
    token.cancel()
    started = []

    async def work():
        started.append(True)

    with pytest.raises(UploadCancelledError):
        await token.guard(work())
    assert started == []


@pytest.mark.asyncio
async def test_cancel_interrupts_pending_work():
    token = CancelToken("upload-1")
    entered = asyncio.Event()
    interrupted = []

    async def work():
        entered.set()
        try:
            await asyncio.sleep(60)
        except asyncio.CancelledError:
            interrupted.append(True)
            raise

    guarded = asyncio.ensure_future(token.guard(work()))
    await entered.wait()
    token.cancel()

    with pytest.raises(UploadCancelledError) as exc_info:
        await guarded
    assert interrupted == [True]
    assert exc_info.value.upload_id == "upload-1"


@pytest.mark.asyncio
async def test_errors_of_work_propagate_while_not_cancelled():
    token = CancelToken()

    async def work():
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        await token.guard(work())
