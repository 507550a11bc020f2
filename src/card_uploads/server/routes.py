"""
API routes for the Card Uploads server.

Exposes upload progress to UI consumers and lets them pause, resume and
cancel uploads. Consumers never write upload records directly.
"""

import tempfile
from pathlib import Path
from typing import NoReturn

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile, status

from ..core.api import CardUploadAPI
from ..core.exceptions import (
    CardUploadError,
    LedgerMissError,
    NetworkError,
    SourceMismatchError,
    SourceUnavailableError,
    UploadStateError,
)
from ..core.models import CancelResponse, ListUploadsResponse, UploadProgress
from ..core.sources import FileSource

router = APIRouter(
    prefix="",
    tags=["Uploads"],
    responses={
        404: {"description": "Upload not found"},
        409: {"description": "Upload is in the wrong state"},
        500: {"description": "Internal server error"},
    },
)


def get_upload_api(request: Request) -> CardUploadAPI:
    """Get the upload API owned by the running application."""
    return request.app.state.upload_api


def _raise_http(e: CardUploadError) -> NoReturn:
    if isinstance(e, LedgerMissError):
        raise HTTPException(status_code=404, detail=str(e))
    if isinstance(e, (UploadStateError, SourceUnavailableError, SourceMismatchError)):
        raise HTTPException(status_code=409, detail=str(e))
    if isinstance(e, NetworkError):
        raise HTTPException(status_code=e.status_code or 502, detail=str(e))
    raise HTTPException(status_code=400, detail=str(e))


def _progress(api: CardUploadAPI, upload_id: str) -> UploadProgress:
    progress = api.get_progress(upload_id)
    if progress is None:
        raise HTTPException(status_code=404, detail=f"Upload {upload_id} not found")
    return progress


@router.get(
    "/uploads",
    response_model=ListUploadsResponse,
    summary="List uploads",
    description="Progress of every upload recorded in the ledger, including interrupted ones.",
)
async def list_uploads(api: CardUploadAPI = Depends(get_upload_api)) -> ListUploadsResponse:
    """List all uploads."""
    uploads = api.list_uploads()
    return ListUploadsResponse(uploads=uploads, total_count=len(uploads))


@router.get(
    "/uploads/{upload_id}",
    response_model=UploadProgress,
    summary="Get upload progress",
)
async def get_upload(
    upload_id: str, api: CardUploadAPI = Depends(get_upload_api)
) -> UploadProgress:
    """Get progress of a single upload."""
    return _progress(api, upload_id)


@router.post(
    "/uploads",
    response_model=UploadProgress,
    status_code=status.HTTP_201_CREATED,
    summary="Start upload",
    description="Start a resumable upload of a file to a card. The transfer continues in the background.",
)
async def start_upload(
    request: Request,
    file: UploadFile = File(..., description="File to upload"),
    card_id: int = Form(..., description="Card to attach the file to"),
    api: CardUploadAPI = Depends(get_upload_api),
) -> UploadProgress:
    """Start a resumable upload."""
    file_name = Path(file.filename or "uploaded_file").name

    # Spool the file so it can be re-read chunk by chunk
    with tempfile.NamedTemporaryFile(delete=False, suffix=f"-{file_name}") as tmp_file:
        while True:
            data = await file.read(1024 * 1024)
            if not data:
                break
            tmp_file.write(data)
        tmp_file_path = tmp_file.name

    try:
        upload_id = await api.orchestrator.start(FileSource(tmp_file_path, name=file_name), card_id)
    except CardUploadError as e:
        Path(tmp_file_path).unlink(missing_ok=True)
        _raise_http(e)
    request.app.state.spool_paths[upload_id] = tmp_file_path
    return _progress(api, upload_id)


@router.post(
    "/uploads/{upload_id}/pause",
    response_model=UploadProgress,
    summary="Pause upload",
)
async def pause_upload(
    upload_id: str, api: CardUploadAPI = Depends(get_upload_api)
) -> UploadProgress:
    """Pause an uploading upload."""
    try:
        await api.pause(upload_id)
    except CardUploadError as e:
        _raise_http(e)
    return _progress(api, upload_id)


@router.post(
    "/uploads/{upload_id}/resume",
    response_model=UploadProgress,
    summary="Resume upload",
    description="Resume a paused or failed upload from its last acknowledged chunk.",
)
async def resume_upload(
    upload_id: str, api: CardUploadAPI = Depends(get_upload_api)
) -> UploadProgress:
    """Resume an upload."""
    try:
        await api.resume(upload_id)
    except CardUploadError as e:
        _raise_http(e)
    return _progress(api, upload_id)


@router.delete(
    "/uploads/{upload_id}",
    response_model=CancelResponse,
    summary="Cancel upload",
)
async def cancel_upload(
    upload_id: str, api: CardUploadAPI = Depends(get_upload_api)
) -> CancelResponse:
    """Cancel an upload and forget it."""
    try:
        await api.cancel(upload_id)
    except CardUploadError as e:
        _raise_http(e)
    return CancelResponse(success=True, message=f"Upload {upload_id} cancelled")
