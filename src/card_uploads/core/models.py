"""
Pydantic models for Card Uploads.

These models cover the persisted upload record, the progress view handed to
UI consumers, the payloads exchanged with the upload endpoint and the
client configuration.
"""

import os
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .exceptions import ConfigurationError
from .planner import CHUNK_SIZE as DEFAULT_CHUNK_SIZE

DEFAULT_LEDGER_PATH = str(Path.home() / ".card-uploads" / "uploads.db")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UploadStatus(str, Enum):
    """Upload lifecycle status."""

    PENDING = "pending"
    UPLOADING = "uploading"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"


class UploadRecord(BaseModel):
    """Persistent progress record of one resumable upload.

    The cursor ``uploaded_chunks`` is the count of chunks the endpoint has
    acknowledged, which is also the index of the next chunk to send.
    """

    upload_id: str = Field(..., min_length=1, description="Unique upload identifier")
    file_name: str = Field(..., description="Name of the uploaded file")
    file_size: int = Field(..., ge=0, description="File size in bytes")
    card_id: int = Field(..., description="Card the finished file is attached to")
    chunk_size: int = Field(DEFAULT_CHUNK_SIZE, gt=0, description="Chunk size in bytes")
    total_chunks: int = Field(..., ge=0, description="Number of chunks in the file")
    uploaded_chunks: int = Field(0, ge=0, description="Acknowledged chunk count")
    status: UploadStatus = Field(UploadStatus.PENDING, description="Lifecycle status")
    error: Optional[str] = Field(None, description="Failure message")
    source_path: Optional[str] = Field(
        None, description="Local path of the source file, when known"
    )
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def validate_cursor(self) -> "UploadRecord":
        """Keep the cursor inside the chunk range."""
        if self.uploaded_chunks > self.total_chunks:
            raise ValueError(
                f"uploaded_chunks ({self.uploaded_chunks}) exceeds "
                f"total_chunks ({self.total_chunks})"
            )
        return self

    @property
    def is_complete(self) -> bool:
        return self.uploaded_chunks == self.total_chunks

    def evolve(self, **changes) -> "UploadRecord":
        """Return a copy with ``changes`` applied and ``updated_at`` refreshed."""
        changes.setdefault("updated_at", utcnow())
        if changes.get("status", self.status) != UploadStatus.FAILED:
            changes["error"] = None
        return self.model_copy(update=changes)


class UploadProgress(BaseModel):
    """Progress view of an upload, recomputed from its ledger record."""

    upload_id: str = Field(..., description="Upload identifier")
    file_name: str = Field(..., description="File name", examples=["report.pdf"])
    file_size: int = Field(..., description="File size in bytes", examples=[2621440])
    uploaded_bytes: int = Field(..., description="Acknowledged bytes", examples=[1048576])
    progress_percent: float = Field(..., description="Progress from 0 to 100", examples=[40.0])
    status: UploadStatus = Field(..., description="Lifecycle status")
    error: Optional[str] = Field(None, description="Failure message")

    model_config = ConfigDict(use_enum_values=True)

    @classmethod
    def from_record(cls, record: UploadRecord) -> "UploadProgress":
        uploaded_bytes = min(record.uploaded_chunks * record.chunk_size, record.file_size)
        if record.total_chunks:
            percent = record.uploaded_chunks / record.total_chunks * 100
        else:
            percent = 100.0 if record.status == UploadStatus.COMPLETED else 0.0
        return cls(
            upload_id=record.upload_id,
            file_name=record.file_name,
            file_size=record.file_size,
            uploaded_bytes=uploaded_bytes,
            progress_percent=min(percent, 100.0),
            status=record.status,
            error=record.error,
        )


class UploadInitResponse(BaseModel):
    """Response of the endpoint's upload initialization call."""

    upload_id: str = Field(..., alias="uploadId")
    file_name: str = Field(..., alias="fileName")
    chunk_size: int = Field(..., gt=0, alias="chunkSize")

    model_config = ConfigDict(populate_by_name=True)


class Attachment(BaseModel):
    """File attached to a card."""

    id: int = Field(..., description="Attachment identifier", examples=[42])
    file_name: str = Field(..., alias="fileName", description="Stored file name")
    file_url: str = Field(..., alias="fileUrl", description="Download URL")
    file_size: int = Field(..., alias="fileSize", description="File size in bytes")
    card_id: Optional[int] = Field(None, alias="cardId")
    uploaded_by: Optional[int] = Field(None, alias="uploadedBy")
    uploader_name: Optional[str] = Field(None, alias="uploaderName")
    created_at: Optional[datetime] = Field(None, alias="createdAt")

    model_config = ConfigDict(populate_by_name=True)


# Server models
class ListUploadsResponse(BaseModel):
    """Response for listing uploads."""

    uploads: List[UploadProgress] = Field(..., description="Uploads known to the ledger")
    total_count: int = Field(..., description="Number of uploads", examples=[2])


class CancelResponse(BaseModel):
    """Response for cancel operations."""

    success: bool = Field(..., description="Cancel success status")
    message: str = Field(..., description="Status message", examples=["Upload cancelled"])


class HealthCheckResponse(BaseModel):
    """Health check response."""

    status: str = Field(..., description="Service status", examples=["healthy"])
    version: str = Field(..., description="API version", examples=["1.0.0"])
    timestamp: datetime = Field(default_factory=utcnow, description="Check timestamp")


# Configuration Models
class UploaderConfig(BaseModel):
    """Upload client configuration."""

    api_url: str = Field(..., description="Base URL of the board API")
    api_token: Optional[str] = Field(None, description="Bearer token for the board API")
    ledger_path: str = Field(DEFAULT_LEDGER_PATH, description="SQLite ledger file")
    chunk_size: int = Field(DEFAULT_CHUNK_SIZE, gt=0, description="Chunk size in bytes")
    max_retries: int = Field(3, ge=1, le=10, description="Attempts per chunk")
    backoff_base: float = Field(1.0, ge=0, description="First backoff unit in seconds")
    backoff_max: float = Field(30.0, ge=0, description="Backoff ceiling in seconds")
    cleanup_delay: float = Field(5.0, ge=0, description="Seconds a completed record stays visible")
    timeout: float = Field(30.0, gt=0, le=300, description="Request timeout in seconds")
    resumable_threshold: int = Field(
        5 * 1024 * 1024, ge=0, description="Files above this size use resumable uploads"
    )

    @field_validator("api_url")
    def validate_api_url(cls, v: str) -> str:
        """Validate and normalize the API URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("api_url must start with http:// or https://")
        return v.rstrip("/")

    @classmethod
    def from_env(cls, **overrides) -> "UploaderConfig":
        """Build a config from CARD_UPLOADS_* environment variables."""
        values = {
            "api_url": os.getenv("CARD_UPLOADS_API_URL"),
            "api_token": os.getenv("CARD_UPLOADS_TOKEN"),
            "ledger_path": os.getenv("CARD_UPLOADS_LEDGER"),
        }
        values.update(overrides)
        values = {key: value for key, value in values.items() if value is not None}
        if not values.get("api_url"):
            raise ConfigurationError(
                "Board API URL required. Set CARD_UPLOADS_API_URL environment variable "
                "or pass api_url."
            )
        return cls(**values)
