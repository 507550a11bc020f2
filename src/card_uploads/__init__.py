"""
Card Uploads - resumable file uploads for card attachments.

This package provides:
- Chunked, resumable uploads with pause, resume and cancel
- A durable ledger so interrupted uploads survive restarts
- CLI tool for uploading files and managing uploads
- FastAPI server exposing upload progress to UI consumers
"""

__version__ = "1.0.0"
__author__ = "Card Uploads Team"

from .core.api import CardUploadAPI, list_uploads, upload_file
from .core.client import AttachmentsClient
from .core.exceptions import (
    CardUploadError,
    ConfigurationError,
    FinalizeError,
    LedgerMissError,
    NetworkError,
    SourceMismatchError,
    SourceUnavailableError,
    TransferError,
    TransferExhaustedError,
    UploadCancelledError,
    UploadStateError,
)
from .core.ledger import UploadLedger
from .core.models import UploaderConfig, UploadProgress, UploadRecord, UploadStatus
from .core.orchestrator import UploadOrchestrator

__all__ = [
    # Core classes
    "CardUploadAPI",
    "AttachmentsClient",
    "UploadLedger",
    "UploadOrchestrator",
    # Models
    "UploaderConfig",
    "UploadProgress",
    "UploadRecord",
    "UploadStatus",
    # Exceptions
    "CardUploadError",
    "ConfigurationError",
    "NetworkError",
    "TransferError",
    "TransferExhaustedError",
    "UploadCancelledError",
    "FinalizeError",
    "LedgerMissError",
    "UploadStateError",
    "SourceUnavailableError",
    "SourceMismatchError",
    # Convenience functions
    "upload_file",
    "list_uploads",
    # Metadata
    "__version__",
    "__author__",
]
