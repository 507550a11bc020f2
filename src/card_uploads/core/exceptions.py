"""
Exception classes for Card Uploads.

Provides the error taxonomy of the resumable upload client. Only
TransferExhaustedError and FinalizeError ever become a user-visible
``failed`` status; UploadCancelledError simply stops a chunk loop.
"""

from typing import Any, Dict, Optional


class CardUploadError(Exception):
    """Base exception for all Card Uploads errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (Details: {self.details})"
        return self.message


class ConfigurationError(CardUploadError):
    """Raised for configuration-related errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class NetworkError(CardUploadError):
    """Raised when a call to the upload endpoint fails."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        details = {"status_code": status_code} if status_code else {}
        super().__init__(message, details)
        self.status_code = status_code


class TransferError(CardUploadError):
    """Raised when a single chunk transfer attempt fails."""

    def __init__(self, message: str, chunk_index: int) -> None:
        super().__init__(message)
        self.chunk_index = chunk_index


class TransferExhaustedError(TransferError):
    """Raised when a chunk failed on every allowed attempt."""

    def __init__(self, chunk_index: int, retries: int) -> None:
        super().__init__(
            f"Failed to upload chunk {chunk_index} after {retries} retries", chunk_index
        )
        self.retries = retries


class UploadCancelledError(CardUploadError):
    """Raised when a transfer observes cooperative cancellation."""

    def __init__(self, upload_id: Optional[str] = None) -> None:
        super().__init__("Upload cancelled")
        self.upload_id = upload_id


class FinalizeError(CardUploadError):
    """Raised when the remote completion call fails."""

    def __init__(self, upload_id: str, message: str) -> None:
        super().__init__(message, {"upload_id": upload_id})
        self.upload_id = upload_id


class LedgerMissError(CardUploadError):
    """Raised when an operation targets an upload the ledger does not know."""

    def __init__(self, upload_id: str) -> None:
        super().__init__(f"Upload not found: {upload_id}", {"upload_id": upload_id})
        self.upload_id = upload_id


class UploadStateError(CardUploadError):
    """Raised for a lifecycle transition the current status does not allow."""

    def __init__(self, upload_id: str, status: str, action: str) -> None:
        super().__init__(
            f"Cannot {action} upload {upload_id} while it is {status}",
            {"upload_id": upload_id, "status": status},
        )
        self.upload_id = upload_id
        self.status = status
        self.action = action


class SourceUnavailableError(CardUploadError):
    """Raised when resuming an upload whose file is no longer reachable."""

    def __init__(self, upload_id: str) -> None:
        super().__init__(
            f"Source file for upload {upload_id} is not available; supply the file to resume",
            {"upload_id": upload_id},
        )
        self.upload_id = upload_id


class SourceMismatchError(CardUploadError):
    """Raised when a re-supplied file does not match the persisted record."""

    def __init__(self, upload_id: str, field: str, expected: Any, actual: Any) -> None:
        super().__init__(
            f"Source file does not match upload {upload_id}: "
            f"{field} is {actual!r}, expected {expected!r}",
            {"upload_id": upload_id, "field": field},
        )
        self.upload_id = upload_id
        self.field = field
