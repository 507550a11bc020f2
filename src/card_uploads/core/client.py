"""Board API client for card attachment operations."""

import logging
from pathlib import Path
from typing import Any, List, Optional, Union

import requests

from .exceptions import NetworkError
from .models import Attachment

logger = logging.getLogger(__name__)


class AttachmentsClient:
    """Client for the card attachment REST endpoints."""

    def __init__(self, base_url: str, api_token: Optional[str] = None, timeout: float = 30.0):
        """Initialize the attachments client.

        Args:
            base_url: Board API base URL
            api_token: Bearer token for the board API
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

        self.session = requests.Session()
        if api_token:
            self.session.headers.update({"Authorization": f"Bearer {api_token}"})

    def _make_request(self, method: str, endpoint: str, **kwargs) -> Any:
        """Make a request to the board API."""
        url = f"{self.base_url}{endpoint}"
        kwargs.setdefault("timeout", self.timeout)

        try:
            response = self.session.request(method, url, **kwargs)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.error(f"API request failed: {e}")
            status_code = None
            if getattr(e, "response", None) is not None:
                status_code = e.response.status_code
                logger.error(f"Response content: {e.response.text}")
            raise NetworkError(f"{method} {endpoint} failed: {e}", status_code) from e

        if not response.content:
            return None
        return response.json()

    def list_attachments(self, card_id: int) -> List[Attachment]:
        """List the attachments of a card."""
        data = self._make_request("GET", f"/cards/{card_id}/attachments") or []
        return [Attachment.model_validate(item) for item in data]

    def upload_file(self, card_id: int, local_path: Union[str, Path]) -> Attachment:
        """Upload a small file to a card in a single request."""
        local_path = Path(local_path)
        if not local_path.is_file():
            raise FileNotFoundError(f"Local file not found: {local_path}")

        logger.info(f"Uploading {local_path} to card {card_id}")
        with open(local_path, "rb") as f:
            data = self._make_request(
                "POST",
                "/files/upload",
                files={"file": (local_path.name, f)},
                data={"cardId": str(card_id)},
            )
        logger.info("Upload completed successfully")
        return Attachment.model_validate(data)

    def delete_attachment(self, attachment_id: int) -> bool:
        """Delete an attachment; returns False if it does not exist."""
        try:
            self._make_request("DELETE", f"/attachments/{attachment_id}")
            return True
        except NetworkError as e:
            if e.status_code == 404:
                return False
            raise

    def download_url(self, file_name: str) -> str:
        """Return the download URL of a stored attachment file."""
        return f"{self.base_url}/api/files/download/{file_name}"
