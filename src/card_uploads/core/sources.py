"""Readable sources for upload bytes."""

import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union


class UploadSource(ABC):
    """A file's name, size and random-access bytes."""

    name: str
    size: int

    @property
    def path(self) -> Optional[str]:
        return None

    @abstractmethod
    def read(self, start: int, end: int) -> bytes:
        """Return the bytes in [start, end)."""


class FileSource(UploadSource):
    """Source backed by a file on disk; each read reopens the file."""

    def __init__(self, path: Union[str, Path], name: Optional[str] = None):
        local_path = Path(path)
        if not local_path.exists():
            raise FileNotFoundError(f"Local file not found: {local_path}")
        if local_path.is_dir():
            raise ValueError(f"Path is a directory, not a file: {local_path}")
        self._path = local_path.resolve()
        self.name = name or local_path.name
        self.size = os.path.getsize(self._path)

    @property
    def path(self) -> Optional[str]:
        return str(self._path)

    def read(self, start: int, end: int) -> bytes:
        with open(self._path, "rb") as f:
            f.seek(start)
            return f.read(end - start)

    def __repr__(self) -> str:
        return f"FileSource({str(self._path)!r})"


class BytesSource(UploadSource):
    """Source held entirely in memory."""

    def __init__(self, name: str, data: bytes):
        self.name = name
        self.data = bytes(data)
        self.size = len(self.data)

    def read(self, start: int, end: int) -> bytes:
        return self.data[start:end]

    def __repr__(self) -> str:
        return f"BytesSource({self.name!r}, {self.size} bytes)"
