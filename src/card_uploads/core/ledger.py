"""Durable upload ledger backed by SQLite through SQLAlchemy."""

import logging
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import List, Optional, Union

from sqlalchemy import DateTime, Integer, String, Text, create_engine, delete, func, select
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column
from sqlalchemy.pool import StaticPool

from .models import UploadRecord, UploadStatus

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class UploadRow(Base):
    """One persisted upload record."""

    __tablename__ = "uploads"

    upload_id: Mapped[str] = mapped_column(String, primary_key=True)
    file_name: Mapped[str] = mapped_column(Text, nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    card_id: Mapped[int] = mapped_column(Integer, nullable=False)
    chunk_size: Mapped[int] = mapped_column(Integer, nullable=False)
    total_chunks: Mapped[int] = mapped_column(Integer, nullable=False)
    uploaded_chunks: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    source_path: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<UploadRow(upload_id={self.upload_id}, status='{self.status}')>"

    @classmethod
    def from_record(cls, record: UploadRecord) -> "UploadRow":
        values = record.model_dump()
        values["status"] = record.status.value
        return cls(**values)

    def to_record(self) -> UploadRecord:
        return UploadRecord(
            upload_id=self.upload_id,
            file_name=self.file_name,
            file_size=self.file_size,
            card_id=self.card_id,
            chunk_size=self.chunk_size,
            total_chunks=self.total_chunks,
            uploaded_chunks=self.uploaded_chunks,
            status=UploadStatus(self.status),
            error=self.error,
            source_path=self.source_path,
            created_at=_as_utc(self.created_at),
            updated_at=_as_utc(self.updated_at),
        )


def _as_utc(value: datetime) -> datetime:
    # SQLite drops the offset; every stored timestamp is UTC
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class UploadLedger:
    """Keyed store of upload records that survives process restarts.

    Each record lives in its own row and is written in a single transaction,
    so a reader never observes a partially written record. Every upload is
    written only by its own orchestrator loop, so the ledger does not lock
    per record; the lock only serializes access to the shared connection.
    """

    def __init__(self, path: Union[str, Path] = ":memory:"):
        """Open (and create if needed) the ledger.

        Args:
            path: SQLite database file, or ":memory:" for a throwaway ledger
        """
        self.path = str(path)
        if self.path == ":memory:":
            self.engine = create_engine(
                "sqlite://",
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            local_path = Path(self.path).expanduser()
            local_path.parent.mkdir(parents=True, exist_ok=True)
            self.path = str(local_path)
            self.engine = create_engine(
                f"sqlite:///{self.path}", connect_args={"check_same_thread": False}
            )

        self._lock = Lock()
        Base.metadata.create_all(self.engine)
        logger.debug(f"Opened upload ledger at {self.path}")

    def save(self, record: UploadRecord) -> None:
        """Insert or replace the record stored under its upload id."""
        with self._lock, Session(self.engine) as session, session.begin():
            session.merge(UploadRow.from_record(record))

    def get(self, upload_id: str) -> Optional[UploadRecord]:
        """Return the record for ``upload_id``, or None if there is none."""
        with self._lock, Session(self.engine) as session:
            row = session.get(UploadRow, upload_id)
            return row.to_record() if row else None

    def get_all(self) -> List[UploadRecord]:
        """Return every record, oldest first."""
        with self._lock, Session(self.engine) as session:
            rows = session.scalars(
                select(UploadRow).order_by(UploadRow.created_at, UploadRow.upload_id)
            )
            return [row.to_record() for row in rows]

    def delete(self, upload_id: str) -> None:
        """Remove the record for ``upload_id``; missing ids are ignored."""
        with self._lock, Session(self.engine) as session, session.begin():
            session.execute(delete(UploadRow).where(UploadRow.upload_id == upload_id))

    def close(self) -> None:
        with self._lock:
            self.engine.dispose()

    def __enter__(self) -> "UploadLedger":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __contains__(self, upload_id: str) -> bool:
        return self.get(upload_id) is not None

    def __len__(self) -> int:
        with self._lock, Session(self.engine) as session:
            return session.scalar(select(func.count()).select_from(UploadRow))
