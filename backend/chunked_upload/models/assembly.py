from __future__ import annotations

import enum
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import CheckConstraint, DateTime, Enum, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from chunked_upload.core.config import settings
from chunked_upload.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AssemblyStatus(str, enum.Enum):
    RECEIVING = "receiving"
    COMPLETED = "completed"
    FAILED = "failed"


class AssemblySession(Base):
    __tablename__ = "assembly_sessions"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    owner: Mapped[str] = mapped_column(String(255), nullable=False)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_type: Mapped[str] = mapped_column(String(255), nullable=False)
    total_chunks: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[AssemblyStatus] = mapped_column(
        Enum(AssemblyStatus), default=AssemblyStatus.RECEIVING, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    finalized_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    chunks: Mapped[list[AssemblyChunk]] = relationship(
        "AssemblyChunk", back_populates="session", cascade="all, delete-orphan", lazy="selectin"
    )

    @staticmethod
    def build_expiration(now: datetime | None = None) -> datetime:
        now = now or _utcnow()
        return now + timedelta(minutes=settings.session_ttl_minutes)


class AssemblyChunk(Base):
    __tablename__ = "assembly_chunks"
    __table_args__ = (
        UniqueConstraint("session_id", "index", name="uq_assembly_chunk_session_index"),
        CheckConstraint("size >= 0", name="ck_assembly_chunk_size_positive"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("assembly_sessions.id", ondelete="CASCADE"), nullable=False
    )
    index: Mapped[int] = mapped_column(Integer, nullable=False)
    checksum: Mapped[str] = mapped_column(String(128), nullable=False)
    size: Mapped[int] = mapped_column(Integer, nullable=False)
    stored_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    received_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    session: Mapped[AssemblySession] = relationship("AssemblySession", back_populates="chunks")


class StoredFile(Base):
    __tablename__ = "stored_files"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    owner: Mapped[str] = mapped_column(String(255), nullable=False)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(255), nullable=False)
    size: Mapped[int] = mapped_column(Integer, nullable=False)
    sha256: Mapped[str] = mapped_column(String(128), nullable=False)
    storage_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
