from __future__ import annotations

import enum
import mimetypes
import secrets
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from chunked_upload.services.error_classifier import ErrorInfo

DEFAULT_CONTENT_TYPE = "application/octet-stream"


class UploadPhase(str, enum.Enum):
    IDLE = "idle"
    PREPARING = "preparing"
    UPLOADING = "uploading"
    RETRYING = "retrying"
    COMPLETE = "complete"
    ERROR = "error"


class ChunkState(str, enum.Enum):
    PENDING = "pending"
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    FAILED = "failed"


class UploadStrategy(str, enum.Enum):
    STANDARD = "standard"
    CHUNKED = "chunked"


class UploadFile:
    """A readable byte source with the metadata the upload API needs."""

    def __init__(
        self,
        name: str,
        size: int,
        reader: Callable[[int, int], bytes],
        content_type: str | None = None,
    ) -> None:
        if size < 0:
            raise ValueError("size must be non-negative")
        self.name = name
        self.size = size
        self.content_type = content_type or DEFAULT_CONTENT_TYPE
        self._reader = reader

    @classmethod
    def from_path(cls, path: Path | str, content_type: str | None = None) -> "UploadFile":
        path = Path(path)
        guessed, _ = mimetypes.guess_type(path.name)

        def _read(start: int, end: int) -> bytes:
            with open(path, "rb") as handle:
                handle.seek(start)
                return handle.read(end - start)

        return cls(path.name, path.stat().st_size, _read, content_type or guessed)

    @classmethod
    def from_bytes(cls, data: bytes, name: str, content_type: str | None = None) -> "UploadFile":
        payload = bytes(data)
        return cls(name, len(payload), lambda start, end: payload[start:end], content_type)

    def read_range(self, start: int, end: int) -> bytes:
        return self._reader(start, end)

    def __repr__(self) -> str:
        return f"UploadFile(name={self.name!r}, size={self.size}, content_type={self.content_type!r})"


def new_session_id() -> str:
    return f"upload_{int(time.time() * 1000)}_{secrets.token_hex(5)}"


@dataclass
class Chunk:
    index: int
    start: int
    end: int
    state: ChunkState = ChunkState.PENDING
    retry_count: int = 0
    error: str | None = None

    @property
    def size(self) -> int:
        return self.end - self.start


@dataclass
class UploadSession:
    file_name: str
    file_type: str
    total_size: int
    chunk_size: int
    session_id: str = field(default_factory=new_session_id)
    chunks: list[Chunk] = field(default_factory=list)

    @property
    def total_chunks(self) -> int:
        return len(self.chunks)

    def chunk_id(self, index: int) -> str:
        return f"{self.session_id}_{index}"


@dataclass
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 5.0
    attempts: int = 0
    next_retry_in: float = 0.0

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_attempts

    def next_delay(self) -> float:
        self.attempts += 1
        self.next_retry_in = self.base_delay * (2 ** self.attempts)
        return self.next_retry_in

    def reset(self) -> None:
        self.attempts = 0
        self.next_retry_in = 0.0


@dataclass
class UploadAttemptState:
    phase: UploadPhase = UploadPhase.IDLE
    strategy: UploadStrategy | None = None
    chunk_size: int = 0
    chunks_total: int = 0
    chunks_planned: int = 0
    chunks_uploaded: int = 0
    chunks_failed: int = 0
    current_chunk: int | None = None
    standard_checkpoint: int = 0
    waiting_for_connection: bool = False
    retry_deadline: float | None = None
    notice: str | None = None
    error: ErrorInfo | None = None
    file_path: str | None = None
