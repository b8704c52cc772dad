from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from chunked_upload.services.error_classifier import ErrorCategory, ErrorInfo


class RemoteUploadError(Exception):
    """Failure reported by the upload API or the transport underneath it."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @property
    def is_too_large(self) -> bool:
        return self.status_code == 413 or "too large" in self.message.lower()


class ChunkRetriesExhaustedError(RemoteUploadError):
    """A chunk kept failing after its local retry budget; ends the upload."""


class ChunkReadError(Exception):
    def __init__(self, index: int, reason: str) -> None:
        super().__init__(f"Failed to read chunk {index + 1}: corrupted or unreadable file ({reason})")
        self.index = index


class UploadInProgressError(RuntimeError):
    pass


class UploadError(Exception):
    """Terminal upload failure handed to ``on_error``."""

    def __init__(self, info: "ErrorInfo", *, raw_message: str) -> None:
        super().__init__(info.message)
        self.info = info
        self.raw_message = raw_message

    @property
    def category(self) -> "ErrorCategory":
        return self.info.category

    @property
    def can_retry(self) -> bool:
        return self.info.can_retry

    @property
    def suggestions(self) -> list[str]:
        return list(self.info.suggestions)

    def to_user_message(self) -> str:
        lines = [self.info.message]
        if self.info.suggestions:
            lines.append("")
            lines.append("Suggestions:")
            lines.extend(f"{position}. {text}" for position, text in enumerate(self.info.suggestions, start=1))
        return "\n".join(lines)
