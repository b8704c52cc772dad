from __future__ import annotations

import enum
from dataclasses import dataclass, field


class ErrorCategory(str, enum.Enum):
    SIZE = "size"
    FORMAT = "format"
    NETWORK = "network"
    PERMISSION = "permission"
    QUOTA = "quota"
    TIMEOUT = "timeout"
    MEMORY = "memory"
    CORRUPTION = "corruption"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ErrorInfo:
    message: str
    category: ErrorCategory
    can_retry: bool = True
    suggestions: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class _Rule:
    category: ErrorCategory
    patterns: tuple[str, ...]
    message: str
    suggestions: tuple[str, ...]


# First match wins.
_RULES: tuple[_Rule, ...] = (
    _Rule(
        ErrorCategory.SIZE,
        ("too large", "file size", "exceeds maximum"),
        "The file is too large to upload in one request.",
        (
            "Compress the image before uploading",
            "Resize the image to smaller dimensions",
            "Convert to JPEG for better compression",
            "Try uploading a different file",
        ),
    ),
    _Rule(
        ErrorCategory.PERMISSION,
        ("unauthorized", "forbidden", "permission", "not authenticated", "access denied"),
        "You are not allowed to upload files with the current credentials.",
        (
            "Log in again and retry the upload",
            "Check that your account has upload permissions",
            "Contact an administrator if the problem persists",
        ),
    ),
    _Rule(
        ErrorCategory.QUOTA,
        ("quota", "insufficient storage", "storage limit", "disk full"),
        "The server has run out of storage space for uploads.",
        (
            "Delete unused files to free up space",
            "Try again later",
            "Contact an administrator about the storage quota",
        ),
    ),
    _Rule(
        ErrorCategory.TIMEOUT,
        ("timeout", "timed out"),
        "The upload took too long and timed out.",
        (
            "Check your connection speed",
            "Try uploading again",
            "Try a smaller file first",
        ),
    ),
    _Rule(
        ErrorCategory.MEMORY,
        ("out of memory", "memory"),
        "The upload ran out of memory while processing the file.",
        (
            "Close other applications and try again",
            "Try a smaller file",
            "Reduce the chunk size for large files",
        ),
    ),
    _Rule(
        ErrorCategory.FORMAT,
        ("unsupported", "format", "heic", "heif"),
        "The file format is not supported.",
        (
            "Convert the image to JPEG, PNG, or WebP format",
            "Try saving the image from an image editor",
            "Try a different file",
        ),
    ),
    _Rule(
        ErrorCategory.CORRUPTION,
        ("corrupt", "invalid", "checksum", "unreadable", "missing chunk"),
        "The file appears to be corrupted or invalid.",
        (
            "Try re-saving the file from the original application",
            "Download the original file again if possible",
            "Check that the file opens correctly",
        ),
    ),
    _Rule(
        ErrorCategory.NETWORK,
        ("network", "connection", "offline", "unreachable", "bad gateway", "service unavailable"),
        "The upload failed due to a network issue.",
        (
            "Check your internet connection",
            "Try uploading again",
            "Try uploading a smaller file first",
        ),
    ),
)

_FALLBACK = ErrorInfo(
    message="An unexpected error occurred during upload.",
    category=ErrorCategory.UNKNOWN,
    can_retry=True,
    suggestions=(
        "Try uploading the file again",
        "Try a different file",
        "Contact support if the problem persists",
    ),
)


def classify(raw_message: str | None) -> ErrorInfo:
    text = (raw_message or "").lower()
    for rule in _RULES:
        if any(pattern in text for pattern in rule.patterns):
            return ErrorInfo(
                message=rule.message,
                category=rule.category,
                can_retry=rule.category is not ErrorCategory.PERMISSION,
                suggestions=rule.suggestions,
            )
    return _FALLBACK
