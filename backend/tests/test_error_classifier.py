from __future__ import annotations

import pytest

from chunked_upload.core.exceptions import UploadError
from chunked_upload.services.error_classifier import ErrorCategory, classify


class TestClassify:
    @pytest.mark.parametrize(
        ("raw", "category"),
        [
            ("413 Request Entity Too Large: Chunk too large", ErrorCategory.SIZE),
            ("File size exceeds maximum allowed size (3 MB > 2 MB)", ErrorCategory.SIZE),
            ("401 Unauthorized: Unauthorized", ErrorCategory.PERMISSION),
            ("403 Forbidden: Access denied", ErrorCategory.PERMISSION),
            ("507 Insufficient Storage: quota exceeded", ErrorCategory.QUOTA),
            ("Request timeout after 300.0s", ErrorCategory.TIMEOUT),
            ("Out of memory while decoding", ErrorCategory.MEMORY),
            ("415 Unsupported Media Type: Unsupported file format", ErrorCategory.FORMAT),
            ("Failed to read chunk 3: corrupted or unreadable file (EIO)", ErrorCategory.CORRUPTION),
            ("409 Conflict: Checksum mismatch on duplicate chunk", ErrorCategory.CORRUPTION),
            ("Network connection error: [Errno 111] Connection refused", ErrorCategory.NETWORK),
            ("502 Bad Gateway: upstream", ErrorCategory.NETWORK),
            ("500 Internal Server Error: boom", ErrorCategory.UNKNOWN),
        ],
    )
    def test_categories(self, raw, category):
        assert classify(raw).category is category

    def test_too_large_is_retryable(self):
        info = classify("413 Request Entity Too Large: Chunk too large")

        assert info.category is ErrorCategory.SIZE
        assert info.can_retry is True
        assert info.suggestions

    def test_unauthorized_is_not_retryable(self):
        info = classify("401 Unauthorized: Unauthorized")

        assert info.category is ErrorCategory.PERMISSION
        assert info.can_retry is False

    def test_deterministic(self):
        raw = "Network connection error: reset by peer"

        assert classify(raw) == classify(raw)

    def test_case_insensitive(self):
        assert classify("NETWORK DOWN").category is classify("network down").category

    @pytest.mark.parametrize("raw", [None, "", "something odd happened"])
    def test_fallback(self, raw):
        info = classify(raw)

        assert info.category is ErrorCategory.UNKNOWN
        assert info.can_retry is True
        assert info.suggestions


class TestUploadError:
    def test_user_message_lists_numbered_suggestions(self):
        error = UploadError(classify("Request timeout after 5s"), raw_message="Request timeout after 5s")

        text = error.to_user_message()

        assert text.startswith("The upload took too long and timed out.")
        assert "Suggestions:" in text
        assert "1. Check your connection speed" in text
        assert error.category is ErrorCategory.TIMEOUT
        assert error.can_retry is True
        assert error.raw_message == "Request timeout after 5s"
