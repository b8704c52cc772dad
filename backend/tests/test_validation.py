from __future__ import annotations

import pytest

from chunked_upload.models.upload import UploadFile
from chunked_upload.services.validation import validate_upload_file


def named(name: str, content_type: str | None = None, size: int = 4) -> UploadFile:
    return UploadFile.from_bytes(b"x" * size, name, content_type)


class TestValidateUploadFile:
    @pytest.mark.parametrize(
        "name, content_type",
        [
            ("photo.jpg", "image/jpeg"),
            ("photo.bin", "image/png"),
            ("SCAN.TIFF", None),
            ("icon.svg", "application/octet-stream"),
        ],
    )
    def test_accepts_images_by_type_or_extension(self, name, content_type):
        assert validate_upload_file(named(name, content_type)).is_valid

    def test_rejects_other_formats(self):
        result = validate_upload_file(named("report.pdf", "application/pdf"))

        assert not result.is_valid
        assert result.errors == [
            "Unsupported file format. Supported formats: JPEG, PNG, WebP, GIF, BMP, TIFF, SVG, AVIF, HEIC, HEIF"
        ]

    def test_name_length_limit(self):
        assert validate_upload_file(named("a" * 251 + ".png", "image/png")).is_valid

        result = validate_upload_file(named("a" * 252 + ".png", "image/png"))
        assert result.errors == ["Unsupported file name format: longer than 255 characters (256)"]

    def test_empty_name(self):
        result = validate_upload_file(named("", "image/png"))

        assert result.errors == ["Unsupported file name format: the file name is empty"]

    def test_empty_file_is_allowed(self):
        assert validate_upload_file(named("empty.png", "image/png", size=0)).is_valid

    @pytest.mark.parametrize(
        "name, content_type, warning",
        [
            ("live.heif", "image/heif", "HEIC/HEIF files may require conversion"),
            ("scan.tif", None, "TIFF files will be converted to JPEG"),
            ("old.bmp", "image/bmp", "BMP files will be converted to PNG"),
            ("logo.png", "image/svg+xml", "SVG files will be rasterized to PNG"),
        ],
    )
    def test_conversion_warnings(self, name, content_type, warning):
        result = validate_upload_file(named(name, content_type))

        assert result.is_valid
        assert result.warnings == [warning]

    def test_large_file_and_space_warnings(self):
        result = validate_upload_file(named("my photo.jpg", "image/jpeg", size=32), large_file_size=16)

        assert result.warnings == ["Large file (32 Bytes) may take longer to upload", "File name contains spaces"]

    def test_plain_jpeg_has_no_warnings(self):
        assert validate_upload_file(named("photo.jpg", "image/jpeg")).warnings == []
