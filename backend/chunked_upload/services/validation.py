from __future__ import annotations

import re
from dataclasses import dataclass, field

from chunked_upload.models.upload import UploadFile
from chunked_upload.utils.formatting import format_file_size

MAX_FILE_NAME_LENGTH = 255
LARGE_FILE_WARNING_SIZE = 10 * 1024 * 1024
SUPPORTED_FORMATS = "JPEG, PNG, WebP, GIF, BMP, TIFF, SVG, AVIF, HEIC, HEIF"

_IMAGE_EXTENSION = re.compile(r"\.(jpe?g|png|gif|webp|bmp|tiff?|svg|avif|heic|heif)$", re.IGNORECASE)

# Formats the server converts before storing.
_CONVERSION_WARNINGS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("heic", "heif"), "HEIC/HEIF files may require conversion"),
    (("tiff", "tif"), "TIFF files will be converted to JPEG"),
    (("bmp",), "BMP files will be converted to PNG"),
    (("svg",), "SVG files will be rasterized to PNG"),
)


@dataclass
class FileValidation:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def validate_upload_file(file: UploadFile, *, large_file_size: int = LARGE_FILE_WARNING_SIZE) -> FileValidation:
    """Check a file before any request is made for it."""
    result = FileValidation()
    name = file.name.strip()

    if not name:
        result.errors.append("Unsupported file name format: the file name is empty")
    elif len(file.name) > MAX_FILE_NAME_LENGTH:
        result.errors.append(
            f"Unsupported file name format: longer than {MAX_FILE_NAME_LENGTH} characters ({len(file.name)})"
        )

    content_type = file.content_type.lower()
    if not content_type.startswith("image/") and not _IMAGE_EXTENSION.search(name):
        result.errors.append(f"Unsupported file format. Supported formats: {SUPPORTED_FORMATS}")

    lowered = name.lower()
    for markers, warning in _CONVERSION_WARNINGS:
        if any(marker in content_type or lowered.endswith("." + marker) for marker in markers):
            result.warnings.append(warning)
    if file.size > large_file_size:
        result.warnings.append(f"Large file ({format_file_size(file.size)}) may take longer to upload")
    if " " in name:
        result.warnings.append("File name contains spaces")
    return result
