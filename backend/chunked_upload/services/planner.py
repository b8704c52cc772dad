"""Splitting a file into ordered byte ranges and encoding them for transport."""
from __future__ import annotations

import asyncio
import base64
import logging
import math

from chunked_upload.core.exceptions import ChunkReadError
from chunked_upload.models.upload import Chunk, UploadFile

logger = logging.getLogger(__name__)


def count_chunks(total_size: int, chunk_size: int) -> int:
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    # An empty file still travels as one empty chunk.
    return max(1, math.ceil(total_size / chunk_size))


def plan_chunks(file: UploadFile, chunk_size: int) -> list[Chunk]:
    """Return the chunk descriptors covering ``[0, file.size)`` in index order."""
    total = count_chunks(file.size, chunk_size)
    chunks = []
    for index in range(total):
        start = index * chunk_size
        end = min(start + chunk_size, file.size)
        chunks.append(Chunk(index=index, start=start, end=end))
    logger.debug("Planned %d chunks of %d bytes for %s", total, chunk_size, file.name)
    return chunks


def encode_bytes(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


async def encode_file(file: UploadFile) -> str:
    try:
        data = await asyncio.to_thread(file.read_range, 0, file.size)
    except OSError as exc:
        raise ChunkReadError(0, str(exc)) from exc
    return encode_bytes(data)


async def encode_chunk(file: UploadFile, chunk: Chunk) -> str:
    try:
        data = await asyncio.to_thread(file.read_range, chunk.start, chunk.end)
    except OSError as exc:
        raise ChunkReadError(chunk.index, str(exc)) from exc
    if len(data) != chunk.size:
        raise ChunkReadError(chunk.index, f"expected {chunk.size} bytes, read {len(data)}")
    return encode_bytes(data)
