from __future__ import annotations

import base64

import pytest

from chunked_upload.core.exceptions import ChunkReadError
from chunked_upload.models.upload import ChunkState, UploadFile, UploadSession
from chunked_upload.services.planner import count_chunks, encode_chunk, encode_file, plan_chunks


class TestPlanChunks:
    @pytest.mark.parametrize("size", [1, 1023, 1024, 1025, 10 * 1024, 10 * 1024 + 7])
    def test_chunks_cover_file_exactly_once(self, size):
        file = UploadFile.from_bytes(b"x" * size, "photo.jpg")
        chunks = plan_chunks(file, 1024)

        assert [chunk.index for chunk in chunks] == list(range(len(chunks)))
        assert chunks[0].start == 0
        assert chunks[-1].end == size
        for previous, current in zip(chunks, chunks[1:]):
            assert previous.end == current.start
        assert sum(chunk.size for chunk in chunks) == size
        assert all(0 < chunk.size <= 1024 for chunk in chunks)
        assert len(chunks) == -(-size // 1024)

    def test_empty_file_is_one_empty_chunk(self):
        chunks = plan_chunks(UploadFile.from_bytes(b"", "empty.png"), 1024)

        assert len(chunks) == 1
        assert (chunks[0].start, chunks[0].end) == (0, 0)

    def test_new_chunks_are_pending(self):
        chunks = plan_chunks(UploadFile.from_bytes(b"abc", "a.png"), 2)

        assert all(chunk.state is ChunkState.PENDING and chunk.retry_count == 0 for chunk in chunks)

    def test_invalid_chunk_size(self):
        with pytest.raises(ValueError):
            count_chunks(10, 0)

    def test_ten_megabytes_in_two_megabyte_chunks(self):
        assert count_chunks(10 * 1024 * 1024, 2 * 1024 * 1024) == 5


class TestSession:
    def test_chunk_id_embeds_session_and_index(self):
        session = UploadSession(file_name="a.png", file_type="image/png", total_size=1, chunk_size=1)

        assert session.session_id.startswith("upload_")
        assert session.chunk_id(3) == f"{session.session_id}_3"

    def test_session_ids_are_unique(self):
        ids = {
            UploadSession(file_name="a.png", file_type="image/png", total_size=1, chunk_size=1).session_id
            for _ in range(50)
        }
        assert len(ids) == 50


class TestEncoding:
    @pytest.mark.asyncio
    async def test_encode_chunk_reads_its_range(self):
        file = UploadFile.from_bytes(b"0123456789", "digits.png")
        chunk = plan_chunks(file, 4)[1]

        payload = await encode_chunk(file, chunk)

        assert base64.b64decode(payload) == b"4567"

    @pytest.mark.asyncio
    async def test_encode_file(self):
        file = UploadFile.from_bytes(b"hello", "hello.png")

        assert base64.b64decode(await encode_file(file)) == b"hello"

    @pytest.mark.asyncio
    async def test_short_read_is_a_chunk_read_error(self):
        file = UploadFile("broken.png", 10, lambda start, end: b"12")
        chunk = plan_chunks(file, 4)[0]

        with pytest.raises(ChunkReadError, match="Failed to read chunk 1"):
            await encode_chunk(file, chunk)

    @pytest.mark.asyncio
    async def test_os_error_is_a_chunk_read_error(self):
        def _reader(start: int, end: int) -> bytes:
            raise OSError("device not ready")

        file = UploadFile("gone.png", 8, _reader)
        chunk = plan_chunks(file, 4)[1]

        with pytest.raises(ChunkReadError, match="chunk 2") as exc_info:
            await encode_chunk(file, chunk)
        assert exc_info.value.index == 1

    @pytest.mark.asyncio
    async def test_from_path(self, tmp_path):
        path = tmp_path / "picture.png"
        path.write_bytes(b"\x89PNG-data")

        file = UploadFile.from_path(path)
        chunk = plan_chunks(file, 4)[1]

        assert file.size == 9
        assert file.content_type == "image/png"
        assert base64.b64decode(await encode_chunk(file, chunk)) == b"-dat"

    def test_unknown_type_defaults_to_octet_stream(self):
        assert UploadFile.from_bytes(b"", "blob").content_type == "application/octet-stream"
