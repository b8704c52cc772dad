from __future__ import annotations

import asyncio
import hashlib
import os
from pathlib import Path

from chunked_upload.core.config import Settings, settings


class StorageService:
    def __init__(self, root: Path | None = None, *, config: Settings | None = None) -> None:
        config = config or settings
        if root is None:
            self._root = config.storage_root
            self._tmp_dir = config.tmp_dir
            self._files_dir = config.files_dir
        else:
            self._root = Path(root)
            self._tmp_dir = self._root / config.tmp_dir_name
            self._files_dir = self._root / config.files_dir_name

    @property
    def root(self) -> Path:
        return self._root

    def ensure_base_dirs(self) -> None:
        for directory in (self._root, self._tmp_dir, self._files_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def session_tmp_dir(self, session_id: str) -> Path:
        path = self._tmp_dir / session_id
        path.mkdir(parents=True, exist_ok=True)
        return path

    def chunk_path(self, session_id: str, index: int) -> Path:
        return self.session_tmp_dir(session_id) / f"chunk_{index:08d}.part"

    def file_dir(self, file_id: str) -> Path:
        path = self._files_dir / file_id
        path.mkdir(parents=True, exist_ok=True)
        return path

    def final_file_path(self, file_id: str, file_name: str) -> Path:
        # Only the final path component of a client-supplied name is kept.
        safe_name = Path(file_name).name or "data"
        return self.file_dir(file_id) / safe_name

    def public_path(self, path: Path) -> str:
        return path.relative_to(self._root).as_posix()

    async def write_chunk(self, session_id: str, index: int, data: bytes) -> Path:
        path = self.chunk_path(session_id, index)
        await self.write_file(path, data)
        return path

    async def write_file(self, path: Path, data: bytes) -> int:
        def _write() -> int:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "wb") as handle:
                return handle.write(data)

        return await asyncio.to_thread(_write)

    async def merge_chunks(
        self,
        session_id: str,
        total_chunks: int,
        target_path: Path,
    ) -> int:
        tmp_dir = self.session_tmp_dir(session_id)

        def _merge() -> int:
            byte_count = 0
            target_path.parent.mkdir(parents=True, exist_ok=True)
            with open(target_path, "wb") as out_handle:
                for index in range(total_chunks):
                    chunk_path = tmp_dir / f"chunk_{index:08d}.part"
                    with open(chunk_path, "rb") as in_handle:
                        while True:
                            chunk = in_handle.read(1024 * 1024)
                            if not chunk:
                                break
                            out_handle.write(chunk)
                            byte_count += len(chunk)
            return byte_count

        return await asyncio.to_thread(_merge)

    async def cleanup_session(self, session_id: str) -> None:
        tmp_dir = self._tmp_dir / session_id

        def _cleanup() -> None:
            if tmp_dir.exists():
                for root, dirs, files in os.walk(tmp_dir, topdown=False):
                    for name in files:
                        Path(root, name).unlink(missing_ok=True)
                    for name in dirs:
                        Path(root, name).rmdir()
                tmp_dir.rmdir()

        await asyncio.to_thread(_cleanup)

    @staticmethod
    async def compute_sha256(path: Path) -> str:
        def _compute() -> str:
            hash_ = hashlib.sha256()
            with open(path, "rb") as handle:
                for chunk in iter(lambda: handle.read(1024 * 1024), b""):
                    hash_.update(chunk)
            return hash_.hexdigest()

        return await asyncio.to_thread(_compute)


storage_service = StorageService()
