"""Shared fixtures for the upload client and assembly service tests"""
from __future__ import annotations

import asyncio
import base64
from dataclasses import dataclass, field

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import chunked_upload.models.assembly  # noqa: F401
from chunked_upload.api.deps import get_storage
from chunked_upload.core.config import UploadOptions
from chunked_upload.core.exceptions import RemoteUploadError
from chunked_upload.db.base import Base
from chunked_upload.db.session import get_db_session
from chunked_upload.main import create_application
from chunked_upload.schemas.upload import (
    ChunkSubmitRequest,
    ChunkSubmitResponse,
    StandardSubmitRequest,
    StandardSubmitResponse,
)
from chunked_upload.services.orchestrator import UploadOrchestrator
from chunked_upload.services.progress import UploadStatusView
from chunked_upload.services.storage import StorageService
from chunked_upload.utils.security import create_upload_credential

KB = 1024


def too_large(detail: str = "Chunk too large") -> RemoteUploadError:
    return RemoteUploadError(f"413 Request Entity Too Large: {detail}", status_code=413)


def server_error(detail: str = "boom") -> RemoteUploadError:
    return RemoteUploadError(f"500 Internal Server Error: {detail}", status_code=500)


def unauthorized() -> RemoteUploadError:
    return RemoteUploadError("401 Unauthorized: Unauthorized", status_code=401)


class FakeUploadApi:
    """In-memory stand-in for ``UploadApiClient`` with scripted failures."""

    def __init__(self, *, chunk_limit: int | None = None, standard_limit: int | None = None) -> None:
        self.chunk_limit = chunk_limit
        self.standard_limit = standard_limit
        self.chunk_calls: list[ChunkSubmitRequest] = []
        self.standard_calls: list[StandardSubmitRequest] = []
        self.failures: dict[int, list[Exception]] = {}
        self.always_fail: dict[int, Exception] = {}
        self.standard_failures: list[Exception] = []
        self.received: dict[str, dict[int, bytes]] = {}
        self.gate: asyncio.Event | None = None

    def fail_chunk(self, index: int, *errors: Exception) -> None:
        self.failures.setdefault(index, []).extend(errors)

    def assembled(self, session_id: str) -> bytes:
        parts = self.received[session_id]
        return b"".join(parts[index] for index in sorted(parts))

    @property
    def session_ids(self) -> list[str]:
        seen: list[str] = []
        for call in self.chunk_calls:
            if call.session_id not in seen:
                seen.append(call.session_id)
        return seen

    async def submit_chunk(self, request: ChunkSubmitRequest) -> ChunkSubmitResponse:
        self.chunk_calls.append(request)
        if self.gate is not None:
            await self.gate.wait()
        if request.chunk_index in self.always_fail:
            raise self.always_fail[request.chunk_index]
        pending = self.failures.get(request.chunk_index)
        if pending:
            raise pending.pop(0)

        data = base64.b64decode(request.data)
        if self.chunk_limit is not None and len(data) > self.chunk_limit:
            raise too_large()

        parts = self.received.setdefault(request.session_id, {})
        parts[request.chunk_index] = data
        complete = len(parts) == request.total_chunks
        return ChunkSubmitResponse(
            complete=complete,
            session_id=request.session_id,
            file_path=f"files/{request.session_id}/{request.file_name}" if complete else None,
            received_chunks=len(parts),
            total_chunks=request.total_chunks,
        )

    async def submit_standard(self, request: StandardSubmitRequest) -> StandardSubmitResponse:
        self.standard_calls.append(request)
        if self.standard_failures:
            raise self.standard_failures.pop(0)
        data = base64.b64decode(request.file_content)
        if self.standard_limit is not None and len(data) > self.standard_limit:
            raise too_large("File too large for standard upload")
        return StandardSubmitResponse(file_path=f"files/standard/{request.file_name}")


@dataclass
class Recorder:
    statuses: list[UploadStatusView] = field(default_factory=list)
    successes: list[str] = field(default_factory=list)
    errors: list = field(default_factory=list)

    @property
    def phases(self) -> list[str]:
        return [view.phase.value for view in self.statuses]


@pytest.fixture
def fake_api() -> FakeUploadApi:
    return FakeUploadApi()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def fake_sleep(sleeps):
    async def _sleep(delay: float) -> None:
        sleeps.append(delay)

    return _sleep


@pytest.fixture
def test_options() -> UploadOptions:
    return UploadOptions(
        max_file_size=200 * KB,
        chunk_size=2 * KB,
        min_chunk_size=KB // 2,
        chunking_threshold=25 * KB,
    )


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def make_orchestrator(fake_api, fake_sleep, test_options, recorder, credential):
    def _make(api=None, *, monitor=None, sleep=None, **overrides) -> UploadOrchestrator:
        options = test_options.model_copy(update=overrides) if overrides else test_options
        return UploadOrchestrator(
            api or fake_api,
            credential,
            options=options,
            monitor=monitor,
            on_success=recorder.successes.append,
            on_error=recorder.errors.append,
            on_status=recorder.statuses.append,
            sleep=sleep or fake_sleep,
        )

    return _make


@pytest.fixture
def storage(tmp_path) -> StorageService:
    service = StorageService(tmp_path / "storage")
    service.ensure_base_dirs()
    return service


@pytest.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'uploads.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    await engine.dispose()


@pytest.fixture
def app(session_factory, storage):
    application = create_application()

    async def _override_db():
        async with session_factory() as session:
            yield session

    application.dependency_overrides[get_db_session] = _override_db
    application.dependency_overrides[get_storage] = lambda: storage
    return application


@pytest.fixture
async def async_client(app):
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.fixture
def credential() -> str:
    token, _ = create_upload_credential("tester")
    return token
