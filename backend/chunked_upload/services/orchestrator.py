"""Upload state machine driving the standard and chunked paths.

One asyncio task runs per upload. Every suspension point (network call,
chunk backoff, session backoff, offline polling) is an ``await`` inside that
task, so ``cancel()`` stops all of them at once.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable

from chunked_upload.core.config import UploadOptions
from chunked_upload.core.exceptions import (
    ChunkReadError,
    ChunkRetriesExhaustedError,
    RemoteUploadError,
    UploadError,
    UploadInProgressError,
)
from chunked_upload.models.upload import (
    Chunk,
    ChunkState,
    RetryPolicy,
    UploadAttemptState,
    UploadFile,
    UploadPhase,
    UploadSession,
    UploadStrategy,
)
from chunked_upload.schemas.upload import ChunkSubmitResponse, StandardSubmitRequest
from chunked_upload.services.api_client import UploadApiClient
from chunked_upload.services.connectivity import ConnectionStatus, ConnectivityMonitor
from chunked_upload.services.error_classifier import classify
from chunked_upload.services.planner import encode_chunk, encode_file, plan_chunks
from chunked_upload.services.progress import UploadStatusView, project_status
from chunked_upload.services.transmitter import ChunkTransmitter
from chunked_upload.services.validation import validate_upload_file
from chunked_upload.utils.formatting import format_file_size

logger = logging.getLogger(__name__)

SuccessCallback = Callable[[str], None]
ErrorCallback = Callable[[UploadError], None]
StatusCallback = Callable[[UploadStatusView], None]


class UploadOrchestrator:
    def __init__(
        self,
        api_client: UploadApiClient,
        credential: str,
        *,
        options: UploadOptions | None = None,
        monitor: ConnectivityMonitor | None = None,
        on_success: SuccessCallback | None = None,
        on_error: ErrorCallback | None = None,
        on_status: StatusCallback | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.api_client = api_client
        self.credential = credential
        self.options = options or UploadOptions.from_settings()
        self.monitor = monitor
        self.on_success = on_success
        self.on_error = on_error
        self.on_status = on_status
        self.transmitter = ChunkTransmitter(api_client)
        self._sleep = sleep

        self.state = UploadAttemptState()
        self.retry_policy = RetryPolicy(
            max_attempts=self.options.max_retries,
            base_delay=self.options.retry_base_delay,
        )
        self.adaptive_chunk_size = self.options.chunk_size
        self.session: UploadSession | None = None
        self.last_error: UploadError | None = None
        self.send_attempts = 0
        self.file_warnings: list[str] = []

        self._file: UploadFile | None = None
        self._force_chunking = False
        self._task: asyncio.Task[str | None] | None = None

    @property
    def phase(self) -> UploadPhase:
        return self.state.phase

    @property
    def status(self) -> UploadStatusView:
        return project_status(self.state)

    @property
    def is_active(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def has_pending_retry(self) -> bool:
        return self.state.retry_deadline is not None

    def start_upload(self, file: UploadFile, *, force_chunking: bool | None = None) -> asyncio.Task[str | None]:
        """Begin uploading ``file``.

        The returned task resolves to the stored file path, or ``None`` when
        the upload ends in the error phase (see ``last_error``).
        """
        if self.is_active:
            raise UploadInProgressError("An upload is already in progress")
        self._file = file
        self._force_chunking = self.options.force_chunking if force_chunking is None else force_chunking
        self.adaptive_chunk_size = self.options.chunk_size
        self.retry_policy.reset()
        self.last_error = None
        self.send_attempts = 0
        return self._launch()

    async def upload(self, file: UploadFile, *, force_chunking: bool | None = None) -> str:
        file_path = await self.start_upload(file, force_chunking=force_chunking)
        if file_path is None:
            raise self.last_error or UploadError(classify(None), raw_message="")
        return file_path

    def retry(self) -> asyncio.Task[str | None]:
        """Restart the last upload from scratch with a fresh retry budget."""
        if self._file is None:
            raise RuntimeError("There is no upload to retry")
        if self.is_active:
            if self.state.phase is not UploadPhase.RETRYING:
                raise UploadInProgressError("An upload is already in progress")
            self._task.cancel()
        self.retry_policy.reset()
        self.last_error = None
        logger.info("Manual retry requested for %s", self._file.name)
        return self._launch()

    def cancel(self) -> bool:
        if self.state.phase in (UploadPhase.IDLE, UploadPhase.COMPLETE) and not self.is_active:
            return False
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self._file = None
        self.session = None
        self.state = UploadAttemptState()
        self.retry_policy.reset()
        logger.info("Upload cancelled")
        self._emit()
        return True

    def _launch(self) -> asyncio.Task[str | None]:
        file = self._file
        self._task = asyncio.get_running_loop().create_task(self._drive(file, self._force_chunking))
        return self._task

    def _emit(self) -> None:
        if self.on_status is not None:
            self.on_status(self.status)

    def _begin_attempt(self, strategy: UploadStrategy) -> None:
        self.state = UploadAttemptState(
            phase=UploadPhase.PREPARING,
            strategy=strategy,
            chunk_size=self.adaptive_chunk_size,
            notice=self.state.notice,
        )
        self._emit()

    async def _drive(self, file: UploadFile, force_chunking: bool) -> str | None:
        validation = validate_upload_file(file)
        self.file_warnings = validation.warnings
        if not validation.is_valid:
            return self._fail("; ".join(validation.errors))
        for warning in validation.warnings:
            logger.warning("%s: %s", file.name, warning)
        self.state.notice = "; ".join(validation.warnings) or None

        if file.size > self.options.max_file_size:
            return self._fail(
                f"File size exceeds maximum allowed size "
                f"({format_file_size(file.size)} > {format_file_size(self.options.max_file_size)})"
            )

        use_chunking = force_chunking or file.size > self.options.chunking_threshold
        while True:
            try:
                if use_chunking:
                    return await self._upload_chunked(file)
                return await self._upload_standard(file)
            except RemoteUploadError as exc:
                if exc.is_too_large:
                    if not use_chunking:
                        use_chunking = True
                        await self._escalate_to_chunked(file)
                        continue
                    if self.adaptive_chunk_size > self.options.min_chunk_size:
                        await self._shrink_chunk_size()
                        continue
                    logger.error("Server rejected the minimum chunk size for %s", file.name)
                    return self._fail(exc.message)
                if isinstance(exc, ChunkRetriesExhaustedError):
                    return self._fail(exc.message)
                raw_message = exc.message
            except ChunkReadError as exc:
                raw_message = str(exc)

            info = classify(raw_message)
            if self.options.auto_retry and info.can_retry and not self.retry_policy.exhausted:
                await self._wait_for_session_retry(raw_message)
                continue
            return self._fail(raw_message)

    async def _escalate_to_chunked(self, file: UploadFile) -> None:
        logger.info(
            "Standard upload of %s rejected as too large, switching to %s chunks",
            file.name,
            format_file_size(self.adaptive_chunk_size),
        )
        self.state.notice = "File too large for standard upload. Switching to chunked upload..."
        self._emit()
        await self._sleep(self.options.escalation_delay)

    async def _shrink_chunk_size(self) -> None:
        previous = self.adaptive_chunk_size
        self.adaptive_chunk_size = max(self.options.min_chunk_size, previous // 2)
        self.session = None
        logger.info(
            "Server rejected %s chunks, restarting with %s",
            format_file_size(previous),
            format_file_size(self.adaptive_chunk_size),
        )
        self.state.notice = (
            f"Server rejected chunk size. Reducing to {format_file_size(self.adaptive_chunk_size)} chunks and retrying..."
        )
        self._emit()
        await self._sleep(self.options.shrink_restart_delay)

    async def _wait_for_session_retry(self, raw_message: str) -> None:
        delay = self.retry_policy.next_delay()
        self.session = None
        self.state.phase = UploadPhase.RETRYING
        self.state.error = classify(raw_message)
        self.state.waiting_for_connection = False
        self.state.retry_deadline = time.monotonic() + delay
        logger.warning(
            "Upload attempt failed (%s), retry %d/%d in %.1fs",
            raw_message,
            self.retry_policy.attempts,
            self.retry_policy.max_attempts,
            delay,
        )
        self._emit()
        await self._sleep(delay)
        self.state.retry_deadline = None

    async def _upload_standard(self, file: UploadFile) -> str | None:
        self._begin_attempt(UploadStrategy.STANDARD)
        self.state.standard_checkpoint = 20
        self._emit()

        content = await encode_file(file)

        self.state.phase = UploadPhase.UPLOADING
        self.state.standard_checkpoint = 60
        self._emit()

        self.send_attempts += 1
        response = await self.api_client.submit_standard(
            StandardSubmitRequest(
                credential=self.credential,
                file_name=file.name,
                file_content=content,
                file_type=file.content_type,
            )
        )
        if not response.file_path:
            raise RemoteUploadError("Upload completed but file path is missing or invalid")
        if response.metadata and response.metadata.warnings:
            for warning in response.metadata.warnings:
                logger.warning("Server warning for %s: %s", file.name, warning)
        return self._complete(response.file_path)

    async def _upload_chunked(self, file: UploadFile) -> str | None:
        session = UploadSession(
            file_name=file.name,
            file_type=file.content_type,
            total_size=file.size,
            chunk_size=self.adaptive_chunk_size,
        )
        self.session = session
        self._begin_attempt(UploadStrategy.CHUNKED)

        session.chunks = plan_chunks(file, session.chunk_size)
        total = session.total_chunks
        self.state.chunks_total = total
        self.state.chunks_planned = total
        self._emit()
        logger.info(
            "Uploading %s (%s) in %d chunks of %s, session %s",
            file.name,
            format_file_size(file.size),
            total,
            format_file_size(session.chunk_size),
            session.session_id,
        )

        self.state.phase = UploadPhase.UPLOADING
        self._emit()

        for chunk in session.chunks:
            await self._wait_for_connection()
            self.state.current_chunk = chunk.index
            self._emit()

            response = await self._send_with_retry(session, chunk, file)

            if chunk.index == total - 1:
                if not (response.complete and response.file_path):
                    self._mark_failed(chunk)
                    raise RemoteUploadError("All chunks were sent but the server did not confirm assembly")
                return self._complete(response.file_path)

            self.state.chunks_uploaded += 1
            self._emit()

        raise RemoteUploadError("Upload session ended without any chunks")

    async def _send_with_retry(self, session: UploadSession, chunk: Chunk, file: UploadFile) -> ChunkSubmitResponse:
        try:
            payload = await encode_chunk(file, chunk)
        except ChunkReadError:
            self._mark_failed(chunk)
            raise

        while True:
            self.send_attempts += 1
            try:
                return await self.transmitter.send(session, chunk, payload, self.credential)
            except RemoteUploadError as exc:
                if exc.is_too_large or not classify(exc.message).can_retry:
                    self._mark_failed(chunk)
                    raise
                if chunk.retry_count > self.options.max_chunk_retries:
                    self._mark_failed(chunk)
                    logger.error(
                        "Chunk %d/%d failed after %d attempts: %s",
                        chunk.index + 1,
                        session.total_chunks,
                        chunk.retry_count,
                        exc.message,
                    )
                    raise ChunkRetriesExhaustedError(
                        f"Chunk {chunk.index + 1} failed after {chunk.retry_count} attempts: {exc.message}",
                        status_code=exc.status_code,
                    ) from exc

                delay = self.options.chunk_retry_base_delay * 2**chunk.retry_count
                logger.warning(
                    "Chunk %d/%d failed (%s), retrying in %.1fs",
                    chunk.index + 1,
                    session.total_chunks,
                    exc.message,
                    delay,
                )
                await self._sleep(delay)

    def _mark_failed(self, chunk: Chunk) -> None:
        chunk.state = ChunkState.FAILED
        self.state.chunks_failed += 1
        self._emit()

    async def _wait_for_connection(self) -> None:
        if self.monitor is None or self.monitor.check_network() is not ConnectionStatus.OFFLINE:
            return
        logger.warning("Connection lost, waiting before sending the next chunk")
        self.state.waiting_for_connection = True
        self._emit()
        await self.monitor.wait_until_online(self.options.connectivity_poll_interval, sleep=self._sleep)
        self.state.waiting_for_connection = False
        self._emit()

    def _complete(self, file_path: str) -> str:
        self.state.phase = UploadPhase.COMPLETE
        self.state.file_path = file_path
        self.state.current_chunk = None
        self.state.error = None
        self.state.retry_deadline = None
        if self.state.strategy is UploadStrategy.CHUNKED:
            self.state.chunks_uploaded = self.state.chunks_total
        self.session = None
        self._file = None
        self.retry_policy.reset()
        logger.info("Upload complete: %s", file_path)
        self._emit()
        if self.on_success is not None:
            self.on_success(file_path)
        return file_path

    def _fail(self, raw_message: str) -> None:
        info = classify(raw_message)
        self.state.phase = UploadPhase.ERROR
        self.state.error = info
        self.state.retry_deadline = None
        self.state.waiting_for_connection = False
        self.session = None
        self.last_error = UploadError(info, raw_message=raw_message)
        logger.error("Upload failed [%s]: %s", info.category.value, raw_message)
        self._emit()
        if self.on_error is not None:
            self.on_error(self.last_error)
        return None
