from __future__ import annotations

import logging

from chunked_upload.core.exceptions import RemoteUploadError
from chunked_upload.models.upload import Chunk, ChunkState, UploadSession
from chunked_upload.schemas.upload import ChunkSubmitRequest, ChunkSubmitResponse
from chunked_upload.services.api_client import UploadApiClient

logger = logging.getLogger(__name__)


class ChunkTransmitter:
    """Sends one chunk per call; retry policy belongs to the orchestrator."""

    def __init__(self, api_client: UploadApiClient) -> None:
        self.api_client = api_client

    async def send(
        self,
        session: UploadSession,
        chunk: Chunk,
        payload: str,
        credential: str,
    ) -> ChunkSubmitResponse:
        request = ChunkSubmitRequest(
            credential=credential,
            chunk_id=session.chunk_id(chunk.index),
            chunk_index=chunk.index,
            total_chunks=session.total_chunks,
            data=payload,
            file_name=session.file_name,
            file_type=session.file_type,
            session_id=session.session_id,
        )

        chunk.state = ChunkState.UPLOADING
        try:
            response = await self.api_client.submit_chunk(request)
        except RemoteUploadError as exc:
            chunk.error = exc.message
            chunk.retry_count += 1
            raise

        chunk.state = ChunkState.UPLOADED
        chunk.error = None
        logger.debug(
            "Chunk %d/%d acknowledged for session %s",
            chunk.index + 1,
            session.total_chunks,
            session.session_id,
        )
        return response
