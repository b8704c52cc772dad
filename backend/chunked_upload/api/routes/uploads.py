from __future__ import annotations

import logging
import time

from fastapi import APIRouter, HTTPException, status

from chunked_upload.api import deps
from chunked_upload.core.config import settings
from chunked_upload.schemas.upload import (
    ChunkSubmitRequest,
    ChunkSubmitResponse,
    StandardSubmitRequest,
    StandardSubmitResponse,
    UploadMetadata,
)
from chunked_upload.services import assembly as assembly_service
from chunked_upload.utils.encoding import decode_base64_payload
from chunked_upload.utils.formatting import format_file_size

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/upload", tags=["upload"])


def _decode(value: str) -> bytes:
    try:
        return decode_base64_payload(value)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Invalid base64 payload") from exc


@router.post("/chunk", response_model=ChunkSubmitResponse)
async def submit_chunk(
    payload: ChunkSubmitRequest,
    db: deps.DatabaseSessionDep,
    storage: deps.StorageDep,
) -> ChunkSubmitResponse:
    owner = deps.verify_credential(payload.credential)
    assembly_service.ensure_content_type_allowed(payload.file_type)

    if payload.total_chunks > settings.max_total_chunks:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Too many chunks")
    if payload.chunk_index >= payload.total_chunks:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid chunk index")

    data = _decode(payload.data)
    if len(data) > settings.max_chunk_size:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="Chunk too large")

    session = await assembly_service.open_assembly_session(db, payload, owner=owner)
    await assembly_service.store_chunk(db, storage, session, payload.chunk_index, data)
    received = await assembly_service.received_indexes(db, session)
    logger.debug(
        "Received chunk %d/%d for %s (session %s)",
        payload.chunk_index + 1,
        payload.total_chunks,
        payload.file_name,
        session.id,
    )

    if len(received) < session.total_chunks:
        return ChunkSubmitResponse(
            complete=False,
            session_id=session.id,
            received_chunks=len(received),
            total_chunks=session.total_chunks,
            message=f"Received chunk {payload.chunk_index + 1}/{session.total_chunks}",
        )

    stored_file = await assembly_service.assemble_session(db, storage, session)
    return ChunkSubmitResponse(
        complete=True,
        session_id=session.id,
        file_path=stored_file.storage_path,
        received_chunks=len(received),
        total_chunks=session.total_chunks,
        message="Upload complete",
    )


@router.post("/standard", response_model=StandardSubmitResponse)
async def submit_standard(
    payload: StandardSubmitRequest,
    db: deps.DatabaseSessionDep,
    storage: deps.StorageDep,
) -> StandardSubmitResponse:
    started = time.perf_counter()
    owner = deps.verify_credential(payload.credential)
    assembly_service.ensure_content_type_allowed(payload.file_type)

    data = _decode(payload.file_content)
    if len(data) > settings.max_standard_upload_size:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail="File too large for standard upload",
        )

    warnings: list[str] = []
    if len(data) > settings.large_file_warning_size:
        warnings.append(f"Large file ({format_file_size(len(data))}) may take longer to process")

    stored_file = await assembly_service.store_standard_upload(
        db,
        storage,
        owner=owner,
        file_name=payload.file_name,
        file_type=payload.file_type,
        data=data,
    )
    return StandardSubmitResponse(
        file_path=stored_file.storage_path,
        metadata=UploadMetadata(
            original_size=len(data),
            processed_size=stored_file.size,
            processing_time=int((time.perf_counter() - started) * 1000),
            warnings=warnings or None,
        ),
    )
