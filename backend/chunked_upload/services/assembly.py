from __future__ import annotations

import hashlib
import logging
from datetime import datetime, timezone

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from chunked_upload.core.config import settings
from chunked_upload.models.assembly import AssemblyChunk, AssemblySession, AssemblyStatus, StoredFile
from chunked_upload.schemas.upload import ChunkSubmitRequest
from chunked_upload.services.storage import StorageService

logger = logging.getLogger(__name__)


def ensure_content_type_allowed(file_type: str) -> None:
    if not any(file_type.startswith(prefix) for prefix in settings.allowed_content_types):
        raise HTTPException(status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE, detail="Unsupported file format")


async def get_assembly_session(db: AsyncSession, session_id: str) -> AssemblySession | None:
    result = await db.execute(select(AssemblySession).where(AssemblySession.id == session_id))
    return result.scalar_one_or_none()


async def open_assembly_session(db: AsyncSession, payload: ChunkSubmitRequest, *, owner: str) -> AssemblySession:
    session = await get_assembly_session(db, payload.session_id)
    if session is None:
        session = AssemblySession(
            id=payload.session_id,
            owner=owner,
            file_name=payload.file_name,
            file_type=payload.file_type,
            total_chunks=payload.total_chunks,
            status=AssemblyStatus.RECEIVING,
            expires_at=AssemblySession.build_expiration(),
        )
        db.add(session)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            session = await get_assembly_session(db, payload.session_id)
            if session is None:
                raise
        else:
            logger.info(
                "Assembly session %s opened for %s (%d chunks)",
                session.id,
                session.file_name,
                session.total_chunks,
            )
            return session

    if session.owner != owner:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Upload session not found")
    if session.status is not AssemblyStatus.RECEIVING:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Session not accepting chunks")
    if session.total_chunks != payload.total_chunks:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Total chunk count does not match session")
    return session


async def store_chunk(
    db: AsyncSession,
    storage: StorageService,
    session: AssemblySession,
    index: int,
    data: bytes,
) -> AssemblyChunk:
    checksum = hashlib.sha256(data).hexdigest()

    existing_stmt = select(AssemblyChunk).where(
        AssemblyChunk.session_id == session.id, AssemblyChunk.index == index
    )
    existing_chunk = (await db.execute(existing_stmt)).scalar_one_or_none()
    if existing_chunk:
        if existing_chunk.checksum != checksum:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Checksum mismatch on duplicate chunk")
        logger.debug("Duplicate chunk %d for session %s ignored", index, session.id)
        return existing_chunk

    stored_path = await storage.write_chunk(session.id, index, data)
    chunk = AssemblyChunk(
        session_id=session.id,
        index=index,
        checksum=checksum,
        size=len(data),
        stored_path=str(stored_path),
    )
    db.add(chunk)
    session.expires_at = AssemblySession.build_expiration()
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Chunk already recorded") from exc
    await db.refresh(chunk)
    return chunk


async def received_indexes(db: AsyncSession, session: AssemblySession) -> list[int]:
    stmt = select(AssemblyChunk.index).where(AssemblyChunk.session_id == session.id)
    result = await db.execute(stmt)
    return sorted(row[0] for row in result.all())


async def assemble_session(db: AsyncSession, storage: StorageService, session: AssemblySession) -> StoredFile:
    received = set(await received_indexes(db, session))
    missing = [idx for idx in range(session.total_chunks) if idx not in received]
    if missing:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Missing chunk {missing[0]} of {session.total_chunks}",
        )

    stored_file = StoredFile(
        session_id=session.id,
        owner=session.owner,
        file_name=session.file_name,
        mime_type=session.file_type,
        size=0,
        sha256="",
        storage_path="",
    )
    db.add(stored_file)
    await db.flush()

    target_path = storage.final_file_path(str(stored_file.id), session.file_name)
    try:
        merged_size = await storage.merge_chunks(session.id, session.total_chunks, target_path)
    except OSError as exc:
        logger.error("Failed to merge chunks for session %s: %s", session.id, exc)
        await db.rollback()
        await db.refresh(session)
        session.status = AssemblyStatus.FAILED
        await db.commit()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to assemble uploaded chunks"
        ) from exc

    stored_file.size = merged_size
    stored_file.sha256 = await storage.compute_sha256(target_path)
    stored_file.storage_path = storage.public_path(target_path)
    session.status = AssemblyStatus.COMPLETED
    session.finalized_at = datetime.now(timezone.utc)
    await db.commit()
    await db.refresh(stored_file)

    await storage.cleanup_session(session.id)
    logger.info(
        "Assembled %s from %d chunks (%d bytes) into %s",
        session.file_name,
        session.total_chunks,
        merged_size,
        stored_file.storage_path,
    )
    return stored_file


async def store_standard_upload(
    db: AsyncSession,
    storage: StorageService,
    *,
    owner: str,
    file_name: str,
    file_type: str,
    data: bytes,
) -> StoredFile:
    stored_file = StoredFile(
        owner=owner,
        file_name=file_name,
        mime_type=file_type,
        size=len(data),
        sha256=hashlib.sha256(data).hexdigest(),
        storage_path="",
    )
    db.add(stored_file)
    await db.flush()

    target_path = storage.final_file_path(str(stored_file.id), file_name)
    await storage.write_file(target_path, data)
    stored_file.storage_path = storage.public_path(target_path)
    await db.commit()
    await db.refresh(stored_file)
    logger.info("Stored %s (%d bytes) at %s", file_name, stored_file.size, stored_file.storage_path)
    return stored_file


async def purge_expired_sessions(
    db: AsyncSession,
    storage: StorageService,
    now: datetime | None = None,
) -> int:
    now = now or datetime.now(timezone.utc)
    stmt = select(AssemblySession).where(
        AssemblySession.status != AssemblyStatus.COMPLETED,
        AssemblySession.expires_at < now,
    )
    expired = list((await db.execute(stmt)).scalars())
    for session in expired:
        await storage.cleanup_session(session.id)
        await db.delete(session)
    if expired:
        await db.commit()
        logger.info("Purged %d expired assembly sessions", len(expired))
    return len(expired)
