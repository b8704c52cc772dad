from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, status
from jwt import PyJWTError
from sqlalchemy.ext.asyncio import AsyncSession

from chunked_upload.db.session import get_db_session
from chunked_upload.services.storage import StorageService, storage_service
from chunked_upload.utils.security import decode_upload_credential

DatabaseSessionDep = Annotated[AsyncSession, Depends(get_db_session)]


def get_storage() -> StorageService:
    return storage_service


StorageDep = Annotated[StorageService, Depends(get_storage)]


def verify_credential(credential: str) -> str:
    """Return the credential subject, or raise 401."""
    try:
        payload = decode_upload_credential(credential)
    except PyJWTError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized") from exc
    subject = payload.get("sub")
    if not subject:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return str(subject)
