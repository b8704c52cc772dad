from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from chunked_upload.api.router import api_router
from chunked_upload.core.config import settings
from chunked_upload.db.base import Base
from chunked_upload.db.session import async_session_factory, engine, ensure_sqlite_directory
from chunked_upload.models import assembly  # noqa: F401  registers tables on Base.metadata
from chunked_upload.services.assembly import purge_expired_sessions
from chunked_upload.services.storage import storage_service

logger = logging.getLogger(__name__)


async def sweep_expired_sessions(interval_seconds: float) -> None:
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            async with async_session_factory() as session:
                await purge_expired_sessions(session, storage_service)
        except (SQLAlchemyError, OSError):
            logger.exception("Expired session sweep failed")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    storage_service.ensure_base_dirs()
    ensure_sqlite_directory(settings.database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Storage directories ensured under %s", storage_service.root)

    sweeper = asyncio.create_task(sweep_expired_sessions(settings.session_cleanup_minutes * 60))
    try:
        yield
    finally:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
        await engine.dispose()


def create_application() -> FastAPI:
    app = FastAPI(title=settings.project_name, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix=settings.api_prefix)
    return app


app = create_application()
