from __future__ import annotations

from fastapi import APIRouter

from chunked_upload.api.routes import health, uploads

api_router = APIRouter()
api_router.include_router(uploads.router)
api_router.include_router(health.router)
