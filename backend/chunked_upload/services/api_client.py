from __future__ import annotations

import logging
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from chunked_upload.core.config import settings
from chunked_upload.core.exceptions import RemoteUploadError
from chunked_upload.schemas.upload import (
    ChunkSubmitRequest,
    ChunkSubmitResponse,
    StandardSubmitRequest,
    StandardSubmitResponse,
)

logger = logging.getLogger(__name__)

ResponseModel = TypeVar("ResponseModel", bound=BaseModel)


class UploadApiClient:
    """Async client for the chunk/standard upload endpoints."""

    def __init__(
        self,
        base_url: str | None = None,
        *,
        api_prefix: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.client_base_url).rstrip("/")
        self.api_prefix = api_prefix if api_prefix is not None else settings.api_prefix
        self.timeout = timeout or settings.client_timeout_seconds
        self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=transport)

    async def __aenter__(self) -> "UploadApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _url(self, endpoint: str) -> str:
        return f"{self.api_prefix}{endpoint}"

    async def _post(self, endpoint: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = self._url(endpoint)
        logger.debug("POST %s%s", self.base_url, url)
        try:
            response = await self._client.post(url, json=payload)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            logger.warning("Request timeout after %ss: %s", self.timeout, exc)
            raise RemoteUploadError(f"Request timeout after {self.timeout}s") from exc
        except httpx.HTTPStatusError as exc:
            message = _describe_status_error(exc.response)
            logger.warning("HTTP error: %s", message)
            raise RemoteUploadError(message, status_code=exc.response.status_code) from exc
        except httpx.TransportError as exc:
            logger.warning("Request failed: %s", exc)
            raise RemoteUploadError(f"Network connection error: {exc}") from exc

        try:
            return response.json()
        except ValueError as exc:
            raise RemoteUploadError("Invalid JSON in upload API response") from exc

    async def submit_chunk(self, request: ChunkSubmitRequest) -> ChunkSubmitResponse:
        data = await self._post("/upload/chunk", request.model_dump(by_alias=True))
        return _parse_response(ChunkSubmitResponse, data)

    async def submit_standard(self, request: StandardSubmitRequest) -> StandardSubmitResponse:
        data = await self._post("/upload/standard", request.model_dump(by_alias=True))
        return _parse_response(StandardSubmitResponse, data)

    async def probe(self) -> bool:
        try:
            response = await self._client.head(self._url("/health"), timeout=5.0)
        except httpx.HTTPError as exc:
            logger.debug("Health probe failed: %s", exc)
            return False
        return response.status_code < 500


def _describe_status_error(response: httpx.Response) -> str:
    detail: Any = None
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        detail = body.get("detail") or body.get("message")
    if detail is None:
        detail = response.text[:200]
    return f"{response.status_code} {response.reason_phrase}: {detail}"


def _parse_response(model: type[ResponseModel], data: Any) -> ResponseModel:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        logger.warning("Unexpected upload API response: %s", exc)
        raise RemoteUploadError("Invalid upload API response") from exc
