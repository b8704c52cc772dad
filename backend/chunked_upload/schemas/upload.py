from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChunkSubmitRequest(CamelModel):
    credential: str
    chunk_id: str
    chunk_index: int = Field(ge=0)
    total_chunks: int = Field(gt=0)
    data: str = ""
    file_name: str = Field(min_length=1, max_length=255)
    file_type: str = Field(min_length=1)
    session_id: str = Field(min_length=1, max_length=128)


class ChunkSubmitResponse(CamelModel):
    complete: bool
    session_id: str | None = None
    file_path: str | None = None
    received_chunks: int | None = None
    total_chunks: int | None = None
    message: str | None = None


class StandardSubmitRequest(CamelModel):
    credential: str
    file_name: str = Field(min_length=1, max_length=255)
    file_content: str = ""
    file_type: str = Field(min_length=1)


class ImageDimensions(CamelModel):
    width: int
    height: int


class UploadMetadata(CamelModel):
    original_size: int
    processed_size: int
    processing_time: int
    dimensions: ImageDimensions | None = None
    variants: List[str] | None = None
    warnings: List[str] | None = None


class StandardSubmitResponse(CamelModel):
    file_path: str
    metadata: UploadMetadata | None = None


class HealthResponse(BaseModel):
    status: str
