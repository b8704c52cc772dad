from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MB = 1024 * 1024


class Settings(BaseSettings):
    project_name: str = "Chunked Upload"
    api_prefix: str = "/api"

    database_url: str = Field(
        default="sqlite+aiosqlite:///./Storage/uploads.db",
        description="SQLAlchemy async database URL",
    )

    storage_root: Path = Field(
        default=Path(__file__).resolve().parents[3] / "Storage",
        description="Base directory for assembled files and chunk parts",
    )
    tmp_dir_name: str = Field(default="uploads/tmp")
    files_dir_name: str = Field(default="files")

    max_chunk_size: int = Field(default=8 * MB, ge=1)
    max_standard_upload_size: int = Field(default=25 * MB, ge=1)
    max_total_chunks: int = Field(default=1000, ge=1)
    allowed_content_types: List[str] = Field(default_factory=lambda: ["image/"])
    large_file_warning_size: int = Field(default=10 * MB, ge=1)

    session_ttl_minutes: int = Field(default=30, ge=1)
    session_cleanup_minutes: int = Field(default=30, ge=1)

    jwt_secret: str = Field(default="change-me-please", min_length=10)
    jwt_algorithm: str = Field(default="HS256")
    credential_expire_minutes: int = Field(default=60, ge=1)

    cors_allowed_origins: List[str] = Field(default_factory=lambda: ["*"])

    client_base_url: str = Field(default="http://localhost:8000", description="Upload API origin used by the client")
    client_timeout_seconds: float = Field(default=300.0, gt=0)
    client_probe_interval_seconds: float = Field(default=30.0, gt=0)

    client_max_file_size: int = Field(default=200 * MB, ge=1)
    client_chunk_size: int = Field(default=2 * MB, ge=1)
    client_chunking_threshold: int = Field(default=25 * MB, ge=0)
    client_max_retries: int = Field(default=3, ge=0)
    client_auto_retry: bool = True

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)

    @field_validator("storage_root", mode="before")
    @classmethod
    def _build_storage_root(cls, value: Path | str) -> Path:
        return Path(value)

    @property
    def tmp_dir(self) -> Path:
        return self.storage_root / self.tmp_dir_name

    @property
    def files_dir(self) -> Path:
        return self.storage_root / self.files_dir_name


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()


class UploadOptions(BaseModel):
    """Per-orchestrator upload behaviour.

    Sizes are in bytes and delays in seconds. The thresholds vary between
    deployments, so every one of them is overridable here rather than fixed
    in the orchestrator.
    """

    max_file_size: int = Field(default=200 * MB, gt=0)
    chunk_size: int = Field(default=2 * MB, gt=0)
    min_chunk_size: int = Field(default=MB // 2, gt=0)
    chunking_threshold: int = Field(default=25 * MB, ge=0)
    force_chunking: bool = False

    max_retries: int = Field(default=3, ge=0)
    auto_retry: bool = True
    retry_base_delay: float = Field(default=5.0, ge=0)

    max_chunk_retries: int = Field(default=3, ge=0)
    chunk_retry_base_delay: float = Field(default=1.0, ge=0)

    connectivity_poll_interval: float = Field(default=1.0, ge=0)
    shrink_restart_delay: float = Field(default=2.0, ge=0)
    escalation_delay: float = Field(default=1.0, ge=0)

    @model_validator(mode="after")
    def _check_chunk_floor(self) -> "UploadOptions":
        if self.min_chunk_size > self.chunk_size:
            raise ValueError("min_chunk_size cannot exceed chunk_size")
        return self

    @classmethod
    def from_settings(cls, source: Settings | None = None, **overrides) -> "UploadOptions":
        source = source or get_settings()
        values = {
            "max_file_size": source.client_max_file_size,
            "chunk_size": source.client_chunk_size,
            "chunking_threshold": source.client_chunking_threshold,
            "max_retries": source.client_max_retries,
            "auto_retry": source.client_auto_retry,
        }
        values.update(overrides)
        return cls(**values)
