from __future__ import annotations

import os
from datetime import timedelta
from functools import lru_cache
from typing import Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MIB = 1024 * 1024
GIB = 1024 * MIB
MIN_KEY_LENGTH = 16

DEFAULT_ALLOWED_MIME_TYPES: tuple[str, ...] = (
    "application/pdf",
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/gif",
    "image/webp",
)


class DocumentStoreSettings(BaseSettings):
    """
    Document store settings.

    Env support:
      - DOCS_* variables (DOCS_ENCRYPTION_KEY, DOCS_S3_BUCKET, DOCS_RETENTION_DAYS, ...)
      - DATABASE_URL is accepted as a fallback for DOCS_DATABASE_URL.

    Instances are frozen; build one at startup and hand it to ``build_document_store``.
    """

    # encryption
    encryption_key: SecretStr = Field(...)

    # retention
    retention_days: int = Field(default=2555, gt=0)  # ~7 years

    # relational store (metadata table + fallback backend)
    database_url: Optional[str] = Field(default=None)
    db_echo: bool = Field(default=False)
    pool_size: int = Field(default=10)
    max_overflow: int = Field(default=20)
    pool_recycle: Optional[int] = Field(default=None)  # seconds; None -> sensible default
    statement_cache_size: int = Field(default=1000)

    # object store (primary backend); unset bucket disables it
    s3_bucket: Optional[str] = Field(default=None)
    s3_region: Optional[str] = Field(default=None)
    s3_endpoint_url: Optional[str] = Field(default=None)
    s3_access_key: Optional[str] = Field(default=None)
    s3_secret_key: Optional[SecretStr] = Field(default=None)
    s3_prefix: str = Field(default="medical-certificates/")

    # limits
    quota_capacity_bytes: int = Field(default=100 * GIB, gt=0)
    max_file_size_bytes: int = Field(default=10 * MIB, gt=0)
    warning_threshold: float = Field(default=0.8, gt=0, le=1)
    critical_threshold: float = Field(default=0.95, gt=0, le=1)
    allowed_mime_types: tuple[str, ...] = Field(default=DEFAULT_ALLOWED_MIME_TYPES)

    # optional cross-instance serialization of the quota check
    quota_lock_url: Optional[str] = Field(default=None)
    quota_lock_timeout: float = Field(default=10.0, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="DOCS_",
        env_file=".env",
        extra="ignore",
        frozen=True,
    )

    @field_validator("encryption_key", mode="after")
    @classmethod
    def _check_key_length(cls, value: SecretStr) -> SecretStr:
        if len(value.get_secret_value()) < MIN_KEY_LENGTH:
            raise ValueError(f"encryption_key must be at least {MIN_KEY_LENGTH} characters")
        return value

    @field_validator("allowed_mime_types", mode="after")
    @classmethod
    def _normalize_mime_types(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(v.strip().lower() for v in value if v and v.strip())

    @property
    def resolved_database_url(self) -> str:
        url = self.database_url or os.getenv("DATABASE_URL")
        if not url:
            raise ValueError(
                "DATABASE_URL or DOCS_DATABASE_URL must be set for the document store"
            )
        # normalize legacy postgres:// to SQLAlchemy async driver url
        if url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql+asyncpg://", 1)
        elif url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return url

    @property
    def object_store_configured(self) -> bool:
        return bool(self.s3_bucket)

    @property
    def retention_period(self) -> timedelta:
        return timedelta(days=self.retention_days)


@lru_cache
def get_document_store_settings(**kwargs) -> DocumentStoreSettings:
    # Only include kwargs that are not None, so defaults in DocumentStoreSettings are used
    filtered = {k: v for k, v in kwargs.items() if v is not None}
    return DocumentStoreSettings(**filtered)


__all__ = [
    "DocumentStoreSettings",
    "get_document_store_settings",
    "DEFAULT_ALLOWED_MIME_TYPES",
    "MIB",
    "GIB",
]
