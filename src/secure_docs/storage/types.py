"""Metadata model shared by the orchestrator, the backends and the metadata table.

``StoredDocument.to_record()`` / ``StoredDocument.from_record()`` define the
persisted record layout (camelCase keys). Backends keep that record next to the
encrypted payload, so the layout must stay stable field-for-field.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class BackendKind(str, Enum):
    """Where the encrypted payload of a document lives."""

    OBJECT_STORE = "object-store"
    RELATIONAL = "relational"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything stored is UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class StoredDocument(BaseModel):
    """Metadata of one stored document (never the content)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    file_id: str = Field(..., min_length=1, description="Opaque document id")
    original_name: str = Field(..., min_length=1, description="File name as uploaded")
    mime_type: str = Field(..., description="Declared MIME type")
    size_bytes: int = Field(..., ge=0, description="Plaintext size in bytes")
    owner_reference: str = Field(..., min_length=1, description="Owning business record id")
    uploaded_by: str = Field(..., description="Uploader identity (audit only)")
    uploaded_at: datetime = Field(..., description="Upload timestamp (UTC)")
    expires_at: datetime = Field(..., description="End of retention (UTC)")
    encryption_iv: str = Field(..., alias="encryptionIV", description="Hex encoded IV")
    backend_kind: Optional[BackendKind] = Field(None, description="Backend holding the payload")
    download_count: int = Field(0, ge=0)
    last_download_at: Optional[datetime] = Field(None)

    @field_validator("uploaded_at", "expires_at", "last_download_at", mode="after")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

    @property
    def iv_bytes(self) -> bytes:
        return bytes.fromhex(self.encryption_iv)

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "StoredDocument":
        return cls.model_validate(record)


@dataclass(frozen=True)
class QuotaStatus:
    """Quota position after (or before) an upload; flags are advisory."""

    usage_bytes: int
    capacity_bytes: int
    ratio: float
    is_warning: bool
    is_critical: bool
    is_full: bool

    @property
    def remaining_bytes(self) -> int:
        return max(0, self.capacity_bytes - self.usage_bytes)


@dataclass(frozen=True)
class StoreResult:
    file_id: str
    backend_kind: BackendKind
    quota: QuotaStatus


@dataclass(frozen=True)
class RetrievedDocument:
    content: bytes
    metadata: StoredDocument


__all__ = [
    "BackendKind",
    "StoredDocument",
    "QuotaStatus",
    "StoreResult",
    "RetrievedDocument",
    "utcnow",
    "as_utc",
]
