from __future__ import annotations

import datetime as dt
from typing import Any, Optional

from sqlalchemy import JSON, BigInteger, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, CreatedAtMixin


class StoredDocumentRow(Base):
    """Authoritative metadata for every stored document, whatever its backend."""

    __tablename__ = "stored_documents"

    file_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    original_name: Mapped[str] = mapped_column(String(255), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)
    owner_reference: Mapped[str] = mapped_column(String(255), nullable=False)
    uploaded_by: Mapped[str] = mapped_column(String(255), nullable=False)
    uploaded_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    encryption_iv: Mapped[str] = mapped_column(String(64), nullable=False)
    backend_kind: Mapped[str] = mapped_column(String(32), nullable=False)
    download_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_download_at: Mapped[Optional[dt.datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        Index("ix_stored_documents_owner_reference", "owner_reference"),
        Index("ix_stored_documents_expires_at", "expires_at"),
    )


class DocumentPayloadRow(CreatedAtMixin, Base):
    """Encrypted payloads held by the relational backend.

    The payload is base64 text; the metadata record is kept in sibling columns
    so a row is self-describing without the metadata table.
    """

    __tablename__ = "document_payloads"

    file_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    encoded_payload: Mapped[str] = mapped_column(Text, nullable=False)
    original_name: Mapped[str] = mapped_column(String(255), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)
    record: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
