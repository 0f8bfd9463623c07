"""
Relational storage backend.

Keeps the encrypted payload base64-encoded in ``document_payloads`` with the
metadata record in sibling columns. Used when the object store is missing or
failing at upload time.
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import AsyncIterator

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from ...db.engine import DBEngine
from ...db.models import DocumentPayloadRow
from ...exceptions import BackendError, DocumentNotFoundError
from ..base import StorageBackend
from ..types import BackendKind, StoredDocument

logger = logging.getLogger(__name__)


class RelationalBackend(StorageBackend):
    kind = BackendKind.RELATIONAL

    def __init__(self, db: DBEngine, *, batch_size: int = 100):
        self.db = db
        self.batch_size = batch_size

    def _fail(self, op: str, file_id: str | None, exc: Exception) -> BackendError:
        logger.warning(
            f"Relational backend {op} failed: {type(exc).__name__}: {exc}",
            extra={"file_id": file_id, "backend": self.name, "operation": op},
        )
        return BackendError(f"Relational {op} failed: {exc}", backend=self.name, file_id=file_id)

    async def put(self, file_id: str, payload: bytes, metadata: StoredDocument) -> None:
        row = DocumentPayloadRow(
            file_id=file_id,
            encoded_payload=base64.b64encode(payload).decode("ascii"),
            original_name=metadata.original_name,
            mime_type=metadata.mime_type,
            size_bytes=metadata.size_bytes,
            record=metadata.to_record(),
        )
        try:
            async with self.db.transaction() as session:
                session.add(row)
        except SQLAlchemyError as exc:
            raise self._fail("put", file_id, exc) from exc

    async def get(self, file_id: str) -> tuple[bytes, StoredDocument]:
        try:
            async with self.db.session() as session:
                row = await session.get(DocumentPayloadRow, file_id)
        except SQLAlchemyError as exc:
            raise self._fail("get", file_id, exc) from exc
        if row is None:
            raise DocumentNotFoundError(f"No payload stored for {file_id}", file_id=file_id)
        try:
            payload = base64.b64decode(row.encoded_payload, validate=True)
        except binascii.Error as exc:
            raise self._fail("decode", file_id, exc) from exc
        return payload, StoredDocument.from_record(row.record)

    async def delete(self, file_id: str) -> None:
        try:
            async with self.db.transaction() as session:
                res = await session.execute(
                    delete(DocumentPayloadRow).where(DocumentPayloadRow.file_id == file_id)
                )
        except SQLAlchemyError as exc:
            raise self._fail("delete", file_id, exc) from exc
        if not res.rowcount:
            raise DocumentNotFoundError(f"No payload stored for {file_id}", file_id=file_id)

    async def iter_documents(self) -> AsyncIterator[tuple[str, StoredDocument]]:
        last_id: str | None = None
        while True:
            # Only the metadata columns; payloads can be large.
            stmt = (
                select(DocumentPayloadRow.file_id, DocumentPayloadRow.record)
                .order_by(DocumentPayloadRow.file_id)
                .limit(self.batch_size)
            )
            if last_id is not None:
                stmt = stmt.where(DocumentPayloadRow.file_id > last_id)
            try:
                async with self.db.session() as session:
                    rows = (await session.execute(stmt)).all()
            except SQLAlchemyError as exc:
                raise self._fail("list", None, exc) from exc
            for file_id, record in rows:
                yield file_id, StoredDocument.from_record(record)
            if len(rows) < self.batch_size:
                return
            last_id = rows[-1][0]


__all__ = ["RelationalBackend"]
