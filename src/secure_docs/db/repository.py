from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import AsyncIterator, Optional, Sequence

from sqlalchemy import delete, func, select, update

from ..storage.types import BackendKind, StoredDocument
from .engine import DBEngine
from .models import StoredDocumentRow


@dataclass(frozen=True)
class UsageStats:
    total_files: int
    total_bytes: int
    average_bytes: float
    largest_bytes: int
    smallest_bytes: int


def _to_model(row: StoredDocumentRow) -> StoredDocument:
    return StoredDocument(
        file_id=row.file_id,
        original_name=row.original_name,
        mime_type=row.mime_type,
        size_bytes=row.size_bytes,
        owner_reference=row.owner_reference,
        uploaded_by=row.uploaded_by,
        uploaded_at=row.uploaded_at,
        expires_at=row.expires_at,
        encryption_iv=row.encryption_iv,
        backend_kind=BackendKind(row.backend_kind),
        download_count=row.download_count,
        last_download_at=row.last_download_at,
    )


def _to_row(doc: StoredDocument) -> StoredDocumentRow:
    if doc.backend_kind is None:
        raise ValueError("backend_kind must be set before metadata is persisted")
    return StoredDocumentRow(
        file_id=doc.file_id,
        original_name=doc.original_name,
        mime_type=doc.mime_type,
        size_bytes=doc.size_bytes,
        owner_reference=doc.owner_reference,
        uploaded_by=doc.uploaded_by,
        uploaded_at=doc.uploaded_at,
        expires_at=doc.expires_at,
        encryption_iv=doc.encryption_iv,
        backend_kind=doc.backend_kind.value,
        download_count=doc.download_count,
        last_download_at=doc.last_download_at,
    )


class MetadataRepository:
    """Async access to the ``stored_documents`` table.

    Each method runs in its own short transaction; there is no session state
    between calls.
    """

    def __init__(self, db: DBEngine):
        self.db = db

    async def add(self, doc: StoredDocument) -> None:
        async with self.db.transaction() as session:
            session.add(_to_row(doc))

    async def get(self, file_id: str) -> Optional[StoredDocument]:
        async with self.db.session() as session:
            row = await session.get(StoredDocumentRow, file_id)
            return _to_model(row) if row is not None else None

    async def delete(self, file_id: str) -> bool:
        async with self.db.transaction() as session:
            res = await session.execute(
                delete(StoredDocumentRow).where(StoredDocumentRow.file_id == file_id)
            )
            return bool(res.rowcount)

    async def record_download(self, file_id: str, at: dt.datetime) -> Optional[StoredDocument]:
        async with self.db.transaction() as session:
            await session.execute(
                update(StoredDocumentRow)
                .where(StoredDocumentRow.file_id == file_id)
                .values(
                    download_count=StoredDocumentRow.download_count + 1,
                    last_download_at=at,
                )
            )
            row = await session.get(StoredDocumentRow, file_id, populate_existing=True)
            return _to_model(row) if row is not None else None

    async def iter_documents(self, *, batch_size: int = 100) -> AsyncIterator[StoredDocument]:
        """Yield every record ordered by id, one short query per batch.

        Keyset pagination keeps the iteration stable while records are deleted.
        """
        last_id: Optional[str] = None
        while True:
            stmt = select(StoredDocumentRow).order_by(StoredDocumentRow.file_id).limit(batch_size)
            if last_id is not None:
                stmt = stmt.where(StoredDocumentRow.file_id > last_id)
            async with self.db.session() as session:
                rows = (await session.execute(stmt)).scalars().all()
            if not rows:
                return
            for row in rows:
                yield _to_model(row)
            last_id = rows[-1].file_id
            if len(rows) < batch_size:
                return

    async def list_by_owner(self, owner_reference: str) -> Sequence[StoredDocument]:
        stmt = (
            select(StoredDocumentRow)
            .where(StoredDocumentRow.owner_reference == owner_reference)
            .order_by(StoredDocumentRow.uploaded_at)
        )
        async with self.db.session() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [_to_model(r) for r in rows]

    async def active_usage_bytes(self, now: dt.datetime) -> int:
        stmt = select(func.coalesce(func.sum(StoredDocumentRow.size_bytes), 0)).where(
            StoredDocumentRow.expires_at >= now
        )
        async with self.db.session() as session:
            return int((await session.execute(stmt)).scalar_one())

    async def usage_stats(self, now: dt.datetime) -> UsageStats:
        stmt = select(
            func.count(),
            func.coalesce(func.sum(StoredDocumentRow.size_bytes), 0),
            func.avg(StoredDocumentRow.size_bytes),
            func.max(StoredDocumentRow.size_bytes),
            func.min(StoredDocumentRow.size_bytes),
        ).where(StoredDocumentRow.expires_at >= now)
        async with self.db.session() as session:
            count, total, avg, largest, smallest = (await session.execute(stmt)).one()
        return UsageStats(
            total_files=int(count or 0),
            total_bytes=int(total or 0),
            average_bytes=float(avg or 0),
            largest_bytes=int(largest or 0),
            smallest_bytes=int(smallest or 0),
        )


__all__ = ["MetadataRepository", "UsageStats"]
