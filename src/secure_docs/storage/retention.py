from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Mapping

from ..db.repository import MetadataRepository
from ..exceptions import BackendError, DocumentNotFoundError, StorageUnavailableError
from .base import StorageBackend
from .types import BackendKind, StoredDocument, utcnow

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    scanned: int = 0
    purged: int = 0
    failed: list[str] = field(default_factory=list)


class RetentionManager:
    """Expiry computation and purging of stored documents.

    ``purge`` removes the payload from its recorded backend first and the
    metadata record last, so a failed purge can simply be retried.
    """

    def __init__(
        self,
        repository: MetadataRepository,
        backends: Mapping[BackendKind, StorageBackend],
        *,
        retention_period: timedelta,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repository = repository
        self.backends = backends
        self.retention_period = retention_period
        self._clock = clock

    def expires_at(self, uploaded_at: datetime) -> datetime:
        return uploaded_at + self.retention_period

    def is_expired(self, doc: StoredDocument) -> bool:
        return self._clock() > doc.expires_at

    async def purge(self, file_id: str, *, reason: str = "expired", actor: str = "system") -> StoredDocument:
        """
        Remove a document's payload and metadata.

        Raises:
            DocumentNotFoundError: If no metadata exists for ``file_id``.
            StorageUnavailableError: If the recorded backend cannot delete the payload.
        """
        doc = await self.repository.get(file_id)
        if doc is None:
            raise DocumentNotFoundError(f"Document not found: {file_id}", file_id=file_id)
        await self.purge_document(doc, reason=reason, actor=actor)
        return doc

    async def purge_document(self, doc: StoredDocument, *, reason: str, actor: str) -> None:
        ctx = {"file_id": doc.file_id, "backend": doc.backend_kind.value, "actor": actor}
        backend = self.backends.get(doc.backend_kind)
        if backend is None:
            raise StorageUnavailableError(
                f"Backend {doc.backend_kind.value!r} is not configured", file_id=doc.file_id
            )
        try:
            await backend.delete(doc.file_id)
        except DocumentNotFoundError:
            logger.warning(
                "Payload already missing, removing metadata only",
                extra={**ctx, "operation": reason},
            )
        except BackendError as exc:
            raise StorageUnavailableError(str(exc), file_id=doc.file_id) from exc

        if not await self.repository.delete(doc.file_id):
            raise DocumentNotFoundError(f"Document not found: {doc.file_id}", file_id=doc.file_id)
        logger.info(
            f"Document {reason}: {doc.original_name} ({doc.size_bytes} bytes, "
            f"uploaded {doc.uploaded_at.isoformat()} by {doc.uploaded_by})",
            extra={**ctx, "operation": reason, "owner_reference": doc.owner_reference},
        )

    async def sweep(self, *, concurrency: int = 1) -> SweepReport:
        """
        Purge every expired document.

        Backend failures are collected in ``SweepReport.failed``. Any other
        error (the metadata store going away) is raised once every started
        purge has finished.
        """
        report = SweepReport()
        sem = asyncio.Semaphore(max(1, concurrency))
        tasks: list[asyncio.Task] = []

        async def _purge(doc: StoredDocument) -> None:
            async with sem:
                try:
                    await self.purge_document(doc, reason="expired", actor="retention-sweep")
                except (StorageUnavailableError, DocumentNotFoundError) as exc:
                    logger.error(
                        f"Sweep could not purge {doc.file_id}: {exc}",
                        extra={"file_id": doc.file_id, "operation": "sweep"},
                    )
                    report.failed.append(doc.file_id)
                else:
                    report.purged += 1

        try:
            async for doc in self.repository.iter_documents():
                report.scanned += 1
                if not self.is_expired(doc):
                    continue
                if concurrency <= 1:
                    await _purge(doc)
                    continue
                tasks.append(asyncio.create_task(_purge(doc)))
                running = [t for t in tasks if not t.done()]
                if len(running) >= concurrency * 2:
                    await asyncio.wait(running, return_when=asyncio.FIRST_COMPLETED)
        finally:
            outcomes = await asyncio.gather(*tasks, return_exceptions=True)

        errors = [o for o in outcomes if isinstance(o, BaseException)]
        if errors:
            logger.error(
                f"Retention sweep aborted after {len(errors)} unexpected error(s): "
                f"purged={report.purged} failed={len(report.failed)}",
                extra={"operation": "sweep"},
            )
            raise errors[0]

        logger.info(
            f"Retention sweep done: scanned={report.scanned} purged={report.purged} "
            f"failed={len(report.failed)}",
            extra={"operation": "sweep"},
        )
        return report


__all__ = ["RetentionManager", "SweepReport"]
