"""
Backend reconciliation.

Compares what each payload backend holds with the ``stored_documents`` table:

- an *orphaned payload* sits in a backend with no metadata row naming that
  backend (a failed rollback, or a copy left behind by an interrupted purge)
- a *missing payload* is a metadata row whose recorded backend has no object

Orphans can be restored from the record kept next to the payload, or deleted.
Missing payloads are only reported; there is nothing left to rebuild them from.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Mapping

from ..db.repository import MetadataRepository
from ..exceptions import BackendError, DocumentNotFoundError
from .base import StorageBackend
from .types import BackendKind, StoredDocument, utcnow

logger = logging.getLogger(__name__)

# Uploads write the payload before the metadata row; give them time to finish.
DEFAULT_GRACE = timedelta(minutes=10)


@dataclass
class ReconcileReport:
    scanned_payloads: int = 0
    recent: int = 0
    orphaned: list[tuple[BackendKind, str]] = field(default_factory=list)
    restored: list[str] = field(default_factory=list)
    deleted: list[tuple[BackendKind, str]] = field(default_factory=list)
    missing_payloads: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    unreachable_backends: list[BackendKind] = field(default_factory=list)

    @property
    def unresolved_orphans(self) -> list[tuple[BackendKind, str]]:
        resolved = set(self.deleted) | {(kind, fid) for kind, fid in self.orphaned if fid in self.restored}
        return [o for o in self.orphaned if o not in resolved]

    @property
    def is_consistent(self) -> bool:
        return not (
            self.unresolved_orphans or self.missing_payloads or self.failed or self.unreachable_backends
        )


class BackendReconciler:
    def __init__(
        self,
        repository: MetadataRepository,
        backends: Mapping[BackendKind, StorageBackend],
        *,
        is_expired: Callable[[StoredDocument], bool],
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repository = repository
        self.backends = backends
        self._is_expired = is_expired
        self._clock = clock

    async def run(
        self,
        *,
        delete_orphans: bool = False,
        restore_orphans: bool = False,
        grace: timedelta = DEFAULT_GRACE,
    ) -> ReconcileReport:
        """
        Walk every backend and the metadata table once.

        ``restore_orphans`` re-creates the metadata row of a live orphan from
        its stored record; expired orphans are never restored.
        ``delete_orphans`` removes orphaned payloads. Payloads younger than
        ``grace`` are counted as ``recent`` and left alone.
        """
        if delete_orphans and restore_orphans:
            raise ValueError("delete_orphans and restore_orphans are mutually exclusive")

        report = ReconcileReport()
        recorded: dict[str, BackendKind] = {
            doc.file_id: doc.backend_kind async for doc in self.repository.iter_documents()
        }
        seen: dict[BackendKind, set[str]] = {}
        cutoff = self._clock() - grace

        for kind, backend in self.backends.items():
            present: set[str] = set()
            try:
                async for file_id, metadata in backend.iter_documents():
                    report.scanned_payloads += 1
                    present.add(file_id)
                    if recorded.get(file_id) == kind:
                        continue
                    if metadata.uploaded_at > cutoff:
                        report.recent += 1
                        continue
                    report.orphaned.append((kind, file_id))
                    logger.warning(
                        "Orphaned payload without metadata",
                        extra={"file_id": file_id, "backend": backend.name, "operation": "reconcile"},
                    )
                    if restore_orphans and file_id not in recorded and not self._is_expired(metadata):
                        await self._restore(kind, file_id, metadata)
                        recorded[file_id] = kind
                        report.restored.append(file_id)
                    elif delete_orphans:
                        await self._delete(backend, file_id, report)
            except BackendError as exc:
                logger.error(
                    f"Could not list {backend.name} backend: {exc}",
                    extra={"backend": backend.name, "operation": "reconcile"},
                )
                report.unreachable_backends.append(kind)
                continue
            seen[kind] = present

        for file_id, kind in recorded.items():
            if kind in seen and file_id not in seen[kind]:
                report.missing_payloads.append(file_id)
                logger.error(
                    "Metadata present but payload missing",
                    extra={"file_id": file_id, "backend": kind.value, "operation": "reconcile"},
                )

        logger.info(
            f"Reconcile done: scanned={report.scanned_payloads} orphaned={len(report.orphaned)} "
            f"restored={len(report.restored)} deleted={len(report.deleted)} "
            f"missing={len(report.missing_payloads)} failed={len(report.failed)}",
            extra={"operation": "reconcile"},
        )
        return report

    async def _restore(self, kind: BackendKind, file_id: str, metadata: StoredDocument) -> None:
        doc = metadata.model_copy(update={"file_id": file_id, "backend_kind": kind})
        await self.repository.add(doc)
        logger.info(
            f"Restored metadata for {doc.original_name} ({doc.size_bytes} bytes)",
            extra={
                "file_id": file_id,
                "backend": kind.value,
                "operation": "reconcile",
                "owner_reference": doc.owner_reference,
            },
        )

    async def _delete(self, backend: StorageBackend, file_id: str, report: ReconcileReport) -> None:
        try:
            await backend.delete(file_id)
        except DocumentNotFoundError:
            pass  # already gone
        except BackendError as exc:
            logger.error(
                f"Could not delete orphaned payload: {exc}",
                extra={"file_id": file_id, "backend": backend.name, "operation": "reconcile"},
            )
            report.failed.append(file_id)
            return
        report.deleted.append((backend.kind, file_id))


__all__ = ["BackendReconciler", "ReconcileReport", "DEFAULT_GRACE"]
