"""
Document store orchestrator.

``DocumentStore`` is the facade used by request handlers: it validates input,
enforces the quota, encrypts, picks a backend (with failover on upload),
persists metadata, and reverses all of that on retrieval while enforcing
retention.

Example:
    >>> store = build_document_store(get_document_store_settings())
    >>> await store.init_schema()
    >>> result = await store.store(pdf_bytes, "cert.pdf", "application/pdf", "req-123", "alice@example.com")
    >>> doc = await store.retrieve(result.file_id, requester_id="admin@example.com")
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import AsyncIterator, Callable, Mapping, Optional, Sequence

from ..db.engine import DBEngine
from ..db.repository import MetadataRepository
from ..exceptions import (
    BackendError,
    DecryptionError,
    DocumentExpiredError,
    DocumentNotFoundError,
    FileTooLargeError,
    InvalidDocumentError,
    InvalidTypeError,
    StorageUnavailableError,
)
from ..security.encryption import EncryptionEngine
from ..security.file_ids import generate_file_id
from ..settings import DocumentStoreSettings
from .backends.object_store import ObjectStoreBackend
from .backends.relational import RelationalBackend
from .base import StorageBackend
from .locks import NullQuotaGuard, QuotaGuard, RedisQuotaGuard
from .quota import QuotaLedger, UsageReport
from .reconcile import DEFAULT_GRACE, BackendReconciler, ReconcileReport
from .retention import RetentionManager, SweepReport
from .types import BackendKind, RetrievedDocument, StoredDocument, StoreResult, utcnow

logger = logging.getLogger(__name__)


class DocumentStore:
    def __init__(
        self,
        *,
        repository: MetadataRepository,
        backends: Sequence[StorageBackend],
        encryption: EncryptionEngine,
        quota: QuotaLedger,
        retention: RetentionManager,
        allowed_mime_types: Sequence[str],
        max_file_size_bytes: int,
        quota_guard: Optional[QuotaGuard] = None,
        clock: Callable[[], datetime] = utcnow,
        db: Optional[DBEngine] = None,
    ):
        """
        Args:
            repository: Metadata table access
            backends: Payload backends in upload preference order
            encryption: Engine holding the configured key
            quota: Ledger used before every upload
            retention: Expiry computation and purging
            allowed_mime_types: Upload allow-list (compared lower-case)
            max_file_size_bytes: Per-file ceiling, checked before the quota
            quota_guard: Serializes quota check and persistence (default: none)
            clock: Source of "now" (UTC aware)
            db: Engine to dispose on ``close()``
        """
        if not backends:
            raise ValueError("At least one storage backend is required")
        self.repository = repository
        self.backends: list[StorageBackend] = list(backends)
        self.encryption = encryption
        self.quota = quota
        self.retention = retention
        self.allowed_mime_types = tuple(m.lower() for m in allowed_mime_types)
        self.max_file_size_bytes = max_file_size_bytes
        self.quota_guard = quota_guard or NullQuotaGuard()
        self._clock = clock
        self._db = db

    @property
    def backends_by_kind(self) -> Mapping[BackendKind, StorageBackend]:
        return {b.kind: b for b in self.backends}

    def _backend_for(self, doc: StoredDocument) -> StorageBackend:
        backend = self.backends_by_kind.get(doc.backend_kind)
        if backend is None:
            raise StorageUnavailableError(
                f"Backend {doc.backend_kind.value!r} holding {doc.file_id} is not configured",
                file_id=doc.file_id,
            )
        return backend

    # ------------------------------------------------------------------ validation

    def _validate(self, content: bytes, original_name: str, mime_type: str, owner_reference: str) -> str:
        normalized = (mime_type or "").strip().lower()
        if normalized not in self.allowed_mime_types:
            raise InvalidTypeError(mime_type, self.allowed_mime_types)
        if len(content) > self.max_file_size_bytes:
            raise FileTooLargeError(len(content), self.max_file_size_bytes)
        if not content:
            raise InvalidDocumentError("Empty file")
        if not original_name or not original_name.strip():
            raise InvalidDocumentError("original_name must not be empty")
        if not owner_reference or not owner_reference.strip():
            raise InvalidDocumentError("owner_reference must not be empty")
        return normalized

    # ---------------------------------------------------------------------- store

    async def store(
        self,
        content: bytes,
        original_name: str,
        mime_type: str,
        owner_reference: str,
        uploader_id: str,
    ) -> StoreResult:
        """
        Encrypt and persist a new document.

        Returns:
            StoreResult with the new file id, the backend used and the quota
            position after the upload (warning/critical flags are advisory).

        Raises:
            InvalidTypeError, FileTooLargeError, InvalidDocumentError: before any I/O
            QuotaExceededError: before encryption
            StorageUnavailableError: if no backend accepted the payload
        """
        mime = self._validate(content, original_name, mime_type, owner_reference)

        async with self.quota_guard.hold():
            quota_status = await self.quota.check(len(content))

            file_id = generate_file_id(uploader_id)
            ciphertext, iv = self.encryption.encrypt(content)
            now = self._clock()
            doc = StoredDocument(
                file_id=file_id,
                original_name=original_name,
                mime_type=mime,
                size_bytes=len(content),
                owner_reference=owner_reference,
                uploaded_by=uploader_id,
                uploaded_at=now,
                expires_at=self.retention.expires_at(now),
                encryption_iv=iv.hex(),
            )

            doc, backend = await self._put_with_failover(doc, ciphertext)

            try:
                await self.repository.add(doc)
            except Exception as exc:
                logger.error(
                    f"Metadata persistence failed, rolling back payload: {exc}",
                    extra={"file_id": file_id, "backend": backend.name, "operation": "store"},
                    exc_info=True,
                )
                await self._discard_payload(backend, file_id)
                raise StorageUnavailableError(f"Could not persist metadata: {exc}", file_id=file_id) from exc

        logger.info(
            f"Stored {doc.original_name} ({doc.size_bytes} bytes) until {doc.expires_at.isoformat()}",
            extra={
                "file_id": file_id,
                "backend": backend.name,
                "operation": "store",
                "owner_reference": owner_reference,
                "actor": uploader_id,
            },
        )
        if quota_status.is_critical:
            logger.warning(f"Document storage critical: {quota_status.ratio:.0%} of capacity used")
        elif quota_status.is_warning:
            logger.warning(f"Document storage high: {quota_status.ratio:.0%} of capacity used")

        return StoreResult(file_id=file_id, backend_kind=backend.kind, quota=quota_status)

    async def _put_with_failover(
        self, doc: StoredDocument, ciphertext: bytes
    ) -> tuple[StoredDocument, StorageBackend]:
        errors: list[str] = []
        for backend in self.backends:
            candidate = doc.model_copy(update={"backend_kind": backend.kind})
            try:
                await backend.put(doc.file_id, ciphertext, candidate)
            except Exception as exc:
                errors.append(f"{backend.name}: {exc}")
                logger.warning(
                    f"Backend {backend.name} rejected upload, trying next: {exc}",
                    extra={"file_id": doc.file_id, "backend": backend.name, "operation": "store"},
                )
                continue
            return candidate, backend
        raise StorageUnavailableError(
            "All storage backends failed: " + "; ".join(errors), file_id=doc.file_id
        )

    async def _discard_payload(self, backend: StorageBackend, file_id: str) -> None:
        try:
            await backend.delete(file_id)
        except (BackendError, DocumentNotFoundError) as exc:
            logger.error(
                f"Orphaned payload left in {backend.name} until the next reconcile: {exc}",
                extra={"file_id": file_id, "backend": backend.name, "operation": "store"},
            )

    # ------------------------------------------------------------------- retrieve

    async def _load_live(self, file_id: str) -> StoredDocument:
        doc = await self.repository.get(file_id)
        if doc is None:
            raise DocumentNotFoundError(f"Document not found: {file_id}", file_id=file_id)
        if self.retention.is_expired(doc):
            try:
                await self.retention.purge_document(doc, reason="expired", actor="lazy-purge")
            except StorageUnavailableError as exc:
                # metadata is kept, so the next access or sweep retries the purge
                logger.error(
                    f"Lazy purge of expired document failed: {exc}",
                    extra={"file_id": file_id, "operation": "expired"},
                )
            raise DocumentExpiredError(
                f"Document {file_id} expired on {doc.expires_at.isoformat()}",
                file_id=file_id,
            )
        return doc

    async def info(self, file_id: str) -> StoredDocument:
        """Metadata of a live document, without touching its payload."""
        return await self._load_live(file_id)

    async def retrieve(self, file_id: str, requester_id: str) -> RetrievedDocument:
        """
        Decrypt and return a stored document.

        Raises:
            DocumentNotFoundError: Unknown id (``DocumentExpiredError`` if it just expired)
            StorageUnavailableError: The recorded backend failed
            DecryptionError: Payload, IV or key mismatch
        """
        doc = await self._load_live(file_id)
        backend = self._backend_for(doc)
        try:
            payload, _ = await backend.get(file_id)
        except DocumentNotFoundError:
            logger.error(
                "Metadata present but payload missing",
                extra={"file_id": file_id, "backend": backend.name, "operation": "retrieve"},
            )
            raise
        except BackendError as exc:
            raise StorageUnavailableError(str(exc), file_id=file_id) from exc

        try:
            iv = doc.iv_bytes
        except ValueError as exc:
            raise DecryptionError(f"Stored IV is not valid hex: {exc}", file_id=file_id) from exc
        content = self.encryption.decrypt(payload, iv)
        if len(content) != doc.size_bytes:
            raise DecryptionError(
                f"Decrypted size {len(content)} does not match recorded size {doc.size_bytes}",
                file_id=file_id,
            )

        updated = await self.repository.record_download(file_id, self._clock()) or doc
        logger.info(
            f"Retrieved {doc.original_name} ({doc.size_bytes} bytes)",
            extra={"file_id": file_id, "backend": backend.name, "operation": "retrieve", "actor": requester_id},
        )
        return RetrievedDocument(content=content, metadata=updated)

    # --------------------------------------------------------------------- delete

    async def delete(self, file_id: str, requester_id: str) -> None:
        """
        Raises:
            DocumentNotFoundError: Unknown or already deleted id
            StorageUnavailableError: The recorded backend failed; metadata is kept
        """
        await self.retention.purge(file_id, reason="deleted", actor=requester_id)

    async def delete_for_owner(self, owner_reference: str, requester_id: str) -> int:
        """Delete every document attached to one business record; returns the count."""
        deleted = 0
        for doc in await self.repository.list_by_owner(owner_reference):
            try:
                await self.retention.purge_document(doc, reason="deleted", actor=requester_id)
            except DocumentNotFoundError:
                # removed concurrently
                continue
            deleted += 1
        return deleted

    # ---------------------------------------------------------------------- admin

    def iter_documents(self) -> AsyncIterator[StoredDocument]:
        return self.repository.iter_documents()

    async def list_documents(self) -> list[StoredDocument]:
        return [doc async for doc in self.repository.iter_documents()]

    async def usage(self) -> UsageReport:
        return await self.quota.report()

    async def sweep(self, *, concurrency: int = 1) -> SweepReport:
        return await self.retention.sweep(concurrency=concurrency)

    async def reconcile(
        self,
        *,
        delete_orphans: bool = False,
        restore_orphans: bool = False,
        grace: timedelta = DEFAULT_GRACE,
    ) -> ReconcileReport:
        """Cross-check backend contents against the metadata table (see ``BackendReconciler.run``)."""
        reconciler = BackendReconciler(
            self.repository,
            self.backends_by_kind,
            is_expired=self.retention.is_expired,
            clock=self._clock,
        )
        return await reconciler.run(
            delete_orphans=delete_orphans, restore_orphans=restore_orphans, grace=grace
        )

    async def init_schema(self) -> None:
        if self._db is None:
            raise RuntimeError("DocumentStore was built without a DBEngine")
        await self._db.create_schema()

    async def close(self) -> None:
        for backend in self.backends:
            await backend.close()
        await self.quota_guard.close()
        if self._db is not None:
            await self._db.dispose()


def build_document_store(
    settings: DocumentStoreSettings,
    *,
    db: Optional[DBEngine] = None,
    object_store_session=None,
    quota_guard: Optional[QuotaGuard] = None,
    clock: Callable[[], datetime] = utcnow,
) -> DocumentStore:
    """
    Wire a ``DocumentStore`` from settings.

    The object store is used first when a bucket is configured; the relational
    backend is always available as the fallback.
    """
    db = db or DBEngine(settings)
    repository = MetadataRepository(db)

    backends: list[StorageBackend] = []
    if settings.object_store_configured:
        backends.append(
            ObjectStoreBackend(
                settings.s3_bucket,
                prefix=settings.s3_prefix,
                region=settings.s3_region,
                endpoint_url=settings.s3_endpoint_url,
                access_key=settings.s3_access_key,
                secret_key=settings.s3_secret_key.get_secret_value() if settings.s3_secret_key else None,
                session=object_store_session,
            )
        )
    else:
        logger.info("No object store bucket configured; using the relational backend only")
    backends.append(RelationalBackend(db))

    if quota_guard is None and settings.quota_lock_url:
        quota_guard = RedisQuotaGuard.from_url(settings.quota_lock_url, timeout=settings.quota_lock_timeout)

    return DocumentStore(
        repository=repository,
        backends=backends,
        encryption=EncryptionEngine(settings.encryption_key.get_secret_value()),
        quota=QuotaLedger(
            repository,
            capacity_bytes=settings.quota_capacity_bytes,
            warning_threshold=settings.warning_threshold,
            critical_threshold=settings.critical_threshold,
            clock=clock,
        ),
        retention=RetentionManager(
            repository,
            {b.kind: b for b in backends},
            retention_period=settings.retention_period,
            clock=clock,
        ),
        allowed_mime_types=settings.allowed_mime_types,
        max_file_size_bytes=settings.max_file_size_bytes,
        quota_guard=quota_guard,
        clock=clock,
        db=db,
    )


__all__ = ["DocumentStore", "build_document_store"]
