from .types import BackendKind, QuotaStatus, RetrievedDocument, StoredDocument, StoreResult
from .base import StorageBackend
from .backends import ObjectStoreBackend, RelationalBackend
from .locks import NullQuotaGuard, QuotaGuard, RedisQuotaGuard
from .quota import QuotaLedger, UsageReport, format_file_size
from .retention import RetentionManager, SweepReport
from .reconcile import BackendReconciler, ReconcileReport
from .service import DocumentStore, build_document_store

__all__ = [
    "BackendKind",
    "StoredDocument",
    "QuotaStatus",
    "StoreResult",
    "RetrievedDocument",
    "StorageBackend",
    "ObjectStoreBackend",
    "RelationalBackend",
    "QuotaGuard",
    "NullQuotaGuard",
    "RedisQuotaGuard",
    "QuotaLedger",
    "UsageReport",
    "format_file_size",
    "RetentionManager",
    "SweepReport",
    "BackendReconciler",
    "ReconcileReport",
    "DocumentStore",
    "build_document_store",
]
