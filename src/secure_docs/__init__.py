from .exceptions import (
    BackendError,
    DecryptionError,
    DocumentExpiredError,
    DocumentNotFoundError,
    FileTooLargeError,
    InvalidDocumentError,
    InvalidTypeError,
    QuotaExceededError,
    SecureDocsError,
    StorageUnavailableError,
)
from .settings import DocumentStoreSettings, get_document_store_settings
from .storage import (
    BackendKind,
    DocumentStore,
    QuotaStatus,
    RetrievedDocument,
    StoredDocument,
    StoreResult,
    build_document_store,
)

__version__ = "0.1.0"

__all__ = [
    # Orchestrator
    "DocumentStore",
    "build_document_store",
    # Settings
    "DocumentStoreSettings",
    "get_document_store_settings",
    # Models
    "BackendKind",
    "StoredDocument",
    "QuotaStatus",
    "StoreResult",
    "RetrievedDocument",
    # Errors
    "SecureDocsError",
    "InvalidDocumentError",
    "InvalidTypeError",
    "FileTooLargeError",
    "QuotaExceededError",
    "StorageUnavailableError",
    "DocumentNotFoundError",
    "DocumentExpiredError",
    "DecryptionError",
    "BackendError",
]
