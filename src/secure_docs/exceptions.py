from __future__ import annotations


class SecureDocsError(Exception):
    """Base class for every error raised by the document store.

    ``code`` is a stable machine-readable identifier and ``status_code`` the
    HTTP status a transport layer should answer with.
    """

    code: str = "SECURE_DOCS_ERROR"
    status_code: int = 500
    title: str = "Document Store Error"

    def __init__(self, message: str | None = None, *, file_id: str | None = None):
        super().__init__(message or self.title)
        self.file_id = file_id


class InvalidDocumentError(SecureDocsError):
    code = "INVALID_DOCUMENT"
    status_code = 422
    title = "Invalid Document"


class InvalidTypeError(InvalidDocumentError):
    code = "INVALID_TYPE"
    status_code = 415
    title = "Unsupported Media Type"

    def __init__(self, mime_type: str, allowed: tuple[str, ...] | list[str] = ()):
        allowed_txt = ", ".join(allowed) if allowed else "none"
        super().__init__(f"Invalid file type: {mime_type!r}. Allowed types: {allowed_txt}")
        self.mime_type = mime_type
        self.allowed = tuple(allowed)


class FileTooLargeError(InvalidDocumentError):
    code = "FILE_TOO_LARGE"
    status_code = 413
    title = "Payload Too Large"

    def __init__(self, size: int, limit: int):
        super().__init__(f"File size {size} bytes exceeds the {limit} bytes limit")
        self.size = size
        self.limit = limit


class QuotaExceededError(SecureDocsError):
    code = "QUOTA_EXCEEDED"
    status_code = 507
    title = "Insufficient Storage"

    def __init__(self, usage: int, requested: int, capacity: int):
        super().__init__(
            f"Upload rejected: {requested} bytes on top of {usage} bytes "
            f"would exceed the storage capacity of {capacity} bytes"
        )
        self.usage = usage
        self.requested = requested
        self.capacity = capacity


class StorageUnavailableError(SecureDocsError):
    code = "STORAGE_UNAVAILABLE"
    status_code = 503
    title = "Storage Unavailable"


class DocumentNotFoundError(SecureDocsError):
    code = "NOT_FOUND"
    status_code = 404
    title = "Document Not Found"


class DocumentExpiredError(DocumentNotFoundError):
    """The record existed but was past its retention period and has been purged."""

    code = "EXPIRED"
    title = "Document Expired"


class DecryptionError(SecureDocsError):
    code = "DECRYPTION_FAILED"
    status_code = 500
    title = "Decryption Failed"


class BackendError(SecureDocsError):
    """Raised by a storage backend when the underlying store fails.

    The orchestrator turns these into failover (on put) or into
    ``StorageUnavailableError`` (on get/delete).
    """

    code = "BACKEND_ERROR"
    status_code = 503
    title = "Storage Backend Error"

    def __init__(self, message: str, *, backend: str, file_id: str | None = None):
        super().__init__(message, file_id=file_id)
        self.backend = backend


__all__ = [
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
