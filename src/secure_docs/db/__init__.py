from .base import Base
from .engine import DBEngine
from .models import DocumentPayloadRow, StoredDocumentRow
from .repository import MetadataRepository, UsageStats

__all__ = [
    "Base",
    "DBEngine",
    "StoredDocumentRow",
    "DocumentPayloadRow",
    "MetadataRepository",
    "UsageStats",
]
