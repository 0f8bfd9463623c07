"""
Storage backend interface.

A backend persists one encrypted payload plus its metadata record per file id.
It never sees plaintext and never decides failover; the orchestrator does that.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncIterator

from .types import BackendKind, StoredDocument


class StorageBackend(ABC):
    """
    Abstract base class for payload backends.

    Implementations raise ``DocumentNotFoundError`` for unknown ids and
    ``BackendError`` for any failure of the underlying store.
    """

    kind: BackendKind

    @property
    def name(self) -> str:
        return self.kind.value

    @abstractmethod
    async def put(self, file_id: str, payload: bytes, metadata: StoredDocument) -> None:
        """
        Persist an encrypted payload and its metadata under ``file_id``.

        Raises:
            BackendError: If the store rejects or cannot be reached.
        """

    @abstractmethod
    async def get(self, file_id: str) -> tuple[bytes, StoredDocument]:
        """
        Load the encrypted payload and the metadata stored alongside it.

        Raises:
            DocumentNotFoundError: If nothing is stored under ``file_id``.
            BackendError: On any other failure.
        """

    @abstractmethod
    async def delete(self, file_id: str) -> None:
        """
        Remove the payload stored under ``file_id``.

        Raises:
            DocumentNotFoundError: If nothing is stored under ``file_id``.
            BackendError: On any other failure.
        """

    @abstractmethod
    def iter_documents(self) -> AsyncIterator[tuple[str, StoredDocument]]:
        """Lazily enumerate ``(file_id, metadata)`` pairs for admin listing and cleanup."""

    async def close(self) -> None:
        """Release client resources; no-op by default."""
        return None


__all__ = ["StorageBackend"]
