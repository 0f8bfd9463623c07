"""
Storage backend implementations.

``object_store`` is the preferred backend; ``relational`` is the durable fallback.
"""

from .object_store import ObjectStoreBackend
from .relational import RelationalBackend

__all__ = ["ObjectStoreBackend", "RelationalBackend"]
