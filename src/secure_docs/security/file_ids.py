from __future__ import annotations

import hashlib
import secrets
import time

FILE_ID_LENGTH = 32


def generate_file_id(uploader_id: str, timestamp_ms: int | None = None) -> str:
    """Opaque, fixed-length id for a new document.

    The random nonce keeps ids unguessable even when the uploader and the
    upload time are known.
    """
    ts = int(time.time() * 1000) if timestamp_ms is None else int(timestamp_ms)
    nonce = secrets.token_hex(16)
    digest = hashlib.sha256(f"{uploader_id}-{ts}-{nonce}".encode("utf-8")).hexdigest()
    return digest[:FILE_ID_LENGTH]


__all__ = ["generate_file_id", "FILE_ID_LENGTH"]
