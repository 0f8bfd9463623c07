"""
Object store backend (S3 and S3-compatible services).

Each document is one JSON object ``{"content": <base64>, "metadata": <record>}``
stored under ``{prefix}{file_id}``. Preferred backend; the orchestrator falls
back to the relational backend when this one fails on upload.
"""

from __future__ import annotations

import base64
import json
import logging
from typing import Any, AsyncIterator, Optional

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError

from ...exceptions import BackendError, DocumentNotFoundError
from ..base import StorageBackend
from ..types import BackendKind, StoredDocument

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}


def _is_not_found(exc: ClientError) -> bool:
    return str(exc.response.get("Error", {}).get("Code")) in _NOT_FOUND_CODES


class ObjectStoreBackend(StorageBackend):
    kind = BackendKind.OBJECT_STORE

    def __init__(
        self,
        bucket: str,
        *,
        prefix: str = "",
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        session: Optional[Any] = None,
    ):
        """
        Args:
            bucket: Target bucket name
            prefix: Key prefix for every document object
            region: AWS region (None -> SDK default chain)
            endpoint_url: Custom endpoint for MinIO/LocalStack style services
            access_key: Explicit access key (None -> SDK credential chain)
            secret_key: Explicit secret key
            session: Pre-built ``aioboto3.Session`` (or compatible object)
        """
        if not bucket:
            raise ValueError("Object store backend requires a bucket name")
        self.bucket = bucket
        self.prefix = prefix
        self._session = session or aioboto3.Session()
        self._client_kwargs: dict[str, Any] = {
            k: v
            for k, v in {
                "region_name": region,
                "endpoint_url": endpoint_url,
                "aws_access_key_id": access_key,
                "aws_secret_access_key": secret_key,
            }.items()
            if v is not None
        }

    def _key(self, file_id: str) -> str:
        return f"{self.prefix}{file_id}"

    def _client(self):
        return self._session.client("s3", **self._client_kwargs)

    def _fail(self, op: str, file_id: str | None, exc: Exception) -> BackendError:
        logger.warning(
            f"Object store {op} failed: {type(exc).__name__}: {exc}",
            extra={"file_id": file_id, "backend": self.name, "operation": op},
        )
        return BackendError(f"Object store {op} failed: {exc}", backend=self.name, file_id=file_id)

    @staticmethod
    def _encode(payload: bytes, metadata: StoredDocument) -> bytes:
        body = {
            "content": base64.b64encode(payload).decode("ascii"),
            "metadata": metadata.to_record(),
        }
        return json.dumps(body, separators=(",", ":")).encode("utf-8")

    @staticmethod
    def _decode(raw: bytes) -> tuple[bytes, StoredDocument]:
        body = json.loads(raw)
        return base64.b64decode(body["content"], validate=True), StoredDocument.from_record(body["metadata"])

    async def put(self, file_id: str, payload: bytes, metadata: StoredDocument) -> None:
        try:
            async with self._client() as s3:
                await s3.put_object(
                    Bucket=self.bucket,
                    Key=self._key(file_id),
                    Body=self._encode(payload, metadata),
                    ContentType="application/json",
                )
        except (BotoCoreError, ClientError) as exc:
            raise self._fail("put", file_id, exc) from exc

    async def _read(self, s3, key: str) -> bytes:
        response = await s3.get_object(Bucket=self.bucket, Key=key)
        return await response["Body"].read()

    async def get(self, file_id: str) -> tuple[bytes, StoredDocument]:
        try:
            async with self._client() as s3:
                raw = await self._read(s3, self._key(file_id))
        except ClientError as exc:
            if _is_not_found(exc):
                raise DocumentNotFoundError(f"No object stored for {file_id}", file_id=file_id) from exc
            raise self._fail("get", file_id, exc) from exc
        except BotoCoreError as exc:
            raise self._fail("get", file_id, exc) from exc
        try:
            return self._decode(raw)
        except (ValueError, KeyError) as exc:
            raise self._fail("decode", file_id, exc) from exc

    async def delete(self, file_id: str) -> None:
        key = self._key(file_id)
        try:
            async with self._client() as s3:
                # S3 deletes are idempotent; check with a HEAD first so a missing id is reported.
                await s3.head_object(Bucket=self.bucket, Key=key)
                await s3.delete_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if _is_not_found(exc):
                raise DocumentNotFoundError(f"No object stored for {file_id}", file_id=file_id) from exc
            raise self._fail("delete", file_id, exc) from exc
        except BotoCoreError as exc:
            raise self._fail("delete", file_id, exc) from exc

    async def iter_documents(self) -> AsyncIterator[tuple[str, StoredDocument]]:
        try:
            async with self._client() as s3:
                paginator = s3.get_paginator("list_objects_v2")
                async for page in paginator.paginate(Bucket=self.bucket, Prefix=self.prefix):
                    for obj in page.get("Contents", []):
                        key = obj["Key"]
                        file_id = key[len(self.prefix):]
                        try:
                            _, metadata = self._decode(await self._read(s3, key))
                        except (ValueError, KeyError) as exc:
                            logger.warning(
                                f"Skipping unreadable object {key}: {exc}",
                                extra={"file_id": file_id, "backend": self.name, "operation": "list"},
                            )
                            continue
                        yield file_id, metadata
        except (BotoCoreError, ClientError) as exc:
            raise self._fail("list", None, exc) from exc


__all__ = ["ObjectStoreBackend"]
