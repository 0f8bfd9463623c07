"""
Root conftest.py for secure-docs tests.

This file provides:
1. Common pytest markers for test categorization
2. Shared fixtures: settings, an in-memory database, a controllable clock
3. A fake aioboto3 session so the object store backend runs without AWS

Fixtures are organized by category:
- Settings and database fixtures
- Object store fixtures
- Document store fixtures
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

import pytest
import pytest_asyncio
from botocore.exceptions import ClientError, EndpointConnectionError

from secure_docs.db.engine import DBEngine
from secure_docs.db.repository import MetadataRepository
from secure_docs.exceptions import BackendError, DocumentNotFoundError
from secure_docs.settings import DocumentStoreSettings
from secure_docs.storage.base import StorageBackend
from secure_docs.storage.service import build_document_store
from secure_docs.storage.types import BackendKind, StoredDocument

TEST_KEY = "unit-test-encryption-key-0123456789"
MEMORY_DB = "sqlite+aiosqlite:///:memory:"
T0 = datetime(2024, 1, 15, 9, 30, tzinfo=timezone.utc)


# =============================================================================
# PYTEST CONFIGURATION
# =============================================================================


def pytest_collection_modifyitems(config, items):
    """Tag tests by folder so `-m storage`, `-m security`, `-m acceptance` select them."""
    for item in items:
        norm = str(item.fspath).replace("\\", "/")
        if "/tests/unit/storage/" in norm:
            item.add_marker(pytest.mark.storage)
        if "/tests/unit/security/" in norm:
            item.add_marker(pytest.mark.security)
        if "/tests/acceptance/" in norm:
            item.add_marker(pytest.mark.acceptance)


def pytest_configure(config):
    # Ensure custom markers are registered even if pyproject.toml isn't picked up in some contexts
    for name, desc in [
        ("storage", "Storage backends, quota and retention"),
        ("security", "Encryption and identifier tests"),
        ("acceptance", "End-to-end document store scenarios"),
    ]:
        config.addinivalue_line("markers", f"{name}: {desc}")


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    """Keep developer DOCS_* / DATABASE_URL variables out of the tests."""
    import os

    for key in list(os.environ):
        if key.startswith("DOCS_") or key == "DATABASE_URL":
            monkeypatch.delenv(key, raising=False)


# =============================================================================
# SETTINGS / DATABASE
# =============================================================================


@pytest.fixture
def make_settings() -> Callable[..., DocumentStoreSettings]:
    """Factory for settings with a test key and an in-memory database."""

    def _make(**overrides: Any) -> DocumentStoreSettings:
        values: Dict[str, Any] = {"encryption_key": TEST_KEY, "database_url": MEMORY_DB}
        values.update(overrides)
        return DocumentStoreSettings(_env_file=None, **values)

    return _make


@pytest.fixture
def settings(make_settings) -> DocumentStoreSettings:
    return make_settings()


@pytest_asyncio.fixture
async def db(settings):
    engine = DBEngine(settings)
    await engine.create_schema()
    yield engine
    await engine.dispose()


@pytest.fixture
def repository(db) -> MetadataRepository:
    return MetadataRepository(db)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now = self.now + timedelta(**delta)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


def make_document(
    file_id: str,
    *,
    size_bytes: int = 100,
    uploaded_at: datetime = T0,
    retention: timedelta = timedelta(days=2555),
    owner_reference: str = "req-1",
    backend_kind: Optional[BackendKind] = BackendKind.RELATIONAL,
    encryption_iv: str = "00" * 16,
) -> StoredDocument:
    return StoredDocument(
        file_id=file_id,
        original_name=f"{file_id}.pdf",
        mime_type="application/pdf",
        size_bytes=size_bytes,
        owner_reference=owner_reference,
        uploaded_by="alice@example.com",
        uploaded_at=uploaded_at,
        expires_at=uploaded_at + retention,
        encryption_iv=encryption_iv,
        backend_kind=backend_kind,
    )


# =============================================================================
# FAKE OBJECT STORE
# =============================================================================


def _client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class FakeBody:
    def __init__(self, data: bytes):
        self._data = data

    async def read(self) -> bytes:
        return self._data


class FakePaginator:
    def __init__(self, client: "FakeS3Client", page_size: int = 2):
        self._client = client
        self._page_size = page_size

    async def paginate(self, *, Bucket: str, Prefix: str = ""):
        self._client._maybe_fail("list_objects_v2")
        keys = sorted(k for (b, k) in self._client.session.objects if b == Bucket and k.startswith(Prefix))
        for i in range(0, len(keys), self._page_size):
            yield {"Contents": [{"Key": k} for k in keys[i : i + self._page_size]]}


class FakeS3Client:
    def __init__(self, session: "FakeS3Session"):
        self.session = session

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def _maybe_fail(self, operation: str) -> None:
        mode = self.session.failures.get(operation)
        if mode == "unreachable":
            raise EndpointConnectionError(endpoint_url="https://s3.test")
        if mode is not None:
            raise _client_error(mode, operation)

    async def put_object(self, *, Bucket: str, Key: str, Body: bytes, ContentType: str = ""):
        self._maybe_fail("put_object")
        self.session.objects[(Bucket, Key)] = Body
        return {"ETag": '"fake"'}

    async def get_object(self, *, Bucket: str, Key: str):
        self._maybe_fail("get_object")
        if (Bucket, Key) not in self.session.objects:
            raise _client_error("NoSuchKey", "GetObject")
        return {"Body": FakeBody(self.session.objects[(Bucket, Key)])}

    async def head_object(self, *, Bucket: str, Key: str):
        self._maybe_fail("head_object")
        if (Bucket, Key) not in self.session.objects:
            raise _client_error("404", "HeadObject")
        return {"ContentLength": len(self.session.objects[(Bucket, Key)])}

    async def delete_object(self, *, Bucket: str, Key: str):
        self._maybe_fail("delete_object")
        self.session.objects.pop((Bucket, Key), None)
        return {}

    def get_paginator(self, name: str) -> FakePaginator:
        assert name == "list_objects_v2"
        return FakePaginator(self)


class FakeS3Session:
    """Stands in for ``aioboto3.Session``; objects persist across clients.

    ``failures`` maps an S3 operation name to an error code, or to
    ``"unreachable"`` for a connection error.
    """

    def __init__(self):
        self.objects: Dict[tuple[str, str], bytes] = {}
        self.failures: Dict[str, str] = {}
        self.client_kwargs: list[dict] = []

    def client(self, service_name: str, **kwargs: Any) -> FakeS3Client:
        assert service_name == "s3"
        self.client_kwargs.append(kwargs)
        return FakeS3Client(self)


@pytest.fixture
def s3_session() -> FakeS3Session:
    return FakeS3Session()


# =============================================================================
# DOCUMENT STORE
# =============================================================================


@pytest_asyncio.fixture
async def make_store(make_settings, s3_session, clock):
    """Factory building a document store over its own in-memory database."""
    stores = []

    async def _make(*, object_store: bool = True, **overrides: Any):
        if object_store:
            overrides.setdefault("s3_bucket", "docs-bucket")
        settings = make_settings(**overrides)
        store = build_document_store(settings, object_store_session=s3_session, clock=clock)
        await store.init_schema()
        stores.append(store)
        return store

    yield _make
    for store in stores:
        await store.close()


@pytest_asyncio.fixture
async def store(make_store):
    return await make_store()


@pytest.fixture
def make_doc() -> Callable[..., StoredDocument]:
    return make_document


class MemoryBackend(StorageBackend):
    """Dict-backed backend with switchable failures."""

    def __init__(self, kind: BackendKind = BackendKind.OBJECT_STORE):
        self.kind = kind
        self.items: Dict[str, tuple[bytes, StoredDocument]] = {}
        self.fail_on: set[str] = set()

    def _check(self, op: str, file_id: Optional[str]) -> None:
        if op in self.fail_on:
            raise BackendError(f"{op} failed", backend=self.name, file_id=file_id)

    async def put(self, file_id, payload, metadata):
        self._check("put", file_id)
        self.items[file_id] = (payload, metadata)

    async def get(self, file_id):
        self._check("get", file_id)
        if file_id not in self.items:
            raise DocumentNotFoundError(file_id=file_id)
        return self.items[file_id]

    async def delete(self, file_id):
        self._check("delete", file_id)
        if self.items.pop(file_id, None) is None:
            raise DocumentNotFoundError(file_id=file_id)

    async def iter_documents(self):
        for file_id, (_, metadata) in sorted(self.items.items()):
            yield file_id, metadata


@pytest.fixture
def memory_backend() -> MemoryBackend:
    return MemoryBackend()
