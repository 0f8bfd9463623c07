"""Unit tests for ObjectStoreBackend against a fake aioboto3 session."""

from __future__ import annotations

import json

import pytest

from secure_docs.exceptions import BackendError, DocumentNotFoundError
from secure_docs.storage.backends.object_store import ObjectStoreBackend
from secure_docs.storage.types import BackendKind


@pytest.mark.asyncio
class TestObjectStoreBackend:
    @pytest.fixture
    def backend(self, s3_session) -> ObjectStoreBackend:
        return ObjectStoreBackend(
            "docs-bucket",
            prefix="medical-certificates/",
            region="eu-west-1",
            access_key="test-access-key",
            secret_key="test-secret-key",
            session=s3_session,
        )

    async def test_put_stores_content_and_metadata(self, backend, s3_session, make_doc):
        doc = make_doc("doc-1", backend_kind=BackendKind.OBJECT_STORE)
        await backend.put("doc-1", b"\x00\x01cipher", doc)

        raw = s3_session.objects[("docs-bucket", "medical-certificates/doc-1")]
        body = json.loads(raw)
        assert set(body) == {"content", "metadata"}
        assert body["metadata"]["fileId"] == "doc-1"
        assert body["metadata"]["encryptionIV"] == doc.encryption_iv
        assert body["metadata"]["backendKind"] == "object-store"

    async def test_put_and_get(self, backend, make_doc):
        doc = make_doc("doc-1", backend_kind=BackendKind.OBJECT_STORE)
        await backend.put("doc-1", b"cipher-bytes", doc)

        payload, metadata = await backend.get("doc-1")
        assert payload == b"cipher-bytes"
        assert metadata == doc

    async def test_client_configuration(self, backend, s3_session, make_doc):
        await backend.put("doc-1", b"x", make_doc("doc-1"))
        assert s3_session.client_kwargs[-1] == {
            "region_name": "eu-west-1",
            "aws_access_key_id": "test-access-key",
            "aws_secret_access_key": "test-secret-key",
        }

    async def test_get_missing(self, backend):
        with pytest.raises(DocumentNotFoundError):
            await backend.get("nope")

    async def test_delete(self, backend, s3_session, make_doc):
        await backend.put("doc-1", b"x", make_doc("doc-1"))
        await backend.delete("doc-1")
        assert s3_session.objects == {}

    async def test_delete_missing_is_not_found(self, backend):
        with pytest.raises(DocumentNotFoundError):
            await backend.delete("nope")

    async def test_service_error_on_put(self, backend, s3_session, make_doc):
        s3_session.failures["put_object"] = "InternalError"
        with pytest.raises(BackendError) as exc_info:
            await backend.put("doc-1", b"x", make_doc("doc-1"))
        assert exc_info.value.backend == "object-store"
        assert exc_info.value.file_id == "doc-1"

    async def test_unreachable_on_get(self, backend, s3_session, make_doc):
        await backend.put("doc-1", b"x", make_doc("doc-1"))
        s3_session.failures["get_object"] = "unreachable"
        with pytest.raises(BackendError):
            await backend.get("doc-1")

    async def test_access_denied_on_delete(self, backend, s3_session, make_doc):
        await backend.put("doc-1", b"x", make_doc("doc-1"))
        s3_session.failures["delete_object"] = "AccessDenied"
        with pytest.raises(BackendError):
            await backend.delete("doc-1")

    async def test_corrupted_object(self, backend, s3_session):
        s3_session.objects[("docs-bucket", "medical-certificates/doc-1")] = b"not json"
        with pytest.raises(BackendError):
            await backend.get("doc-1")

    async def test_iter_documents_skips_unreadable(self, backend, s3_session, make_doc):
        for file_id in ["a", "b", "c"]:
            await backend.put(file_id, b"x", make_doc(file_id))
        s3_session.objects[("docs-bucket", "medical-certificates/broken")] = b"{}"
        s3_session.objects[("other-bucket", "medical-certificates/z")] = b"{}"

        listed = [fid async for fid, _ in backend.iter_documents()]
        assert listed == ["a", "b", "c"]

    async def test_iter_documents_list_failure(self, backend, s3_session):
        s3_session.failures["list_objects_v2"] = "AccessDenied"
        with pytest.raises(BackendError):
            async for _ in backend.iter_documents():
                pass


def test_requires_bucket(s3_session):
    with pytest.raises(ValueError):
        ObjectStoreBackend("", session=s3_session)
