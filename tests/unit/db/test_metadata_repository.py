"""Unit tests for MetadataRepository over in-memory SQLite."""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from secure_docs.storage.types import BackendKind


@pytest.mark.asyncio
class TestMetadataRepository:
    async def test_add_and_get(self, repository, make_doc):
        doc = make_doc("doc-1", backend_kind=BackendKind.OBJECT_STORE)
        await repository.add(doc)

        loaded = await repository.get("doc-1")
        assert loaded == doc
        assert loaded.uploaded_at.tzinfo is not None
        assert loaded.backend_kind is BackendKind.OBJECT_STORE

    async def test_get_missing_returns_none(self, repository):
        assert await repository.get("nope") is None

    async def test_add_requires_backend_kind(self, repository, make_doc):
        with pytest.raises(ValueError):
            await repository.add(make_doc("doc-1", backend_kind=None))

    async def test_duplicate_id_rejected(self, repository, make_doc):
        await repository.add(make_doc("doc-1"))
        with pytest.raises(IntegrityError):
            await repository.add(make_doc("doc-1"))

    async def test_delete_reports_whether_a_row_went_away(self, repository, make_doc):
        await repository.add(make_doc("doc-1"))
        assert await repository.delete("doc-1") is True
        assert await repository.delete("doc-1") is False
        assert await repository.get("doc-1") is None

    async def test_record_download_increments(self, repository, make_doc, clock):
        await repository.add(make_doc("doc-1"))
        await repository.record_download("doc-1", clock())
        clock.advance(minutes=5)
        updated = await repository.record_download("doc-1", clock())

        assert updated.download_count == 2
        assert updated.last_download_at == clock()

    async def test_record_download_missing(self, repository, clock):
        assert await repository.record_download("nope", clock()) is None

    async def test_iter_documents_pages_through_everything(self, repository, make_doc):
        ids = [f"doc-{i}" for i in range(7)]
        for file_id in reversed(ids):
            await repository.add(make_doc(file_id))

        seen = [doc.file_id async for doc in repository.iter_documents(batch_size=3)]
        assert seen == sorted(ids)

    async def test_iter_documents_empty(self, repository):
        assert [doc async for doc in repository.iter_documents()] == []

    async def test_list_by_owner(self, repository, make_doc, clock):
        await repository.add(make_doc("a", owner_reference="req-1"))
        await repository.add(make_doc("b", owner_reference="req-2"))
        await repository.add(make_doc("c", owner_reference="req-1", uploaded_at=clock() + timedelta(hours=1)))

        docs = await repository.list_by_owner("req-1")
        assert [d.file_id for d in docs] == ["a", "c"]

    async def test_active_usage_excludes_expired(self, repository, make_doc, clock):
        await repository.add(make_doc("live", size_bytes=300))
        await repository.add(make_doc("old", size_bytes=700, retention=timedelta(days=1)))

        assert await repository.active_usage_bytes(clock()) == 1000
        assert await repository.active_usage_bytes(clock() + timedelta(days=2)) == 300

    async def test_document_counts_until_strictly_past_expiry(self, repository, make_doc, clock):
        await repository.add(make_doc("edge", size_bytes=700, retention=timedelta(days=1)))
        expires_at = clock() + timedelta(days=1)

        assert await repository.active_usage_bytes(expires_at) == 700
        assert (await repository.usage_stats(expires_at)).total_files == 1
        assert await repository.active_usage_bytes(expires_at + timedelta(seconds=1)) == 0

    async def test_usage_stats(self, repository, make_doc, clock):
        for file_id, size in [("a", 100), ("b", 300), ("c", 200)]:
            await repository.add(make_doc(file_id, size_bytes=size))

        stats = await repository.usage_stats(clock())
        assert stats.total_files == 3
        assert stats.total_bytes == 600
        assert stats.average_bytes == pytest.approx(200.0)
        assert stats.largest_bytes == 300
        assert stats.smallest_bytes == 100

    async def test_usage_stats_empty(self, repository, clock):
        stats = await repository.usage_stats(clock())
        assert (stats.total_files, stats.total_bytes, stats.average_bytes) == (0, 0, 0.0)
