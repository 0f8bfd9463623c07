"""Problem+JSON mapping of document store errors."""

from __future__ import annotations

import httpx
import pytest
from fastapi import FastAPI
from httpx import ASGITransport

from secure_docs.api.errors import PROBLEM_MEDIA_TYPE, add_document_error_handlers
from secure_docs.exceptions import (
    BackendError,
    DecryptionError,
    DocumentExpiredError,
    DocumentNotFoundError,
    FileTooLargeError,
    InvalidDocumentError,
    InvalidTypeError,
    QuotaExceededError,
    StorageUnavailableError,
)

CASES = {
    "invalid-type": (InvalidTypeError("text/html", ("application/pdf",)), 415, "INVALID_TYPE"),
    "too-large": (FileTooLargeError(20, 10), 413, "FILE_TOO_LARGE"),
    "invalid": (InvalidDocumentError("Empty file"), 422, "INVALID_DOCUMENT"),
    "quota": (QuotaExceededError(90, 20, 100), 507, "QUOTA_EXCEEDED"),
    "not-found": (DocumentNotFoundError("gone", file_id="abc"), 404, "NOT_FOUND"),
    "expired": (DocumentExpiredError("expired", file_id="abc"), 404, "EXPIRED"),
    "unavailable": (StorageUnavailableError("s3 timeout at 10.0.0.12"), 503, "STORAGE_UNAVAILABLE"),
    "backend": (BackendError("relational down", backend="relational"), 503, "BACKEND_ERROR"),
    "decrypt": (DecryptionError("Invalid padding"), 500, "DECRYPTION_FAILED"),
}


@pytest.fixture
def app() -> FastAPI:
    app = FastAPI()
    add_document_error_handlers(app)

    @app.get("/documents/{case}")
    async def _raise(case: str):
        raise CASES[case][0]

    return app


@pytest.mark.asyncio
@pytest.mark.parametrize("case", sorted(CASES))
async def test_status_and_code(app, case):
    _, status, code = CASES[case]
    async with httpx.AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        r = await client.get(f"/documents/{case}")

    assert r.status_code == status
    assert r.headers["content-type"].startswith(PROBLEM_MEDIA_TYPE)
    body = r.json()
    assert body["type"] == "about:blank"
    assert body["status"] == status
    assert body["code"] == code
    assert body["instance"] == f"http://test/documents/{case}"


@pytest.mark.asyncio
async def test_client_errors_carry_detail(app):
    async with httpx.AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        r = await client.get("/documents/not-found")
    body = r.json()
    assert body["title"] == "Document Not Found"
    assert body["detail"] == "gone"
    assert body["file_id"] == "abc"


@pytest.mark.asyncio
async def test_server_errors_hide_internals(app):
    async with httpx.AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        r = await client.get("/documents/unavailable", headers={"x-request-id": "req-7"})
    body = r.json()
    assert body["detail"] == "Storage Unavailable"
    assert "10.0.0.12" not in r.text
    assert body["trace_id"] == "req-7"
    assert "file_id" not in body
