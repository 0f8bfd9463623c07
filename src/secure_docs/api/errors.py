from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..exceptions import SecureDocsError

logger = logging.getLogger(__name__)

PROBLEM_MEDIA_TYPE = "application/problem+json"

_TRACE_HEADERS = ("x-request-id", "x-correlation-id", "x-trace-id")


def problem_response(
    *,
    status: int,
    title: str,
    detail: Optional[str] = None,
    code: Optional[str] = None,
    instance: Optional[str] = None,
    trace_id: Optional[str] = None,
    **extra: Any,
) -> JSONResponse:
    body: dict[str, Any] = {"type": "about:blank", "title": title, "status": status}
    if detail is not None:
        body["detail"] = detail
    if code is not None:
        body["code"] = code
    if instance is not None:
        body["instance"] = instance
    if trace_id is not None:
        body["trace_id"] = trace_id
    body.update({k: v for k, v in extra.items() if v is not None})
    return JSONResponse(status_code=status, content=body, media_type=PROBLEM_MEDIA_TYPE)


def _trace_id(request: Request) -> Optional[str]:
    for h in _TRACE_HEADERS:
        v = request.headers.get(h)
        if v:
            return v
    return None


def add_document_error_handlers(app: FastAPI) -> None:
    """Map every ``SecureDocsError`` raised by a route to a Problem+JSON response.

    Not-found and expired documents are indistinguishable to the client (both
    404); storage failures answer 503 so callers can retry.
    """

    @app.exception_handler(SecureDocsError)
    async def _handle_document_error(request: Request, exc: SecureDocsError):
        if exc.status_code >= 500:
            logger.error(
                f"{type(exc).__name__} on {request.url.path} ({exc.status_code}): {exc}",
                extra={"file_id": exc.file_id},
            )
        return problem_response(
            status=exc.status_code,
            title=exc.title,
            detail=str(exc) if exc.status_code < 500 else _public_detail(exc),
            code=exc.code,
            instance=str(request.url),
            trace_id=_trace_id(request),
            file_id=exc.file_id,
        )


def _public_detail(exc: SecureDocsError) -> str:
    # Backend and crypto internals stay in the logs.
    return exc.title


__all__ = ["add_document_error_handlers", "problem_response", "PROBLEM_MEDIA_TYPE"]
