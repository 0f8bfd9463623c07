from __future__ import annotations

import json
import logging
import os
from logging.config import dictConfig
from traceback import format_exception

from .env import is_prod

# LogRecord attributes that describe a storage operation, set via ``extra=``.
DOCUMENT_FIELDS = ("file_id", "backend", "operation", "owner_reference", "actor")


class JsonFormatter(logging.Formatter):
    """Structured JSON formatter for prod and CI logs."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: dict[str, object] = {
            "time": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "pid": record.process,
            "message": record.getMessage(),
        }

        # Storage context (only when present)
        doc_ctx = {
            k: v
            for k in DOCUMENT_FIELDS
            if (v := getattr(record, k, None)) is not None
        }
        if doc_ctx:
            payload["document"] = doc_ctx

        # Exception context (only when present)
        if record.exc_info:
            exc_type = record.exc_info[0].__name__ if record.exc_info[0] else None
            exc_message = str(record.exc_info[1]) if record.exc_info[1] else None
            stack = "".join(format_exception(*record.exc_info))

            err_obj: dict[str, object] = {}
            if exc_type:
                err_obj["type"] = exc_type
            if exc_message:
                err_obj["message"] = exc_message

            # Truncate very long stacks to keep lines readable in hosted logs.
            max_stack = int(os.getenv("LOG_STACK_LIMIT", "4000"))
            err_obj["stack"] = stack[:max_stack] + ("...(truncated)" if len(stack) > max_stack else "")

            payload["error"] = err_obj

        return json.dumps(payload, ensure_ascii=False, default=str)


def _read_level(explicit: str | None = None) -> str:
    # Allow explicit override first
    explicit = explicit or os.getenv("LOG_LEVEL")
    if explicit:
        return explicit.upper()

    if is_prod():
        return "INFO"
    # Local / Dev / Test are more verbose by default
    return "DEBUG"


def _read_format(explicit: str | None = None) -> str:
    # Prefer explicit/env override; otherwise JSON in prod, plain elsewhere
    fmt = explicit or os.getenv("LOG_FORMAT")
    if fmt:
        return fmt.lower()
    return "json" if is_prod() else "plain"


def setup_logging(level: str | None = None, fmt: str | None = None) -> None:
    level = _read_level(level)
    formatter_name = "json" if _read_format(fmt) == "json" else "plain"

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "plain": {
                    "format": "%(asctime)s %(levelname)-5s [pid:%(process)d] %(name)s: %(message)s",
                    "datefmt": "%Y-%m-%dT%H:%M:%S",
                },
                "json": {
                    "()": JsonFormatter,
                    "datefmt": "%Y-%m-%dT%H:%M:%S",
                },
            },
            "handlers": {
                "stream": {
                    "class": "logging.StreamHandler",
                    "level": level,
                    "formatter": formatter_name,
                }
            },
            "root": {
                "level": level,
                "handlers": ["stream"],
            },
            # SQL echo and AWS SDK chatter stay at WARNING unless asked for.
            "loggers": {
                "sqlalchemy.engine": {"level": "WARNING", "handlers": [], "propagate": True},
                "botocore": {"level": "WARNING", "handlers": [], "propagate": True},
                "aiobotocore": {"level": "WARNING", "handlers": [], "propagate": True},
            },
        }
    )


__all__ = ["JsonFormatter", "setup_logging", "DOCUMENT_FIELDS"]
