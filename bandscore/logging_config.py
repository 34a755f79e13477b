"""Structured logging for bandscore.

Every record leaving the ``bandscore`` handler is one JSON line carrying the
request id of the HTTP call that produced it, plus any of the domain ids
(``user_id``, ``exam_id``, ``attempt_id``) passed through ``extra=``.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, Union

from fastapi import Request, Response

request_id_var: ContextVar[Optional[str]] = ContextVar("bandscore_request_id", default=None)

CONTEXT_FIELDS = ("user_id", "exam_id", "attempt_id")

# Chatty third-party loggers kept at WARNING unless asked for
QUIET_LOGGERS = ("httpx", "openai", "sqlalchemy.engine")

access_logger = logging.getLogger("bandscore.http")


class RequestContextFilter(logging.Filter):
    """Stamp each record with the current request id."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        request_id = getattr(record, "request_id", None)
        if request_id:
            entry["request_id"] = request_id
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                entry[field] = value
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def configure_logging(level: Union[int, str] = "INFO", sql_echo: bool = False) -> logging.Logger:
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestContextFilter())
    handler.setFormatter(JSONFormatter())
    logging.basicConfig(level=level, handlers=[handler], force=True)

    for name in QUIET_LOGGERS:
        if name == "sqlalchemy.engine" and sql_echo:
            continue
        logging.getLogger(name).setLevel(logging.WARNING)

    return logging.getLogger("bandscore")


async def request_id_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Bind ``X-Request-ID`` (or a fresh one) to the request, echo it back and log the call."""
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    token = request_id_var.set(request_id)
    started = time.perf_counter()
    try:
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        access_logger.info(f"{request.method} {request.url.path} {response.status_code} in {elapsed_ms:.1f}ms")
        response.headers["X-Request-ID"] = request_id
        return response
    finally:
        request_id_var.reset(token)
