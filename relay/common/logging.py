"""
Structured JSON logging for the relay.

Every line written to stdout is one JSON object carrying:
- service identity: service, env, version
- request_id (webhook requests; forwarded to the sink as X-Request-ID)
- event_type + severity, plus whatever fields the caller attached

`log_event()` is the call sites' entry point; `install_fastapi_request_id_middleware()`
binds a request id per webhook call and writes one `http.request` line for it.
"""

from __future__ import annotations

import json
import logging
import sys
import time
import traceback
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

import relay

DEFAULT_SERVICE = "notification-relay"

_SEVERITIES = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_SEVERITY_ALIASES = {"WARN": "WARNING", "FATAL": "CRITICAL"}

_REQUEST_ID: ContextVar[Optional[str]] = ContextVar("relay_request_id", default=None)

# Attributes every LogRecord has; anything else on a record came in through `extra`.
_RECORD_ATTRS: frozenset[str] = frozenset(logging.LogRecord("", 0, "", 0, "", None, None).__dict__) | {
    "message",
    "asctime",
    "taskName",
}
_CORE_KEYS: frozenset[str] = frozenset({"event_type", "severity", "request_id"})


def _one_line(value: Any, limit: int = 2000) -> str:
    text = "" if value is None else str(value)
    text = " ".join(text.splitlines()).strip()
    return text if len(text) <= limit else text[: limit - 1] + "…"


def _severity(level: str | int | None) -> str:
    if isinstance(level, int):
        level = logging.getLevelName(level)
    name = _one_line(level or "INFO", 16).upper()
    name = _SEVERITY_ALIASES.get(name, name)
    return name if name in _SEVERITIES else "INFO"


def get_request_id() -> Optional[str]:
    return _REQUEST_ID.get()


@contextmanager
def bind_request_id(*, request_id: str | None = None) -> Iterator[str]:
    """Bind a request id (generated when absent) for the enclosed block."""
    rid = _one_line(request_id, 128) or uuid.uuid4().hex
    token = _REQUEST_ID.set(rid)
    try:
        yield rid
    finally:
        _REQUEST_ID.reset(token)


def redact_token(value: str | None, *, keep: int = 6) -> str:
    """
    Shorten a credential-like value for logs (SNS confirmation tokens, receipt handles).
    """
    s = _one_line(value, 4096)
    if len(s) <= keep:
        return "*" * len(s)
    return s[:keep] + "…"


class JsonLogFormatter(logging.Formatter):
    def __init__(self, *, service: str | None = None, env: str | None = None, version: str | None = None) -> None:
        super().__init__()
        self._identity = {
            "service": _one_line(service, 128) or DEFAULT_SERVICE,
            "env": _one_line(env, 64) or "unknown",
            "version": _one_line(version, 128) or relay.__version__,
        }

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "severity": _severity(getattr(record, "severity", None) or record.levelno),
            **self._identity,
            "request_id": getattr(record, "request_id", None) or get_request_id(),
            "event_type": getattr(record, "event_type", None) or "log",
            "message": _one_line(record.getMessage(), 4000),
            "logger": record.name,
        }
        if record.exc_info:
            payload["exception"] = "".join(traceback.format_exception(*record.exc_info))[-8000:]

        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS or key in _CORE_KEYS or key.startswith("_"):
                continue
            payload[key] = value

        return json.dumps(payload, separators=(",", ":"), ensure_ascii=False, default=str)


def init_structured_logging(
    *,
    service: str | None = None,
    env: str | None = None,
    version: str | None = None,
    level: str | int | None = None,
) -> None:
    """
    Send all logging (uvicorn included) to stdout as JSON lines. Last call wins.
    """
    lvl = _severity(level)
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(JsonLogFormatter(service=service, env=env, version=version))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(lvl)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uv = logging.getLogger(name)
        uv.handlers = []
        uv.propagate = True
    logging.captureWarnings(True)


def log_event(
    logger: logging.Logger,
    event_type: str,
    *,
    severity: str = "INFO",
    message: str | None = None,
    exc_info: bool = False,
    **fields: Any,
) -> None:
    lvl = getattr(logging, _severity(severity))
    logger.log(lvl, message or event_type, exc_info=exc_info, extra={"event_type": event_type, **fields})


def install_fastapi_request_id_middleware(app: Any, *, service: str | None = None) -> None:
    """
    Per request: take X-Request-ID (or SNS's x-amz-sns-message-id), bind it,
    echo it back, and log one `http.request` line.
    """
    from starlette.requests import Request

    http_logger = logging.getLogger("relay.http")
    svc = _one_line(service, 128) or DEFAULT_SERVICE

    @app.middleware("http")
    async def _request_id_mw(request: Request, call_next):  # type: ignore[no-untyped-def]
        incoming = request.headers.get("x-request-id") or request.headers.get("x-amz-sns-message-id")
        started = time.perf_counter()
        status_code = 500
        with bind_request_id(request_id=incoming) as rid:
            try:
                resp = await call_next(request)
                status_code = resp.status_code
            finally:
                log_event(
                    http_logger,
                    "http.request",
                    service=svc,
                    method=request.method,
                    path=request.url.path,
                    status_code=status_code,
                    duration_ms=int((time.perf_counter() - started) * 1000),
                )
        resp.headers["X-Request-ID"] = rid
        return resp
