from __future__ import annotations

import contextvars
import json
import logging
import os
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

# Correlation fields (request_id, batch_id, celery_task_id) merged into every event.
_log_context: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar(
    "spendlens_log_context", default={}
)

_configured = False


class JsonFormatter(logging.Formatter):
    """One JSON object per line: ts, level, logger, event, then the event's fields."""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
        payload: dict[str, Any] = {
            "ts": ts.replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "event": getattr(record, "event", None) or record.getMessage(),
        }
        fields = getattr(record, "fields", None)
        if isinstance(fields, dict):
            payload.update(fields)
        if record.exc_info:
            payload["error_type"] = record.exc_info[0].__name__ if record.exc_info[0] else None
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, ensure_ascii=True)


def configure_logging() -> None:
    global _configured  # noqa: PLW0603
    if _configured:
        return
    level = logging.getLevelNamesMapping().get(
        os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO
    )
    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(JsonFormatter())
    root = logging.getLogger("spendlens")
    root.setLevel(level)
    root.handlers = [handler]
    # pytest's caplog needs propagation; production keeps one handler.
    root.propagate = os.getenv("LOG_PROPAGATE", "").lower() in {"1", "true", "yes"}
    _configured = True


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)


def bind_context(**fields: Any) -> contextvars.Token:
    merged = {**_log_context.get(), **{k: v for k, v in fields.items() if v is not None}}
    return _log_context.set(merged)


def reset_context(token: contextvars.Token) -> None:
    _log_context.reset(token)


def current_context() -> dict[str, Any]:
    return dict(_log_context.get())


def _event_fields(fields: dict[str, Any]) -> dict[str, Any]:
    payload = current_context()
    payload.update({k: v for k, v in fields.items() if v is not None})
    return payload


def log_event(
    logger: logging.Logger, event: str, *, level: int = logging.INFO, **fields: Any
) -> None:
    logger.log(level, event, extra={"event": event, "fields": _event_fields(fields)})


def log_exception(logger: logging.Logger, event: str, **fields: Any) -> None:
    logger.exception(event, extra={"event": event, "fields": _event_fields(fields)})


def monotonic_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


@contextmanager
def log_stage(logger: logging.Logger, event: str, **fields: Any) -> Iterator[dict[str, Any]]:
    """
    Time a unit of work and log `<event>.finish`, or `<event>.failed` with the
    traceback before re-raising. Fields added to the yielded dict are logged too.
    """
    start = time.monotonic()
    outcome: dict[str, Any] = {}
    try:
        yield outcome
    except Exception:
        log_exception(
            logger, f"{event}.failed", duration_ms=monotonic_ms(start), **fields, **outcome
        )
        raise
    log_event(logger, f"{event}.finish", duration_ms=monotonic_ms(start), **fields, **outcome)


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        token = bind_context(request_id=request_id)
        logger = get_logger(__name__)
        start = time.monotonic()
        try:
            response = await call_next(request)
        except Exception:
            log_exception(
                logger,
                "http.request.error",
                method=request.method,
                path=request.url.path,
                query=str(request.url.query) or None,
                duration_ms=monotonic_ms(start),
            )
            raise
        finally:
            reset_context(token)
        response.headers["x-request-id"] = request_id
        log_event(
            logger,
            "http.request.finish",
            level=logging.DEBUG,
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=monotonic_ms(start),
            request_id=request_id,
        )
        return response
