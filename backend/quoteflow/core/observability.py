from __future__ import annotations

import logging
import os
import time
import uuid
from collections import defaultdict, deque
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Callable, Deque

from fastapi import HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import TimeoutError as SATimeoutError
from starlette.responses import Response

_APP_START_MONOTONIC = time.monotonic()

_LATENCY_WINDOW = int(os.getenv("LATENCY_METRICS_WINDOW", "200"))
_LATENCY_LOG_EVERY = int(os.getenv("LATENCY_METRICS_LOG_EVERY", "50"))
_LATENCY_LOCK = Lock()
_LATENCY_BUCKETS: dict[str, Deque[float]] = defaultdict(lambda: deque(maxlen=_LATENCY_WINDOW))

_SLOW_REQUEST_MS = int(os.getenv("SLOW_REQUEST_MS", "2000"))

_CRITICAL_ENDPOINTS: list[tuple[str, str, str]] = [
    ("GET", "/inquiries", "inquiries.list"),
    ("GET", "/items", "items.list"),
    ("GET", "/search", "search"),
    ("POST", "/search", "search"),
    ("POST", "/costs", "costs.create"),
    ("POST", "/approvals", "approvals.create"),
]

_STATUS_ERRORS = {
    400: "Bad request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not found",
    405: "Method not allowed",
    409: "Conflict",
    503: "Service unavailable",
}


def _logger(request: Request) -> logging.Logger:
    return getattr(request.app.state, "logger", None) or logging.getLogger("quoteflow")


def _critical_label_for(method: str, path: str) -> str | None:
    for m, suffix, label in _CRITICAL_ENDPOINTS:
        if method == m and path.endswith(suffix):
            return label
    return None


def _pool_status() -> str | None:
    try:
        from quoteflow.database import engine

        return engine.pool.status()
    except Exception:
        return None


def _percentile(values: list[float], pct: float) -> float:
    if not values:
        return 0.0
    s = sorted(values)
    k = int(round((pct / 100.0) * (len(s) - 1)))
    k = max(0, min(k, len(s) - 1))
    return float(s[k])


def _record_latency(label: str | None, duration_ms: float, logger: logging.Logger | None = None) -> None:
    if not label:
        return
    with _LATENCY_LOCK:
        bucket = _LATENCY_BUCKETS[label]
        bucket.append(float(duration_ms))
        if len(bucket) < _LATENCY_LOG_EVERY or len(bucket) % _LATENCY_LOG_EVERY != 0:
            return
        values = list(bucket)
    if logger:
        logger.info(
            "http_latency",
            extra={
                "endpoint": label,
                "p50_ms": round(_percentile(values, 50), 2),
                "p95_ms": round(_percentile(values, 95), 2),
                "p99_ms": round(_percentile(values, 99), 2),
                "window": len(values),
            },
        )


def uptime_seconds() -> float:
    return max(0.0, time.monotonic() - _APP_START_MONOTONIC)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def error_body(error: str, details: Any = None) -> dict:
    body: dict[str, Any] = {"success": False, "error": error}
    if details is not None:
        body["details"] = jsonable_encoder(details)
    return body


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """HTTPException -> {"success": false, "error": ...}.

    401 always reads "Unauthorized"; the concrete reason goes to `details`.
    """

    detail = exc.detail
    if exc.status_code == 401:
        body = error_body("Unauthorized", detail if detail not in (None, "Unauthorized") else None)
    elif isinstance(detail, str):
        body = error_body(detail)
    else:
        body = error_body(_STATUS_ERRORS.get(exc.status_code, "Error"), detail)
    return JSONResponse(status_code=exc.status_code, content=body, headers=getattr(exc, "headers", None))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {
            "field": ".".join(str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")),
            "message": err.get("msg"),
            "type": err.get("type"),
        }
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content=error_body("Validation error", details))


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Global exception handler that returns a structured error response.

    The full traceback is logged; the client only sees a generic message.
    """
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())

    extra = {
        "request_id": request_id,
        "method": request.method,
        "path": request.url.path,
        "exception_type": type(exc).__name__,
    }
    _logger(request).exception("unhandled_exception", extra=extra)

    headers = {"X-Request-ID": request_id}

    # Attach CORS headers when the request Origin is allowed so browsers do not
    # turn real 500s into opaque CORS errors.
    origin = request.headers.get("origin")
    if origin:
        allowed = set(getattr(request.app.state, "settings_cors_origins", []) or [])
        if origin in allowed or "*" in allowed:
            headers.update(
                {
                    "Access-Control-Allow-Origin": origin,
                    "Access-Control-Allow-Credentials": "true",
                    "Vary": "Origin",
                }
            )

    body = error_body("Internal server error")
    body["request_id"] = request_id
    return JSONResponse(status_code=500, content=body, headers=headers)


async def request_logging_middleware(request: Request, call_next: Callable) -> Response:
    """Request-level logging middleware.

    Adds/propagates X-Request-ID and measures request duration.
    Does not log request/response bodies.
    """

    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    start = time.perf_counter()
    label = _critical_label_for(request.method, request.url.path)
    logger = _logger(request)

    try:
        response: Response = await call_next(request)
    except SATimeoutError as exc:
        duration_ms = (time.perf_counter() - start) * 1000.0
        _record_latency(label, duration_ms, logger)
        logger.error(
            "db_pool_timeout",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "duration_ms": round(duration_ms, 2),
                "pool_status": _pool_status(),
                "error": str(exc),
            },
        )
        raise
    except Exception:
        duration_ms = (time.perf_counter() - start) * 1000.0
        _record_latency(label, duration_ms, logger)
        logger.exception(
            "http_request_failed",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "duration_ms": round(duration_ms, 2),
            },
        )
        raise

    duration_ms = (time.perf_counter() - start) * 1000.0
    _record_latency(label, duration_ms, logger)

    if duration_ms >= _SLOW_REQUEST_MS:
        logger.info(
            "slow_request",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "duration_ms": round(duration_ms, 2),
                "pool_status": _pool_status(),
            },
        )

    # Avoid noisy logging for liveness endpoints.
    if request.url.path not in {"/health", "/healthz"}:
        logger.info(
            "http_request",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "endpoint": label,
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 2),
            },
        )

    response.headers.setdefault("X-Request-ID", request_id)
    return response
