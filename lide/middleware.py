"""HTTP middleware and exception handlers."""

from __future__ import annotations

import time
import uuid

import structlog
from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from lide.api.errors import error_body
from lide.errors import SessionNotFound

logger = structlog.get_logger(__name__)

_CODE_MAP = {
    400: "BAD_REQUEST",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "INVALID_STATE",
    422: "VALIDATION_ERROR",
    500: "INTERNAL_ERROR",
}


async def request_logging_middleware(request: Request, call_next):
    request_id = uuid.uuid4().hex[:12]
    structlog.contextvars.bind_contextvars(
        request_id=request_id,
        method=request.method,
        path=request.url.path,
    )
    start_time = time.monotonic()
    try:
        response = await call_next(request)
    except Exception:
        duration_ms = (time.monotonic() - start_time) * 1000
        logger.exception("Request failed", duration_ms=round(duration_ms, 2))
        structlog.contextvars.clear_contextvars()
        raise
    duration_ms = (time.monotonic() - start_time) * 1000
    logger.info(
        "Request completed",
        status_code=response.status_code,
        duration_ms=round(duration_ms, 2),
    )
    structlog.contextvars.clear_contextvars()
    return response


async def http_exception_handler(request: Request, exc: HTTPException):
    if isinstance(exc.detail, dict) and "error" in exc.detail:
        return JSONResponse(status_code=exc.status_code, content=exc.detail)
    code = _CODE_MAP.get(exc.status_code, "INTERNAL_ERROR")
    return JSONResponse(status_code=exc.status_code, content=error_body(code, str(exc.detail)))


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content=error_body("VALIDATION_ERROR", "Invalid request", exc.errors()),
    )


async def session_not_found_handler(request: Request, exc: SessionNotFound):
    return JSONResponse(status_code=404, content=error_body("NOT_FOUND", str(exc)))
