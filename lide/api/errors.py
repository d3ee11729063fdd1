"""Error envelope shared by the HTTP routes and exception handlers."""

from __future__ import annotations

from typing import NoReturn

from fastapi import HTTPException

from lide.models import ErrorDetail, ErrorResponse


def error_body(code: str, message: str, details: dict | list | None = None) -> dict:
    """Render ``{"error": {"code", "message", "details"}}``."""
    return ErrorResponse(error=ErrorDetail(code=code, message=message, details=details)).model_dump()


def raise_http_error(
    code: str, message: str, status_code: int, details: dict | list | None = None
) -> NoReturn:
    raise HTTPException(status_code=status_code, detail=error_body(code, message, details))
