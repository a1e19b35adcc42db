"""JSON response builders shared by guards and exception handlers.

Every rejection has the same body shape::

    {"status": "error", "message": "...", "code": "...", "request_id": "..."}
"""

from __future__ import annotations

from typing import Any, Mapping

from fastapi.responses import JSONResponse

from gatehouse.core.errors import AppError
from gatehouse.core.logging import get_request_id


def error_response(
    status_code: int,
    message: str,
    *,
    code: str,
    headers: Mapping[str, str] | None = None,
    details: Mapping[str, Any] | None = None,
) -> JSONResponse:
    """Build a terminal error response."""

    content: dict[str, Any] = {
        "status": "error",
        "message": message,
        "code": code,
        "request_id": get_request_id(),
    }
    if details:
        content["details"] = dict(details)

    return JSONResponse(
        status_code=status_code,
        content=content,
        headers=dict(headers) if headers else None,
    )


def app_error_response(exc: AppError) -> JSONResponse:
    """Render an AppError with the status code its class declares."""

    return error_response(
        exc.status_code,
        exc.message,
        code=exc.code,
        details=exc.details,
    )
