"""Request body size guard."""

from __future__ import annotations

import logging

from fastapi import Request, Response

from gatehouse.core.request_body import install_body_limit
from gatehouse.core.responses import error_response
from gatehouse.guards.base import Guard

logger = logging.getLogger(__name__)

DEFAULT_MAX_BODY_BYTES = 4 << 10  # 4 KB
MIN_MAX_BODY_BYTES = 512
HARD_MAX_BODY_BYTES = 64 << 10  # 64 KB ceiling


def normalize_body_limit(max_bytes: int) -> int:
    """Clamp a configured limit into the safe range.

    Non-positive or tiny values fall back to the default; values above the
    hard ceiling are capped. A bad value never means "unlimited".
    """
    if max_bytes < MIN_MAX_BODY_BYTES:
        return DEFAULT_MAX_BODY_BYTES
    if max_bytes > HARD_MAX_BODY_BYTES:
        return HARD_MAX_BODY_BYTES
    return max_bytes


class BodySizeGuard(Guard):
    """Reject oversized bodies up front and cap the body reader.

    A declared ``Content-Length`` above the ceiling gets an immediate 413
    without reading anything. Otherwise the ceiling is installed on the
    request so a streamed body that grows past it is rejected while reading.
    """

    name = "body-size-limit"

    def __init__(self, max_bytes: int) -> None:
        self._max_bytes = normalize_body_limit(max_bytes)

    @property
    def max_bytes(self) -> int:
        return self._max_bytes

    async def check(self, request: Request) -> Response | None:
        declared = request.headers.get("content-length")
        if declared is not None:
            try:
                declared_size = int(declared)
            except ValueError:
                declared_size = -1
            if declared_size < 0:
                return error_response(
                    400,
                    "invalid content-length",
                    code="invalid_content_length",
                )
            if declared_size > self._max_bytes:
                logger.warning(
                    "body_size.rejected_by_header",
                    extra={"declared_size": declared_size, "max_bytes": self._max_bytes},
                )
                return error_response(
                    413,
                    "request body too large",
                    code="payload_too_large",
                    details={"max_bytes": self._max_bytes},
                )

        install_body_limit(request, self._max_bytes)
        return None
