"""Size-capped request body reading.

The body-size guard installs a byte ceiling on the request; every later body
read goes through ``read_request_body_limited``, which counts bytes while
streaming. A client that lies about (or omits) ``Content-Length`` is cut off
as soon as the ceiling is crossed, before any JSON decoding happens.

The body is read at most once per request and kept on ``request.state`` so
the proof-of-work guard and the endpoint can both look at it.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import Request

from gatehouse.core.errors import PayloadTooLargeAppError, ValidationAppError

logger = logging.getLogger(__name__)


def install_body_limit(request: Request, max_bytes: int) -> None:
    """Cap how many body bytes may be read for this request."""
    request.state.max_body_bytes = max_bytes


def get_body_limit(request: Request) -> int | None:
    return getattr(request.state, "max_body_bytes", None)


async def read_request_body_limited(request: Request) -> bytes:
    """Read the request body in chunks enforcing the installed byte cap.

    Args:
        request: Incoming request.

    Returns:
        Body bytes if within the cap (or when no cap was installed).

    Raises:
        PayloadTooLargeAppError: If more bytes arrive than the cap allows.
    """
    cached = getattr(request.state, "raw_body", None)
    if cached is not None:
        return cached

    max_bytes = get_body_limit(request)
    size = 0
    chunks: list[bytes] = []

    async for chunk in request.stream():
        if not chunk:
            continue
        size += len(chunk)
        if max_bytes is not None and size > max_bytes:
            logger.warning(
                "body_size.rejected_by_streamed_read",
                extra={"size": size, "max_bytes": max_bytes},
            )
            raise PayloadTooLargeAppError(
                code="payload_too_large",
                message="request body too large",
                details={"max_bytes": max_bytes},
            )
        chunks.append(chunk)

    body = b"".join(chunks)
    request.state.raw_body = body
    return body


async def read_json_object(request: Request) -> dict[str, Any]:
    """Read the capped body and decode it as a JSON object.

    Raises:
        PayloadTooLargeAppError: Body over the cap.
        ValidationAppError: Body is not a JSON object.
    """
    body = await read_request_body_limited(request)
    try:
        data = json.loads(body)
    except ValueError as exc:
        raise ValidationAppError(code="invalid_json", message="invalid json") from exc

    if not isinstance(data, dict):
        raise ValidationAppError(code="invalid_json", message="expected a JSON object")
    return data
