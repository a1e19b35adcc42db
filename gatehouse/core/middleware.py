"""HTTP middleware for request ID propagation and correlation.

The middleware:
- Accepts incoming X-Request-ID header or generates a UUID
- Stores request_id in contextvars for access throughout the request lifecycle
- Injects request_id into response headers for client-side tracking
- Measures total request duration and includes it in response headers
- Clears context after request completion to prevent context leaks

Usage:
    app.middleware("http")(build_request_id_middleware(settings.log.request_id_header))
"""

from __future__ import annotations

import time
import uuid
from typing import Awaitable, Callable

from fastapi import Request, Response

from gatehouse.core.logging import clear_request_id, set_request_id

CallNext = Callable[[Request], Awaitable[Response]]


def build_request_id_middleware(
    header_name: str = "X-Request-ID",
) -> Callable[[Request, CallNext], Awaitable[Response]]:
    """Create the request id middleware bound to a header name.

    Args:
        header_name: Header used to read an incoming id and echo it back.

    Returns:
        An ``http`` middleware coroutine for ``app.middleware("http")``.
    """

    async def request_id_middleware(request: Request, call_next: CallNext) -> Response:
        """Ensure every request/response pair carries a correlation id.

        If the client provides the header, that value is used. Otherwise a new
        UUID is generated. The id is stored in contextvars for log correlation
        and echoed in the response together with the request duration.

        Example:
            >>> # Request arrives with custom ID
            >>> # Headers: {"X-Request-ID": "req-abc-123"}
            >>> # Response includes:
            >>> # {"X-Request-ID": "req-abc-123", "X-Request-Duration-ms": "45.67"}
        """

        request_id = request.headers.get(header_name) or str(uuid.uuid4())
        set_request_id(request_id)
        start = time.perf_counter()
        try:
            response: Response = await call_next(request)
        finally:
            clear_request_id()

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers[header_name] = request_id
        response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
        return response

    return request_id_middleware
