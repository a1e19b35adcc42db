"""Per-address request rate guard."""

from __future__ import annotations

import logging
from typing import Callable

from fastapi import Request, Response

from gatehouse.adapters.rate_limit.base import AbstractRateLimiter
from gatehouse.core.logging import hash_address
from gatehouse.core.responses import error_response
from gatehouse.guards.base import Guard

logger = logging.getLogger(__name__)


class RateGuard(Guard):
    """Deny with 429 once an address has used up its budget for the window.

    The guard owns its limiter; build one guard (and limiter) per endpoint.
    """

    name = "ip-rate-limit"

    def __init__(
        self,
        limiter: AbstractRateLimiter,
        resolve_address: Callable[[Request], str],
        *,
        endpoint: str = "",
        include_headers: bool = True,
    ) -> None:
        self._limiter = limiter
        self._resolve_address = resolve_address
        self._endpoint = endpoint
        self._include_headers = include_headers

    @property
    def limiter(self) -> AbstractRateLimiter:
        return self._limiter

    async def check(self, request: Request) -> Response | None:
        address = self._resolve_address(request)
        result = self._limiter.consume(address)
        if result.allowed:
            return None

        retry_after = result.retry_after_seconds or 0
        logger.warning(
            "rate_limit.exceeded",
            extra={
                "endpoint": self._endpoint,
                "address_hash": hash_address(address),
                "limit": result.limit,
                "retry_after_s": retry_after,
            },
        )

        headers: dict[str, str] = {}
        if self._include_headers:
            headers["Retry-After"] = str(retry_after)
            headers["X-RateLimit-Limit"] = str(result.limit)
            headers["X-RateLimit-Remaining"] = str(result.remaining)
            headers["X-RateLimit-Reset"] = str(result.reset_at)

        return error_response(
            429,
            "rate limit exceeded",
            code="rate_limit_exceeded",
            headers=headers,
        )
