"""Caller address resolution.

Precedence:
1. the override header (``X-Test-IP`` by default), when trusted;
2. ``X-Forwarded-For``, as sent by the reverse proxy in front of the service;
3. the raw connection address.

An empty string means no address could be resolved. Guards and the account
quota treat that as "cannot attribute", which disables their check for the
request.
"""

from __future__ import annotations

from fastapi import Request

FORWARDED_FOR_HEADER = "X-Forwarded-For"


class ClientAddressResolver:
    """Resolve the address a request is attributed to."""

    def __init__(
        self,
        *,
        override_header: str = "X-Test-IP",
        trust_override_header: bool = True,
    ) -> None:
        self._override_header = override_header
        self._trust_override_header = trust_override_header

    def __call__(self, request: Request) -> str:
        if self._trust_override_header:
            override = request.headers.get(self._override_header, "").strip()
            if override:
                return override

        # The proxy is trusted at the infrastructure level; the header value is
        # used as-is so one client chain always maps to one key.
        forwarded = request.headers.get(FORWARDED_FOR_HEADER, "").strip()
        if forwarded:
            return forwarded

        if request.client and request.client.host:
            return request.client.host
        return ""
