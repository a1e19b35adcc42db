"""Proof-of-work guard for account creation.

Solutions are read from the ``X-PoW-*`` headers first, which lets a request
be rejected before its body is touched. Clients that cannot set headers may
embed ``{"pow": {"challenge", "nonce", "token"}}`` in the JSON body instead;
that body read goes through the size-capped reader, so this guard must come
after the body-size guard.
"""

from __future__ import annotations

import logging

from fastapi import Request, Response

from gatehouse.core.errors import ProofOfWorkAppError, ValidationAppError
from gatehouse.core.request_body import read_json_object
from gatehouse.core.responses import app_error_response
from gatehouse.guards.base import Guard
from gatehouse.services.proof_of_work import ProofOfWorkEngine

logger = logging.getLogger(__name__)

CHALLENGE_HEADER = "X-PoW-Challenge"
NONCE_HEADER = "X-PoW-Nonce"
TOKEN_HEADER = "X-PoW-Token"
BODY_FIELD = "pow"


class PowGuard(Guard):
    """Require a valid proof-of-work solution."""

    name = "proof-of-work"

    def __init__(self, engine: ProofOfWorkEngine, *, allow_body_fallback: bool = True) -> None:
        self._engine = engine
        self._allow_body_fallback = allow_body_fallback

    async def check(self, request: Request) -> Response | None:
        if not self._engine.enabled:
            return None

        challenge = request.headers.get(CHALLENGE_HEADER, "")
        nonce = request.headers.get(NONCE_HEADER, "")
        token = request.headers.get(TOKEN_HEADER, "")
        source = "headers"

        headers_absent = not (challenge or nonce or token)
        if headers_absent and self._allow_body_fallback:
            challenge, nonce, token = await self._read_body_solution(request)
            source = "body"

        try:
            self._engine.verify(challenge, nonce, token)
        except ProofOfWorkAppError as exc:
            logger.info(
                "pow.verify_failed",
                extra={"reason": exc.code, "source": source},
            )
            return app_error_response(exc)
        return None

    async def _read_body_solution(self, request: Request) -> tuple[str, str, str]:
        try:
            data = await read_json_object(request)
        except ValidationAppError:
            # Unparseable bodies are the endpoint's problem; here they simply
            # carry no solution.
            return "", "", ""

        solution = data.get(BODY_FIELD)
        if not isinstance(solution, dict):
            return "", "", ""
        return (
            _as_text(solution.get("challenge")),
            _as_text(solution.get("nonce")),
            _as_text(solution.get("token")),
        )


def _as_text(value: object) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return ""
