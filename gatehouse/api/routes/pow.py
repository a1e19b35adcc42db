from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from gatehouse.api.container import Container, get_container
from gatehouse.schemas.auth import PowChallengeOut

router = APIRouter(tags=["Proof of work"])


@router.api_route(
    "/pow/challenge",
    methods=["GET", "POST"],
    response_model=PowChallengeOut,
    responses={204: {"description": "Proof of work is disabled"}},
)
async def pow_challenge(
    response: Response,
    container: Container = Depends(get_container),
):
    """Issue a signed proof-of-work challenge.

    Solve it by finding a nonce such that
    ``SHA-256(base64decode(challenge) || nonce)`` has at least ``difficulty``
    leading zero bits, then send challenge, nonce and token with the
    registration (``X-PoW-*`` headers or a ``pow`` body object).

    Returns 204 with no body when proof of work is disabled.
    """
    challenge = container.pow_engine.issue()
    if challenge is None:
        return Response(status_code=204)

    response.headers["Cache-Control"] = "no-store"
    return PowChallengeOut(**challenge.to_payload())
