from __future__ import annotations

from fastapi import APIRouter

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness check for load balancers and monitoring.

    Does not touch the database, so it stays green while storage is degraded.
    """

    return {"status": "ok"}
