from __future__ import annotations

"""Application factory for FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) to
improve testability. Each call builds its own container, so limiter state and
database connections are never shared between apps.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

from fastapi import FastAPI

from gatehouse.api.container import build_container
from gatehouse.api.routes import auth_router, health_router, pow_router
from gatehouse.core.config import Settings
from gatehouse.core.exception_handlers import setup_exception_handlers
from gatehouse.core.logging import configure_logging
from gatehouse.core.middleware import build_request_id_middleware
from gatehouse.core.openapi import apply_openapi_customizations
from gatehouse.db.database import init_db

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    *,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        settings: Explicit configuration; defaults to the environment-loaded
            global settings.
        clock: Time source shared by the limiters, proof-of-work engine and
            session expiry.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    if settings is None:
        from gatehouse.core.config import settings as default_settings

        settings = default_settings

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    container = build_container(settings, clock=clock)
    init_db(container.engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        container.dispose()

    app = FastAPI(
        title="Gatehouse",
        description=(
            "Account registration and session login behind an abuse-resistance "
            "layer: per-address rate limits, request body caps, a persistent "
            "per-address account quota and stateless proof-of-work challenges."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.container = container

    # Middleware
    app.middleware("http")(build_request_id_middleware(settings.log.request_id_header))

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(auth_router, prefix="/api")
    app.include_router(pow_router, prefix="/api")
    app.include_router(health_router)

    # OpenAPI customizations (proof-of-work headers, tags)
    apply_openapi_customizations(app)

    logger.info(
        "app.created",
        extra={
            "app_env": settings.app_env,
            "pow_enforced": container.pow_engine.enforced,
            "account_quota_enabled": container.registration.quota.enabled,
        },
    )
    return app
