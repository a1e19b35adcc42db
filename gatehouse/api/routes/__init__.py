from __future__ import annotations

from gatehouse.api.routes.auth import router as auth_router
from gatehouse.api.routes.health import router as health_router
from gatehouse.api.routes.pow import router as pow_router

__all__ = ["auth_router", "health_router", "pow_router"]
