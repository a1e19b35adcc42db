"""Guard interface and the ordered chain that runs guards for an endpoint.

A guard is a single admit/deny check. ``check`` returns ``None`` to let the
request through, or the complete terminal response when it denies; the
caller must send that response and stop processing.

Chains are evaluated in order and stop at the first rejection. A guard that
raises never takes the request down with it: an ``AppError`` is rendered
with its own status, anything else becomes a logged 500 deny.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Iterable

from fastapi import Request, Response

from gatehouse.core.errors import AppError
from gatehouse.core.responses import app_error_response, error_response

logger = logging.getLogger(__name__)


class Guard(ABC):
    """A request gate."""

    name: str = "guard"

    @abstractmethod
    async def check(self, request: Request) -> Response | None:
        """Admit (``None``) or deny with the response to send."""
        raise NotImplementedError


class GuardChain:
    """Ordered guards for one endpoint."""

    def __init__(self, guards: Iterable[Guard] = ()) -> None:
        self._guards = tuple(guards)

    @property
    def guards(self) -> tuple[Guard, ...]:
        return self._guards

    def __len__(self) -> int:
        return len(self._guards)

    async def evaluate(self, request: Request) -> Response | None:
        """Run the guards in order.

        Returns:
            ``None`` when every guard admits, else the first rejection.
        """
        for guard in self._guards:
            try:
                rejection = await guard.check(request)
            except AppError as exc:
                rejection = app_error_response(exc)
            except Exception:
                logger.exception(
                    "guard.failed",
                    extra={"guard": guard.name, "request_path": request.url.path},
                )
                rejection = error_response(
                    500,
                    "request could not be checked",
                    code="guard_failure",
                )

            if rejection is not None:
                logger.info(
                    "guard.rejected",
                    extra={
                        "guard": guard.name,
                        "status_code": rejection.status_code,
                        "request_path": request.url.path,
                    },
                )
                return rejection
        return None
