"""Request guards.

Each endpoint gets its own ``GuardChain``; the order used throughout the
service is rate limit, then body size, then proof of work.
"""

from __future__ import annotations

from gatehouse.guards.base import Guard, GuardChain
from gatehouse.guards.body_size import BodySizeGuard, normalize_body_limit
from gatehouse.guards.pow import PowGuard
from gatehouse.guards.rate import RateGuard

__all__ = [
    "BodySizeGuard",
    "Guard",
    "GuardChain",
    "PowGuard",
    "RateGuard",
    "normalize_body_limit",
]
