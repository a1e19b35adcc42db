"""Per-application wiring.

Everything stateful (database engine, limiters, proof-of-work engine) is
built here from one ``Settings`` object and stored on ``app.state``. There are
no module-level singletons, so two apps (or two tests) never share counters.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable

from fastapi import Request
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from gatehouse.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter
from gatehouse.core.client_address import ClientAddressResolver
from gatehouse.core.config import EndpointBodySize, EndpointRateLimit, Settings
from gatehouse.db.database import build_engine, build_session_factory
from gatehouse.guards import BodySizeGuard, Guard, GuardChain, PowGuard, RateGuard
from gatehouse.services.account_quota import AccountQuota
from gatehouse.services.auth_service import AuthService
from gatehouse.services.proof_of_work import PowConfig, ProofOfWorkEngine
from gatehouse.services.registration import RegistrationService
from gatehouse.utils.spent_token_cache import SpentTokenCache


@dataclass(frozen=True)
class EndpointGuards:
    register: GuardChain
    login: GuardChain
    logout: GuardChain
    profile: GuardChain


@dataclass
class Container:
    settings: Settings
    engine: Engine
    session_factory: sessionmaker[Session]
    resolve_address: ClientAddressResolver
    pow_engine: ProofOfWorkEngine
    guards: EndpointGuards
    registration: RegistrationService
    auth: AuthService

    def dispose(self) -> None:
        self.engine.dispose()


def _rate_guard(
    name: str,
    config: EndpointRateLimit,
    resolver: ClientAddressResolver,
    settings: Settings,
    clock: Callable[[], float],
) -> RateGuard:
    # A disabled endpoint still gets a guard; its limiter admits everything.
    limit = config.max_requests if config.enable else 0
    limiter = InMemoryFixedWindowRateLimiter(
        limit=limit,
        window_seconds=config.window_ms / 1000,
        clock=clock,
    )
    return RateGuard(
        limiter,
        resolver,
        endpoint=name,
        include_headers=settings.rate_limit.include_headers,
    )


def _body_guards(config: EndpointBodySize) -> list[Guard]:
    if not config.enable:
        return []
    return [BodySizeGuard(config.max_bytes)]


def build_container(settings: Settings, *, clock: Callable[[], float] = time.time) -> Container:
    """Construct the application's collaborators from settings."""

    resolver = ClientAddressResolver(
        override_header=settings.app.address_override_header,
        trust_override_header=settings.app.trust_address_override_header,
    )

    spent_tokens = SpentTokenCache(clock=clock) if settings.pow.single_use else None
    pow_engine = ProofOfWorkEngine(
        PowConfig.from_settings(settings.pow),
        clock=clock,
        spent_tokens=spent_tokens,
    )

    rates = settings.rate_limit
    bodies = settings.body_size
    guards = EndpointGuards(
        register=GuardChain(
            [
                _rate_guard("register", rates.register, resolver, settings, clock),
                *_body_guards(bodies.register),
                PowGuard(pow_engine),
            ]
        ),
        login=GuardChain(
            [
                _rate_guard("login", rates.login, resolver, settings, clock),
                *_body_guards(bodies.login),
            ]
        ),
        logout=GuardChain([_rate_guard("logout", rates.logout, resolver, settings, clock)]),
        profile=GuardChain([_rate_guard("profile", rates.profile, resolver, settings, clock)]),
    )

    engine = build_engine(settings.db)
    session_factory = build_session_factory(engine)

    return Container(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        resolve_address=resolver,
        pow_engine=pow_engine,
        guards=guards,
        registration=RegistrationService(
            session_factory,
            AccountQuota.from_settings(settings.account_quota),
            bcrypt_rounds=settings.auth.bcrypt_rounds,
        ),
        auth=AuthService(
            session_factory,
            session_ttl=timedelta(hours=settings.auth.session_ttl_hours),
            clock=clock,
        ),
    )


def get_container(request: Request) -> Container:
    """FastAPI dependency returning the app's container."""
    return request.app.state.container
