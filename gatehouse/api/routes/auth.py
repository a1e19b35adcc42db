"""Account and session endpoints.

Each handler runs its endpoint's guard chain first and returns the guard's
response unchanged when one rejects. Database and bcrypt work is pushed to
the threadpool so a request waiting on the database lock never blocks the
event loop.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from gatehouse.api.container import Container, get_container
from gatehouse.core.errors import ValidationAppError
from gatehouse.core.request_body import read_json_object
from gatehouse.schemas.auth import (
    CredentialsIn,
    LoginOut,
    ProfileOut,
    ProfileUserOut,
    RegisteredUserOut,
)

router = APIRouter(tags=["Accounts"])


async def _read_credentials(request: Request) -> CredentialsIn:
    data = await read_json_object(request)
    try:
        return CredentialsIn.model_validate(data)
    except ValidationError as exc:
        fields = sorted({".".join(str(part) for part in err["loc"]) for err in exc.errors()})
        raise ValidationAppError(
            code="invalid_input",
            message="username and password required",
            details={"context": {"fields": fields}},
        ) from exc


@router.post("/register", status_code=201, response_model=RegisteredUserOut)
async def register(
    request: Request,
    container: Container = Depends(get_container),
):
    """Create an account.

    Guarded by the rate limit, the body-size cap and (when enabled) proof of
    work. The per-address account quota is checked in the same transaction
    that inserts the user.
    """
    rejection = await container.guards.register.evaluate(request)
    if rejection is not None:
        return rejection

    credentials = await _read_credentials(request)
    address = container.resolve_address(request)
    user = await run_in_threadpool(
        container.registration.register,
        credentials.username,
        credentials.password,
        address,
    )
    return RegisteredUserOut(**user.to_payload())


@router.post("/login", response_model=LoginOut)
async def login(
    request: Request,
    response: Response,
    container: Container = Depends(get_container),
):
    """Check credentials and set the session cookie."""
    rejection = await container.guards.login.evaluate(request)
    if rejection is not None:
        return rejection

    credentials = await _read_credentials(request)
    result = await run_in_threadpool(
        container.auth.login,
        credentials.username,
        credentials.password,
    )

    auth_settings = container.settings.auth
    response.set_cookie(
        key=auth_settings.session_cookie_name,
        value=result.session_token,
        max_age=auth_settings.session_ttl_hours * 3600,
        path="/",
        httponly=True,
        samesite="lax",
        secure=request.url.scheme == "https",
    )
    return LoginOut(username=result.username)


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    container: Container = Depends(get_container),
):
    """End the current session. Succeeds with or without one."""
    rejection = await container.guards.logout.evaluate(request)
    if rejection is not None:
        return rejection

    cookie_name = container.settings.auth.session_cookie_name
    await run_in_threadpool(container.auth.logout, request.cookies.get(cookie_name))
    response.delete_cookie(cookie_name, path="/")
    return {"status": "ok", "message": "logged out"}


@router.get("/profile", response_model=ProfileOut)
async def profile(
    request: Request,
    container: Container = Depends(get_container),
):
    rejection = await container.guards.profile.evaluate(request)
    if rejection is not None:
        return rejection

    cookie_name = container.settings.auth.session_cookie_name
    user = await run_in_threadpool(container.auth.profile, request.cookies.get(cookie_name))
    return ProfileOut(user=ProfileUserOut(**user.to_payload()))
