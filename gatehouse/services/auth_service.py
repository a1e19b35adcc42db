"""Login sessions.

Session tokens are 32 random bytes, hex encoded, stored server side with an
expiry. An expired session is deleted the first time it is presented.
"""

from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from gatehouse.core.errors import AuthenticationAppError, StorageAppError
from gatehouse.core.passwords import verify_password
from gatehouse.db import store
from gatehouse.db.database import session_scope

logger = logging.getLogger(__name__)

SESSION_TOKEN_BYTES = 32


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class LoginResult:
    username: str
    session_token: str
    expires_at: datetime


@dataclass(frozen=True)
class UserProfile:
    id: int
    username: str
    created: datetime

    def to_payload(self) -> dict[str, int | str]:
        return {
            "id": self.id,
            "username": self.username,
            "created": _as_utc(self.created).isoformat(),
        }


class AuthService:
    """Password login and cookie sessions. Blocking; call from a worker thread."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        session_ttl: timedelta = timedelta(days=30),
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._session_factory = session_factory
        self._session_ttl = session_ttl
        self._clock = clock

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc)

    def login(self, username: str, password: str) -> LoginResult:
        """Check credentials and open a session.

        Raises:
            AuthenticationAppError: Unknown user or wrong password.
            StorageAppError: The session could not be stored.
        """
        token = secrets.token_hex(SESSION_TOKEN_BYTES)
        expires_at = self._now() + self._session_ttl

        try:
            with session_scope(self._session_factory) as db:
                user = store.get_user_by_username(db, username)
                stored = (user.id, user.password_hash) if user is not None else None

            # bcrypt runs outside any transaction so it never holds the write lock.
            if stored is None or not verify_password(password, stored[1]):
                raise AuthenticationAppError(
                    code="invalid_credentials",
                    message="invalid username or password",
                )
            user_id = stored[0]

            with session_scope(self._session_factory) as db:
                store.create_session(db, user_id, token, expires_at)
        except SQLAlchemyError as exc:
            logger.exception("auth.login_storage_error")
            raise StorageAppError(code="storage_error", message="failed to create session") from exc

        logger.info("auth.login", extra={"user_id": user_id})
        return LoginResult(username=username, session_token=token, expires_at=expires_at)

    def logout(self, token: str | None) -> None:
        """Drop the session if there is one. Safe to call repeatedly."""
        if not token:
            return
        try:
            with session_scope(self._session_factory) as db:
                removed = store.delete_session_by_token(db, token)
        except SQLAlchemyError as exc:
            logger.exception("auth.logout_storage_error")
            raise StorageAppError(code="storage_error", message="failed to delete session") from exc

        if removed:
            logger.info("auth.logout")

    def profile(self, token: str | None) -> UserProfile:
        """Resolve the session token to its user.

        Raises:
            AuthenticationAppError: No session, unknown token or expired session.
        """
        if not token:
            raise AuthenticationAppError(code="not_authenticated", message="not logged in")

        expired = False
        profile: UserProfile | None = None
        try:
            with session_scope(self._session_factory) as db:
                row = store.get_session_by_token(db, token)
                if row is not None:
                    if _as_utc(row.expires_at) <= self._now():
                        store.delete_session_by_token(db, token)
                        expired = True
                    else:
                        user = store.get_user_by_id(db, row.user_id)
                        if user is not None:
                            profile = UserProfile(
                                id=user.id,
                                username=user.username,
                                created=user.created_at,
                            )
        except SQLAlchemyError as exc:
            logger.exception("auth.profile_storage_error")
            raise StorageAppError(code="storage_error", message="failed to load session") from exc

        if expired:
            raise AuthenticationAppError(code="session_expired", message="session expired")
        if profile is None:
            raise AuthenticationAppError(code="not_authenticated", message="not logged in")
        return profile
