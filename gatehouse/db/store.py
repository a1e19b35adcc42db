"""Queries over users and sessions.

Functions take an open ``Session`` and never commit; the caller owns the
transaction (see ``session_scope``).
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from gatehouse.db.models import Session as UserSession
from gatehouse.db.models import User


def count_users_by_ip(db: Session, ip: str) -> int:
    """Number of accounts created from ``ip``."""
    stmt = select(func.count()).select_from(User).where(User.ip == ip)
    return int(db.scalar(stmt) or 0)


def create_user(
    db: Session,
    username: str,
    password_hash: str,
    ip: str,
    role: str = "user",
) -> User:
    """Insert a user and flush so the id is assigned.

    Raises:
        sqlalchemy.exc.IntegrityError: Username already exists.
    """
    user = User(username=username, password_hash=password_hash, ip=ip, role=role)
    db.add(user)
    db.flush()
    return user


def get_user_by_username(db: Session, username: str) -> User | None:
    return db.scalar(select(User).where(User.username == username))


def get_user_by_id(db: Session, user_id: int) -> User | None:
    return db.get(User, user_id)


def list_users(db: Session) -> list[User]:
    return list(db.scalars(select(User).order_by(User.id)))


def update_user(
    db: Session,
    user: User,
    *,
    password_hash: str | None = None,
    ip: str | None = None,
    role: str | None = None,
) -> User:
    """Patch the given fields; ``None`` leaves a field unchanged."""
    if password_hash is not None:
        user.password_hash = password_hash
    if ip is not None:
        user.ip = ip
    if role is not None:
        user.role = role
    db.flush()
    return user


def _delete_users(db: Session, condition) -> int:
    ids = list(db.scalars(select(User.id).where(condition)))
    if not ids:
        return 0
    db.execute(delete(UserSession).where(UserSession.user_id.in_(ids)))
    db.execute(delete(User).where(User.id.in_(ids)))
    return len(ids)


def delete_user_by_username(db: Session, username: str) -> bool:
    return _delete_users(db, User.username == username) > 0


def delete_users_by_prefix(db: Session, prefix: str) -> int:
    """Delete users whose name starts with ``prefix`` (matched literally)."""
    escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return _delete_users(db, User.username.like(escaped + "%", escape="\\"))


def delete_users_created_between(db: Session, start: datetime, end: datetime) -> int:
    """Delete users created in ``[start, end)``."""
    return _delete_users(db, (User.created_at >= start) & (User.created_at < end))


def create_session(db: Session, user_id: int, token: str, expires_at: datetime) -> UserSession:
    row = UserSession(user_id=user_id, session_token=token, expires_at=expires_at)
    db.add(row)
    db.flush()
    return row


def get_session_by_token(db: Session, token: str) -> UserSession | None:
    return db.scalar(select(UserSession).where(UserSession.session_token == token))


def delete_session_by_token(db: Session, token: str) -> bool:
    result = db.execute(delete(UserSession).where(UserSession.session_token == token))
    return bool(result.rowcount)
