"""Account creation with the per-address quota.

Quota check and insert share one transaction, so concurrent registrations
from the same address are serialised by the database and cannot overshoot
the quota.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from gatehouse.core.errors import ConflictAppError, LimitExceededAppError, StorageAppError
from gatehouse.core.logging import hash_address
from gatehouse.core.passwords import hash_password
from gatehouse.db import store
from gatehouse.db.database import session_scope
from gatehouse.services.account_quota import AccountQuota

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegisteredUser:
    id: int
    username: str

    def to_payload(self) -> dict[str, int | str]:
        return {"id": self.id, "username": self.username}


class RegistrationService:
    """Create accounts. Blocking; call from a worker thread."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        quota: AccountQuota,
        *,
        bcrypt_rounds: int = 12,
    ) -> None:
        self._session_factory = session_factory
        self._quota = quota
        self._bcrypt_rounds = bcrypt_rounds

    @property
    def quota(self) -> AccountQuota:
        return self._quota

    def register(self, username: str, password: str, address: str) -> RegisteredUser:
        """Create an account for ``username`` owned by ``address``.

        Raises:
            LimitExceededAppError: ``address`` already owns its quota of accounts.
            ConflictAppError: Username already taken.
            StorageAppError: The transaction failed.
        """
        # Hash outside the transaction to keep the write lock short.
        password_hash = hash_password(password, rounds=self._bcrypt_rounds)

        try:
            with session_scope(self._session_factory) as db:
                if not self._quota.allow(db, address):
                    raise LimitExceededAppError(
                        code="account_limit_reached",
                        message="account limit reached for this address",
                        details={"limit": self._quota.max_accounts},
                    )
                user = store.create_user(db, username, password_hash, address)
                created = RegisteredUser(id=user.id, username=user.username)
        except IntegrityError as exc:
            raise ConflictAppError(
                code="username_taken",
                message="username already taken",
            ) from exc
        except SQLAlchemyError as exc:
            logger.exception("registration.storage_error")
            raise StorageAppError(
                code="storage_error",
                message="failed to create user",
            ) from exc

        logger.info(
            "registration.created",
            extra={"user_id": created.id, "address_hash": hash_address(address)},
        )
        return created
