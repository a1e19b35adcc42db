"""Persistent per-address account quota.

The count lives in the database, so the quota survives restarts and is
shared by every process using the same store. ``allow`` must be called with
the session that will insert the new account: the transaction is opened as a
write transaction (see ``gatehouse.db.database``), so the count it reads
cannot go stale before the insert commits.
"""

from __future__ import annotations

import logging
from typing import Callable, Literal

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gatehouse.core.config import AccountQuotaSettings
from gatehouse.core.errors import StorageAppError
from gatehouse.core.logging import hash_address
from gatehouse.db import store

logger = logging.getLogger(__name__)

StorageErrorPolicy = Literal["error", "allow", "deny"]
CountFn = Callable[[Session, str], int]


class AccountQuota:
    """Cap the accounts created from one address."""

    def __init__(
        self,
        *,
        enabled: bool,
        max_accounts: int,
        count_fn: CountFn = store.count_users_by_ip,
        on_storage_error: StorageErrorPolicy = "error",
    ) -> None:
        self._enabled = enabled
        self._max_accounts = max_accounts
        self._count_fn = count_fn
        self._on_storage_error = on_storage_error

    @classmethod
    def from_settings(cls, quota_settings: AccountQuotaSettings) -> "AccountQuota":
        return cls(
            enabled=quota_settings.enable,
            max_accounts=quota_settings.max_accounts,
            on_storage_error=quota_settings.on_storage_error,
        )

    @property
    def enabled(self) -> bool:
        return self._enabled and self._max_accounts > 0

    @property
    def max_accounts(self) -> int:
        return self._max_accounts

    def allow(self, db: Session, address: str) -> bool:
        """Whether ``address`` may create another account.

        Raises:
            StorageAppError: The count could not be read and the policy is
                ``"error"``.
        """
        if not self.enabled or not address:
            return True

        try:
            count = self._count_fn(db, address)
        except SQLAlchemyError as exc:
            return self._storage_failure(address, exc)

        if count >= self._max_accounts:
            logger.warning(
                "account_quota.exceeded",
                extra={
                    "address_hash": hash_address(address),
                    "count": count,
                    "limit": self._max_accounts,
                },
            )
            return False
        return True

    def _storage_failure(self, address: str, exc: SQLAlchemyError) -> bool:
        if self._on_storage_error == "error":
            raise StorageAppError(
                code="storage_error",
                message="failed to check account quota",
            ) from exc

        logger.warning(
            "account_quota.storage_error",
            extra={
                "address_hash": hash_address(address),
                "policy": self._on_storage_error,
                "error_type": type(exc).__name__,
            },
        )
        return self._on_storage_error == "allow"
