"""Tests for the persistent per-address account quota."""

from __future__ import annotations

import threading
from unittest.mock import Mock

import pytest
from sqlalchemy.exc import OperationalError

from gatehouse.core.config import DatabaseSettings
from gatehouse.core.errors import ConflictAppError, LimitExceededAppError, StorageAppError
from gatehouse.db import store
from gatehouse.db.database import build_engine, build_session_factory, init_db, session_scope
from gatehouse.services.account_quota import AccountQuota
from gatehouse.services.registration import RegistrationService

ADDRESS = "203.0.113.7"


@pytest.fixture
def session_factory(db_url: str):
    engine = build_engine(DatabaseSettings(url=db_url))
    init_db(engine)
    yield build_session_factory(engine)
    engine.dispose()


def _registration(session_factory, **quota_kwargs) -> RegistrationService:
    quota_kwargs.setdefault("enabled", True)
    quota_kwargs.setdefault("max_accounts", 3)
    return RegistrationService(session_factory, AccountQuota(**quota_kwargs), bcrypt_rounds=4)


def _storage_failure(*args, **kwargs):
    raise OperationalError("SELECT count(*)", {}, Exception("database is locked"))


class TestAccountQuotaUnit:
    def test_allows_below_limit(self):
        quota = AccountQuota(enabled=True, max_accounts=3, count_fn=Mock(return_value=2))

        assert quota.allow(Mock(), ADDRESS) is True

    def test_denies_at_limit(self):
        quota = AccountQuota(enabled=True, max_accounts=3, count_fn=Mock(return_value=3))

        assert quota.allow(Mock(), ADDRESS) is False

    @pytest.mark.parametrize(
        ("enabled", "max_accounts", "address"),
        [
            (False, 3, ADDRESS),
            (True, 0, ADDRESS),
            (True, -1, ADDRESS),
            (True, 3, ""),
        ],
    )
    def test_bypass_never_touches_storage(self, enabled: bool, max_accounts: int, address: str):
        count_fn = Mock(return_value=100)
        quota = AccountQuota(enabled=enabled, max_accounts=max_accounts, count_fn=count_fn)

        assert quota.allow(Mock(), address) is True
        count_fn.assert_not_called()

    def test_storage_error_propagates_by_default(self):
        quota = AccountQuota(enabled=True, max_accounts=3, count_fn=_storage_failure)

        with pytest.raises(StorageAppError):
            quota.allow(Mock(), ADDRESS)

    @pytest.mark.parametrize(("policy", "expected"), [("allow", True), ("deny", False)])
    def test_storage_error_policies(self, policy: str, expected: bool):
        quota = AccountQuota(
            enabled=True,
            max_accounts=3,
            count_fn=_storage_failure,
            on_storage_error=policy,
        )

        assert quota.allow(Mock(), ADDRESS) is expected


class TestRegistrationQuota:
    def test_fourth_account_from_address_is_rejected(self, session_factory):
        service = _registration(session_factory)

        for index in range(3):
            service.register(f"user{index}", "password", ADDRESS)

        with pytest.raises(LimitExceededAppError) as exc_info:
            service.register("user3", "password", ADDRESS)
        assert exc_info.value.message == "account limit reached for this address"

        # Other addresses keep their own budget.
        service.register("other", "password", "198.51.100.1")

    def test_rejected_registration_inserts_nothing(self, session_factory):
        service = _registration(session_factory, max_accounts=1)
        service.register("first", "password", ADDRESS)

        with pytest.raises(LimitExceededAppError):
            service.register("second", "password", ADDRESS)

        with session_scope(session_factory) as db:
            assert store.count_users_by_ip(db, ADDRESS) == 1
            assert store.get_user_by_username(db, "second") is None

    def test_duplicate_username_is_conflict(self, session_factory):
        service = _registration(session_factory, enabled=False)
        service.register("alice", "password", ADDRESS)

        with pytest.raises(ConflictAppError):
            service.register("alice", "password", "198.51.100.1")

    def test_concurrent_registrations_cannot_overshoot(self, session_factory):
        service = _registration(session_factory, max_accounts=3)
        barrier = threading.Barrier(8)
        outcomes: list[str] = []
        lock = threading.Lock()

        def worker(index: int) -> None:
            barrier.wait()
            try:
                service.register(f"racer{index}", "password", ADDRESS)
                outcome = "created"
            except LimitExceededAppError:
                outcome = "limited"
            with lock:
                outcomes.append(outcome)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert outcomes.count("created") == 3
        assert outcomes.count("limited") == 5
        with session_scope(session_factory) as db:
            assert store.count_users_by_ip(db, ADDRESS) == 3
