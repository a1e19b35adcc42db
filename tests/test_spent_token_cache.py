"""Unit tests for the single-use proof-of-work token cache."""

import threading

from gatehouse.utils.spent_token_cache import SpentTokenCache, build_token_key


class FakeTime:
    """Deterministic clock used to test expiration logic."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start

    def time(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


def test_build_token_key_is_stable_and_hides_token() -> None:
    key1 = build_token_key("mac.expiry")
    key2 = build_token_key("mac.expiry")

    assert key1 == key2
    assert key1 != build_token_key("mac.expiry2")
    assert "mac" not in key1
    assert len(key1) == 64


def test_first_use_is_accepted_and_replay_rejected() -> None:
    fake = FakeTime()
    cache = SpentTokenCache(clock=fake.time)

    assert cache.mark_spent("token-a", expires_at=1_060.0) is True
    assert cache.mark_spent("token-a", expires_at=1_060.0) is False
    assert cache.mark_spent("token-b", expires_at=1_060.0) is True
    assert len(cache) == 2


def test_entries_are_dropped_after_token_expiry() -> None:
    fake = FakeTime()
    cache = SpentTokenCache(clock=fake.time)
    cache.mark_spent("token-a", expires_at=1_010.0)

    fake.advance(11)
    cache.mark_spent("token-b", expires_at=1_100.0)

    assert len(cache) == 1
    assert cache.stats()["evictions"] == 1


def test_capacity_evicts_soonest_expiring_first() -> None:
    fake = FakeTime()
    cache = SpentTokenCache(max_entries=2, clock=fake.time)

    cache.mark_spent("late", expires_at=1_500.0)
    cache.mark_spent("soon", expires_at=1_100.0)
    cache.mark_spent("middle", expires_at=1_300.0)

    assert len(cache) == 2
    # "soon" was evicted, so it is accepted again; "late" is still remembered.
    assert cache.mark_spent("late", expires_at=1_500.0) is False
    assert cache.mark_spent("soon", expires_at=1_100.0) is True


def test_clear_resets_state() -> None:
    cache = SpentTokenCache()
    cache.mark_spent("token", expires_at=10**12)

    cache.clear()

    assert len(cache) == 0
    assert cache.stats() == {"max_entries": 100_000, "entries": 0, "evictions": 0}


def test_concurrent_replays_accept_exactly_once() -> None:
    cache = SpentTokenCache()
    results: list[bool] = []
    lock = threading.Lock()

    def worker() -> None:
        accepted = cache.mark_spent("shared-token", expires_at=10**12)
        with lock:
            results.append(accepted)

    threads = [threading.Thread(target=worker) for _ in range(16)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert results.count(True) == 1
