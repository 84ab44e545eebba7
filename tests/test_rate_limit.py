"""Rate limiter tests with a controllable clock."""

import pytest

from mediaforge.services.ratelimit import InMemoryTTLStore, RateLimiter


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryTTLStore()


def test_allows_up_to_limit(store, clock):
    limiter = RateLimiter(store, limit=3, window_seconds=60, clock=clock)

    decisions = [limiter.check("generate:u1") for _ in range(4)]

    assert [d.allowed for d in decisions] == [True, True, True, False]
    assert [d.remaining for d in decisions[:3]] == [2, 1, 0]
    assert decisions[3].retry_after_seconds == 60


def test_keys_are_independent(store, clock):
    limiter = RateLimiter(store, limit=1, window_seconds=60, clock=clock)

    assert limiter.check("generate:u1").allowed
    assert limiter.check("generate:u2").allowed
    assert not limiter.check("generate:u1").allowed


def test_window_resets_after_expiry(store, clock):
    limiter = RateLimiter(store, limit=1, window_seconds=60, clock=clock)
    limiter.check("k")

    clock.now += 30
    blocked = limiter.check("k")
    clock.now += 30
    allowed = limiter.check("k")

    assert not blocked.allowed
    assert blocked.retry_after_seconds == 30
    assert allowed.allowed


def test_sweep_removes_only_expired_entries(store, clock):
    limiter = RateLimiter(store, limit=5, window_seconds=60, clock=clock)
    limiter.check("old")
    clock.now += 45
    limiter.check("new")

    clock.now += 20
    removed = limiter.sweep()

    assert removed == 1
    assert len(store) == 1
    assert limiter.check("new").remaining == 3
