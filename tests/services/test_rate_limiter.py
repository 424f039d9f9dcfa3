"""Rate limiter tests: sliding window per key."""

import pytest

from app.errors import RateLimitExceeded
from app.services.rate_limit import InMemoryRateCounter, RateLimiter


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_allows_up_to_max_then_blocks():
    clock = FakeClock()
    limiter = RateLimiter(5, 900, clock=clock)
    for _ in range(5):
        limiter.check("auth:10.0.0.1")
    with pytest.raises(RateLimitExceeded) as exc:
        limiter.check("auth:10.0.0.1")
    assert exc.value.retry_after == 901
    assert exc.value.status_code == 429


def test_keys_are_independent():
    limiter = RateLimiter(1, 60, clock=FakeClock())
    limiter.check("a")
    limiter.check("b")
    with pytest.raises(RateLimitExceeded):
        limiter.check("a")


def test_window_slides():
    clock = FakeClock()
    limiter = RateLimiter(2, 60, clock=clock)
    limiter.check("k")
    clock.now += 30
    limiter.check("k")
    clock.now += 31
    # first hit has left the window
    limiter.check("k")
    with pytest.raises(RateLimitExceeded) as exc:
        limiter.check("k")
    assert exc.value.retry_after == 30


def test_custom_message_and_reset():
    limiter = RateLimiter(0, 60, clock=FakeClock(), message="slow down")
    with pytest.raises(RateLimitExceeded, match="slow down"):
        limiter.check("k")
    limiter.reset()
    with pytest.raises(RateLimitExceeded):
        limiter.check("k")


def test_idle_keys_are_swept():
    clock = FakeClock()
    counter = InMemoryRateCounter(sweep_every=3)
    limiter = RateLimiter(5, 60, counter=counter, clock=clock)
    limiter.check("auth:10.0.0.1")
    clock.now += 30
    limiter.check("auth:10.0.0.2")
    clock.now += 31
    # third hit triggers the sweep; only 10.0.0.1 has been idle for a full window
    limiter.check("auth:10.0.0.3")
    assert len(counter) == 2
    assert set(counter._hits) == {"auth:10.0.0.2", "auth:10.0.0.3"}


def test_sweep_keeps_counts_of_active_keys():
    clock = FakeClock()
    counter = InMemoryRateCounter(sweep_every=1)
    limiter = RateLimiter(2, 60, counter=counter, clock=clock)
    limiter.check("k")
    limiter.check("k")
    with pytest.raises(RateLimitExceeded):
        limiter.check("k")
