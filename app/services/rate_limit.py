"""Sliding-window request limiting shared by the auth endpoints."""
import threading
import time
from collections import deque
from typing import Callable, Protocol

from app.errors import RateLimitExceeded


class RateCounter(Protocol):
    def hit(self, key: str, now: float, window: float) -> tuple[int, float]:
        """Record one request for `key` and return (requests inside the window, oldest timestamp)."""

    def reset(self) -> None:
        ...


class InMemoryRateCounter:
    """Per-key timestamp log; one lock makes each hit atomic across request threads.

    Keys whose newest hit has left the window are dropped every `sweep_every`
    hits, so idle clients do not accumulate.
    """

    def __init__(self, sweep_every: int = 256) -> None:
        self._hits: dict[str, deque] = {}
        self._lock = threading.Lock()
        self._sweep_every = sweep_every
        self._since_sweep = 0

    def hit(self, key: str, now: float, window: float) -> tuple[int, float]:
        with self._lock:
            cutoff = now - window
            self._since_sweep += 1
            if self._since_sweep >= self._sweep_every:
                self._sweep(cutoff)
            log = self._hits.setdefault(key, deque())
            while log and log[0] <= cutoff:
                log.popleft()
            log.append(now)
            return len(log), log[0]

    def _sweep(self, cutoff: float) -> None:
        for key in [k for k, log in self._hits.items() if not log or log[-1] <= cutoff]:
            del self._hits[key]
        self._since_sweep = 0

    def __len__(self) -> int:
        return len(self._hits)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()
            self._since_sweep = 0


class RateLimiter:
    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        counter: RateCounter | None = None,
        clock: Callable[[], float] = time.monotonic,
        message: str | None = None,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.counter = counter or InMemoryRateCounter()
        self.clock = clock
        self.message = message

    def check(self, key: str) -> None:
        now = self.clock()
        count, oldest = self.counter.hit(key, now, self.window_seconds)
        if count > self.max_requests:
            retry_after = oldest + self.window_seconds - now
            raise RateLimitExceeded(int(retry_after) + 1, self.message)

    def reset(self) -> None:
        self.counter.reset()
