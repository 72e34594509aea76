from __future__ import annotations

import math
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from threading import Lock
from time import time

Clock = Callable[[], float]


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    retry_after_seconds: int
    reset_after_seconds: int


class SlidingWindowRateLimiter:
    """Per-key sliding window. ``max_requests=1`` gives a plain cooldown."""

    def __init__(
        self,
        *,
        max_requests: int,
        window_seconds: float,
        clock: Clock = time,
    ) -> None:
        self._max_requests = max(1, max_requests)
        self._window_seconds = max(0.0, window_seconds)
        self._clock = clock
        self._lock = Lock()
        self._buckets: dict[str, deque[float]] = {}

    def take(self, key: str) -> RateLimitDecision:
        return self._evaluate(key, consume=True)

    def peek(self, key: str) -> RateLimitDecision:
        return self._evaluate(key, consume=False)

    def reset(self, key: str) -> None:
        with self._lock:
            self._buckets.pop(key, None)

    def _evaluate(self, key: str, *, consume: bool) -> RateLimitDecision:
        now = self._clock()
        cutoff = now - self._window_seconds

        with self._lock:
            bucket = self._buckets.setdefault(key, deque())
            while bucket and bucket[0] <= cutoff:
                bucket.popleft()

            if len(bucket) >= self._max_requests:
                retry_after_seconds = max(
                    1,
                    math.ceil((bucket[0] + self._window_seconds) - now),
                )
                return RateLimitDecision(
                    allowed=False,
                    limit=self._max_requests,
                    remaining=0,
                    retry_after_seconds=retry_after_seconds,
                    reset_after_seconds=retry_after_seconds,
                )

            if consume:
                bucket.append(now)
            remaining = max(self._max_requests - len(bucket), 0)
            reset_after_seconds = (
                max(1, math.ceil((bucket[0] + self._window_seconds) - now)) if bucket else 0
            )
            return RateLimitDecision(
                allowed=True,
                limit=self._max_requests,
                remaining=remaining,
                retry_after_seconds=0,
                reset_after_seconds=reset_after_seconds,
            )
