from __future__ import annotations

from dataclasses import dataclass
from threading import Lock
from time import time


@dataclass
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_epoch: int

    @property
    def retry_after_seconds(self) -> int:
        return max(0, self.reset_epoch - int(time()))


class FixedWindowRateLimiter:
    """Allows `limit` hits per key in each aligned window of `window_seconds`."""

    def __init__(self) -> None:
        self._lock = Lock()
        # key -> (window start, hits in that window)
        self._windows: dict[str, tuple[int, int]] = {}

    def check(self, *, key: str, limit: int, window_seconds: int = 60, now: int | None = None) -> RateLimitDecision:
        current = int(time()) if now is None else int(now)
        span = max(1, int(window_seconds))
        window_start = current - current % span
        reset_epoch = window_start + span

        with self._lock:
            self._forget_before(window_start - span)
            started, hits = self._windows.get(key, (window_start, 0))
            if started != window_start:
                hits = 0
            if hits >= limit:
                return RateLimitDecision(allowed=False, limit=limit, remaining=0, reset_epoch=reset_epoch)
            hits += 1
            self._windows[key] = (window_start, hits)
            return RateLimitDecision(allowed=True, limit=limit, remaining=max(0, limit - hits), reset_epoch=reset_epoch)

    def _forget_before(self, cutoff: int) -> None:
        expired = [key for key, (started, _) in self._windows.items() if started < cutoff]
        for key in expired:
            del self._windows[key]
