from __future__ import annotations

from dataclasses import dataclass
from threading import RLock
from time import monotonic
from typing import Awaitable, Callable, TypeVar

T = TypeVar("T")

CLOSED = "closed"
OPEN = "open"
HALF_OPEN = "half_open"


class CircuitBreakerOpenError(RuntimeError):
    def __init__(self, name: str, retry_after_seconds: float) -> None:
        super().__init__(f"Circuit breaker '{name}' is open, retry in {retry_after_seconds:.1f}s")
        self.name = name
        self.retry_after_seconds = retry_after_seconds


@dataclass(frozen=True)
class CircuitBreakerSnapshot:
    state: str
    failure_count: int
    opened_at: float | None


class CircuitBreaker:
    """Fails fast once `failure_threshold` consecutive calls have failed.

    After `recovery_timeout_seconds` a single trial call is let through; its
    outcome closes the breaker again or re-opens it for another period.
    """

    def __init__(
        self,
        *,
        name: str = "default",
        failure_threshold: int = 5,
        recovery_timeout_seconds: float = 60.0,
        clock: Callable[[], float] = monotonic,
    ) -> None:
        self.name = name
        self.failure_threshold = max(1, int(failure_threshold))
        self.recovery_timeout_seconds = max(0.01, float(recovery_timeout_seconds))
        self._clock = clock
        self._state = CLOSED
        self._failures = 0
        self._opened_at: float | None = None
        self._lock = RLock()

    @property
    def snapshot(self) -> CircuitBreakerSnapshot:
        with self._lock:
            return CircuitBreakerSnapshot(state=self._state, failure_count=self._failures, opened_at=self._opened_at)

    def before_call(self) -> None:
        with self._lock:
            if self._state != OPEN:
                return
            waited = self._clock() - (self._opened_at or 0.0)
            if waited < self.recovery_timeout_seconds:
                raise CircuitBreakerOpenError(self.name, self.recovery_timeout_seconds - waited)
            self._state = HALF_OPEN

    def record_success(self) -> None:
        with self._lock:
            self._state = CLOSED
            self._failures = 0
            self._opened_at = None

    def record_failure(self) -> None:
        with self._lock:
            self._failures += 1
            if self._state == HALF_OPEN or self._failures >= self.failure_threshold:
                self._state = OPEN
                self._opened_at = self._clock()

    async def call(self, fn: Callable[[], Awaitable[T]]) -> T:
        self.before_call()
        try:
            value = await fn()
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return value
