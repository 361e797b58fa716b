from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from ticketdesk.infrastructure.logging import get_logger

logger = get_logger(__name__)


class BackgroundScheduler:
    """Runs named coroutines on fixed intervals inside the event loop."""

    def __init__(self) -> None:
        self._jobs: list[tuple[str, float, Callable[[], Awaitable[object]]]] = []
        self._tasks: list[asyncio.Task[None]] = []

    def every(self, name: str, interval_seconds: float, job: Callable[[], Awaitable[object]]) -> None:
        self._jobs.append((name, max(1.0, float(interval_seconds)), job))

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def start(self) -> None:
        if self.running:
            return
        self._tasks = [
            asyncio.create_task(self._loop(name, interval, job), name=f"ticketdesk:{name}")
            for name, interval, job in self._jobs
        ]
        logger.info("background_scheduler_started", jobs=[name for name, _, _ in self._jobs])

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []

    async def _loop(self, name: str, interval: float, job: Callable[[], Awaitable[object]]) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await job()
            except Exception:
                logger.exception("background_job_failed", job=name)
