from __future__ import annotations

from typing import Awaitable, Callable

from ticketdesk.core.utils import epoch_ms, generate_id
from ticketdesk.infrastructure.logging import get_logger
from ticketdesk.repositories.archival_job_repository import ArchivalJobRepository

logger = get_logger(__name__)

ArchiveFn = Callable[[str], Awaitable[bool]]

MAX_ATTEMPTS = 5


class ArchivalScheduler:
    """Durable delayed channel archival.

    Jobs live in the record store so pending archivals survive a restart; a
    background loop drains whatever is due. A job whose channel is already
    gone completes as a no-op.
    """

    def __init__(
        self,
        *,
        archival_job_repository: ArchivalJobRepository,
        clock_ms: Callable[[], int] = epoch_ms,
    ) -> None:
        self.archival_job_repository = archival_job_repository
        self.clock_ms = clock_ms

    async def schedule(self, *, channel_ref: str, delay_seconds: float, reason: str) -> dict[str, object]:
        now = self.clock_ms()
        job = {
            "jobId": generate_id("archive"),
            "channelId": channel_ref,
            "reason": reason,
            "status": "pending",
            "dueAt": now + int(delay_seconds * 1000),
            "createdAt": now,
            "lastError": None,
        }
        stored = await self.archival_job_repository.enqueue(job)
        logger.info("archival_scheduled", channel_id=channel_ref, due_at=job["dueAt"], reason=reason)
        return stored

    async def process_due(self, archive: ArchiveFn, *, limit: int = 50) -> dict[str, int]:
        jobs = await self.archival_job_repository.list_due(now_ms=self.clock_ms(), limit=limit)
        counters = {"archived": 0, "alreadyGone": 0, "failed": 0}
        for job in jobs:
            job_id = str(job.get("jobId", ""))
            channel_ref = str(job.get("channelId", ""))
            try:
                deleted = await archive(channel_ref)
            except Exception as exc:
                counters["failed"] += 1
                attempts = int(job.get("attempts", 0)) + 1
                logger.warning(
                    "archival_job_failed", job_id=job_id, channel_id=channel_ref, attempts=attempts, error=str(exc)
                )
                if attempts >= MAX_ATTEMPTS:
                    await self.archival_job_repository.complete(job_id=job_id, status="failed", error=str(exc))
                else:
                    await self.archival_job_repository.record_attempt(job_id=job_id, attempts=attempts, error=str(exc))
                continue
            counters["archived" if deleted else "alreadyGone"] += 1
            await self.archival_job_repository.complete(job_id=job_id, status="done")
        if jobs:
            logger.info("archival_jobs_processed", **counters)
        return counters
