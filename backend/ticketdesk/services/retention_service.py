from __future__ import annotations

import asyncio
from typing import Callable

from ticketdesk.core.errors import ServiceSuspendedError, TicketDeskError
from ticketdesk.core.utils import epoch_ms
from ticketdesk.infrastructure.logging import get_logger
from ticketdesk.infrastructure.object_storage import ObjectStorage
from ticketdesk.models.ticket import SweepReport, Ticket, TicketFilter
from ticketdesk.repositories.ticket_repository import TicketRepository

logger = get_logger(__name__)

DAY_MS = 24 * 60 * 60 * 1000


class RetentionSweeper:
    """Deletes tickets older than the retention window, media first.

    The record is removed even when S3 rejects some media deletions: a leaked
    remote object is bounded, a leaked record would be swept forever. When
    storage is suspended the run stops and the untouched records stay, so the
    next run retries their media. Each run re-evaluates the filter.
    """

    def __init__(
        self,
        *,
        ticket_repository: TicketRepository,
        storage: ObjectStorage,
        spacing_seconds: float = 0.3,
        clock_ms: Callable[[], int] = epoch_ms,
    ) -> None:
        self.ticket_repository = ticket_repository
        self.storage = storage
        self.spacing_seconds = max(0.0, float(spacing_seconds))
        self.clock_ms = clock_ms

    async def sweep(self, max_age_days: int) -> SweepReport:
        cutoff = self.clock_ms() - int(max_age_days) * DAY_MS
        report = SweepReport(cutoff=cutoff)
        expired = await self.ticket_repository.find(TicketFilter(created_before=cutoff))
        logger.info("sweep_started", max_age_days=max_age_days, expired=len(expired))

        for position, ticket in enumerate(expired):
            try:
                await self._delete_media(ticket, report)
            except ServiceSuspendedError as exc:
                report.tickets_deferred = len(expired) - position
                logger.warning(
                    "sweep_paused_storage_suspended",
                    ticket_id=ticket.id,
                    deferred=report.tickets_deferred,
                    error=exc.message,
                )
                break
            try:
                await self.ticket_repository.delete_one(ticket)
            except TicketDeskError as exc:
                report.ticket_failures += 1
                logger.error("sweep_ticket_delete_failed", ticket_id=ticket.id, uid=ticket.identifier, error=exc.message)
                continue
            report.tickets_deleted += 1
            logger.info("sweep_ticket_deleted", ticket_id=ticket.id, uid=ticket.identifier)

        logger.info("sweep_completed", **report.as_dict())
        return report

    async def _delete_media(self, ticket: Ticket, report: SweepReport) -> None:
        for item in ticket.media:
            if not item.remote_id:
                continue
            try:
                deleted = await self.storage.delete_by_remote_id(item.remote_id)
            except ServiceSuspendedError:
                raise
            except Exception as exc:
                deleted = False
                logger.warning("sweep_media_delete_crashed", remote_id=item.remote_id, error=str(exc))
            if deleted:
                report.media_deleted += 1
            else:
                report.media_failed += 1
                logger.warning("sweep_media_delete_failed", ticket_id=ticket.id, remote_id=item.remote_id)
            if self.spacing_seconds:
                await asyncio.sleep(self.spacing_seconds)
