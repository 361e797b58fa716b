from __future__ import annotations

import asyncio
import weakref
from typing import Callable, Sequence

from ticketdesk.core.config import Settings
from ticketdesk.core.errors import (
    ConfigurationMissingError,
    NotFoundError,
    RateLimitedError,
    ServiceSuspendedError,
    TicketDeskError,
    UpstreamUnavailableError,
)
from ticketdesk.core.utils import epoch_ms, generate_id
from ticketdesk.infrastructure.discord_client import ChannelProvider
from ticketdesk.infrastructure.logging import get_logger
from ticketdesk.infrastructure.object_storage import ObjectStorage
from ticketdesk.infrastructure.rate_limiter import FixedWindowRateLimiter
from ticketdesk.models.ticket import AttachmentSource, IngestResult, MediaItem, Ticket, TicketDelta, TicketFilter
from ticketdesk.repositories.ticket_repository import TicketRepository
from ticketdesk.services import presentation
from ticketdesk.services.archival_scheduler import ArchivalScheduler
from ticketdesk.services.duplicate_notifier import DuplicateIdentifierNotifier
from ticketdesk.services.media_ingestion_service import MediaIngestionPipeline

logger = get_logger(__name__)


class TicketLifecycleManager:
    """Owns ticket creation, media saves, channel archival and reopening.

    A ticket stays media-pending for its whole life: saves may repeat until
    its channel is archived. Archival removes the channel only; records and
    media are reclaimed later by the retention sweeper.
    """

    def __init__(
        self,
        *,
        settings: Settings,
        ticket_repository: TicketRepository,
        channels: ChannelProvider,
        pipeline: MediaIngestionPipeline,
        storage: ObjectStorage,
        notifier: DuplicateIdentifierNotifier,
        archival_scheduler: ArchivalScheduler,
        rate_limiter: FixedWindowRateLimiter,
        clock_ms: Callable[[], int] = epoch_ms,
    ) -> None:
        self.settings = settings
        self.ticket_repository = ticket_repository
        self.channels = channels
        self.pipeline = pipeline
        self.storage = storage
        self.notifier = notifier
        self.archival_scheduler = archival_scheduler
        self.rate_limiter = rate_limiter
        self.clock_ms = clock_ms
        self._save_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    async def create_seller_ticket(self, identifier: str, description: str, owner_id: str) -> tuple[Ticket, str]:
        uid = identifier.strip()
        if not uid:
            raise TicketDeskError("UID is required.")
        decision = self.rate_limiter.check(
            key=f"seller_ticket:{owner_id}",
            limit=self.settings.ticket_create_limit,
            window_seconds=self.settings.ticket_create_window_seconds,
        )
        if not decision.allowed:
            logger.warning("seller_ticket_rate_limited", owner_id=owner_id)
            raise RateLimitedError(retry_after_seconds=decision.retry_after_seconds)

        channel_ref = await self._create_channel(f"ticket-seller-{uid}", self.settings.seller_category_id, owner_id)
        ticket = Ticket(
            id=generate_id("ticket"),
            identifier=uid,
            description=description.strip(),
            owner_id=owner_id,
            channel_ref=channel_ref,
            created_at=self.clock_ms(),
        )
        try:
            ticket = await self.ticket_repository.create(ticket)
        except TicketDeskError as exc:
            logger.error("seller_ticket_persist_failed", uid=uid, channel_id=channel_ref, error=exc.message)
            await self._discard_channel(channel_ref)
            raise UpstreamUnavailableError("Could not save the ticket, please try again.") from exc

        await self._safe_send(
            channel_ref,
            embeds=[presentation.seller_ticket_embed(ticket)],
            components=presentation.seller_ticket_actions(),
        )
        await self._schedule_archival(channel_ref, reason="seller_ticket")
        logger.info("seller_ticket_created", uid=uid, owner_id=owner_id, ticket_id=ticket.id, channel_id=channel_ref)
        return ticket, channel_ref

    async def create_buyer_lookup(self, identifier: str, requester_id: str) -> tuple[list[Ticket], str]:
        uid = identifier.strip()
        matches = await self.find_matches(uid)
        channel_ref = await self._create_channel(f"ticket-buyer-{uid}", self.settings.buyer_category_id, requester_id)

        await self._publish_matches(channel_ref, matches, presentation.buyer_match_embed)
        await self._safe_send(
            channel_ref,
            "Your buyer lookup ticket has been created.",
            components=presentation.quick_delete_actions(),
        )
        await self._schedule_archival(channel_ref, reason="buyer_lookup")
        logger.info("buyer_lookup_created", uid=uid, requester_id=requester_id, matches=len(matches), channel_id=channel_ref)

        if len(matches) > 1:
            await self.notifier.notify(uid, matches)
        return matches, channel_ref

    async def audit_lookup(self, identifier: str, audit_channel_ref: str) -> list[Ticket]:
        """Same lookup as a buyer, presented in the audit channel itself."""
        uid = identifier.strip()
        matches = await self.find_matches(uid)
        await self._publish_matches(audit_channel_ref, matches, presentation.audit_match_embed)
        logger.info("audit_lookup_presented", uid=uid, matches=len(matches))
        if len(matches) > 1:
            await self.notifier.notify(uid, matches)
        return matches

    async def find_matches(self, identifier: str) -> list[Ticket]:
        if not identifier:
            raise NotFoundError("No order found with this UID.")
        matches = await self.ticket_repository.find(TicketFilter(identifier=identifier))
        if not matches:
            raise NotFoundError("No order found with this UID.")
        # fixed presentation order, independent of the backing store
        return sorted(matches, key=lambda ticket: ticket.created_at)

    async def save_media(self, channel_ref: str, sources: Sequence[AttachmentSource]) -> int:
        _, result = await self._save(channel_ref, sources)
        return result.succeeded_count

    async def save_channel_media(self, channel_ref: str) -> IngestResult:
        """Ingests every attachment currently visible in the ticket channel."""
        messages = await self.channels.fetch_recent_messages(channel_ref, self.settings.recent_message_limit)
        sources: list[AttachmentSource] = []
        # providers return newest first; media keeps posting order
        for message in reversed(messages):
            sources.extend(message.attachments)
        ticket, result = await self._save(channel_ref, sources)
        if result.succeeded_count:
            await self._announce_completed(ticket)
        return result

    async def archive_channel(self, channel_ref: str) -> bool:
        """Deletes the channel only. Returns False when it was already gone."""
        if not channel_ref:
            return False
        deleted = await self.channels.delete_channel(channel_ref)
        logger.info("channel_archived" if deleted else "channel_already_gone", channel_id=channel_ref)
        return deleted

    async def reopen(self, ticket_id: str) -> str:
        """Returns the ticket's live channel, recreating it when it was archived."""
        ticket = await self.ticket_repository.find_one(TicketFilter(id=ticket_id))
        if ticket is None:
            raise NotFoundError()

        existing = await self.channels.fetch_channel(ticket.channel_ref)
        if existing is not None:
            return existing

        new_ref = await self._create_channel(
            f"ticket-seller-{ticket.identifier}", self.settings.seller_category_id, ticket.owner_id
        )
        updated = await self.ticket_repository.update_one(TicketFilter(id=ticket.id), TicketDelta(channel_ref=new_ref))
        if updated is None:
            logger.warning("reopen_ticket_vanished", ticket_id=ticket.id)
            await self._discard_channel(new_ref)
            raise NotFoundError()

        await self._safe_send(
            new_ref,
            embeds=[presentation.seller_ticket_embed(updated, restored=True)],
            components=presentation.seller_ticket_actions(),
        )
        await self._publish_media(new_ref, updated.media)
        logger.info("ticket_reopened", ticket_id=updated.id, old_channel_id=ticket.channel_ref, channel_id=new_ref)
        return new_ref

    async def _save(self, channel_ref: str, sources: Sequence[AttachmentSource]) -> tuple[Ticket, IngestResult]:
        lock = self._save_locks.get(channel_ref)
        if lock is None:
            lock = asyncio.Lock()
            self._save_locks[channel_ref] = lock
        async with lock:
            ticket = await self.ticket_repository.find_one(TicketFilter(channel_ref=channel_ref))
            if ticket is None:
                raise NotFoundError()
            if not sources:
                return ticket, IngestResult()

            result = await self.pipeline.ingest(sources, f"tickets/{ticket.identifier}")
            if not result.manifest:
                return ticket, result

            updated = await self.ticket_repository.update_one(
                TicketFilter(id=ticket.id),
                TicketDelta(append_media=tuple(result.manifest)),
            )
            if updated is None:
                # removed underneath us, so the uploads have no owner record
                logger.warning("save_media_ticket_vanished", ticket_id=ticket.id, orphans=len(result.manifest))
                for item in result.manifest:
                    try:
                        await self.storage.delete_by_remote_id(item.remote_id)
                    except ServiceSuspendedError as exc:
                        logger.error("save_media_orphans_left", ticket_id=ticket.id, error=exc.message)
                        break
                raise NotFoundError()
            logger.info(
                "ticket_media_saved",
                ticket_id=ticket.id,
                uid=ticket.identifier,
                added=result.succeeded_count,
                failed=result.failed_count,
                total=len(updated.media),
            )
            return updated, result

    async def _create_channel(self, name: str, category: str, allowed_identity: str) -> str:
        try:
            return await self.channels.create_private_channel(name, category, allowed_identity)
        except TicketDeskError as exc:
            logger.error("channel_create_failed", name=name, error=exc.message)
            raise UpstreamUnavailableError("Channel creation failed.") from exc

    async def _discard_channel(self, channel_ref: str) -> None:
        try:
            await self.channels.delete_channel(channel_ref)
        except TicketDeskError as exc:
            logger.error("channel_compensation_failed", channel_id=channel_ref, error=exc.message)

    async def _schedule_archival(self, channel_ref: str, *, reason: str) -> None:
        try:
            await self.archival_scheduler.schedule(
                channel_ref=channel_ref,
                delay_seconds=self.settings.auto_archive_minutes * 60,
                reason=reason,
            )
        except TicketDeskError as exc:
            logger.error("archival_schedule_failed", channel_id=channel_ref, error=exc.message)

    async def _publish_matches(self, channel_ref: str, matches: Sequence[Ticket], render: Callable[[Ticket], dict]) -> None:
        for ticket in matches:
            await self._safe_send(channel_ref, embeds=[render(ticket)])
            await self._publish_media(channel_ref, ticket.media)

    async def _publish_media(self, channel_ref: str, media: Sequence[MediaItem]) -> None:
        for item in media:
            await self._safe_send(channel_ref, item.remote_url)
            if self.settings.publish_spacing_seconds:
                await asyncio.sleep(self.settings.publish_spacing_seconds)

    async def _announce_completed(self, ticket: Ticket) -> None:
        try:
            announce_ref = self.settings.require_channel("admin_announce_channel_id")
        except ConfigurationMissingError as exc:
            logger.info("admin_notice_skipped", uid=ticket.identifier, reason=exc.message)
            return
        notice, actions = presentation.completed_order_notice(ticket)
        await self._safe_send(announce_ref, embeds=[notice], components=actions)
        logger.info("admin_notified_completed", uid=ticket.identifier)

    async def _safe_send(self, channel_ref: str, content: str = "", **kwargs: object) -> None:
        try:
            await self.channels.send_message(channel_ref, content, **kwargs)
        except TicketDeskError as exc:
            logger.warning("message_send_failed", channel_id=channel_ref, error=exc.message)
