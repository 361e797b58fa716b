from __future__ import annotations

from typing import Sequence

from ticketdesk.infrastructure.discord_client import ChannelProvider, DirectNotifier
from ticketdesk.infrastructure.logging import get_logger
from ticketdesk.models.ticket import Ticket
from ticketdesk.services import presentation

logger = get_logger(__name__)


class DuplicateIdentifierNotifier:
    """Warns every owner of a shared UID plus the audit channel.

    Delivery is best effort: a failure for one recipient is logged and the
    remaining recipients are still attempted.
    """

    def __init__(
        self,
        *,
        direct_notifier: DirectNotifier,
        channels: ChannelProvider,
        audit_channel_ref: str,
    ) -> None:
        self.direct_notifier = direct_notifier
        self.channels = channels
        self.audit_channel_ref = audit_channel_ref

    async def notify(self, identifier: str, matches: Sequence[Ticket]) -> dict[str, int]:
        count = len(matches)
        owners: list[str] = []
        for ticket in matches:
            if ticket.owner_id and ticket.owner_id not in owners:
                owners.append(ticket.owner_id)

        delivered = 0
        failed = 0
        content = presentation.duplicate_owner_notice(identifier, count)
        for owner_id in owners:
            try:
                await self.direct_notifier.send_direct(owner_id, content)
                delivered += 1
            except Exception as exc:
                failed += 1
                logger.warning("duplicate_owner_notice_failed", owner_id=owner_id, uid=identifier, error=str(exc))

        if not self.audit_channel_ref:
            logger.info("duplicate_audit_notice_skipped", uid=identifier, reason="audit_channel_not_configured")
        else:
            try:
                await self.channels.send_message(
                    self.audit_channel_ref,
                    embeds=[presentation.duplicate_audit_embed(identifier, count)],
                )
                delivered += 1
            except Exception as exc:
                failed += 1
                logger.warning("duplicate_audit_notice_failed", uid=identifier, error=str(exc))

        logger.info("duplicate_uid_notified", uid=identifier, matches=count, delivered=delivered, failed=failed)
        return {"delivered": delivered, "failed": failed}
