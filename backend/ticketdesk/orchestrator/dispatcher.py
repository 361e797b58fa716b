from __future__ import annotations

import asyncio
from typing import Protocol

from ticketdesk.core.errors import NotFoundError, RateLimitedError, TicketDeskError
from ticketdesk.infrastructure.logging import get_logger
from ticketdesk.orchestrator.command_parser import parse_audit_command
from ticketdesk.orchestrator.types import BUTTON, COMMAND, MODAL, PING, Acknowledgement, InteractionEvent
from ticketdesk.services import presentation
from ticketdesk.services.ticket_lifecycle_service import TicketLifecycleManager

logger = get_logger(__name__)

EPHEMERAL = 64
RESPONSE_PONG = 1
RESPONSE_MESSAGE = 4
RESPONSE_DEFERRED = 5
RESPONSE_MODAL = 9

GENERIC_FAILURE = "❌ Something went wrong, please try again."


class InteractionResponder(Protocol):
    async def edit_original_response(self, interaction_token: str, content: str) -> None: ...


class EventDispatcher:
    """Routes interactions to the lifecycle manager.

    `acknowledge` answers immediately; work that needs I/O then runs in
    `complete`, which always ends with a final message to the requester.
    """

    def __init__(
        self,
        *,
        lifecycle: TicketLifecycleManager,
        responder: InteractionResponder,
        audit_channel_ref: str,
        quick_delete_delay_seconds: float = 1.0,
    ) -> None:
        self.lifecycle = lifecycle
        self.responder = responder
        self.audit_channel_ref = audit_channel_ref
        self.quick_delete_delay_seconds = quick_delete_delay_seconds

    def acknowledge(self, event: InteractionEvent) -> Acknowledgement:
        if event.kind == PING:
            return Acknowledgement({"type": RESPONSE_PONG})
        if event.kind == BUTTON:
            if event.custom_id == presentation.OPEN_SELLER_TICKET:
                return Acknowledgement({"type": RESPONSE_MODAL, "data": presentation.seller_modal()})
            if event.custom_id == presentation.OPEN_BUYER_TICKET:
                return Acknowledgement({"type": RESPONSE_MODAL, "data": presentation.buyer_modal()})
            if event.custom_id == presentation.DELETE_CHANNEL:
                return Acknowledgement(_message("🗑️ This channel will be deleted."), follow_up=True)
            if event.custom_id == presentation.SAVE_IMAGES or event.custom_id.startswith(presentation.VIEW_TICKET_PREFIX):
                return Acknowledgement(_deferred(), follow_up=True)
        if event.kind == MODAL and event.custom_id in {presentation.SELLER_MODAL, presentation.BUYER_MODAL}:
            return Acknowledgement(_deferred(), follow_up=True)
        if event.kind == COMMAND and event.custom_id == presentation.AUDIT_COMMAND:
            return Acknowledgement(_deferred(), follow_up=True)
        logger.warning("interaction_unhandled", kind=event.kind, custom_id=event.custom_id)
        return Acknowledgement(_message("Unknown action."))

    async def complete(self, event: InteractionEvent) -> None:
        if event.kind == BUTTON and event.custom_id == presentation.DELETE_CHANNEL:
            await self._quick_delete(event.channel_ref)
            return

        try:
            content = await self._run(event)
        except (NotFoundError, RateLimitedError) as exc:
            content = f"❌ {exc.message}"
        except TicketDeskError as exc:
            logger.warning("interaction_failed", interaction_id=event.id, custom_id=event.custom_id, error=exc.message)
            content = f"❌ {exc.message}"
        except Exception:
            logger.exception("interaction_crashed", interaction_id=event.id, custom_id=event.custom_id)
            content = GENERIC_FAILURE

        try:
            await self.responder.edit_original_response(event.token, content)
        except Exception as exc:
            logger.error("interaction_reply_failed", interaction_id=event.id, error=str(exc))

    async def handle_audit_message(self, channel_ref: str, text: str) -> str | None:
        """Entry point for plain-text audit commands; ignores other channels."""
        if not self.audit_channel_ref or channel_ref != self.audit_channel_ref:
            return None
        command = parse_audit_command(text)
        if command is None:
            return None
        if not command.identifier:
            return "⚠️ Please enter a UID: `check <uid>`"
        try:
            matches = await self.lifecycle.audit_lookup(command.identifier, channel_ref)
        except NotFoundError:
            return "❌ No order found."
        except TicketDeskError as exc:
            logger.warning("audit_lookup_failed", uid=command.identifier, error=exc.message)
            return f"❌ {exc.message}"
        return f"Found {len(matches)} order(s) for UID {command.identifier}."

    async def _run(self, event: InteractionEvent) -> str:
        if event.kind == BUTTON and event.custom_id == presentation.SAVE_IMAGES:
            logger.info("save_images_requested", user_id=event.user_id, channel_id=event.channel_ref)
            result = await self.lifecycle.save_channel_media(event.channel_ref)
            content = f"✅ Uploaded {result.succeeded_count} image(s), you can leave now."
            if result.failed_count:
                content += f" {result.failed_count} image(s) could not be saved."
            return content

        if event.kind == BUTTON and event.custom_id.startswith(presentation.VIEW_TICKET_PREFIX):
            ticket_id = event.custom_id[len(presentation.VIEW_TICKET_PREFIX):]
            channel_ref = await self.lifecycle.reopen(ticket_id)
            return f"✅ Order opened: <#{channel_ref}>"

        if event.kind == MODAL and event.custom_id == presentation.SELLER_MODAL:
            _, channel_ref = await self.lifecycle.create_seller_ticket(
                event.fields.get("uid", ""),
                event.fields.get("desc", ""),
                event.user_id,
            )
            return f"✅ Your order ticket has been created, post your photos here: <#{channel_ref}>"

        if event.kind == MODAL and event.custom_id == presentation.BUYER_MODAL:
            matches, channel_ref = await self.lifecycle.create_buyer_lookup(event.fields.get("uid", ""), event.user_id)
            return f"✅ Found {len(matches)} order(s), view them here: <#{channel_ref}>"

        if event.kind == COMMAND and event.custom_id == presentation.AUDIT_COMMAND:
            text = f"check {event.fields.get('uid', '')}"
            reply = await self.handle_audit_message(event.channel_ref, text)
            if reply is None:
                return "⚠️ This command only works in the audit channel."
            return reply

        return "Unknown action."

    async def _quick_delete(self, channel_ref: str) -> None:
        # let the requester see the notice before the channel disappears
        await asyncio.sleep(self.quick_delete_delay_seconds)
        try:
            await self.lifecycle.archive_channel(channel_ref)
        except TicketDeskError as exc:
            logger.error("quick_delete_failed", channel_id=channel_ref, error=exc.message)


def _deferred() -> dict[str, object]:
    return {"type": RESPONSE_DEFERRED, "data": {"flags": EPHEMERAL}}


def _message(content: str) -> dict[str, object]:
    return {"type": RESPONSE_MESSAGE, "data": {"content": content, "flags": EPHEMERAL}}
