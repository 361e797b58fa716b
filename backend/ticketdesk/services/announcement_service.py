from __future__ import annotations

from ticketdesk.core.config import Settings
from ticketdesk.core.errors import ConfigurationMissingError, TicketDeskError
from ticketdesk.infrastructure.discord_client import ChannelProvider, CommandRegistrar
from ticketdesk.infrastructure.logging import get_logger
from ticketdesk.services import presentation

logger = get_logger(__name__)


class AnnouncementService:
    def __init__(self, *, settings: Settings, channels: ChannelProvider) -> None:
        self.settings = settings
        self.channels = channels

    async def post_panels(self) -> dict[str, bool]:
        """Posts the seller and buyer entry panels once per start."""
        posted: dict[str, bool] = {}
        panels = {
            "seller": ("seller_announce_channel_id", presentation.seller_panel()),
            "buyer": ("buyer_announce_channel_id", presentation.buyer_panel()),
        }
        for name, (field_name, (panel, actions)) in panels.items():
            posted[name] = False
            try:
                channel_ref = self.settings.require_channel(field_name)
            except ConfigurationMissingError as exc:
                logger.info("announce_panel_skipped", panel=name, reason=exc.message)
                continue
            try:
                if await self.channels.fetch_channel(channel_ref) is None:
                    logger.warning("announce_panel_skipped", panel=name, reason="channel_not_found")
                    continue
                await self.channels.send_message(channel_ref, embeds=[panel], components=actions)
            except TicketDeskError as exc:
                logger.error("announce_panel_failed", panel=name, error=exc.message)
                continue
            posted[name] = True
        return posted

    async def register_commands(self, registrar: CommandRegistrar) -> list[str]:
        """Registers the audit slash command for the configured guild."""
        if not self.settings.discord_application_id:
            logger.warning("command_registration_skipped", reason="DISCORD_APPLICATION_ID is not configured")
            return []
        try:
            names = await registrar.register_guild_commands([presentation.audit_command()])
        except TicketDeskError as exc:
            logger.error("command_registration_failed", error=exc.message)
            return []
        logger.info("commands_registered", names=names)
        return names
