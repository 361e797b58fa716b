from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from ticketdesk.core.config import Settings
from ticketdesk.core.errors import UpstreamUnavailableError
from ticketdesk.infrastructure.logging import get_logger
from ticketdesk.models.ticket import AttachmentSource

logger = get_logger(__name__)

VIEW_CHANNEL = 1 << 10
SEND_MESSAGES = 1 << 11
GUILD_TEXT = 0
OVERWRITE_ROLE = 0
OVERWRITE_MEMBER = 1


@dataclass
class ChatMessage:
    id: str
    content: str = ""
    attachments: list[AttachmentSource] = field(default_factory=list)


class ChannelProvider(Protocol):
    async def create_private_channel(self, name: str, parent_category: str, allowed_identity: str) -> str: ...

    async def delete_channel(self, channel_ref: str) -> bool: ...

    async def fetch_channel(self, channel_ref: str) -> str | None: ...

    async def send_message(
        self,
        channel_ref: str,
        content: str = "",
        *,
        embeds: list[dict[str, Any]] | None = None,
        components: list[dict[str, Any]] | None = None,
    ) -> None: ...

    async def fetch_recent_messages(self, channel_ref: str, limit: int = 100) -> list[ChatMessage]: ...


class DirectNotifier(Protocol):
    async def send_direct(self, identity: str, content: str) -> None: ...


class CommandRegistrar(Protocol):
    async def register_guild_commands(self, commands: list[dict[str, Any]]) -> list[str]: ...


def channel_slug(value: str) -> str:
    slug = re.sub(r"[^a-z0-9_-]+", "-", value.strip().lower()).strip("-")
    return slug[:90] or "ticket"


class DiscordRestClient:
    """Discord REST v10 adapter for the channel provider and direct notices."""

    def __init__(self, *, settings: Settings, client: httpx.AsyncClient) -> None:
        self.settings = settings
        self.client = client
        self.base_url = settings.discord_api_base_url.rstrip("/")

    @property
    def enabled(self) -> bool:
        return bool(self.settings.discord_token and self.settings.guild_id)

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bot {self.settings.discord_token}"}

    async def _request(self, method: str, path: str, *, authed: bool = True, **kwargs: Any) -> httpx.Response:
        headers = self._headers() if authed else {}
        try:
            return await self.client.request(method, f"{self.base_url}{path}", headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            raise UpstreamUnavailableError(f"Discord {method} {path} failed: {exc}") from exc

    @staticmethod
    def _raise_for_status(response: httpx.Response, action: str) -> None:
        if response.is_success:
            return
        raise UpstreamUnavailableError(f"Discord {action} failed with HTTP {response.status_code}")

    async def create_private_channel(self, name: str, parent_category: str, allowed_identity: str) -> str:
        guild_id = self.settings.guild_id
        payload: dict[str, Any] = {
            "name": channel_slug(name),
            "type": GUILD_TEXT,
            "permission_overwrites": [
                # the @everyone role shares the guild id
                {"id": guild_id, "type": OVERWRITE_ROLE, "deny": str(VIEW_CHANNEL)},
                {"id": allowed_identity, "type": OVERWRITE_MEMBER, "allow": str(VIEW_CHANNEL | SEND_MESSAGES)},
            ],
        }
        if parent_category:
            payload["parent_id"] = parent_category
        response = await self._request("POST", f"/guilds/{guild_id}/channels", json=payload)
        self._raise_for_status(response, "channel create")
        return str(response.json()["id"])

    async def delete_channel(self, channel_ref: str) -> bool:
        response = await self._request("DELETE", f"/channels/{channel_ref}")
        if response.status_code == 404:
            return False
        self._raise_for_status(response, "channel delete")
        return True

    async def fetch_channel(self, channel_ref: str) -> str | None:
        if not channel_ref:
            return None
        response = await self._request("GET", f"/channels/{channel_ref}")
        if response.status_code == 404:
            return None
        self._raise_for_status(response, "channel fetch")
        return str(response.json()["id"])

    async def send_message(
        self,
        channel_ref: str,
        content: str = "",
        *,
        embeds: list[dict[str, Any]] | None = None,
        components: list[dict[str, Any]] | None = None,
    ) -> None:
        payload: dict[str, Any] = {"content": content}
        if embeds:
            payload["embeds"] = embeds
        if components:
            payload["components"] = components
        response = await self._request("POST", f"/channels/{channel_ref}/messages", json=payload)
        self._raise_for_status(response, "message send")

    async def fetch_recent_messages(self, channel_ref: str, limit: int = 100) -> list[ChatMessage]:
        safe_limit = max(1, min(int(limit), 100))
        response = await self._request("GET", f"/channels/{channel_ref}/messages", params={"limit": safe_limit})
        self._raise_for_status(response, "message fetch")
        messages: list[ChatMessage] = []
        for row in response.json():
            if not isinstance(row, dict):
                continue
            attachments = [
                AttachmentSource(url=str(item["url"]), filename=item.get("filename"))
                for item in row.get("attachments") or []
                if isinstance(item, dict) and item.get("url")
            ]
            messages.append(ChatMessage(id=str(row.get("id", "")), content=str(row.get("content", "")), attachments=attachments))
        return messages

    async def send_direct(self, identity: str, content: str) -> None:
        response = await self._request("POST", "/users/@me/channels", json={"recipient_id": identity})
        self._raise_for_status(response, "dm open")
        await self.send_message(str(response.json()["id"]), content)

    async def register_guild_commands(self, commands: list[dict[str, Any]]) -> list[str]:
        """Replaces the guild's application commands with `commands`."""
        path = f"/applications/{self.settings.discord_application_id}/guilds/{self.settings.guild_id}/commands"
        response = await self._request("PUT", path, json=commands)
        self._raise_for_status(response, "command registration")
        return [str(row.get("name", "")) for row in response.json() if isinstance(row, dict)]

    async def edit_original_response(
        self,
        interaction_token: str,
        content: str,
        *,
        components: list[dict[str, Any]] | None = None,
    ) -> None:
        payload: dict[str, Any] = {"content": content}
        if components is not None:
            payload["components"] = components
        path = f"/webhooks/{self.settings.discord_application_id}/{interaction_token}/messages/@original"
        response = await self._request("PATCH", path, authed=False, json=payload)
        self._raise_for_status(response, "interaction response edit")
