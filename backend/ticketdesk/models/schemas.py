from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ticketdesk.orchestrator.types import BUTTON, COMMAND, MODAL, PING, InteractionEvent

INTERACTION_KINDS = {1: PING, 2: COMMAND, 3: BUTTON, 5: MODAL}


class InteractionUser(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str


class InteractionMember(BaseModel):
    model_config = ConfigDict(extra="ignore")

    user: InteractionUser | None = None


class InteractionData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    custom_id: str | None = None
    name: str | None = None
    options: list[dict[str, Any]] = Field(default_factory=list)
    components: list[dict[str, Any]] = Field(default_factory=list)


class InteractionPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = ""
    type: int
    token: str = ""
    channel_id: str | None = None
    member: InteractionMember | None = None
    user: InteractionUser | None = None
    data: InteractionData | None = None

    def to_event(self) -> InteractionEvent:
        kind = INTERACTION_KINDS.get(self.type, "unknown")
        data = self.data or InteractionData()
        user_id = ""
        if self.member is not None and self.member.user is not None:
            user_id = self.member.user.id
        elif self.user is not None:
            user_id = self.user.id

        fields: dict[str, str] = {}
        for row in data.components:
            for component in row.get("components") or []:
                if isinstance(component, dict) and component.get("custom_id"):
                    fields[str(component["custom_id"])] = str(component.get("value") or "")
        for option in data.options:
            if isinstance(option, dict) and option.get("name"):
                fields[str(option["name"])] = str(option.get("value") or "")

        return InteractionEvent(
            id=self.id,
            kind=kind,
            user_id=user_id,
            channel_ref=self.channel_id or "",
            custom_id=(data.custom_id or data.name or "") if kind != PING else "",
            token=self.token,
            fields=fields,
        )
