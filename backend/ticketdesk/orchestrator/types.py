from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

PING = "ping"
BUTTON = "button"
MODAL = "modal"
COMMAND = "command"


@dataclass
class InteractionEvent:
    id: str
    kind: str
    user_id: str = ""
    channel_ref: str = ""
    custom_id: str = ""
    token: str = ""
    fields: dict[str, str] = field(default_factory=dict)


@dataclass
class Acknowledgement:
    payload: dict[str, Any]
    follow_up: bool = False


@dataclass
class AuditCommand:
    identifier: str | None
