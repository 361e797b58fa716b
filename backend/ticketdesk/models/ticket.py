from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ticketdesk.core.errors import PartialFailureError


@dataclass(frozen=True)
class MediaItem:
    remote_url: str
    remote_id: str

    def to_document(self) -> dict[str, str]:
        return {"url": self.remote_url, "publicId": self.remote_id}

    @classmethod
    def from_document(cls, payload: dict[str, Any]) -> "MediaItem":
        # legacy rows use public_id
        remote_id = payload.get("publicId") or payload.get("public_id") or ""
        return cls(remote_url=str(payload.get("url", "")), remote_id=str(remote_id))


@dataclass(frozen=True)
class AttachmentSource:
    url: str
    filename: str | None = None


@dataclass
class Ticket:
    id: str
    identifier: str
    owner_id: str
    channel_ref: str
    created_at: int
    description: str = ""
    media: list[MediaItem] = field(default_factory=list)
    record_key: Any = field(default=None, compare=False, repr=False)

    def to_document(self) -> dict[str, Any]:
        return {
            "ticketId": self.id,
            "uid": self.identifier,
            "desc": self.description,
            "userId": self.owner_id,
            "channelId": self.channel_ref,
            "images": [item.to_document() for item in self.media],
            "createdAt": self.created_at,
        }

    @classmethod
    def from_document(cls, payload: dict[str, Any]) -> "Ticket":
        images = payload.get("images") or []
        return cls(
            id=str(payload.get("ticketId", "")),
            identifier=str(payload.get("uid", "")),
            description=str(payload.get("desc") or ""),
            owner_id=str(payload.get("userId", "")),
            channel_ref=str(payload.get("channelId", "")),
            media=[MediaItem.from_document(row) for row in images if isinstance(row, dict)],
            created_at=int(payload.get("createdAt", 0)),
            record_key=payload.get("_id"),
        )


@dataclass(frozen=True)
class TicketFilter:
    """Exact-match filter over tickets. Unset fields are ignored."""

    id: str | None = None
    identifier: str | None = None
    channel_ref: str | None = None
    created_before: int | None = None

    def to_query(self) -> dict[str, Any]:
        query: dict[str, Any] = {}
        if self.id is not None:
            query["ticketId"] = self.id
        if self.identifier is not None:
            query["uid"] = self.identifier
        if self.channel_ref is not None:
            query["channelId"] = self.channel_ref
        if self.created_before is not None:
            query["createdAt"] = {"$lt": self.created_before}
        return query


@dataclass(frozen=True)
class TicketDelta:
    channel_ref: str | None = None
    description: str | None = None
    append_media: tuple[MediaItem, ...] = ()

    def to_update(self) -> dict[str, Any]:
        update: dict[str, Any] = {}
        to_set: dict[str, Any] = {}
        if self.channel_ref is not None:
            to_set["channelId"] = self.channel_ref
        if self.description is not None:
            to_set["desc"] = self.description
        if to_set:
            update["$set"] = to_set
        if self.append_media:
            update["$push"] = {"images": {"$each": [item.to_document() for item in self.append_media]}}
        return update


@dataclass
class IngestResult:
    manifest: list[MediaItem] = field(default_factory=list)
    succeeded_count: int = 0
    failed_count: int = 0


@dataclass
class SweepReport:
    cutoff: int
    tickets_deleted: int = 0
    media_deleted: int = 0
    media_failed: int = 0
    ticket_failures: int = 0
    tickets_deferred: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "cutoff": self.cutoff,
            "ticketsDeleted": self.tickets_deleted,
            "mediaDeleted": self.media_deleted,
            "mediaFailed": self.media_failed,
            "ticketFailures": self.ticket_failures,
            "ticketsDeferred": self.tickets_deferred,
        }

    def raise_for_failures(self) -> None:
        failed = self.media_failed + self.ticket_failures + self.tickets_deferred
        if failed:
            raise PartialFailureError(
                f"Sweep left {self.media_failed} media and {self.ticket_failures} ticket deletions undone, "
                f"{self.tickets_deferred} tickets deferred",
                succeeded=self.tickets_deleted + self.media_deleted,
                failed=failed,
            )
