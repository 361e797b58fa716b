from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, Callable

import httpx
import pytest
from bson import ObjectId

from ticketdesk.core.config import Settings
from ticketdesk.core.errors import UpstreamUnavailableError
from ticketdesk.infrastructure.discord_client import ChatMessage
from ticketdesk.infrastructure.media_fetcher import MediaFetcher
from ticketdesk.infrastructure.persistence_clients import MongoClientManager
from ticketdesk.infrastructure.rate_limiter import FixedWindowRateLimiter
from ticketdesk.models.ticket import MediaItem
from ticketdesk.repositories.archival_job_repository import ArchivalJobRepository
from ticketdesk.repositories.ticket_repository import TicketRepository
from ticketdesk.services.archival_scheduler import ArchivalScheduler
from ticketdesk.services.duplicate_notifier import DuplicateIdentifierNotifier
from ticketdesk.services.media_ingestion_service import MediaIngestionPipeline
from ticketdesk.services.retention_service import RetentionSweeper
from ticketdesk.services.ticket_lifecycle_service import TicketLifecycleManager

NOW_MS = 1_700_000_000_000


def _matches(row: dict[str, Any], filt: dict[str, Any]) -> bool:
    for key, condition in filt.items():
        value = row.get(key)
        if isinstance(condition, dict):
            for op, operand in condition.items():
                if value is None:
                    return False
                if op == "$lt" and not value < operand:
                    return False
                if op == "$lte" and not value <= operand:
                    return False
        elif value != condition:
            return False
    return True


def _apply(row: dict[str, Any], update: dict[str, Any]) -> None:
    row.update(deepcopy(update.get("$set", {})))
    for key, value in update.get("$push", {}).items():
        items = value["$each"] if isinstance(value, dict) and "$each" in value else [value]
        row.setdefault(key, []).extend(deepcopy(items))


class _FakeCursor(list):
    def sort(self, field_name: str, direction: int) -> "_FakeCursor":
        return _FakeCursor(sorted(self, key=lambda row: row.get(field_name, 0), reverse=direction < 0))

    def limit(self, count: int) -> "_FakeCursor":
        return _FakeCursor(self[:count])


class FakeCollection:
    def __init__(self) -> None:
        self.rows: list[dict[str, Any]] = []
        self.indexes: list[str] = []

    def insert_one(self, document: dict[str, Any]) -> None:
        document.setdefault("_id", ObjectId())
        self.rows.append(deepcopy(document))

    def find(self, filt: dict[str, Any]) -> _FakeCursor:
        return _FakeCursor(deepcopy(row) for row in self.rows if _matches(row, filt))

    def find_one(self, filt: dict[str, Any]) -> dict[str, Any] | None:
        for row in self.rows:
            if _matches(row, filt):
                return deepcopy(row)
        return None

    def find_one_and_update(self, filt: dict[str, Any], update: dict[str, Any], return_document: Any = None) -> Any:
        for row in self.rows:
            if _matches(row, filt):
                _apply(row, update)
                return deepcopy(row)
        return None

    def update_one(self, filt: dict[str, Any], update: dict[str, Any]) -> None:
        for row in self.rows:
            if _matches(row, filt):
                _apply(row, update)
                return

    def delete_one(self, filt: dict[str, Any]) -> None:
        for index, row in enumerate(self.rows):
            if _matches(row, filt):
                del self.rows[index]
                return

    def create_index(self, keys: list[tuple[str, int]], **options: Any) -> str:
        self.indexes.append(options["name"])
        return options["name"]


class FakeMongoDatabase:
    def __init__(self) -> None:
        self.collections: dict[str, FakeCollection] = {}

    def __getitem__(self, name: str) -> FakeCollection:
        if name not in self.collections:
            self.collections[name] = FakeCollection()
        return self.collections[name]


class FakeMongoClient:
    def __init__(self) -> None:
        self.db = FakeMongoDatabase()

    def get_default_database(self, default: str | None = None) -> FakeMongoDatabase:
        return self.db

    def __getitem__(self, _name: str) -> FakeMongoDatabase:
        return self.db


class FakeChat:
    """Channel provider, direct notifier and interaction responder in one."""

    def __init__(self) -> None:
        self.channels: set[str] = set()
        self.created: list[dict[str, str]] = []
        self.deleted: list[str] = []
        self.messages: dict[str, list[dict[str, Any]]] = {}
        self.recent: dict[str, list[ChatMessage]] = {}
        self.directs: list[tuple[str, str]] = []
        self.edits: list[tuple[str, str]] = []
        self.fail_create = False
        self.fail_direct: set[str] = set()
        self._next = 0

    async def create_private_channel(self, name: str, parent_category: str, allowed_identity: str) -> str:
        if self.fail_create:
            raise UpstreamUnavailableError("channel create refused")
        self._next += 1
        channel_ref = f"chan-{self._next}"
        self.channels.add(channel_ref)
        self.created.append(
            {"id": channel_ref, "name": name, "parent": parent_category, "identity": allowed_identity}
        )
        return channel_ref

    async def delete_channel(self, channel_ref: str) -> bool:
        if channel_ref not in self.channels:
            return False
        self.channels.discard(channel_ref)
        self.deleted.append(channel_ref)
        return True

    async def fetch_channel(self, channel_ref: str) -> str | None:
        return channel_ref if channel_ref in self.channels else None

    async def send_message(
        self,
        channel_ref: str,
        content: str = "",
        *,
        embeds: list[dict[str, Any]] | None = None,
        components: list[dict[str, Any]] | None = None,
    ) -> None:
        self.messages.setdefault(channel_ref, []).append(
            {"content": content, "embeds": embeds or [], "components": components or []}
        )

    async def fetch_recent_messages(self, channel_ref: str, limit: int = 100) -> list[ChatMessage]:
        return list(self.recent.get(channel_ref, []))[:limit]

    async def send_direct(self, identity: str, content: str) -> None:
        if identity in self.fail_direct:
            raise UpstreamUnavailableError("dm refused")
        self.directs.append((identity, content))

    async def edit_original_response(self, interaction_token: str, content: str) -> None:
        self.edits.append((interaction_token, content))

    def contents(self, channel_ref: str) -> list[str]:
        return [row["content"] for row in self.messages.get(channel_ref, []) if row["content"]]


class FakeStorage:
    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.delete_calls: list[str] = []
        self.fail_delete: set[str] = set()

    async def upload_bytes(self, buffer: bytes, path: str) -> MediaItem:
        self.objects[path] = buffer
        return MediaItem(remote_url=f"https://media.test/{path}", remote_id=path)

    async def delete_by_remote_id(self, remote_id: str) -> bool:
        self.delete_calls.append(remote_id)
        if remote_id in self.fail_delete:
            return False
        self.objects.pop(remote_id, None)
        return True


class FakeClock:
    def __init__(self, now: int = NOW_MS) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


def _media_handler(request: httpx.Request) -> httpx.Response:
    if "broken" in request.url.path:
        return httpx.Response(404)
    return httpx.Response(200, content=f"bytes:{request.url.path}".encode("utf-8"))


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "enable_external_services": False,
        "guild_id": "guild-1",
        "seller_category_id": "cat-seller",
        "buyer_category_id": "cat-buyer",
        "admin_announce_channel_id": "admin-announce",
        "admin_check_channel_id": "admin-check",
        "upload_spacing_seconds": 0.0,
        "delete_spacing_seconds": 0.0,
        "publish_spacing_seconds": 0.0,
    }
    values.update(overrides)
    return Settings(**values)


@dataclass
class Desk:
    settings: Settings
    mongo_manager: MongoClientManager
    chat: FakeChat
    storage: FakeStorage
    clock: FakeClock
    ticket_repository: TicketRepository
    archival_job_repository: ArchivalJobRepository
    archival_scheduler: ArchivalScheduler
    notifier: DuplicateIdentifierNotifier
    pipeline: MediaIngestionPipeline
    lifecycle: TicketLifecycleManager
    sweeper: RetentionSweeper
    extras: dict[str, Any] = field(default_factory=dict)

    def tickets(self) -> list[dict[str, Any]]:
        return self.mongo_manager.client.db["tickets"].rows

    def jobs(self) -> list[dict[str, Any]]:
        return self.mongo_manager.client.db["archival_jobs"].rows


def build_desk(settings: Settings | None = None) -> Desk:
    settings = settings or make_settings()
    mongo_manager = MongoClientManager(uri="mongodb://fake/ticketdesk", enabled=False)
    mongo_manager._client = FakeMongoClient()
    chat = FakeChat()
    storage = FakeStorage()
    clock = FakeClock()
    ticket_repository = TicketRepository(mongo_manager=mongo_manager)
    archival_job_repository = ArchivalJobRepository(mongo_manager=mongo_manager)
    archival_scheduler = ArchivalScheduler(archival_job_repository=archival_job_repository, clock_ms=clock)
    notifier = DuplicateIdentifierNotifier(
        direct_notifier=chat,
        channels=chat,
        audit_channel_ref=settings.admin_check_channel_id,
    )
    pipeline = MediaIngestionPipeline(
        fetcher=MediaFetcher(client=httpx.AsyncClient(transport=httpx.MockTransport(_media_handler))),
        storage=storage,
        spacing_seconds=0,
        clock_ms=clock,
    )
    lifecycle = TicketLifecycleManager(
        settings=settings,
        ticket_repository=ticket_repository,
        channels=chat,
        pipeline=pipeline,
        storage=storage,
        notifier=notifier,
        archival_scheduler=archival_scheduler,
        rate_limiter=FixedWindowRateLimiter(),
        clock_ms=clock,
    )
    sweeper = RetentionSweeper(ticket_repository=ticket_repository, storage=storage, spacing_seconds=0, clock_ms=clock)
    return Desk(
        settings=settings,
        mongo_manager=mongo_manager,
        chat=chat,
        storage=storage,
        clock=clock,
        ticket_repository=ticket_repository,
        archival_job_repository=archival_job_repository,
        archival_scheduler=archival_scheduler,
        notifier=notifier,
        pipeline=pipeline,
        lifecycle=lifecycle,
        sweeper=sweeper,
    )


@pytest.fixture
def desk() -> Desk:
    return build_desk()


@pytest.fixture
def desk_factory() -> Callable[..., Desk]:
    def _factory(**overrides: Any) -> Desk:
        return build_desk(make_settings(**overrides))

    return _factory
