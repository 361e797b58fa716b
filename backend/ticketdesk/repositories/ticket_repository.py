from __future__ import annotations

import asyncio
from typing import Any

from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from ticketdesk.core.errors import UpstreamUnavailableError
from ticketdesk.infrastructure.mongo_indexes import TICKETS_COLLECTION
from ticketdesk.infrastructure.persistence_clients import MongoClientManager
from ticketdesk.models.ticket import Ticket, TicketDelta, TicketFilter


class TicketRepository:
    """Record store adapter for tickets. Each call is one store operation."""

    def __init__(
        self,
        *,
        mongo_manager: MongoClientManager,
    ) -> None:
        self.mongo_manager = mongo_manager

    async def create(self, ticket: Ticket) -> Ticket:
        document = ticket.to_document()
        await self._run(lambda collection: collection.insert_one(dict(document)))
        return Ticket.from_document(document)

    async def find(self, ticket_filter: TicketFilter) -> list[Ticket]:
        query = ticket_filter.to_query()
        rows = await self._run(lambda collection: list(collection.find(query).sort("createdAt", ASCENDING)))
        return [Ticket.from_document(row) for row in rows if isinstance(row, dict)]

    async def find_one(self, ticket_filter: TicketFilter) -> Ticket | None:
        query = ticket_filter.to_query()
        row = await self._run(lambda collection: collection.find_one(query))
        if not row:
            return None
        return Ticket.from_document(row)

    async def update_one(self, ticket_filter: TicketFilter, delta: TicketDelta) -> Ticket | None:
        query = ticket_filter.to_query()
        update = delta.to_update()
        if not update:
            return await self.find_one(ticket_filter)
        row = await self._run(
            lambda collection: collection.find_one_and_update(
                query,
                update,
                return_document=ReturnDocument.AFTER,
            )
        )
        if not row:
            return None
        return Ticket.from_document(row)

    async def delete_one(self, ticket: Ticket) -> None:
        query = {"_id": ticket.record_key} if ticket.record_key is not None else {"ticketId": ticket.id}
        await self._run(lambda collection: collection.delete_one(query))

    def _collection(self) -> Any:
        database = self.mongo_manager.database()
        if database is None:
            raise UpstreamUnavailableError("Ticket store is not connected")
        return database[TICKETS_COLLECTION]

    async def _run(self, operation: Any) -> Any:
        collection = self._collection()
        try:
            return await asyncio.to_thread(operation, collection)
        except PyMongoError as exc:
            raise UpstreamUnavailableError(f"Ticket store operation failed: {exc}") from exc
