from __future__ import annotations

import asyncio
from copy import deepcopy
from typing import Any

from pymongo import ASCENDING
from pymongo.errors import PyMongoError

from ticketdesk.core.errors import UpstreamUnavailableError
from ticketdesk.core.utils import epoch_ms
from ticketdesk.infrastructure.mongo_indexes import ARCHIVAL_JOBS_COLLECTION
from ticketdesk.infrastructure.persistence_clients import MongoClientManager


class ArchivalJobRepository:
    def __init__(
        self,
        *,
        mongo_manager: MongoClientManager,
    ) -> None:
        self.mongo_manager = mongo_manager

    async def enqueue(self, job: dict[str, Any]) -> dict[str, Any]:
        document = deepcopy(job)
        await self._run(lambda collection: collection.insert_one(dict(document)))
        return document

    async def list_due(self, *, now_ms: int, limit: int = 50) -> list[dict[str, Any]]:
        query = {"status": "pending", "dueAt": {"$lte": now_ms}}
        rows = await self._run(
            lambda collection: list(collection.find(query).sort("dueAt", ASCENDING).limit(max(1, limit)))
        )
        output: list[dict[str, Any]] = []
        for row in rows:
            if isinstance(row, dict):
                row.pop("_id", None)
                output.append(row)
        return output

    async def complete(self, *, job_id: str, status: str, error: str | None = None) -> None:
        update = {"$set": {"status": status, "lastError": error, "completedAt": epoch_ms()}}
        await self._run(lambda collection: collection.update_one({"jobId": job_id}, update))

    async def record_attempt(self, *, job_id: str, attempts: int, error: str | None) -> None:
        update = {"$set": {"attempts": attempts, "lastError": error}}
        await self._run(lambda collection: collection.update_one({"jobId": job_id}, update))

    def _collection(self) -> Any:
        database = self.mongo_manager.database()
        if database is None:
            raise UpstreamUnavailableError("Ticket store is not connected")
        return database[ARCHIVAL_JOBS_COLLECTION]

    async def _run(self, operation: Any) -> Any:
        collection = self._collection()
        try:
            return await asyncio.to_thread(operation, collection)
        except PyMongoError as exc:
            raise UpstreamUnavailableError(f"Archival job store operation failed: {exc}") from exc
