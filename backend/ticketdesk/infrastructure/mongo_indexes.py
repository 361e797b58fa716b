from __future__ import annotations

from typing import Any

from pymongo import ASCENDING

IndexSpec = tuple[list[tuple[str, int]], dict[str, Any]]

TICKETS_COLLECTION = "tickets"
ARCHIVAL_JOBS_COLLECTION = "archival_jobs"

MONGO_INDEX_SPECS: dict[str, list[IndexSpec]] = {
    TICKETS_COLLECTION: [
        ([("ticketId", ASCENDING)], {"name": "tickets_ticket_id_unique", "unique": True}),
        ([("uid", ASCENDING), ("createdAt", ASCENDING)], {"name": "tickets_uid_created_asc"}),
        ([("channelId", ASCENDING)], {"name": "tickets_channel_id"}),
        ([("createdAt", ASCENDING)], {"name": "tickets_created_asc"}),
    ],
    ARCHIVAL_JOBS_COLLECTION: [
        ([("jobId", ASCENDING)], {"name": "archival_jobs_job_id_unique", "unique": True}),
        ([("status", ASCENDING), ("dueAt", ASCENDING)], {"name": "archival_jobs_status_due_asc"}),
    ],
}


def resolve_database(client: Any, database_name: str | None = None) -> Any:
    if database_name:
        return client[database_name]
    return client.get_default_database("ticketdesk")


def ensure_mongo_indexes(*, client: Any, database_name: str | None = None) -> dict[str, list[str]]:
    database = resolve_database(client, database_name)
    created: dict[str, list[str]] = {}
    for collection_name, specs in MONGO_INDEX_SPECS.items():
        collection = database[collection_name]
        names: list[str] = []
        for keys, options in specs:
            names.append(str(collection.create_index(keys, **options)))
        created[collection_name] = names
    return created
