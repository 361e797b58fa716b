from __future__ import annotations

import argparse
import json
import time
from typing import Any

from pymongo import MongoClient
from pymongo.errors import PyMongoError

from ticketdesk.core.config import Settings
from ticketdesk.infrastructure.mongo_indexes import MONGO_INDEX_SPECS, ensure_mongo_indexes


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Create the ticket and archival job indexes.")
    parser.add_argument("--mongo-uri", default=None, help="Defaults to MONGODB_URI.")
    parser.add_argument("--database", default=None, help="Database name when the URI names none.")
    parser.add_argument("--wait-seconds", type=float, default=30.0, help="How long to wait for Mongo to accept pings.")
    parser.add_argument("--dry-run", action="store_true", help="Print the planned index names without connecting.")
    return parser


def planned_indexes() -> dict[str, list[str]]:
    return {name: [str(options["name"]) for _, options in specs] for name, specs in MONGO_INDEX_SPECS.items()}


def wait_for_mongo(uri: str, *, wait_seconds: float) -> MongoClient:
    deadline = time.monotonic() + max(0.0, wait_seconds)
    while True:
        client = MongoClient(uri, serverSelectionTimeoutMS=2000)
        try:
            client.admin.command("ping")
            return client
        except PyMongoError as exc:  # pragma: no cover - needs a real server
            client.close()
            if time.monotonic() >= deadline:
                raise RuntimeError(f"Mongo at {uri} did not answer within {wait_seconds}s: {exc}") from exc
            time.sleep(1.0)


def run(*, mongo_uri: str | None, database: str | None, wait_seconds: float, dry_run: bool) -> dict[str, Any]:
    if dry_run:
        return {"dryRun": True, "indexes": planned_indexes()}

    uri = mongo_uri or Settings.from_env().mongodb_uri
    client = wait_for_mongo(uri, wait_seconds=wait_seconds)
    try:
        created = ensure_mongo_indexes(client=client, database_name=database)
    finally:
        client.close()
    return {"dryRun": False, "indexes": created}


def main() -> int:
    args = _parser().parse_args()
    summary = run(
        mongo_uri=args.mongo_uri,
        database=args.database,
        wait_seconds=args.wait_seconds,
        dry_run=args.dry_run,
    )
    print(json.dumps(summary, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
