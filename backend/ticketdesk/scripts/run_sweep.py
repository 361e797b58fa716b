"""One-off retention sweep, same rules as the hourly background job."""
from __future__ import annotations

import argparse
import asyncio
import json
from typing import Any

from ticketdesk.core.config import Settings
from ticketdesk.core.errors import PartialFailureError
from ticketdesk.infrastructure.circuit_breaker import CircuitBreaker
from ticketdesk.infrastructure.logging import setup_logging
from ticketdesk.infrastructure.object_storage import S3ObjectStorage
from ticketdesk.infrastructure.persistence_clients import MongoClientManager
from ticketdesk.repositories.ticket_repository import TicketRepository
from ticketdesk.services.retention_service import RetentionSweeper


def _parser(default_days: int) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Delete tickets and their media older than the retention window.")
    parser.add_argument(
        "--max-age-days",
        type=int,
        default=default_days,
        help=f"Tickets older than this many days are removed (default {default_days}).",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Exit non-zero when any media or record deletion failed.",
    )
    return parser


def run(*, settings: Settings, max_age_days: int, strict: bool = False) -> dict[str, Any]:
    mongo_manager = MongoClientManager(uri=settings.mongodb_uri, enabled=True)
    mongo_manager.connect()
    if mongo_manager.client is None:
        raise RuntimeError(f"Mongo connection failed: {mongo_manager.error}")

    breaker = CircuitBreaker(
        name="object_storage",
        failure_threshold=settings.storage_failure_threshold,
        recovery_timeout_seconds=settings.storage_recovery_seconds,
    )
    sweeper = RetentionSweeper(
        ticket_repository=TicketRepository(mongo_manager=mongo_manager),
        storage=S3ObjectStorage(settings=settings, breaker=breaker),
        spacing_seconds=settings.delete_spacing_seconds,
    )
    try:
        report = asyncio.run(sweeper.sweep(max_age_days))
    finally:
        mongo_manager.disconnect()
    if strict:
        report.raise_for_failures()
    return report.as_dict()


def main() -> int:
    settings = Settings.from_env()
    setup_logging(settings.log_level)
    args = _parser(settings.retention_days).parse_args()
    try:
        summary = run(settings=settings, max_age_days=args.max_age_days, strict=args.strict)
    except PartialFailureError as exc:
        print(json.dumps({"error": exc.message, "succeeded": exc.succeeded, "failed": exc.failed}, indent=2))
        return 1
    print(json.dumps(summary, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
