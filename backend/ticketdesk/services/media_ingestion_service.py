from __future__ import annotations

import asyncio
from pathlib import PurePosixPath
from typing import Callable, Sequence
from urllib.parse import urlparse

from ticketdesk.core.errors import TicketDeskError
from ticketdesk.core.utils import epoch_ms
from ticketdesk.infrastructure.logging import get_logger
from ticketdesk.infrastructure.media_fetcher import MediaFetcher
from ticketdesk.infrastructure.object_storage import ObjectStorage
from ticketdesk.models.ticket import AttachmentSource, IngestResult

logger = get_logger(__name__)


def object_path(prefix: str, source: AttachmentSource, *, stamp_ms: int) -> str:
    """`{prefix}/{stem}-{stamp}{ext}`; the stamp keeps same-named sources apart."""
    name = source.filename or PurePosixPath(urlparse(source.url).path).name or "attachment"
    pure = PurePosixPath(name)
    stem = pure.stem or "attachment"
    return f"{prefix.rstrip('/')}/{stem}-{stamp_ms}{pure.suffix.lower()}"


class MediaIngestionPipeline:
    """Fetches attachment bytes and uploads each one to object storage.

    Item failures are counted and skipped. The pipeline never touches the
    ticket store; callers persist the returned manifest themselves.
    """

    def __init__(
        self,
        *,
        fetcher: MediaFetcher,
        storage: ObjectStorage,
        spacing_seconds: float = 0.5,
        clock_ms: Callable[[], int] = epoch_ms,
    ) -> None:
        self.fetcher = fetcher
        self.storage = storage
        self.spacing_seconds = max(0.0, float(spacing_seconds))
        self.clock_ms = clock_ms

    async def ingest(self, sources: Sequence[AttachmentSource], destination_prefix: str) -> IngestResult:
        result = IngestResult()
        last_stamp = 0
        for index, source in enumerate(sources):
            if index and self.spacing_seconds:
                await asyncio.sleep(self.spacing_seconds)
            try:
                buffer = await self.fetcher.fetch(source.url)
                # two uploads inside the same millisecond must not share a path
                last_stamp = max(self.clock_ms(), last_stamp + 1)
                path = object_path(destination_prefix, source, stamp_ms=last_stamp)
                item = await self.storage.upload_bytes(buffer, path)
            except TicketDeskError as exc:
                result.failed_count += 1
                logger.warning("media_item_failed", url=source.url, error=exc.message)
                continue
            except Exception as exc:
                result.failed_count += 1
                logger.exception("media_item_crashed", url=source.url, error=str(exc))
                continue
            if not item.remote_id:
                result.failed_count += 1
                logger.warning("media_item_missing_remote_id", url=source.url)
                continue
            result.manifest.append(item)
            result.succeeded_count += 1
            logger.info("media_uploaded", remote_id=item.remote_id)
        logger.info(
            "media_ingest_completed",
            prefix=destination_prefix,
            succeeded=result.succeeded_count,
            failed=result.failed_count,
        )
        return result
