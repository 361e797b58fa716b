from __future__ import annotations

import asyncio
import mimetypes
from typing import Any, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ticketdesk.core.config import Settings
from ticketdesk.core.errors import ServiceSuspendedError, UpstreamUnavailableError
from ticketdesk.infrastructure.circuit_breaker import CircuitBreaker, CircuitBreakerOpenError
from ticketdesk.infrastructure.logging import get_logger
from ticketdesk.models.ticket import MediaItem

logger = get_logger(__name__)


class ObjectStorage(Protocol):
    async def upload_bytes(self, buffer: bytes, path: str) -> MediaItem: ...

    async def delete_by_remote_id(self, remote_id: str) -> bool: ...


class S3ObjectStorage:
    """S3 bucket holding ticket media. The object key doubles as the remote id."""

    def __init__(self, *, settings: Settings, breaker: CircuitBreaker, s3_client: Any | None = None) -> None:
        self.settings = settings
        self.bucket = settings.s3_bucket
        self.breaker = breaker
        self.s3_client = s3_client or boto3.client(
            "s3",
            aws_access_key_id=settings.aws_access_key_id,
            aws_secret_access_key=settings.aws_secret_access_key,
            region_name=settings.aws_region,
            endpoint_url=settings.s3_endpoint_url,
        )

    @property
    def status(self) -> str:
        return self.breaker.snapshot.state

    def public_url(self, key: str) -> str:
        if self.settings.media_public_base_url:
            return f"{self.settings.media_public_base_url}/{key}"
        if self.settings.s3_endpoint_url:
            return f"{self.settings.s3_endpoint_url.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.{self.settings.aws_region}.amazonaws.com/{key}"

    async def upload_bytes(self, buffer: bytes, path: str) -> MediaItem:
        content_type = mimetypes.guess_type(path)[0] or "application/octet-stream"

        def _put() -> None:
            self.s3_client.put_object(
                Bucket=self.bucket,
                Key=path,
                Body=buffer,
                ContentType=content_type,
                Metadata={"uploaded-by": "ticketdesk"},
            )

        try:
            await self.breaker.call(lambda: asyncio.to_thread(_put))
        except CircuitBreakerOpenError as exc:
            raise ServiceSuspendedError(str(exc)) from exc
        except (ClientError, BotoCoreError) as exc:
            logger.error("s3_upload_failed", key=path, error=str(exc))
            raise UpstreamUnavailableError(f"Upload failed for {path}") from exc

        return MediaItem(remote_url=self.public_url(path), remote_id=path)

    async def delete_by_remote_id(self, remote_id: str) -> bool:
        """True once S3 accepted the delete, False when it rejected it.

        Raises ServiceSuspendedError without calling S3 while the breaker is open.
        """
        try:
            await self.breaker.call(
                lambda: asyncio.to_thread(self.s3_client.delete_object, Bucket=self.bucket, Key=remote_id)
            )
        except CircuitBreakerOpenError as exc:
            logger.warning("s3_delete_skipped", key=remote_id, error=str(exc))
            raise ServiceSuspendedError(str(exc)) from exc
        except (ClientError, BotoCoreError) as exc:
            logger.error("s3_delete_failed", key=remote_id, error=str(exc))
            return False
        return True
