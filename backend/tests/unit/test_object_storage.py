from __future__ import annotations

import asyncio
from typing import Any

import pytest
from botocore.exceptions import ClientError

from ticketdesk.core.config import Settings
from ticketdesk.core.errors import ServiceSuspendedError, UpstreamUnavailableError
from ticketdesk.infrastructure.circuit_breaker import CircuitBreaker
from ticketdesk.infrastructure.object_storage import S3ObjectStorage


class _FakeS3:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.put_calls: list[dict[str, Any]] = []
        self.delete_calls: list[dict[str, Any]] = []

    def _maybe_fail(self, operation: str) -> None:
        if self.fail:
            raise ClientError({"Error": {"Code": "SlowDown", "Message": "Reduce your request rate."}}, operation)

    def put_object(self, **kwargs: Any) -> dict[str, Any]:
        self._maybe_fail("PutObject")
        self.put_calls.append(kwargs)
        return {}

    def delete_object(self, **kwargs: Any) -> dict[str, Any]:
        self._maybe_fail("DeleteObject")
        self.delete_calls.append(kwargs)
        return {}


def _storage(s3: _FakeS3, *, threshold: int = 5, **settings: Any) -> S3ObjectStorage:
    breaker = CircuitBreaker(name="object_storage", failure_threshold=threshold, recovery_timeout_seconds=60)
    return S3ObjectStorage(settings=Settings(s3_bucket="media", **settings), breaker=breaker, s3_client=s3)


def test_upload_returns_public_url_and_key() -> None:
    s3 = _FakeS3()
    storage = _storage(s3, media_public_base_url="https://cdn.example.com")

    item = asyncio.run(storage.upload_bytes(b"data", "tickets/UID-1/a-1.png"))

    assert item.remote_id == "tickets/UID-1/a-1.png"
    assert item.remote_url == "https://cdn.example.com/tickets/UID-1/a-1.png"
    assert s3.put_calls[0]["Bucket"] == "media"
    assert s3.put_calls[0]["ContentType"] == "image/png"


def test_public_url_defaults_to_bucket_host() -> None:
    storage = _storage(_FakeS3(), aws_region="eu-west-1")
    assert storage.public_url("k.png") == "https://media.s3.eu-west-1.amazonaws.com/k.png"


def test_upload_failure_raises_upstream_unavailable() -> None:
    storage = _storage(_FakeS3(fail=True))
    with pytest.raises(UpstreamUnavailableError):
        asyncio.run(storage.upload_bytes(b"data", "tickets/UID-1/a-1.png"))


def test_delete_failure_returns_false() -> None:
    assert asyncio.run(_storage(_FakeS3(fail=True)).delete_by_remote_id("tickets/x.png")) is False


def test_open_breaker_fails_fast_without_calling_s3() -> None:
    s3 = _FakeS3(fail=True)
    storage = _storage(s3, threshold=2)
    for _ in range(2):
        assert asyncio.run(storage.delete_by_remote_id("tickets/x.png")) is False
    assert storage.status == "open"

    s3.fail = False
    with pytest.raises(ServiceSuspendedError):
        asyncio.run(storage.delete_by_remote_id("tickets/x.png"))
    with pytest.raises(ServiceSuspendedError):
        asyncio.run(storage.upload_bytes(b"data", "tickets/x.png"))
    assert s3.delete_calls == []
    assert s3.put_calls == []
