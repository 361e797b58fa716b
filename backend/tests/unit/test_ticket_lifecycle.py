from __future__ import annotations

import asyncio

import pytest

from ticketdesk.core.errors import NotFoundError, RateLimitedError, TicketDeskError, UpstreamUnavailableError
from ticketdesk.infrastructure.discord_client import ChatMessage
from ticketdesk.models.ticket import AttachmentSource


def _sources(*names: str) -> list[AttachmentSource]:
    return [AttachmentSource(url=f"https://cdn.test/{name}", filename=name) for name in names]


class _RecordingNotifier:
    def __init__(self) -> None:
        self.calls: list[tuple[str, list[str]]] = []

    async def notify(self, identifier, matches):
        self.calls.append((identifier, [ticket.id for ticket in matches]))
        return {"delivered": 0, "failed": 0}


def test_seller_ticket_starts_without_media_in_a_private_channel(desk) -> None:
    ticket, channel_ref = asyncio.run(desk.lifecycle.create_seller_ticket(" UID-1 ", "two shirts", "user-7"))

    assert ticket.media == []
    assert ticket.identifier == "UID-1"
    assert ticket.channel_ref == channel_ref
    assert desk.chat.created == [
        {"id": channel_ref, "name": "ticket-seller-UID-1", "parent": "cat-seller", "identity": "user-7"}
    ]
    stored = desk.tickets()
    assert len(stored) == 1
    assert stored[0]["images"] == []
    assert stored[0]["createdAt"] == desk.clock.now

    summary = desk.chat.messages[channel_ref][0]
    assert "UID-1" in summary["embeds"][0]["title"]
    custom_ids = [item["custom_id"] for item in summary["components"][0]["components"]]
    assert custom_ids == ["save_images", "delete_channel"]

    jobs = desk.jobs()
    assert len(jobs) == 1
    assert jobs[0]["channelId"] == channel_ref
    assert jobs[0]["dueAt"] == desk.clock.now + 10 * 60 * 1000


def test_seller_ticket_requires_identifier(desk) -> None:
    with pytest.raises(TicketDeskError):
        asyncio.run(desk.lifecycle.create_seller_ticket("   ", "", "user-7"))
    assert desk.chat.created == []


def test_seller_ticket_creation_is_rate_limited_per_owner(desk_factory) -> None:
    desk = desk_factory(ticket_create_limit=1)
    asyncio.run(desk.lifecycle.create_seller_ticket("UID-1", "", "user-7"))

    with pytest.raises(RateLimitedError):
        asyncio.run(desk.lifecycle.create_seller_ticket("UID-2", "", "user-7"))

    asyncio.run(desk.lifecycle.create_seller_ticket("UID-3", "", "user-8"))
    assert len(desk.tickets()) == 2


def test_seller_ticket_persist_failure_discards_channel(desk) -> None:
    desk.mongo_manager._client = None

    with pytest.raises(UpstreamUnavailableError):
        asyncio.run(desk.lifecycle.create_seller_ticket("UID-1", "", "user-7"))

    assert desk.chat.deleted == ["chan-1"]
    assert desk.chat.channels == set()


def test_channel_creation_failure_is_reported(desk) -> None:
    desk.chat.fail_create = True

    with pytest.raises(UpstreamUnavailableError) as exc:
        asyncio.run(desk.lifecycle.create_seller_ticket("UID-1", "", "user-7"))

    assert exc.value.message == "Channel creation failed."
    assert desk.tickets() == []


def test_save_media_without_sources_is_a_noop(desk) -> None:
    _, channel_ref = asyncio.run(desk.lifecycle.create_seller_ticket("UID-1", "", "user-7"))

    assert asyncio.run(desk.lifecycle.save_media(channel_ref, [])) == 0
    assert desk.tickets()[0]["images"] == []


def test_save_media_appends_every_source_in_order(desk) -> None:
    _, channel_ref = asyncio.run(desk.lifecycle.create_seller_ticket("UID-1", "", "user-7"))

    saved = asyncio.run(desk.lifecycle.save_media(channel_ref, _sources("a.png", "b.JPG", "c.png")))

    assert saved == 3
    images = desk.tickets()[0]["images"]
    assert [row["publicId"].split("/")[-1].split("-")[0] for row in images] == ["a", "b", "c"]
    assert all(row["publicId"].startswith("tickets/UID-1/") for row in images)
    assert images[1]["publicId"].endswith(".jpg")


def test_save_media_counts_unfetchable_sources_as_failures(desk) -> None:
    _, channel_ref = asyncio.run(desk.lifecycle.create_seller_ticket("UID-1", "", "user-7"))
    asyncio.run(desk.lifecycle.save_media(channel_ref, _sources("first.png")))

    desk.chat.recent[channel_ref] = [
        ChatMessage(id="m2", attachments=_sources("broken-1.png", "ok-2.png")),
        ChatMessage(id="m1", attachments=_sources("ok-1.png", "broken-2.png")),
    ]
    result = asyncio.run(desk.lifecycle.save_channel_media(channel_ref))

    assert result.succeeded_count == 2
    assert result.failed_count == 2
    images = desk.tickets()[0]["images"]
    assert len(images) == 3
    assert [row["publicId"].split("/")[-1].split("-")[0] for row in images] == ["first", "ok", "ok"]
    assert "ok-1-" in images[1]["publicId"]
    assert "ok-2-" in images[2]["publicId"]


def test_lifecycle_operations_keep_identity_fields(desk) -> None:
    ticket, channel_ref = asyncio.run(desk.lifecycle.create_seller_ticket("UID-1", "desc", "user-7"))
    before = {key: desk.tickets()[0][key] for key in ("uid", "userId", "createdAt")}

    desk.clock.advance(5_000)
    asyncio.run(desk.lifecycle.save_media(channel_ref, _sources("a.png")))
    asyncio.run(desk.lifecycle.archive_channel(channel_ref))
    asyncio.run(desk.lifecycle.reopen(ticket.id))

    after = {key: desk.tickets()[0][key] for key in ("uid", "userId", "createdAt")}
    assert after == before
    assert before["createdAt"] == ticket.created_at


def test_save_channel_media_announces_completed_order(desk) -> None:
    ticket, channel_ref = asyncio.run(desk.lifecycle.create_seller_ticket("UID-1", "", "user-7"))
    desk.chat.recent[channel_ref] = [ChatMessage(id="m1", attachments=_sources("a.png"))]

    asyncio.run(desk.lifecycle.save_channel_media(channel_ref))

    notices = desk.chat.messages["admin-announce"]
    assert len(notices) == 1
    row = notices[0]["components"][0]
    assert [item["custom_id"] for item in row["components"]] == [f"view_ticket_{ticket.id}"]


def test_save_channel_media_without_uploads_skips_announcement(desk) -> None:
    _, channel_ref = asyncio.run(desk.lifecycle.create_seller_ticket("UID-1", "", "user-7"))
    desk.chat.recent[channel_ref] = [ChatMessage(id="m1", attachments=_sources("broken.png"))]

    result = asyncio.run(desk.lifecycle.save_channel_media(channel_ref))

    assert result.failed_count == 1
    assert "admin-announce" not in desk.chat.messages


def test_save_media_for_unknown_channel_raises_not_found(desk) -> None:
    with pytest.raises(NotFoundError):
        asyncio.run(desk.lifecycle.save_media("chan-unknown", _sources("a.png")))
    assert desk.storage.objects == {}


def test_single_match_lookup_does_not_notify(desk) -> None:
    recorder = _RecordingNotifier()
    desk.lifecycle.notifier = recorder
    asyncio.run(desk.lifecycle.create_seller_ticket("UID-1", "", "user-7"))

    matches, channel_ref = asyncio.run(desk.lifecycle.create_buyer_lookup("UID-1", "buyer-1"))

    assert len(matches) == 1
    assert recorder.calls == []
    assert desk.chat.created[-1]["parent"] == "cat-buyer"
    assert desk.chat.created[-1]["identity"] == "buyer-1"
    last = desk.chat.messages[channel_ref][-1]
    assert last["components"][0]["components"][0]["custom_id"] == "delete_channel"


def test_duplicate_match_lookup_notifies_once_with_all_matches(desk) -> None:
    recorder = _RecordingNotifier()
    desk.lifecycle.notifier = recorder
    first, _ = asyncio.run(desk.lifecycle.create_seller_ticket("UID-1", "", "user-7"))
    desk.clock.advance(1_000)
    second, _ = asyncio.run(desk.lifecycle.create_seller_ticket("UID-1", "", "user-8"))

    matches, _ = asyncio.run(desk.lifecycle.create_buyer_lookup("UID-1", "buyer-1"))

    assert [ticket.id for ticket in matches] == [first.id, second.id]
    assert recorder.calls == [("UID-1", [first.id, second.id])]


def test_lookup_without_matches_creates_no_channel(desk) -> None:
    with pytest.raises(NotFoundError):
        asyncio.run(desk.lifecycle.create_buyer_lookup("missing", "buyer-1"))
    assert desk.chat.created == []


def test_lookup_publishes_media_urls_after_each_summary(desk) -> None:
    _, seller_ref = asyncio.run(desk.lifecycle.create_seller_ticket("UID-1", "", "user-7"))
    asyncio.run(desk.lifecycle.save_media(seller_ref, _sources("a.png", "b.png")))

    _, channel_ref = asyncio.run(desk.lifecycle.create_buyer_lookup("UID-1", "buyer-1"))

    published = desk.chat.messages[channel_ref]
    assert published[0]["embeds"][0]["title"] == "Order - UID: UID-1"
    urls = [row["url"] for row in desk.tickets()[0]["images"]]
    assert [row["content"] for row in published[1:3]] == urls


def test_reopen_recreates_channel_and_republishes_media(desk) -> None:
    ticket, old_ref = asyncio.run(desk.lifecycle.create_seller_ticket("UID-1", "", "user-7"))
    asyncio.run(desk.lifecycle.save_media(old_ref, _sources("a.png", "b.png", "c.png")))
    asyncio.run(desk.lifecycle.archive_channel(old_ref))

    new_ref = asyncio.run(desk.lifecycle.reopen(ticket.id))

    assert new_ref != old_ref
    assert desk.tickets()[0]["channelId"] == new_ref
    urls = [row["url"] for row in desk.tickets()[0]["images"]]
    assert desk.chat.contents(new_ref) == urls
    assert "restored" in desk.chat.messages[new_ref][0]["embeds"][0]["title"]
    assert desk.chat.created[-1]["identity"] == "user-7"


def test_reopen_with_live_channel_returns_it(desk) -> None:
    ticket, channel_ref = asyncio.run(desk.lifecycle.create_seller_ticket("UID-1", "", "user-7"))

    assert asyncio.run(desk.lifecycle.reopen(ticket.id)) == channel_ref
    assert len(desk.chat.created) == 1


def test_same_admin_notice_reopens_after_every_archive(desk) -> None:
    ticket, first_ref = asyncio.run(desk.lifecycle.create_seller_ticket("UID-1", "", "user-7"))
    asyncio.run(desk.lifecycle.save_media(first_ref, _sources("a.png")))

    asyncio.run(desk.lifecycle.archive_channel(first_ref))
    second_ref = asyncio.run(desk.lifecycle.reopen(ticket.id))
    asyncio.run(desk.lifecycle.archive_channel(second_ref))
    third_ref = asyncio.run(desk.lifecycle.reopen(ticket.id))

    assert len({first_ref, second_ref, third_ref}) == 3
    assert desk.tickets()[0]["channelId"] == third_ref
    assert asyncio.run(desk.lifecycle.reopen(ticket.id)) == third_ref


def test_reopen_unknown_ticket_raises_not_found(desk) -> None:
    with pytest.raises(NotFoundError):
        asyncio.run(desk.lifecycle.reopen("ticket_missing"))


def test_archive_channel_twice_is_safe(desk) -> None:
    _, channel_ref = asyncio.run(desk.lifecycle.create_seller_ticket("UID-1", "", "user-7"))

    assert asyncio.run(desk.lifecycle.archive_channel(channel_ref)) is True
    assert asyncio.run(desk.lifecycle.archive_channel(channel_ref)) is False
    assert len(desk.tickets()) == 1


def test_audit_lookup_presents_matches_in_audit_channel(desk) -> None:
    asyncio.run(desk.lifecycle.create_seller_ticket("UID-1", "", "user-7"))

    matches = asyncio.run(desk.lifecycle.audit_lookup("UID-1", "admin-check"))

    assert len(matches) == 1
    assert desk.chat.messages["admin-check"][0]["embeds"][0]["title"] == "Order details (ADMIN)"


def test_concurrent_saves_on_one_channel_do_not_interleave(desk) -> None:
    _, channel_ref = asyncio.run(desk.lifecycle.create_seller_ticket("UID-1", "", "user-7"))
    original_upload = desk.storage.upload_bytes

    async def slow_upload(buffer: bytes, path: str):
        await asyncio.sleep(0)
        return await original_upload(buffer, path)

    desk.storage.upload_bytes = slow_upload

    async def both() -> list[int]:
        return await asyncio.gather(
            desk.lifecycle.save_media(channel_ref, _sources("a1.png", "a2.png", "a3.png")),
            desk.lifecycle.save_media(channel_ref, _sources("b1.png", "b2.png", "b3.png")),
        )

    assert asyncio.run(both()) == [3, 3]
    uploaded = [path.split("/")[-1][0] for path in desk.storage.objects]
    assert uploaded in (["a"] * 3 + ["b"] * 3, ["b"] * 3 + ["a"] * 3)
    batches = [row["publicId"].split("/")[-1][0] for row in desk.tickets()[0]["images"]]
    assert batches in (["a"] * 3 + ["b"] * 3, ["b"] * 3 + ["a"] * 3)


def test_save_media_removes_uploads_when_ticket_vanishes(desk) -> None:
    _, channel_ref = asyncio.run(desk.lifecycle.create_seller_ticket("UID-1", "", "user-7"))
    original_upload = desk.storage.upload_bytes

    async def upload_then_drop_record(buffer: bytes, path: str):
        desk.tickets().clear()
        return await original_upload(buffer, path)

    desk.storage.upload_bytes = upload_then_drop_record

    with pytest.raises(NotFoundError):
        asyncio.run(desk.lifecycle.save_media(channel_ref, _sources("a.png", "b.png")))

    assert desk.storage.objects == {}
    assert len(desk.storage.delete_calls) == 2
