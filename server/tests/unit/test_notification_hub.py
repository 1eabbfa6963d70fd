"""Unit tests for notification persistence and live delivery."""

import pytest

from petcare.core.exceptions import NotFoundError, ValidationError
from petcare.models import NotificationType, TargetType
from petcare.services.notification_service import (
    EVENT_CREATED,
    EVENT_DELETED,
    EVENT_READ,
    EVENT_READ_ALL,
    NotificationCommand,
    NotificationHub,
    NotificationNotFoundError,
)


def _command(receiver_id="member-1", title="Someone liked your post", **kwargs):
    return NotificationCommand(
        receiver_id=receiver_id,
        type=kwargs.pop("type", NotificationType.POST_LIKE),
        title=title,
        target_type=kwargs.pop("target_type", TargetType.POST_LIKE),
        target_id=kwargs.pop("target_id", "post-1"),
        **kwargs,
    )


@pytest.fixture
def hub(test_session, registry, clock):
    return NotificationHub(test_session, registry=registry, clock=clock)


@pytest.mark.asyncio
async def test_create_and_push_persists_and_pushes(hub, members, registry):
    first_tab = registry.open("member-1")
    second_tab = registry.open("member-1")
    bystander = registry.open("member-2")

    notification = await hub.create_and_push(_command(actor_id="member-2", link_url="/board/readOne/post-1"))

    assert notification.id is not None
    assert notification.event_id
    assert notification.is_read is False
    assert notification.actor_id == "member-2"

    for channel in (first_tab, second_tab):
        event = await channel.next_event(timeout=0.1)
        assert event.event == EVENT_CREATED
        assert event.event_id == notification.event_id
        assert event.data["id"] == notification.id
        assert event.data["type"] == "POST_LIKE"
    assert await bystander.next_event(timeout=0.05) is None


@pytest.mark.asyncio
async def test_create_and_push_validates_command(hub, members):
    with pytest.raises(ValidationError):
        await hub.create_and_push(_command(receiver_id=""))
    with pytest.raises(NotFoundError):
        await hub.create_and_push(_command(receiver_id="ghost"))


@pytest.mark.asyncio
async def test_create_without_open_channel_still_persists(hub, members):
    await hub.create_and_push(_command())

    assert await hub.count_unread("member-1") == 1


@pytest.mark.asyncio
async def test_list_pages_newest_first(hub, members):
    created = [await hub.create_and_push(_command(title=f"Like {i}")) for i in range(5)]
    await hub.create_and_push(_command(receiver_id="member-2"))

    first_page, total = await hub.list_for("member-1", page=0, size=2)
    second_page, _ = await hub.list_for("member-1", page=1, size=2)

    assert total == 5
    assert [n.id for n in first_page] == [created[4].id, created[3].id]
    assert [n.id for n in second_page] == [created[2].id, created[1].id]


@pytest.mark.asyncio
async def test_mark_read_is_idempotent_and_owner_only(hub, members, registry):
    notification = await hub.create_and_push(_command())
    channel = registry.open("member-1")

    read = await hub.mark_read("member-1", notification.id)
    assert read.is_read is True
    assert read.read_at is not None

    again = await hub.mark_read("member-1", notification.id)
    assert again.read_at == read.read_at

    event = await channel.next_event(timeout=0.1)
    assert event.event == EVENT_READ
    assert event.data["id"] == notification.id
    # The repeated call changed nothing and published nothing
    assert await channel.next_event(timeout=0.05) is None

    with pytest.raises(NotificationNotFoundError) as exc_info:
        await hub.mark_read("member-2", notification.id)
    assert exc_info.value.code == "NOT_FOUND_OR_NOT_OWNER"

    assert await hub.count_unread("member-1") == 0


@pytest.mark.asyncio
async def test_mark_all_read_and_unread_filter(hub, members, registry):
    for i in range(3):
        await hub.create_and_push(_command(title=f"Like {i}"))
    await hub.create_and_push(_command(receiver_id="member-2"))
    channel = registry.open("member-1")

    assert await hub.mark_all_read("member-1") == 3
    assert await hub.mark_all_read("member-1") == 0

    event = await channel.next_event(timeout=0.1)
    assert event.event == EVENT_READ_ALL
    assert event.data == {"count": 3}

    unread, total = await hub.list_for("member-1", unread_only=True)
    assert (unread, total) == ([], 0)
    assert await hub.count_unread("member-2") == 1


@pytest.mark.asyncio
async def test_delete_is_owner_only(hub, members, registry):
    notification = await hub.create_and_push(_command())
    notification_id = notification.id
    channel = registry.open("member-1")

    with pytest.raises(NotificationNotFoundError):
        await hub.delete("member-2", notification_id)

    await hub.delete("member-1", notification_id)

    event = await channel.next_event(timeout=0.1)
    assert event.event == EVENT_DELETED
    assert event.data["id"] == notification_id

    _, total = await hub.list_for("member-1")
    assert total == 0
    with pytest.raises(NotificationNotFoundError):
        await hub.delete("member-1", notification_id)


@pytest.mark.asyncio
async def test_replay_after_returns_only_later_notifications(hub, members):
    first = await hub.create_and_push(_command(title="first"))
    second = await hub.create_and_push(_command(title="second"))
    third = await hub.create_and_push(_command(title="third"))
    await hub.create_and_push(_command(receiver_id="member-2", title="not yours"))

    replayed = await hub.replay_after("member-1", first.event_id)

    assert [n.id for n in replayed] == [second.id, third.id]
    assert await hub.replay_after("member-1", third.event_id) == []
    assert await hub.replay_after("member-1", None) == []


@pytest.mark.asyncio
async def test_replay_after_unknown_or_foreign_event_id_is_empty(hub, members):
    await hub.create_and_push(_command())
    foreign = await hub.create_and_push(_command(receiver_id="member-2"))

    assert await hub.replay_after("member-1", "no-such-event") == []
    assert await hub.replay_after("member-1", foreign.event_id) == []


@pytest.mark.asyncio
async def test_connect_replays_missed_before_live(hub, members, registry):
    seen = await hub.create_and_push(_command(title="seen"))
    missed = await hub.create_and_push(_command(title="missed"))

    channel = await hub.connect("member-1", seen.event_id)
    live = await hub.create_and_push(_command(title="live"))

    first = await channel.next_event(timeout=0.1)
    second = await channel.next_event(timeout=0.1)
    assert [first.event_id, second.event_id] == [missed.event_id, live.event_id]
    assert await channel.next_event(timeout=0.05) is None
    assert registry.connection_count() == 1


@pytest.mark.asyncio
async def test_blank_title_defaults_from_type(hub, members):
    notification = await hub.create_and_push(
        NotificationCommand(receiver_id="member-1", type=NotificationType.KEYWORD_MATCH)
    )
    padded = await hub.create_and_push(_command(title="   "))

    assert notification.title == "Keyword match"
    assert padded.title == "Post like"


@pytest.mark.asyncio
async def test_unknown_type_is_rejected(hub, members):
    with pytest.raises(ValidationError):
        await hub.create_and_push(NotificationCommand(receiver_id="member-1", type="SOMETHING_ELSE"))


@pytest.mark.asyncio
async def test_connect_resumes_after_a_deleted_notification(hub, members):
    """The last-seen notification was deleted from another tab while offline."""
    seen = await hub.create_and_push(_command(title="seen"))
    await hub.delete("member-1", seen.id)
    missed = await hub.create_and_push(_command(title="missed while offline"))

    assert missed.id > seen.id

    channel = await hub.connect("member-1", seen.event_id)

    event = await channel.next_event(timeout=0.1)
    assert event is not None
    assert event.event_id == missed.event_id
    assert await channel.next_event(timeout=0.05) is None


@pytest.mark.asyncio
async def test_deleted_notification_of_another_member_is_no_anchor(hub, members):
    foreign = await hub.create_and_push(_command(receiver_id="member-2"))
    await hub.delete("member-2", foreign.id)
    await hub.create_and_push(_command())

    assert await hub.replay_after("member-1", foreign.event_id) == []
