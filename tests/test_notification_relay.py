import asyncio

import pytest

from app.services.inbox_session import ContactListView, ConversationView, InboxSession
from app.services.notification_relay import ChangeEvent, ChangeType, NotificationRelay


def event(table, change, **row):
    if change == ChangeType.DELETE:
        return ChangeEvent(table=table, type=change, old_record=row)
    return ChangeEvent(table=table, type=change, record=row)


@pytest.mark.asyncio
async def test_subscription_filters_by_table_event_and_match():
    relay = NotificationRelay()
    subscription = relay.subscribe("messages", events=[ChangeType.INSERT], match={"contact_id": "c1"})

    relay.publish(event("messages", ChangeType.INSERT, id="m1", contact_id="c2"))
    relay.publish(event("messages", ChangeType.UPDATE, id="m2", contact_id="c1"))
    relay.publish(event("contacts", ChangeType.INSERT, id="c1", contact_id="c1"))
    delivered = relay.publish(event("messages", ChangeType.INSERT, id="m3", contact_id="c1"))

    assert delivered == 1
    received = await asyncio.wait_for(subscription.__anext__(), timeout=1)
    assert received.record["id"] == "m3"


@pytest.mark.asyncio
async def test_closing_subscription_ends_iteration_and_unsubscribes():
    relay = NotificationRelay()

    async with relay.subscribe("messages") as subscription:
        relay.publish(event("messages", ChangeType.INSERT, id="m1"))
        assert relay.subscription_count == 1

    assert relay.subscription_count == 0
    assert relay.publish(event("messages", ChangeType.INSERT, id="m2")) == 0
    assert [item async for item in subscription] == []


@pytest.mark.asyncio
async def test_shared_queue_skips_other_owners():
    relay = NotificationRelay()
    queue = asyncio.Queue()
    messages = relay.subscribe("messages", queue=queue)
    relay.subscribe("contacts", queue=queue)

    relay.publish(event("contacts", ChangeType.UPDATE, id="c1"))
    relay.publish(event("messages", ChangeType.INSERT, id="m1"))

    received = await asyncio.wait_for(messages.__anext__(), timeout=1)
    assert received.table == "messages"


def test_conversation_view_reconciles_by_id():
    view = ConversationView("c1", [
        {"id": "m2", "contact_id": "c1", "created_at": "2025-10-21T10:00:02+00:00", "content": "b"},
        {"id": "m1", "contact_id": "c1", "created_at": "2025-10-21T10:00:01+00:00", "content": "a"},
    ])

    assert [row["id"] for row in view.messages] == ["m1", "m2"]

    # Replayed insert is an upsert, not a duplicate
    assert view.apply(event("messages", ChangeType.INSERT, id="m1", contact_id="c1",
                            created_at="2025-10-21T10:00:01+00:00", content="a"))
    assert len(view) == 2

    view.apply(event("messages", ChangeType.UPDATE, id="m2", contact_id="c1",
                     created_at="2025-10-21T10:00:02+00:00", content="b2", is_draft=True))
    assert view.get("m2")["content"] == "b2"
    assert [row["id"] for row in view.drafts] == ["m2"]

    assert not view.apply(event("messages", ChangeType.INSERT, id="x", contact_id="other"))
    assert view.apply(event("messages", ChangeType.DELETE, id="m2", contact_id="c1"))
    assert "m2" not in view


def test_contact_list_view_orders_by_activity():
    view = ContactListView([
        {"id": "a", "last_message_at": None, "unread_count": 0},
        {"id": "b", "last_message_at": "2025-10-21T10:00:00+00:00", "unread_count": 2},
    ])
    view.apply(event("contacts", ChangeType.UPDATE, id="a", last_message_at="2025-10-21T11:00:00+00:00", unread_count=1))

    assert [row["id"] for row in view.contacts] == ["a", "b"]
    assert view.total_unread == 3


def make_session(relay, contact_service, message_service, draft_service):
    return InboxSession(relay, contact_service, message_service, draft_service, user_id="operator-1")


@pytest.mark.asyncio
async def test_inbound_for_open_contact_reaches_session_without_unread(
    c2, relay, contact_service, message_service, draft_service, connection_manager
):
    async with make_session(relay, contact_service, message_service, draft_service) as session:
        await connection_manager.connect(object(), session, "operator-1")
        snapshot = await session.open_contact(c2["id"])
        assert snapshot["type"] == "snapshot"
        assert snapshot["messages"] == []
        session.drain()

        message, contact = await message_service.receive_inbound(
            c2["id"], "Olá, doutora", open_contact_ids=connection_manager.get_open_contact_ids()
        )

        assert contact.unread_count == 0
        frames = session.drain()
        inserted = [frame for frame in frames if frame["table"] == "messages" and frame["event"] == "INSERT"]
        assert [frame["record"]["id"] for frame in inserted] == [message.id]
        assert [row["content"] for row in session.conversation.messages] == ["Olá, doutora"]


@pytest.mark.asyncio
async def test_inbound_for_other_contact_counts_unread_and_updates_sidebar(
    c1, c2, relay, contact_service, message_service, draft_service, connection_manager
):
    async with make_session(relay, contact_service, message_service, draft_service) as session:
        await connection_manager.connect(object(), session)
        await session.open_contact(c1["id"])
        session.drain()

        _, contact = await message_service.receive_inbound(
            c2["id"], "Oi", open_contact_ids=connection_manager.get_open_contact_ids()
        )

        assert contact.unread_count == 1
        frames = session.drain()
        assert all(frame["table"] != "messages" for frame in frames)
        assert session.contacts.get(c2["id"])["unread_count"] == 1
        assert session.conversation.messages == []


@pytest.mark.asyncio
async def test_switching_contacts_releases_previous_subscriptions(
    c1, c2, relay, contact_service, message_service, draft_service
):
    session = make_session(relay, contact_service, message_service, draft_service)
    await session.start()
    assert relay.subscription_count == 1

    await session.open_contact(c1["id"])
    assert relay.subscription_count == 3
    await session.open_contact(c2["id"])
    assert relay.subscription_count == 3
    assert session.active_contact_id == c2["id"]

    # Changes for the previously open contact no longer reach the conversation
    await message_service.receive_inbound(c1["id"], "Estou com dor")
    frames = session.drain()
    assert all(frame.get("table") != "messages" for frame in frames)

    session.close()
    assert relay.subscription_count == 0
    await draft_service.wait_idle()


@pytest.mark.asyncio
async def test_typing_frames_follow_draft_lifecycle(c1, relay, contact_service, message_service, draft_service):
    async with make_session(relay, contact_service, message_service, draft_service) as session:
        await session.open_contact(c1["id"])
        session.drain()

        await message_service.send_message(c1["id"], "Estou com dor")
        await draft_service.wait_idle()

        frames = session.drain()
        typing = [frame for frame in frames if frame["type"] == "typing"]
        assert [frame["is_typing"] for frame in typing] == [True, False]
        assert [row["sender_type"] for row in session.conversation.messages] == ["user", "bot"]
        assert session.conversation.drafts[0]["is_draft"] is True


@pytest.mark.asyncio
async def test_opening_unknown_contact_leaves_nothing_open(relay, contact_service, message_service, draft_service):
    from app.services.errors import NotFoundError

    async with make_session(relay, contact_service, message_service, draft_service) as session:
        with pytest.raises(NotFoundError):
            await session.open_contact("missing")
        assert session.active_contact_id is None
        assert relay.subscription_count == 1

    assert relay.subscription_count == 0


@pytest.mark.asyncio
async def test_disconnect_releases_session(c2, relay, contact_service, message_service, draft_service, connection_manager):
    session = make_session(relay, contact_service, message_service, draft_service)
    await session.start()
    websocket = object()
    await connection_manager.connect(websocket, session)
    await session.open_contact(c2["id"])
    assert connection_manager.get_open_contact_ids() == {c2["id"]}

    connection_manager.disconnect(websocket)

    assert connection_manager.get_open_contact_ids() == set()
    assert relay.subscription_count == 0
