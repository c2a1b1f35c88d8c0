import pytest

from app.models.inbox import ContactCreate, ContactTag, ContactUpdate, ContactView
from app.services.contact_service import matches_search, sort_by_activity
from app.services.errors import NotFoundError


def seed(store, remote_jid, **fields):
    return store.insert("contacts", {"remote_jid": remote_jid, **fields})


@pytest.mark.asyncio
async def test_contacts_sorted_by_last_activity_nulls_last(store, contact_service):
    seed(store, "old", name="Old", last_message_at="2025-10-20T08:00:00+00:00")
    seed(store, "never", name="Never")
    seed(store, "recent", name="Recent", last_message_at="2025-10-21T08:00:00Z")

    contacts, total = await contact_service.list_contacts()

    assert [contact.name for contact in contacts] == ["Recent", "Old", "Never"]
    assert total == 3


@pytest.mark.asyncio
async def test_search_is_case_insensitive_on_name_and_phone(store, contact_service):
    seed(store, "a", name="Maria Silva", phone_number="+55 11 99999-0001")
    seed(store, "b", name="João Souza", phone_number="+55 21 98888-0002")

    by_name, _ = await contact_service.list_contacts(search="maria")
    by_phone, _ = await contact_service.list_contacts(search="21 98888")
    everything, _ = await contact_service.list_contacts(search="")

    assert [contact.name for contact in by_name] == ["Maria Silva"]
    assert [contact.name for contact in by_phone] == ["João Souza"]
    assert len(everything) == 2


@pytest.mark.asyncio
async def test_views_filter_unread_and_ai(store, contact_service):
    seed(store, "a", name="Unread", unread_count=2)
    seed(store, "b", name="AI", ai_enabled=True)
    seed(store, "c", name="Quiet")

    unread, _ = await contact_service.list_contacts(view=ContactView.UNREAD)
    ai, _ = await contact_service.list_contacts(view=ContactView.AI)

    assert [contact.name for contact in unread] == ["Unread"]
    assert [contact.name for contact in ai] == ["AI"]


@pytest.mark.asyncio
async def test_pagination_reports_total(store, contact_service):
    for index in range(5):
        seed(store, f"jid-{index}", name=f"P{index}", last_message_at=f"2025-10-2{index}T00:00:00+00:00")

    page, total = await contact_service.list_contacts(skip=1, limit=2)

    assert [contact.name for contact in page] == ["P3", "P2"]
    assert total == 5


def test_pure_helpers():
    assert matches_search({"name": None, "phone_number": "+55 11"}, "55")
    assert not matches_search({"name": None, "phone_number": None}, "x")
    rows = sort_by_activity([{"id": "a"}, {"id": "b", "last_message_at": "2025-01-01T00:00:00Z"}])
    assert [row["id"] for row in rows] == ["b", "a"]


@pytest.mark.asyncio
async def test_open_contact_resets_unread(store, contact_service):
    contact = seed(store, "a", unread_count=4)

    opened = await contact_service.open_contact(contact["id"])

    assert opened.unread_count == 0
    assert store.select("contacts", {"id": contact["id"]})[0]["unread_count"] == 0


@pytest.mark.asyncio
async def test_open_contact_without_unread_does_not_write(store, relay, contact_service):
    contact = seed(store, "a")
    subscription = relay.subscribe("contacts")

    await contact_service.open_contact(contact["id"])

    assert subscription.queue.empty()


@pytest.mark.asyncio
async def test_open_unknown_contact(contact_service):
    with pytest.raises(NotFoundError):
        await contact_service.open_contact("missing")


@pytest.mark.asyncio
async def test_toggle_ai_flips_flag(c2, contact_service):
    first = await contact_service.toggle_ai(c2["id"])
    second = await contact_service.toggle_ai(c2["id"])

    assert first.ai_enabled is True
    assert second.ai_enabled is False


@pytest.mark.asyncio
async def test_update_contact_tags_persona_and_history(c2, contact_service):
    updated = await contact_service.update_contact(c2["id"], ContactUpdate(
        tags=[ContactTag.URGENT, ContactTag.AWAITING],
        persona="emergencia",
        medical_history="Alergia a dipirona"
    ))

    assert updated.tags == [ContactTag.URGENT, ContactTag.AWAITING]
    assert updated.persona == "emergencia"
    assert updated.medical_history == "Alergia a dipirona"
    assert updated.name == "João Souza"


@pytest.mark.asyncio
async def test_update_unknown_contact(contact_service):
    with pytest.raises(NotFoundError):
        await contact_service.update_contact("missing", ContactUpdate(persona="x"))


@pytest.mark.asyncio
async def test_empty_update_returns_current_row(c2, contact_service):
    contact = await contact_service.update_contact(c2["id"], ContactUpdate())
    assert contact.id == c2["id"]


@pytest.mark.asyncio
async def test_provision_creates_once(store, contact_service):
    created = await contact_service.provision(ContactCreate(remote_jid="5511@s.whatsapp.net"))
    again = await contact_service.provision(ContactCreate(remote_jid="5511@s.whatsapp.net", name="Ana"))

    assert created.id == again.id
    assert created.ai_enabled is False and created.unread_count == 0 and created.tags == []
    assert again.name == "Ana"
    assert len(store.select("contacts")) == 1
