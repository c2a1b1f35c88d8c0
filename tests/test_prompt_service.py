import pytest

from app.models.inbox import PromptCreate, PromptUpdate
from app.services.errors import InboxValidationError, NotFoundError


async def create(prompt_service, title):
    return await prompt_service.create_prompt(PromptCreate(title=title, content=f"Persona {title}"))


@pytest.mark.asyncio
async def test_create_uses_defaults_and_starts_inactive(prompt_service):
    prompt = await create(prompt_service, "Triagem")

    assert prompt.assistant_name == "Carol"
    assert prompt.tone == "empático"
    assert prompt.response_delay == 3
    assert prompt.is_active is False


@pytest.mark.asyncio
async def test_create_rejects_blank_fields(prompt_service):
    with pytest.raises(InboxValidationError):
        await prompt_service.create_prompt(PromptCreate(title="  ", content="x"))
    with pytest.raises(InboxValidationError):
        await prompt_service.create_prompt(PromptCreate(title="x", content=""))


@pytest.mark.asyncio
async def test_activation_leaves_exactly_one_active(prompt_service, store):
    first = await create(prompt_service, "A")
    second = await create(prompt_service, "B")
    await create(prompt_service, "C")

    await prompt_service.activate(first.id)
    activated = await prompt_service.activate(second.id)

    active = store.select("prompts", {"is_active": True})
    assert [row["id"] for row in active] == [second.id]
    assert activated.is_active is True
    assert (await prompt_service.get_active_prompt()).id == second.id


@pytest.mark.asyncio
async def test_activation_is_idempotent(prompt_service, store, relay):
    prompt = await create(prompt_service, "A")
    await prompt_service.activate(prompt.id)
    subscription = relay.subscribe("prompts")

    again = await prompt_service.activate(prompt.id)

    assert again.is_active is True
    assert subscription.queue.empty()
    assert len(store.select("prompts", {"is_active": True})) == 1


@pytest.mark.asyncio
async def test_activating_unknown_prompt_changes_nothing(prompt_service, store):
    prompt = await create(prompt_service, "A")
    await prompt_service.activate(prompt.id)

    with pytest.raises(NotFoundError):
        await prompt_service.activate("missing")

    assert [row["id"] for row in store.select("prompts", {"is_active": True})] == [prompt.id]


@pytest.mark.asyncio
async def test_list_is_newest_first(prompt_service):
    for title in ("A", "B", "C"):
        await create(prompt_service, title)

    prompts = await prompt_service.list_prompts()

    assert [prompt.title for prompt in prompts] == ["C", "B", "A"]


@pytest.mark.asyncio
async def test_update_and_delete(prompt_service):
    prompt = await create(prompt_service, "A")

    updated = await prompt_service.update_prompt(prompt.id, PromptUpdate(tone="formal", response_delay=7))
    assert updated.tone == "formal"
    assert updated.response_delay == 7
    assert updated.title == "A"

    with pytest.raises(InboxValidationError):
        await prompt_service.update_prompt(prompt.id, PromptUpdate(content=" "))

    await prompt_service.delete_prompt(prompt.id)
    with pytest.raises(NotFoundError):
        await prompt_service.get_prompt(prompt.id)
    with pytest.raises(NotFoundError):
        await prompt_service.delete_prompt(prompt.id)


@pytest.mark.asyncio
async def test_no_active_prompt(prompt_service):
    await create(prompt_service, "A")
    assert await prompt_service.get_active_prompt() is None
