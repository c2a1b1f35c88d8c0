"""
Shared fixtures: an in-memory inbox wired the way the application wires it,
with an instant delay, a ticking clock and a seeded responder.
"""
import asyncio
import random
from datetime import datetime, timedelta, timezone

import pytest

from app.config import settings
from app.services.ai_responder import ScriptedResponder
from app.services.contact_service import ContactService
from app.services.draft_service import DraftService
from app.services.errors import DeliveryError
from app.services.message_service import MessageService
from app.services.notification_relay import NotificationRelay
from app.services.prompt_service import PromptService
from app.services.table_store import InMemoryTableStore, PublishingTableStore
from app.services.websocket_service import ConnectionManager
from app.services.whatsapp_service import WhatsAppService

C1_JID = "5511999990001@s.whatsapp.net"
C2_JID = "5511999990002@s.whatsapp.net"


class TickingClock:
    """Deterministic clock: every reading is one second after the previous one"""

    def __init__(self, start=datetime(2025, 10, 21, 15, 0, tzinfo=timezone.utc)):
        self.current = start

    def __call__(self):
        self.current = self.current + timedelta(seconds=1)
        return self.current


class WaitRecorder:
    """Delay primitive that records the requested seconds and returns at once"""

    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)
        await asyncio.sleep(0)


class RecordingGateway(WhatsAppService):
    """Outbound gateway that records sends instead of calling the API"""

    def __init__(self):
        super().__init__(base_url="", api_key="", instance="test")
        self.sent = []
        self.fail = False

    async def send_text_message(self, remote_jid, message):
        if self.fail:
            raise DeliveryError("gateway unavailable")
        self.sent.append((remote_jid, message))
        return {"success": True, "skipped": False}


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def relay():
    return NotificationRelay()


@pytest.fixture
def backend(clock):
    return InMemoryTableStore(clock=clock)


@pytest.fixture
def store(backend, relay):
    return PublishingTableStore(backend, relay)


@pytest.fixture
def wait():
    return WaitRecorder()


@pytest.fixture
def gateway():
    return RecordingGateway()


@pytest.fixture
def responder():
    return ScriptedResponder.from_file(settings.SCRIPTED_REPLIES_PATH, rng=random.Random(7))


@pytest.fixture
def prompt_service(store):
    return PromptService(store)


@pytest.fixture
def contact_service(store):
    return ContactService(store)


@pytest.fixture
def draft_service(store, prompt_service, responder, gateway, relay, wait):
    return DraftService(
        store=store,
        prompt_service=prompt_service,
        responder=responder,
        gateway=gateway,
        relay=relay,
        wait=wait,
        default_delay=5
    )


@pytest.fixture
def message_service(store, contact_service, draft_service, gateway, clock):
    return MessageService(
        store=store,
        contact_service=contact_service,
        draft_service=draft_service,
        gateway=gateway,
        clock=clock
    )


@pytest.fixture
def connection_manager():
    return ConnectionManager()


@pytest.fixture
def active_prompt(store):
    return store.insert("prompts", {
        "title": "Triagem",
        "content": "Você é uma atendente virtual de uma clínica.",
        "assistant_name": "Carol",
        "tone": "empático",
        "response_delay": 3,
        "is_active": True
    })


@pytest.fixture
def c1(store, active_prompt):
    """Contact with the AI auto-responder on"""
    return store.insert("contacts", {
        "remote_jid": C1_JID,
        "name": "Maria Silva",
        "phone_number": "+55 11 99999-0001",
        "ai_enabled": True,
        "tags": ["triagem"]
    })


@pytest.fixture
def c2(store, active_prompt):
    """Contact with the AI auto-responder off"""
    return store.insert("contacts", {
        "remote_jid": C2_JID,
        "name": "João Souza",
        "phone_number": "+55 11 99999-0002",
        "ai_enabled": False
    })
