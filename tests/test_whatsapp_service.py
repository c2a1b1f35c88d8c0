import json

import httpx
import pytest

from app.services.errors import DeliveryError
from app.services.table_store import InMemoryTableStore
from app.services.whatsapp_service import WhatsAppService, deliver_message


def service_with(handler):
    return WhatsAppService(
        base_url="https://evolution.example.com/",
        api_key="secret-key",
        instance="clinica",
        transport=httpx.MockTransport(handler)
    )


@pytest.mark.asyncio
async def test_send_text_posts_to_instance_endpoint():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(201, json={"key": {"id": "ABC"}})

    result = await service_with(handler).send_text_message("5511999990001@s.whatsapp.net", "Bom dia!")

    assert result["success"] is True and result["skipped"] is False
    request = requests[0]
    assert str(request.url) == "https://evolution.example.com/message/sendText/clinica"
    assert request.headers["apikey"] == "secret-key"
    assert json.loads(request.content) == {"number": "5511999990001", "text": "Bom dia!"}


@pytest.mark.asyncio
async def test_plain_text_acceptance_counts_as_delivered():
    service = service_with(lambda request: httpx.Response(200, text="OK"))

    result = await service.send_text_message("5511999990001@s.whatsapp.net", "Olá")

    assert result["success"] is True
    assert result["data"] == {"raw": "OK"}


@pytest.mark.asyncio
async def test_plain_text_acceptance_keeps_message_sent():
    store = InMemoryTableStore()
    row = store.insert("messages", {"contact_id": "c1", "content": "Olá", "sender_type": "user", "status": "sent"})
    service = service_with(lambda request: httpx.Response(200, text="OK"))

    delivered = await deliver_message(store, service, "5511999990001@s.whatsapp.net", row)

    assert delivered["status"] == "sent"
    assert store.select("messages", {"id": row["id"]})[0]["status"] == "sent"


@pytest.mark.asyncio
async def test_gateway_error_raises_delivery_error():
    service = service_with(lambda request: httpx.Response(500, text="instance offline"))

    with pytest.raises(DeliveryError):
        await service.send_text_message("5511999990001@s.whatsapp.net", "Olá")


@pytest.mark.asyncio
async def test_unreachable_gateway_raises_delivery_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(DeliveryError):
        await service_with(handler).send_text_message("5511999990001@s.whatsapp.net", "Olá")


@pytest.mark.asyncio
async def test_unconfigured_gateway_skips_delivery():
    service = WhatsAppService(base_url="", api_key="")

    result = await service.send_text_message("5511999990001@s.whatsapp.net", "Olá")

    assert service.enabled is False
    assert result == {"success": True, "skipped": True}


def test_group_jids_are_kept():
    assert WhatsAppService._format_number("120363@g.us") == "120363@g.us"
    assert WhatsAppService._format_number("5511@s.whatsapp.net") == "5511"
