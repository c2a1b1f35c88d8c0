"""
Webhook API Endpoints
Receive patient messages and contact provisioning from the WhatsApp gateway
"""
from fastapi import APIRouter, HTTPException, Depends, status
import logging
import time

from app.api.errors import http_error
from app.config import settings as app_settings
from app.middleware.webhook_auth import verify_gateway_key
from app.models.inbox import Contact, ContactCreate, InboundMessage, InboundResponse
from app.services.contact_service import ContactService, get_contact_service
from app.services.errors import InboxError
from app.services.message_service import MessageService, get_message_service
from app.services.websocket_service import ConnectionManager, get_connection_manager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhook", tags=["webhook"])


class SimpleCache:
    """Simple dictionary-based cache with TTL for deduplication"""
    def __init__(self, ttl_seconds=60):
        self.cache = {}
        self.ttl = ttl_seconds

    def is_duplicate(self, key):
        self._cleanup()
        if key in self.cache:
            return True
        self.cache[key] = time.time()
        return False

    def forget(self, key):
        self.cache.pop(key, None)

    def _cleanup(self):
        now = time.time()
        # Remove expired keys
        keys_to_remove = [k for k, t in self.cache.items() if now - t > self.ttl]
        for k in keys_to_remove:
            del self.cache[k]


dedup_cache = SimpleCache(ttl_seconds=app_settings.WEBHOOK_DEDUP_TTL_SECONDS)


def get_dedup_cache() -> SimpleCache:
    return dedup_cache


# ============================================
# ENDPOINTS
# ============================================

@router.post(
    "/inbound",
    response_model=InboundResponse,
    summary="Receive patient message",
    description="Store an inbound WhatsApp message; unknown senders are provisioned by remote_jid"
)
async def receive_inbound(
    payload: InboundMessage,
    gateway_key: str = Depends(verify_gateway_key),
    contact_service: ContactService = Depends(get_contact_service),
    message_service: MessageService = Depends(get_message_service),
    connection_manager: ConnectionManager = Depends(get_connection_manager),
    cache: SimpleCache = Depends(get_dedup_cache)
):
    """
    Process an inbound patient message.

    **Flow:**
    1. Drop gateway retries (same message_id within the dedup TTL)
    2. Resolve the contact by contact_id, or find/provision it by remote_jid
    3. Store the message; unread count moves unless an operator has the conversation open
    4. Schedule an AI draft when the contact has AI enabled
    """
    if payload.message_id and cache.is_duplicate(payload.message_id):
        logger.info(f"♻️ Duplicate inbound message {payload.message_id} ignored")
        return InboundResponse(success=True, status="duplicate")

    try:
        if payload.contact_id:
            contact_id = payload.contact_id
        else:
            contact = await contact_service.provision(ContactCreate(
                remote_jid=payload.remote_jid,
                name=payload.sender_name,
                phone_number=payload.phone_number
            ))
            contact_id = contact.id

        logger.info(f"📩 Inbound message for contact {contact_id}")
        message, contact = await message_service.receive_inbound(
            contact_id,
            payload.message,
            open_contact_ids=connection_manager.get_open_contact_ids()
        )

        return InboundResponse(
            success=True,
            status="processed",
            contact_id=contact.id,
            message_id=message.id,
            unread_count=contact.unread_count
        )

    except InboxError as e:
        # Let the gateway retry a message that was not stored
        if payload.message_id:
            cache.forget(payload.message_id)
        raise http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        if payload.message_id:
            cache.forget(payload.message_id)
        logger.error(f"❌ Error processing inbound message: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to process inbound message"
        )


@router.post(
    "/contacts",
    response_model=Contact,
    summary="Provision contact",
    description="Find a contact by remote_jid or create it (AI off, nothing unread)"
)
async def provision_contact(
    contact: ContactCreate,
    gateway_key: str = Depends(verify_gateway_key),
    contact_service: ContactService = Depends(get_contact_service)
):
    """Provision a contact"""
    try:
        return await contact_service.provision(contact)

    except InboxError as e:
        raise http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"❌ Error provisioning contact {contact.remote_jid}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to provision contact"
        )
