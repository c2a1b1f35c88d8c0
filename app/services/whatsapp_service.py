"""
WhatsApp Service
Outbound delivery of operator messages and approved AI drafts through an
Evolution-style WhatsApp HTTP API
"""
import logging
import httpx
from typing import Optional, Dict, Any

from app.config import settings
from app.models.inbox import MessageStatus
from app.services.errors import DeliveryError, StoreError
from app.services.table_store import TableStore

logger = logging.getLogger(__name__)


class WhatsAppService:
    """Service for sending messages to patients"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        instance: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize WhatsApp Service

        Args:
            base_url: WhatsApp API base URL (default: WHATSAPP_API_URL)
            api_key: Optional API key (default: WHATSAPP_API_KEY)
            instance: Gateway instance name (default: WHATSAPP_INSTANCE)
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = (base_url if base_url is not None else settings.WHATSAPP_API_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.WHATSAPP_API_KEY
        self.instance = instance or settings.WHATSAPP_INSTANCE
        self.timeout = timeout
        self.transport = transport

        if self.enabled:
            logger.info(f"WhatsApp Service initialized with base URL: {self.base_url}")
        else:
            logger.warning("WhatsApp API URL not configured - outbound delivery disabled")

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    def _get_headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json"
        }
        if self.api_key:
            headers["apikey"] = self.api_key
        return headers

    @staticmethod
    def _format_number(remote_jid: str) -> str:
        """Strip the JID suffix (5511999990000@s.whatsapp.net -> 5511999990000); group JIDs pass through"""
        if remote_jid.endswith("@g.us"):
            return remote_jid
        return remote_jid.split("@", 1)[0]

    async def send_text_message(self, remote_jid: str, message: str) -> Dict[str, Any]:
        """
        Send a text message to a patient

        Args:
            remote_jid: Patient WhatsApp address
            message: Message text

        Returns:
            Send result; ``skipped`` is True when delivery is disabled

        Raises:
            DeliveryError: If the gateway rejects or cannot be reached
        """
        if not self.enabled:
            logger.debug(f"Outbound delivery disabled, not sending to {remote_jid}")
            return {"success": True, "skipped": True}

        url = f"{self.base_url}/message/sendText/{self.instance}"
        payload = {"number": self._format_number(remote_jid), "text": message}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(url, json=payload, headers=self._get_headers())
                response.raise_for_status()

            try:
                result = response.json() if response.content else {}
            except ValueError:
                # Accepted with a plain-text body
                logger.debug(f"Non-JSON reply from WhatsApp gateway: {response.text[:200]}")
                result = {"raw": response.text}

            logger.info(f"📤 WhatsApp message sent to {remote_jid}")
            return {"success": True, "skipped": False, "data": result}

        except httpx.HTTPStatusError as e:
            error_msg = f"HTTP {e.response.status_code}: {e.response.text}"
            logger.error(f"❌ Failed to send WhatsApp message to {remote_jid}: {error_msg}")
            raise DeliveryError(f"Message delivery failed: {error_msg}") from e
        except httpx.HTTPError as e:
            logger.error(f"❌ Failed to send WhatsApp message to {remote_jid}: {e}")
            raise DeliveryError(f"Message delivery failed: {str(e)}") from e


async def deliver_message(
    store: TableStore,
    gateway: WhatsAppService,
    remote_jid: str,
    message_row: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Send a persisted message to the patient.

    A delivery failure never removes the message; its status is set to
    "failed" so the operator can see it and resend manually.

    Returns:
        The message row as it stands after delivery
    """
    try:
        await gateway.send_text_message(remote_jid, message_row["content"])
        return message_row
    except DeliveryError as e:
        logger.warning(f"Marking message {message_row['id']} as failed: {e}")
        try:
            rows = store.update("messages", {"status": MessageStatus.FAILED.value}, {"id": message_row["id"]})
        except StoreError as store_error:
            logger.error(f"❌ Could not mark message {message_row['id']} as failed: {store_error}")
            return message_row
        return rows[0] if rows else message_row


# Singleton instance
_whatsapp_service: Optional[WhatsAppService] = None


def get_whatsapp_service() -> WhatsAppService:
    """
    Get or create WhatsAppService instance.

    Returns:
        WhatsAppService instance
    """
    global _whatsapp_service
    if _whatsapp_service is None:
        _whatsapp_service = WhatsAppService()
    return _whatsapp_service
