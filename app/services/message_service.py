"""
Message Service
Conversation messages: operator sends, inbound patient messages and the
conversation listing. Hands AI-enabled contacts over to the draft lifecycle.
"""
import logging
from typing import Callable, Collection, List, Optional, Tuple

from app.models.inbox import Contact, Message, MessageStatus, SenderType
from app.services.contact_service import ContactService, get_contact_service
from app.services.draft_service import DraftService, get_draft_service
from app.services.errors import InboxValidationError
from app.services.table_store import TableStore, get_table_store
from app.services.whatsapp_service import WhatsAppService, deliver_message, get_whatsapp_service
from app.utils.time_utils import to_iso, utc_now

logger = logging.getLogger(__name__)

TABLE = "messages"


def unread_increment(contact_id: str, open_contact_ids: Collection[str]) -> int:
    """Unread delta for one inbound message: 0 while an operator has the contact open, else 1"""
    return 0 if contact_id in open_contact_ids else 1


class MessageService:
    """Service for conversation messages"""

    def __init__(
        self,
        store: TableStore,
        contact_service: ContactService,
        draft_service: DraftService,
        gateway: WhatsAppService,
        clock: Callable = utc_now
    ):
        self.store = store
        self.contact_service = contact_service
        self.draft_service = draft_service
        self.gateway = gateway
        self.clock = clock

    async def list_messages(self, contact_id: str) -> List[Message]:
        """
        Get a conversation, oldest first.

        Raises:
            NotFoundError: If the contact does not exist
        """
        await self.contact_service.get_contact(contact_id)
        rows = self.store.select(TABLE, {"contact_id": contact_id}, order_by="created_at")
        return [Message(**row) for row in rows]

    async def send_message(self, contact_id: str, content: str) -> Message:
        """
        Send an operator message to a patient.

        The message is stored as typed (not trimmed) together with the
        contact's last activity in one atomic write, then dispatched. When the
        contact has AI enabled a draft reply is scheduled.

        Raises:
            InboxValidationError: Content is empty or whitespace (nothing is stored)
            NotFoundError: Unknown contact
            StoreError: Nothing was stored
        """
        if not content or not content.strip():
            raise InboxValidationError("Message content cannot be empty")

        await self.contact_service.get_contact(contact_id)

        row, contact_row = self.store.record_message(
            {
                "contact_id": contact_id,
                "content": content,
                "sender_type": SenderType.USER.value,
                "is_draft": False,
                "status": MessageStatus.SENT.value
            },
            last_message_at=to_iso(self.clock())
        )
        contact = Contact(**contact_row)
        logger.info(f"📤 Operator message {row['id']} stored for contact {contact_id}")

        row = await deliver_message(self.store, self.gateway, contact.remote_jid, row)

        if contact.ai_enabled:
            self.draft_service.schedule(contact_id, content)

        return Message(**row)

    async def receive_inbound(
        self,
        contact_id: str,
        content: str,
        open_contact_ids: Optional[Collection[str]] = None
    ) -> Tuple[Message, Contact]:
        """
        Record a patient message.

        The message, the unread counter and last activity are written in one
        atomic store operation, so a failed call leaves nothing behind. The
        counter does not move while an operator has the conversation open.

        Args:
            contact_id: Contact UUID
            content: Message text
            open_contact_ids: Contacts currently open in an operator session

        Returns:
            Tuple of (stored message, updated contact)

        Raises:
            InboxValidationError: Empty content
            NotFoundError: Unknown contact
            StoreError: Nothing was stored
        """
        if not content or not content.strip():
            raise InboxValidationError("Message content cannot be empty")

        await self.contact_service.get_contact(contact_id)

        delta = unread_increment(contact_id, open_contact_ids or ())
        row, contact_row = self.store.record_message(
            {
                "contact_id": contact_id,
                "content": content,
                "sender_type": SenderType.CONTACT.value,
                "is_draft": False,
                "status": MessageStatus.RECEIVED.value
            },
            unread_delta=delta,
            last_message_at=to_iso(self.clock())
        )
        contact = Contact(**contact_row)
        logger.info(
            f"📩 Inbound message {row['id']} for contact {contact_id} "
            f"(unread={contact.unread_count}, open={delta == 0})"
        )

        if contact.ai_enabled:
            self.draft_service.schedule(contact_id, content)

        return Message(**row), contact


# Singleton instance
_message_service: Optional[MessageService] = None


def get_message_service() -> MessageService:
    """
    Get or create MessageService instance.

    Returns:
        MessageService instance
    """
    global _message_service
    if _message_service is None:
        _message_service = MessageService(
            store=get_table_store(),
            contact_service=get_contact_service(),
            draft_service=get_draft_service(),
            gateway=get_whatsapp_service()
        )
    return _message_service
