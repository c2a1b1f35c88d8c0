"""
Draft Service
AI draft lifecycle: scheduling a delayed AI suggestion, and operator approval,
rejection and editing of pending drafts.

A draft is a ``bot`` message with ``is_draft = true``. It has no delivery
effect until approved; approval turns it into a final ``sent`` message in place
(same id, content and created_at) and dispatches it to the patient.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional, Set

from app.config import settings
from app.models.inbox import Message, MessageStatus, SenderType, TypingStatus
from app.services.ai_responder import AIResponder, get_ai_responder
from app.services.errors import (
    DraftStateError, InboxValidationError, NotFoundError, ResponderError, StoreError
)
from app.services.notification_relay import (
    ChangeEvent, ChangeType, NotificationRelay, TYPING_TABLE, get_notification_relay
)
from app.services.prompt_service import PromptService, get_prompt_service
from app.services.table_store import TableStore, get_table_store
from app.services.whatsapp_service import WhatsAppService, deliver_message, get_whatsapp_service

logger = logging.getLogger(__name__)

Wait = Callable[[float], Awaitable[None]]


class DraftService:
    """Service for AI drafts"""

    def __init__(
        self,
        store: TableStore,
        prompt_service: PromptService,
        responder: AIResponder,
        gateway: WhatsAppService,
        relay: NotificationRelay,
        wait: Wait = asyncio.sleep,
        default_delay: Optional[int] = None
    ):
        """
        Initialize Draft Service

        Args:
            store: Table store
            prompt_service: Source of the active persona (and its delay)
            responder: Generates draft text
            gateway: Outbound delivery for approved drafts
            relay: Channel for typing indicator events
            wait: Delay primitive (asyncio.sleep by default)
            default_delay: Delay in seconds when no persona is active
        """
        self.store = store
        self.prompt_service = prompt_service
        self.responder = responder
        self.gateway = gateway
        self.relay = relay
        self.wait = wait
        self.default_delay = default_delay if default_delay is not None else settings.DEFAULT_RESPONSE_DELAY

        # Per contact: number of generations in flight, last failure seen
        self._pending: Dict[str, int] = {}
        self._errors: Dict[str, str] = {}
        self._tasks: Set[asyncio.Task] = set()

    # ============ Scheduling ============

    def schedule(self, contact_id: str, last_message: str) -> asyncio.Task:
        """
        Start a delayed draft generation for a contact.

        Must be called from a running event loop. The contact shows as "AI
        typing" until every generation scheduled for it has finished; a second
        trigger does not cancel the first and produces its own draft.

        Returns:
            The background task (resolves to the draft Message, or None when
            no draft was created)
        """
        self._pending[contact_id] = self._pending.get(contact_id, 0) + 1
        if self._pending[contact_id] == 1:
            self._publish_typing(contact_id)

        task = asyncio.create_task(self._generate(contact_id, last_message))
        self._tasks.add(task)
        task.add_done_callback(lambda done: self._finish(contact_id, done))
        logger.info(f"🤖 Draft scheduled for contact {contact_id} (pending={self._pending[contact_id]})")
        return task

    async def _generate(self, contact_id: str, last_message: str) -> Optional[Message]:
        try:
            prompt = await self.prompt_service.get_active_prompt()
            delay = prompt.response_delay if prompt and prompt.response_delay else self.default_delay
            await self.wait(delay)

            # Taking over the conversation during the wait suppresses the draft
            contacts = self.store.select("contacts", {"id": contact_id})
            if not contacts or not contacts[0].get("ai_enabled"):
                logger.info(f"AI disabled for contact {contact_id} during the wait; draft suppressed")
                return None

            content = await self.responder.generate(contact_id, last_message, prompt=prompt)
            row = self.store.insert("messages", {
                "contact_id": contact_id,
                "content": content,
                "sender_type": SenderType.BOT.value,
                "is_draft": True,
                "status": MessageStatus.DRAFT.value
            })

            logger.info(f"🤖 Draft {row['id']} created for contact {contact_id}")
            return Message(**row)

        except ResponderError as e:
            logger.warning(f"🤖 Responder failed for contact {contact_id}, draft abandoned: {e}")
            self._errors[contact_id] = str(e)
            return None
        except StoreError as e:
            logger.error(f"❌ Could not store draft for contact {contact_id}: {e}")
            self._errors[contact_id] = str(e)
            return None

    def _finish(self, contact_id: str, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.debug(f"Draft generation for contact {contact_id} cancelled")
        elif task.exception() is not None:
            logger.error(f"❌ Draft generation for contact {contact_id} crashed: {task.exception()}")
            self._errors[contact_id] = str(task.exception())

        remaining = self._pending.get(contact_id, 1) - 1
        if remaining > 0:
            self._pending[contact_id] = remaining
            return

        self._pending.pop(contact_id, None)
        self._publish_typing(contact_id, error=self._errors.pop(contact_id, None))

    def _publish_typing(self, contact_id: str, error: Optional[str] = None) -> None:
        pending = self._pending.get(contact_id, 0)
        self.relay.publish(ChangeEvent(
            table=TYPING_TABLE,
            type=ChangeType.UPDATE,
            record={
                "id": contact_id,
                "contact_id": contact_id,
                "is_typing": pending > 0,
                "pending": pending,
                "error": error
            }
        ))

    def is_typing(self, contact_id: str) -> bool:
        return self._pending.get(contact_id, 0) > 0

    def pending_count(self, contact_id: str) -> int:
        return self._pending.get(contact_id, 0)

    def total_pending(self) -> int:
        return sum(self._pending.values())

    def typing_status(self, contact_id: str) -> TypingStatus:
        return TypingStatus(
            contact_id=contact_id,
            is_typing=self.is_typing(contact_id),
            pending=self.pending_count(contact_id)
        )

    async def wait_idle(self) -> None:
        """Wait until every scheduled generation has finished"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel pending generations (application shutdown)"""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info(f"Cancelled {len(tasks)} pending draft generations")

    # ============ Operator actions ============

    def _raise_missing_or_final(self, message_id: str) -> None:
        if not self.store.select("messages", {"id": message_id}):
            raise NotFoundError(f"Message {message_id} not found")
        raise DraftStateError(f"Message {message_id} is not a draft")

    async def approve(self, message_id: str) -> Message:
        """
        Approve a draft: it becomes a final sent message and is dispatched.

        Content and created_at are kept. The update is conditional on the row
        still being a draft, so approving twice dispatches once.

        Raises:
            NotFoundError: Unknown message
            DraftStateError: Message is not (or no longer) a draft
        """
        rows = self.store.update(
            "messages",
            {"is_draft": False, "status": MessageStatus.SENT.value},
            {"id": message_id, "is_draft": True}
        )
        if not rows:
            self._raise_missing_or_final(message_id)

        message_row = rows[0]
        logger.info(f"✅ Draft {message_id} approved for contact {message_row['contact_id']}")

        contacts = self.store.select("contacts", {"id": message_row["contact_id"]})
        if contacts:
            message_row = await deliver_message(self.store, self.gateway, contacts[0]["remote_jid"], message_row)
        return Message(**message_row)

    async def reject(self, message_id: str) -> None:
        """
        Discard a draft (the row is deleted).

        Raises:
            NotFoundError: Unknown message
            DraftStateError: Message is not a draft
        """
        rows = self.store.delete("messages", {"id": message_id, "is_draft": True})
        if not rows:
            self._raise_missing_or_final(message_id)
        logger.info(f"🗑️ Draft {message_id} rejected")

    async def edit(self, message_id: str, content: str) -> Message:
        """
        Replace the content of a pending draft in place.

        Raises:
            InboxValidationError: Empty content
            NotFoundError: Unknown message
            DraftStateError: Message is not a draft
        """
        if not content or not content.strip():
            raise InboxValidationError("Draft content cannot be empty")

        rows = self.store.update("messages", {"content": content}, {"id": message_id, "is_draft": True})
        if not rows:
            self._raise_missing_or_final(message_id)

        logger.info(f"Draft {message_id} edited")
        return Message(**rows[0])


# Singleton instance
_draft_service: Optional[DraftService] = None


def get_draft_service() -> DraftService:
    """
    Get or create DraftService instance.

    Returns:
        DraftService instance
    """
    global _draft_service
    if _draft_service is None:
        _draft_service = DraftService(
            store=get_table_store(),
            prompt_service=get_prompt_service(),
            responder=get_ai_responder(),
            gateway=get_whatsapp_service(),
            relay=get_notification_relay()
        )
    return _draft_service
