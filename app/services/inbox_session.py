"""
Inbox Session
Per-operator live view of the inbox.

A session keeps one subscription on contacts for its whole life and, while a
conversation is open, one subscription each on that contact's messages and AI
typing indicator. Opening another conversation releases the previous
subscriptions before acquiring the next ones; leaving the session (``async
with``) releases everything.

Local views only change when the relay delivers a confirmed row, and are
reconciled by row id: insert/update upsert, delete removes.
"""
import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional

from app.services.contact_service import ContactService, sort_by_activity
from app.services.draft_service import DraftService
from app.services.message_service import MessageService
from app.services.notification_relay import (
    ChangeEvent, ChangeType, NotificationRelay, Subscription, TYPING_TABLE
)
from app.utils.time_utils import EPOCH, parse_timestamp

logger = logging.getLogger(__name__)


class RowView:
    """Rows keyed by id, kept in sync with change events"""

    def __init__(self, rows: Iterable[Dict[str, Any]] = ()):
        self._rows: Dict[str, Dict[str, Any]] = {row["id"]: dict(row) for row in rows}

    def accepts(self, row: Dict[str, Any]) -> bool:
        return True

    def apply(self, event: ChangeEvent) -> bool:
        """
        Reconcile one change event.

        Returns:
            True if the view changed
        """
        row = event.row
        if not row.get("id") or not self.accepts(row):
            return False

        if event.type == ChangeType.DELETE:
            return self._rows.pop(row["id"], None) is not None

        self.upsert(event.record or {})
        return True

    def upsert(self, row: Dict[str, Any]) -> None:
        self._rows[row["id"]] = dict(row)

    def get(self, row_id: str) -> Optional[Dict[str, Any]]:
        return self._rows.get(row_id)

    def __len__(self) -> int:
        return len(self._rows)

    def __contains__(self, row_id: str) -> bool:
        return row_id in self._rows


class ConversationView(RowView):
    """Messages of one contact, oldest first"""

    def __init__(self, contact_id: str, rows: Iterable[Dict[str, Any]] = ()):
        self.contact_id = contact_id
        super().__init__(row for row in rows if row.get("contact_id") == contact_id)

    def accepts(self, row: Dict[str, Any]) -> bool:
        return row.get("contact_id") == self.contact_id

    @property
    def messages(self) -> List[Dict[str, Any]]:
        return sorted(
            self._rows.values(),
            key=lambda row: parse_timestamp(row.get("created_at")) or EPOCH
        )

    @property
    def drafts(self) -> List[Dict[str, Any]]:
        return [row for row in self.messages if row.get("is_draft")]


class ContactListView(RowView):
    """Inbox sidebar, most recent activity first"""

    @property
    def contacts(self) -> List[Dict[str, Any]]:
        return sort_by_activity(self._rows.values())

    @property
    def total_unread(self) -> int:
        return sum(row.get("unread_count") or 0 for row in self._rows.values())


class InboxSession:
    """Live inbox state for one operator connection"""

    def __init__(
        self,
        relay: NotificationRelay,
        contact_service: ContactService,
        message_service: MessageService,
        draft_service: DraftService,
        user_id: Optional[str] = None
    ):
        self.relay = relay
        self.contact_service = contact_service
        self.message_service = message_service
        self.draft_service = draft_service
        self.user_id = user_id

        self.outbox: asyncio.Queue = asyncio.Queue()
        self.contacts = ContactListView()
        self.conversation: Optional[ConversationView] = None
        self.active_contact_id: Optional[str] = None

        self._contacts_subscription: Optional[Subscription] = None
        self._conversation_subscriptions: List[Subscription] = []

    async def __aenter__(self) -> "InboxSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    async def start(self) -> Dict[str, Any]:
        """
        Subscribe to contact changes and load the sidebar.

        Returns:
            Initial ``contacts`` frame
        """
        if self._contacts_subscription is None:
            self._contacts_subscription = self.relay.subscribe("contacts", queue=self.outbox)

        contacts, _ = await self.contact_service.list_contacts()
        for contact in contacts:
            self.contacts.upsert(contact.model_dump(mode="json"))

        return {"type": "contacts", "contacts": self.contacts.contacts}

    async def open_contact(self, contact_id: str) -> Dict[str, Any]:
        """
        Select a conversation.

        Subscribes before loading so no change between the load and the
        subscription is missed; replayed events reconcile by id.

        Returns:
            ``snapshot`` frame with the contact, its messages and typing state

        Raises:
            NotFoundError: Unknown contact (the session is left with no
            conversation open)
        """
        self.close_contact()

        self.active_contact_id = contact_id
        self._conversation_subscriptions = [
            self.relay.subscribe("messages", match={"contact_id": contact_id}, queue=self.outbox),
            self.relay.subscribe(TYPING_TABLE, match={"contact_id": contact_id}, queue=self.outbox),
        ]

        try:
            contact = await self.contact_service.open_contact(contact_id)
            messages = await self.message_service.list_messages(contact_id)
        except Exception:
            self.close_contact()
            raise

        self.conversation = ConversationView(
            contact_id,
            [message.model_dump(mode="json") for message in messages]
        )
        contact_row = contact.model_dump(mode="json")
        self.contacts.upsert(contact_row)

        logger.debug(f"Session user={self.user_id} opened contact {contact_id}")
        return {
            "type": "snapshot",
            "contact": contact_row,
            "messages": self.conversation.messages,
            "typing": self.draft_service.typing_status(contact_id).model_dump()
        }

    def close_contact(self) -> None:
        """Release the open conversation's subscriptions"""
        for subscription in self._conversation_subscriptions:
            subscription.close()
        self._conversation_subscriptions = []
        self.conversation = None
        self.active_contact_id = None

    def close(self) -> None:
        """Release every subscription held by the session"""
        self.close_contact()
        if self._contacts_subscription is not None:
            self._contacts_subscription.close()
            self._contacts_subscription = None

    def _is_live(self, subscription: Subscription) -> bool:
        return not subscription.closed and (
            subscription is self._contacts_subscription
            or subscription in self._conversation_subscriptions
        )

    async def next_event(self) -> Dict[str, Any]:
        """
        Wait for the next change relevant to this session, apply it to the
        local views and return it as a frame for the operator's screen.
        """
        while True:
            subscription, event = await self.outbox.get()
            frame = self._handle(subscription, event)
            if frame is not None:
                return frame

    def drain(self) -> List[Dict[str, Any]]:
        """Apply every event already queued and return their frames"""
        frames = []
        while not self.outbox.empty():
            frame = self._handle(*self.outbox.get_nowait())
            if frame is not None:
                frames.append(frame)
        return frames

    def _handle(self, subscription: Subscription, event: Optional[ChangeEvent]) -> Optional[Dict[str, Any]]:
        if event is None or not self._is_live(subscription):
            return None

        if event.table == TYPING_TABLE:
            return {"type": "typing", **event.row}

        if event.table == "contacts":
            self.contacts.apply(event)
        elif event.table == "messages" and self.conversation is not None:
            self.conversation.apply(event)

        return {"type": "change", **event.to_dict()}
