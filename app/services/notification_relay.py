"""
Notification Relay
In-process change feed for contacts, messages and AI typing indicators.

Every confirmed write made through the service's table store is published as a
ChangeEvent. Subscribers register interest in one table, a set of event types
and an equality filter (the equivalent of a Supabase realtime
``postgres_changes`` filter such as ``contact_id=eq.<id>``) and receive matching
events through an asyncio queue.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Set

logger = logging.getLogger(__name__)

# Pseudo-table carrying the per-contact AI typing indicator
TYPING_TABLE = "ai_typing"


class ChangeType(str, Enum):
    """Row-level change type (same names as Supabase realtime)"""
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass
class ChangeEvent:
    """A single row change"""
    table: str
    type: ChangeType
    record: Optional[Dict[str, Any]] = None
    old_record: Optional[Dict[str, Any]] = None
    commit_timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    @property
    def row(self) -> Dict[str, Any]:
        """The row the event is about (new values, or old values for deletes)"""
        return self.record or self.old_record or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "table": self.table,
            "event": self.type.value,
            "record": self.record,
            "old_record": self.old_record,
            "commit_timestamp": self.commit_timestamp,
        }


class Subscription:
    """
    Handle for one registered listener.

    Events are pushed into ``queue`` as ``(subscription, event)`` pairs so that
    several subscriptions can share one queue; items from a subscription that
    was closed in the meantime are discarded by the consumer.

    Usable as an async iterator and as an async context manager; leaving the
    ``async with`` block always releases the listener.
    """

    def __init__(
        self,
        relay: "NotificationRelay",
        table: str,
        events: Set[ChangeType],
        match: Dict[str, Any],
        queue: Optional[asyncio.Queue] = None
    ):
        self.relay = relay
        self.table = table
        self.events = events
        self.match = match
        self.queue: asyncio.Queue = queue if queue is not None else asyncio.Queue()
        self.closed = False

    def matches(self, event: ChangeEvent) -> bool:
        if self.closed or event.table != self.table or event.type not in self.events:
            return False
        row = event.row
        return all(row.get(column) == value for column, value in self.match.items())

    def deliver(self, event: ChangeEvent) -> None:
        self.queue.put_nowait((self, event))

    def close(self) -> None:
        """Stop receiving events and wake any pending iterator"""
        if self.closed:
            return
        self.closed = True
        self.relay.unsubscribe(self)
        self.queue.put_nowait((self, None))

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> ChangeEvent:
        while True:
            owner, event = await self.queue.get()
            if owner is not self:
                continue
            if event is None or self.closed:
                raise StopAsyncIteration
            return event

    def __repr__(self) -> str:
        return f"<Subscription table={self.table} match={self.match} closed={self.closed}>"


class NotificationRelay:
    """Fan-out of change events to matching subscriptions"""

    def __init__(self):
        self._subscriptions: List[Subscription] = []

    def subscribe(
        self,
        table: str,
        events: Optional[Iterable[ChangeType]] = None,
        match: Optional[Dict[str, Any]] = None,
        queue: Optional[asyncio.Queue] = None
    ) -> Subscription:
        """
        Register a listener.

        Args:
            table: Table to watch (contacts, messages, prompts or ai_typing)
            events: Change types to receive (default: all)
            match: Column equality filter applied to the changed row
            queue: Optional shared queue to deliver into

        Returns:
            Subscription handle; call close() (or leave ``async with``) to release it
        """
        subscription = Subscription(
            relay=self,
            table=table,
            events=set(events) if events else set(ChangeType),
            match=dict(match or {}),
            queue=queue
        )
        self._subscriptions.append(subscription)
        logger.debug(f"🔔 Subscribed to {table} match={subscription.match}")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        try:
            self._subscriptions.remove(subscription)
            logger.debug(f"🔕 Unsubscribed from {subscription.table} match={subscription.match}")
        except ValueError:
            pass

    def publish(self, event: ChangeEvent) -> int:
        """
        Deliver an event to every matching subscription.

        Returns:
            Number of subscriptions the event was delivered to
        """
        delivered = 0
        for subscription in list(self._subscriptions):
            if subscription.matches(event):
                subscription.deliver(event)
                delivered += 1
        logger.debug(f"📢 {event.type.value} on {event.table}: delivered={delivered}")
        return delivered

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)


# Singleton instance
_notification_relay: Optional[NotificationRelay] = None


def get_notification_relay() -> NotificationRelay:
    """
    Get the global NotificationRelay singleton instance.

    Returns:
        NotificationRelay instance
    """
    global _notification_relay
    if _notification_relay is None:
        _notification_relay = NotificationRelay()
    return _notification_relay
