"""
Table Store
Row-level access to the inbox tables (contacts, messages, prompts).

Two backends implement the same contract:
- SupabaseTableStore: hosted Postgres through the Supabase client
- InMemoryTableStore: process-local tables for development and tests

PublishingTableStore wraps either one and publishes every confirmed write to the
notification relay.
"""
import copy
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple

from supabase import create_client, Client

from app.config import settings
from app.services.errors import NotFoundError, StoreError
from app.services.notification_relay import (
    ChangeEvent, ChangeType, NotificationRelay, get_notification_relay
)
from app.utils.time_utils import utc_now, to_iso

logger = logging.getLogger(__name__)

TABLES = ("contacts", "messages", "prompts")

# Postgres "no_data_found", raised by the RPC functions for an unknown row id
NO_DATA_FOUND = "P0002"
# Postgres "invalid_text_representation", e.g. a malformed uuid: no row can have that id
INVALID_TEXT_REPRESENTATION = "22P02"


class TableStore(ABC):
    """
    Contract of the hosted table store.

    ``match`` arguments are column equality filters combined with AND.
    Every method raises StoreError when the backend fails.
    """

    @abstractmethod
    def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        """Insert one row and return it with generated columns filled in"""

    @abstractmethod
    def update(self, table: str, patch: Dict[str, Any], match: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Apply patch to every matching row and return the updated rows"""

    @abstractmethod
    def delete(self, table: str, match: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Delete every matching row and return the deleted rows"""

    @abstractmethod
    def select(
        self,
        table: str,
        match: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False
    ) -> List[Dict[str, Any]]:
        """Return matching rows, optionally ordered by one column"""

    @abstractmethod
    def record_message(
        self,
        message: Dict[str, Any],
        unread_delta: int = 0,
        last_message_at: Optional[str] = None
    ) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        """
        Atomically insert a message and bump its contact.

        The contact named by ``message["contact_id"]`` gets ``unread_delta``
        added to its unread count and, when given, ``last_message_at`` set.
        Either both writes happen or neither does; NotFoundError when the
        contact does not exist.

        Returns:
            Tuple of (message row, contact row)
        """

    @abstractmethod
    def set_exclusive(self, table: str, column: str, row_id: str) -> List[Dict[str, Any]]:
        """
        Atomically set a boolean column on one row and clear it on all others.

        Returns the rows whose value changed. Raises NotFoundError when the
        target row does not exist (nothing is changed in that case).
        """


def _check_table(table: str) -> None:
    if table not in TABLES:
        raise StoreError(f"Unknown table '{table}'")


def _is_malformed_value(error: Exception) -> bool:
    """A filter value Postgres cannot parse (a non-uuid id) matches no row"""
    return getattr(error, "code", None) == INVALID_TEXT_REPRESENTATION


class SupabaseTableStore(TableStore):
    """Table store backed by Supabase (PostgREST + RPC functions)"""

    def __init__(self, client: Optional[Client] = None):
        """
        Initialize Supabase table store

        Args:
            client: Optional Supabase client (created from settings when omitted)
        """
        if client is None:
            if not settings.is_supabase_configured:
                raise StoreError("Supabase is not configured")

            # Use service role key for backend operations (bypasses RLS)
            supabase_key = settings.SUPABASE_SERVICE_KEY or settings.SUPABASE_KEY
            if settings.SUPABASE_SERVICE_KEY:
                logger.info("Using Supabase service role key (RLS bypassed)")
            else:
                logger.warning("Using Supabase anon key - RLS must be disabled or properly configured")

            client = create_client(settings.SUPABASE_URL, supabase_key)

        self.client = client

    def _apply_match(self, query, match: Optional[Dict[str, Any]]):
        for column, value in (match or {}).items():
            if value is None:
                query = query.is_(column, "null")
            else:
                query = query.eq(column, value)
        return query

    def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        _check_table(table)
        try:
            response = self.client.table(table).insert(row).execute()
        except Exception as e:
            logger.error(f"❌ Insert into {table} failed: {e}")
            raise StoreError(f"Failed to insert into {table}: {e}") from e

        if not response.data:
            raise StoreError(f"Insert into {table} returned no row")
        return response.data[0]

    def update(self, table: str, patch: Dict[str, Any], match: Dict[str, Any]) -> List[Dict[str, Any]]:
        _check_table(table)
        try:
            query = self._apply_match(self.client.table(table).update(patch), match)
            response = query.execute()
        except Exception as e:
            if _is_malformed_value(e):
                return []
            logger.error(f"❌ Update of {table} failed: {e}")
            raise StoreError(f"Failed to update {table}: {e}") from e
        return response.data or []

    def delete(self, table: str, match: Dict[str, Any]) -> List[Dict[str, Any]]:
        _check_table(table)
        try:
            query = self._apply_match(self.client.table(table).delete(), match)
            response = query.execute()
        except Exception as e:
            if _is_malformed_value(e):
                return []
            logger.error(f"❌ Delete from {table} failed: {e}")
            raise StoreError(f"Failed to delete from {table}: {e}") from e
        return response.data or []

    def select(
        self,
        table: str,
        match: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False
    ) -> List[Dict[str, Any]]:
        _check_table(table)
        try:
            query = self._apply_match(self.client.table(table).select("*"), match)
            if order_by:
                query = query.order(order_by, desc=descending)
            response = query.execute()
        except Exception as e:
            if _is_malformed_value(e):
                return []
            logger.error(f"❌ Select from {table} failed: {e}")
            raise StoreError(f"Failed to read {table}: {e}") from e
        return response.data or []

    def _rpc(self, function: str, params: Dict[str, Any], missing: Optional[str] = None):
        try:
            return self.client.rpc(function, params).execute()
        except Exception as e:
            if getattr(e, "code", None) in (NO_DATA_FOUND, INVALID_TEXT_REPRESENTATION):
                raise NotFoundError(
                    missing or f"Row {params.get('p_id')} not found in {params.get('p_table')}"
                ) from e
            logger.error(f"❌ RPC {function} failed: {e}")
            raise StoreError(f"Failed to call {function}: {e}") from e

    def record_message(
        self,
        message: Dict[str, Any],
        unread_delta: int = 0,
        last_message_at: Optional[str] = None
    ) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        response = self._rpc("record_message", {
            "p_message": message,
            "p_unread_delta": unread_delta,
            "p_last_message_at": last_message_at
        }, missing=f"Contact {message.get('contact_id')} not found")
        data = response.data
        if isinstance(data, list):
            data = data[0] if data else None
        if not data or not data.get("message") or not data.get("contact"):
            raise StoreError("record_message returned no rows")
        return data["message"], data["contact"]

    def set_exclusive(self, table: str, column: str, row_id: str) -> List[Dict[str, Any]]:
        _check_table(table)
        response = self._rpc("set_exclusive_flag", {
            "p_table": table,
            "p_column": column,
            "p_id": row_id
        })
        return response.data or []


# Column defaults mirrored from supabase/migrations/0001_inbox.sql
_DEFAULTS: Dict[str, Dict[str, Any]] = {
    "contacts": {
        "instance_id": None,
        "name": None,
        "phone_number": None,
        "profile_pic": None,
        "tags": [],
        "ai_enabled": False,
        "persona": None,
        "medical_history": None,
        "last_message_at": None,
        "unread_count": 0,
    },
    "messages": {
        "is_draft": False,
        "status": None,
    },
    "prompts": {
        "assistant_name": "Carol",
        "tone": None,
        "response_delay": 3,
        "is_active": False,
    },
}

_TIMESTAMPED = {"contacts", "prompts"}


class InMemoryTableStore(TableStore):
    """
    Process-local table store.

    A single lock serializes every operation, which makes record_message and
    set_exclusive atomic the same way the Postgres functions are.
    """

    def __init__(self, clock: Callable = utc_now):
        self._tables: Dict[str, Dict[str, Dict[str, Any]]] = {name: {} for name in TABLES}
        self._lock = threading.RLock()
        self._clock = clock

    @staticmethod
    def _matches(row: Dict[str, Any], match: Optional[Dict[str, Any]]) -> bool:
        return all(row.get(column) == value for column, value in (match or {}).items())

    def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        _check_table(table)
        with self._lock:
            now = to_iso(self._clock())
            new_row = copy.deepcopy(_DEFAULTS[table])
            new_row["id"] = str(uuid.uuid4())
            new_row["created_at"] = now
            if table in _TIMESTAMPED:
                new_row["updated_at"] = now
            new_row.update(copy.deepcopy(row))

            if new_row["id"] in self._tables[table]:
                raise StoreError(f"Duplicate id {new_row['id']} in {table}")

            self._tables[table][new_row["id"]] = new_row
            return copy.deepcopy(new_row)

    def update(self, table: str, patch: Dict[str, Any], match: Dict[str, Any]) -> List[Dict[str, Any]]:
        _check_table(table)
        with self._lock:
            updated = []
            for row in self._tables[table].values():
                if self._matches(row, match):
                    row.update(copy.deepcopy(patch))
                    if table in _TIMESTAMPED:
                        row["updated_at"] = to_iso(self._clock())
                    updated.append(copy.deepcopy(row))
            return updated

    def delete(self, table: str, match: Dict[str, Any]) -> List[Dict[str, Any]]:
        _check_table(table)
        with self._lock:
            doomed = [row_id for row_id, row in self._tables[table].items() if self._matches(row, match)]
            return [self._tables[table].pop(row_id) for row_id in doomed]

    def select(
        self,
        table: str,
        match: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False
    ) -> List[Dict[str, Any]]:
        _check_table(table)
        with self._lock:
            rows = [copy.deepcopy(row) for row in self._tables[table].values() if self._matches(row, match)]

        if order_by:
            # Nulls always sort last
            present = [row for row in rows if row.get(order_by) is not None]
            missing = [row for row in rows if row.get(order_by) is None]
            present.sort(key=lambda row: row[order_by], reverse=descending)
            rows = present + missing
        return rows

    def record_message(
        self,
        message: Dict[str, Any],
        unread_delta: int = 0,
        last_message_at: Optional[str] = None
    ) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        with self._lock:
            contact_id = message.get("contact_id")
            contact = self._tables["contacts"].get(contact_id)
            if contact is None:
                raise NotFoundError(f"Contact {contact_id} not found")

            # Build both rows before touching either table
            bumped = copy.deepcopy(contact)
            bumped["unread_count"] = (bumped.get("unread_count") or 0) + unread_delta
            if last_message_at is not None:
                bumped["last_message_at"] = last_message_at
            bumped["updated_at"] = to_iso(self._clock())

            created = self.insert("messages", message)
            self._tables["contacts"][contact_id] = bumped
            return created, copy.deepcopy(bumped)

    def set_exclusive(self, table: str, column: str, row_id: str) -> List[Dict[str, Any]]:
        _check_table(table)
        with self._lock:
            if row_id not in self._tables[table]:
                raise NotFoundError(f"Row {row_id} not found in {table}")

            changed = []
            for current_id, row in self._tables[table].items():
                value = current_id == row_id
                if row.get(column) != value:
                    row[column] = value
                    if table in _TIMESTAMPED:
                        row["updated_at"] = to_iso(self._clock())
                    changed.append(copy.deepcopy(row))
            return changed


class PublishingTableStore(TableStore):
    """Decorator that publishes every confirmed write to the notification relay"""

    def __init__(self, inner: TableStore, relay: NotificationRelay):
        self.inner = inner
        self.relay = relay

    def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        created = self.inner.insert(table, row)
        self.relay.publish(ChangeEvent(table=table, type=ChangeType.INSERT, record=created))
        return created

    def update(self, table: str, patch: Dict[str, Any], match: Dict[str, Any]) -> List[Dict[str, Any]]:
        rows = self.inner.update(table, patch, match)
        for row in rows:
            self.relay.publish(ChangeEvent(table=table, type=ChangeType.UPDATE, record=row))
        return rows

    def delete(self, table: str, match: Dict[str, Any]) -> List[Dict[str, Any]]:
        rows = self.inner.delete(table, match)
        for row in rows:
            self.relay.publish(ChangeEvent(table=table, type=ChangeType.DELETE, old_record=row))
        return rows

    def select(
        self,
        table: str,
        match: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False
    ) -> List[Dict[str, Any]]:
        return self.inner.select(table, match, order_by, descending)

    def record_message(
        self,
        message: Dict[str, Any],
        unread_delta: int = 0,
        last_message_at: Optional[str] = None
    ) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        created, contact = self.inner.record_message(message, unread_delta, last_message_at)
        self.relay.publish(ChangeEvent(table="messages", type=ChangeType.INSERT, record=created))
        self.relay.publish(ChangeEvent(table="contacts", type=ChangeType.UPDATE, record=contact))
        return created, contact

    def set_exclusive(self, table: str, column: str, row_id: str) -> List[Dict[str, Any]]:
        rows = self.inner.set_exclusive(table, column, row_id)
        for row in rows:
            self.relay.publish(ChangeEvent(table=table, type=ChangeType.UPDATE, record=row))
        return rows


# Singleton instance
_table_store: Optional[TableStore] = None


def get_table_store() -> TableStore:
    """
    Get or create the TableStore used by the inbox services.

    Returns:
        Publishing store wrapping the configured backend
    """
    global _table_store
    if _table_store is None:
        if settings.use_memory_store:
            logger.warning("Using in-memory table store - data is lost on restart")
            backend: TableStore = InMemoryTableStore()
        else:
            backend = SupabaseTableStore()
        _table_store = PublishingTableStore(backend, get_notification_relay())
    return _table_store
