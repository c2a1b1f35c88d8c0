"""
Contact Service

Service layer for clinic contacts: listing and filtering the inbox, operator
edits, AI takeover and unread bookkeeping.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from app.models.inbox import Contact, ContactCreate, ContactUpdate, ContactView
from app.services.errors import NotFoundError
from app.services.table_store import TableStore, get_table_store
from app.utils.time_utils import EPOCH, parse_timestamp

logger = logging.getLogger(__name__)

TABLE = "contacts"

# Compare-and-swap attempts for toggle_ai before giving up on a hot row
MAX_TOGGLE_ATTEMPTS = 5


def matches_search(row: Dict[str, Any], search: Optional[str]) -> bool:
    """Case-insensitive substring match on name or phone number"""
    if not search:
        return True
    needle = search.lower()
    return any(needle in (row.get(field) or "").lower() for field in ("name", "phone_number"))


def matches_view(row: Dict[str, Any], view: ContactView) -> bool:
    if view == ContactView.UNREAD:
        return (row.get("unread_count") or 0) > 0
    if view == ContactView.AI:
        return bool(row.get("ai_enabled"))
    return True


def sort_by_activity(rows: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Most recent activity first; contacts without activity go last"""
    return sorted(
        rows,
        key=lambda row: parse_timestamp(row.get("last_message_at")) or EPOCH,
        reverse=True
    )


class ContactService:
    """Service for managing contacts"""

    def __init__(self, store: TableStore):
        self.store = store

    async def list_contacts(
        self,
        search: Optional[str] = None,
        view: ContactView = ContactView.ALL,
        skip: int = 0,
        limit: Optional[int] = None
    ) -> Tuple[List[Contact], int]:
        """
        List contacts for the inbox sidebar.

        Args:
            search: Substring to look for in name or phone number
            view: all, unread (unread_count > 0) or ai (ai_enabled)
            skip: Number of contacts to skip
            limit: Maximum number of contacts to return

        Returns:
            Tuple of (page of contacts, total matching count)
        """
        rows = self.store.select(TABLE)
        filtered = [row for row in rows if matches_search(row, search) and matches_view(row, view)]
        ordered = sort_by_activity(filtered)

        end = skip + limit if limit is not None else None
        page = ordered[skip:end]
        return [Contact(**row) for row in page], len(ordered)

    async def get_contact(self, contact_id: str) -> Contact:
        """
        Get a contact by ID.

        Raises:
            NotFoundError: If the contact does not exist
        """
        rows = self.store.select(TABLE, {"id": contact_id})
        if not rows:
            raise NotFoundError(f"Contact {contact_id} not found")
        return Contact(**rows[0])

    async def find_by_remote_jid(self, remote_jid: str) -> Optional[Contact]:
        rows = self.store.select(TABLE, {"remote_jid": remote_jid})
        return Contact(**rows[0]) if rows else None

    async def provision(self, contact_data: ContactCreate) -> Contact:
        """
        Find a contact by WhatsApp address or create it.

        New contacts start with AI disabled, no tags and nothing unread.
        Profile fields missing on an existing contact are filled in.
        """
        existing = await self.find_by_remote_jid(contact_data.remote_jid)
        if existing:
            missing = {
                field: value
                for field, value in contact_data.model_dump(exclude={"remote_jid"}).items()
                if value and not getattr(existing, field)
            }
            if not missing:
                return existing
            rows = self.store.update(TABLE, missing, {"id": existing.id})
            return Contact(**rows[0]) if rows else existing

        row = self.store.insert(TABLE, {
            "remote_jid": contact_data.remote_jid,
            "name": contact_data.name,
            "phone_number": contact_data.phone_number,
            "profile_pic": contact_data.profile_pic,
            "tags": [],
            "ai_enabled": False,
            "unread_count": 0
        })
        logger.info(f"✅ Provisioned contact {row['id']} for {contact_data.remote_jid}")
        return Contact(**row)

    async def update_contact(self, contact_id: str, contact_data: ContactUpdate) -> Contact:
        """
        Apply operator edits (name, tags, persona, medical history, AI flag).

        Raises:
            NotFoundError: If the contact does not exist
        """
        patch = contact_data.model_dump(exclude_unset=True, mode="json")
        if "tags" in patch:
            patch["tags"] = patch["tags"] or []
        if patch.get("ai_enabled") is None:
            patch.pop("ai_enabled", None)

        if not patch:
            return await self.get_contact(contact_id)

        rows = self.store.update(TABLE, patch, {"id": contact_id})
        if not rows:
            raise NotFoundError(f"Contact {contact_id} not found")

        logger.info(f"Updated contact {contact_id}: {sorted(patch)}")
        return Contact(**rows[0])

    async def toggle_ai(self, contact_id: str) -> Contact:
        """
        Flip ai_enabled ("assume conversation" / hand back to the AI).

        The write is conditional on the value that was read, so two operators
        toggling at once produce two flips instead of one lost update.

        Raises:
            NotFoundError: If the contact does not exist
        """
        for _ in range(MAX_TOGGLE_ATTEMPTS):
            current = await self.get_contact(contact_id)
            rows = self.store.update(
                TABLE,
                {"ai_enabled": not current.ai_enabled},
                {"id": contact_id, "ai_enabled": current.ai_enabled}
            )
            if rows:
                contact = Contact(**rows[0])
                state = "enabled" if contact.ai_enabled else "disabled"
                logger.info(f"🤖 AI {state} for contact {contact_id}")
                return contact

        logger.warning(f"AI toggle for contact {contact_id} kept losing races; returning current state")
        return await self.get_contact(contact_id)

    async def open_contact(self, contact_id: str) -> Contact:
        """
        Mark a conversation as read because an operator opened it.

        Only writes when something is unread, so reopening a read conversation
        does not generate change notifications.

        Raises:
            NotFoundError: If the contact does not exist
        """
        contact = await self.get_contact(contact_id)
        if contact.unread_count <= 0:
            return contact

        rows = self.store.update(TABLE, {"unread_count": 0}, {"id": contact_id})
        logger.debug(f"Reset unread count for contact {contact_id} (was {contact.unread_count})")
        return Contact(**rows[0]) if rows else contact


# Singleton instance
_contact_service: Optional[ContactService] = None


def get_contact_service() -> ContactService:
    """
    Get or create ContactService instance.

    Returns:
        ContactService instance
    """
    global _contact_service
    if _contact_service is None:
        _contact_service = ContactService(get_table_store())
    return _contact_service
