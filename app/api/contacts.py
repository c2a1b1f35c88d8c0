"""
Inbox Contacts API Endpoints

Provides HTTP endpoints for the inbox sidebar and the patient context panel:
listing/filtering contacts, operator edits, opening a conversation and AI takeover.
"""
from fastapi import APIRouter, HTTPException, Query, Depends, status
from typing import Optional
import logging

from app.api.errors import http_error
from app.auth.dependencies import get_current_operator
from app.models.inbox import Contact, ContactListResponse, ContactUpdate, ContactView
from app.models.operator import Operator
from app.services.contact_service import ContactService, get_contact_service
from app.services.errors import InboxError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/inbox/contacts", tags=["inbox-contacts"])


@router.get(
    "",
    response_model=ContactListResponse,
    summary="List contacts",
    description="Contacts ordered by most recent activity, with search and view filters"
)
async def list_contacts(
    search: Optional[str] = Query(None, description="Search by name or phone number"),
    view: ContactView = Query(ContactView.ALL, description="all, unread or ai"),
    skip: int = Query(0, ge=0, description="Number of records to skip"),
    limit: int = Query(50, ge=1, le=200, description="Number of records to return"),
    operator: Operator = Depends(get_current_operator),
    contact_service: ContactService = Depends(get_contact_service)
):
    """List contacts for the inbox"""
    try:
        contacts, total = await contact_service.list_contacts(search=search, view=view, skip=skip, limit=limit)
        return ContactListResponse(contacts=contacts, total=total)

    except InboxError as e:
        raise http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error listing contacts: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch contacts"
        )


@router.get(
    "/{contact_id}",
    response_model=Contact,
    summary="Get contact by ID"
)
async def get_contact(
    contact_id: str,
    operator: Operator = Depends(get_current_operator),
    contact_service: ContactService = Depends(get_contact_service)
):
    """Get specific contact by ID"""
    try:
        return await contact_service.get_contact(contact_id)

    except InboxError as e:
        raise http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching contact {contact_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch contact"
        )


@router.patch(
    "/{contact_id}",
    response_model=Contact,
    summary="Update contact",
    description="Edit tags, persona, medical history, name or the AI flag"
)
async def update_contact(
    contact_id: str,
    contact_update: ContactUpdate,
    operator: Operator = Depends(get_current_operator),
    contact_service: ContactService = Depends(get_contact_service)
):
    """Update patient context"""
    try:
        contact = await contact_service.update_contact(contact_id, contact_update)
        logger.info(f"Contact updated: {contact_id} by {operator.label}")
        return contact

    except InboxError as e:
        raise http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating contact {contact_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update contact"
        )


@router.post(
    "/{contact_id}/open",
    response_model=Contact,
    summary="Open conversation",
    description="Mark the conversation as read (unread count back to 0)"
)
async def open_contact(
    contact_id: str,
    operator: Operator = Depends(get_current_operator),
    contact_service: ContactService = Depends(get_contact_service)
):
    """Reset unread count"""
    try:
        return await contact_service.open_contact(contact_id)

    except InboxError as e:
        raise http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error opening contact {contact_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to open conversation"
        )


@router.post(
    "/{contact_id}/takeover",
    response_model=Contact,
    summary="Toggle AI",
    description="Take over the conversation from the AI, or hand it back"
)
async def toggle_ai(
    contact_id: str,
    operator: Operator = Depends(get_current_operator),
    contact_service: ContactService = Depends(get_contact_service)
):
    """Flip the contact's AI auto-responder"""
    try:
        contact = await contact_service.toggle_ai(contact_id)
        logger.info(f"🤖 AI toggled to {contact.ai_enabled} for {contact_id} by {operator.label}")
        return contact

    except InboxError as e:
        raise http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error toggling AI for contact {contact_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to toggle AI"
        )
