"""
Inbox Messages API Endpoints

Provides HTTP endpoints for the chat area: the conversation, operator sends,
and approval, rejection and editing of AI drafts.
"""
from fastapi import APIRouter, HTTPException, Depends, status
import logging

from app.api.errors import http_error
from app.auth.dependencies import get_current_operator
from app.models.inbox import DraftUpdate, Message, MessageCreate, MessageListResponse, TypingStatus
from app.models.operator import Operator
from app.services.contact_service import ContactService, get_contact_service
from app.services.draft_service import DraftService, get_draft_service
from app.services.errors import InboxError
from app.services.message_service import MessageService, get_message_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/inbox", tags=["inbox-messages"])


# ============================================
# CONVERSATION
# ============================================

@router.get(
    "/contacts/{contact_id}/messages",
    response_model=MessageListResponse,
    summary="Get conversation",
    description="All messages of a contact, oldest first (drafts included)"
)
async def list_messages(
    contact_id: str,
    operator: Operator = Depends(get_current_operator),
    message_service: MessageService = Depends(get_message_service)
):
    """Get the messages of a conversation"""
    try:
        messages = await message_service.list_messages(contact_id)
        return MessageListResponse(messages=messages, total=len(messages))

    except InboxError as e:
        raise http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching messages for contact {contact_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch messages"
        )


@router.post(
    "/contacts/{contact_id}/messages",
    response_model=Message,
    status_code=status.HTTP_201_CREATED,
    summary="Send message",
    description="Send an operator message; schedules an AI draft when the contact has AI enabled"
)
async def send_message(
    contact_id: str,
    message: MessageCreate,
    operator: Operator = Depends(get_current_operator),
    message_service: MessageService = Depends(get_message_service)
):
    """Send a message to the patient"""
    try:
        sent = await message_service.send_message(contact_id, message.content)
        logger.info(f"📤 Message {sent.id} sent to contact {contact_id} by {operator.label}")
        return sent

    except InboxError as e:
        raise http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error sending message to contact {contact_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to send message"
        )


@router.get(
    "/contacts/{contact_id}/typing",
    response_model=TypingStatus,
    summary="AI typing indicator"
)
async def get_typing_status(
    contact_id: str,
    operator: Operator = Depends(get_current_operator),
    contact_service: ContactService = Depends(get_contact_service),
    draft_service: DraftService = Depends(get_draft_service)
):
    """Whether an AI draft is being generated for the contact"""
    try:
        await contact_service.get_contact(contact_id)
        return draft_service.typing_status(contact_id)

    except InboxError as e:
        raise http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching typing status for contact {contact_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch typing status"
        )


# ============================================
# AI DRAFTS
# ============================================

@router.post(
    "/messages/{message_id}/approve",
    response_model=Message,
    summary="Approve AI draft",
    description="The draft becomes a sent message and is delivered to the patient"
)
async def approve_draft(
    message_id: str,
    operator: Operator = Depends(get_current_operator),
    draft_service: DraftService = Depends(get_draft_service)
):
    """Approve and send an AI draft"""
    try:
        message = await draft_service.approve(message_id)
        logger.info(f"✅ Draft {message_id} approved by {operator.label}")
        return message

    except InboxError as e:
        raise http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error approving draft {message_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to approve draft"
        )


@router.post(
    "/messages/{message_id}/reject",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Reject AI draft",
    description="Discard the draft"
)
async def reject_draft(
    message_id: str,
    operator: Operator = Depends(get_current_operator),
    draft_service: DraftService = Depends(get_draft_service)
):
    """Discard an AI draft"""
    try:
        await draft_service.reject(message_id)
        logger.info(f"Draft {message_id} rejected by {operator.label}")

    except InboxError as e:
        raise http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error rejecting draft {message_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to reject draft"
        )


@router.patch(
    "/messages/{message_id}",
    response_model=Message,
    summary="Edit AI draft",
    description="Replace the content of a draft before approving it"
)
async def edit_draft(
    message_id: str,
    draft: DraftUpdate,
    operator: Operator = Depends(get_current_operator),
    draft_service: DraftService = Depends(get_draft_service)
):
    """Edit an AI draft"""
    try:
        return await draft_service.edit(message_id, draft.content)

    except InboxError as e:
        raise http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error editing draft {message_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to edit draft"
        )
