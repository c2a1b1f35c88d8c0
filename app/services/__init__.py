"""Business logic services"""
from .contact_service import ContactService, get_contact_service
from .draft_service import DraftService, get_draft_service
from .message_service import MessageService, get_message_service
from .prompt_service import PromptService, get_prompt_service

__all__ = [
    "ContactService",
    "get_contact_service",
    "DraftService",
    "get_draft_service",
    "MessageService",
    "get_message_service",
    "PromptService",
    "get_prompt_service",
]
