"""
Inbox Models

Pydantic models for the clinic inbox: contacts, messages (including AI drafts)
and AI personas (prompts).
"""
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field, field_validator, model_validator
from datetime import datetime as dt
from enum import Enum


# ============================================
# ENUMS
# ============================================

class ContactTag(str, Enum):
    """Contact tag enumeration (stored values match the contact_tag database enum)"""
    TRIAGE = "triagem"
    SCHEDULED = "agendado"
    URGENT = "urgente"
    POST_VISIT = "pos_consulta"
    AWAITING = "aguardando"


class SenderType(str, Enum):
    """Message sender type enumeration"""
    USER = "user"        # clinic operator
    CONTACT = "contact"  # patient
    BOT = "bot"          # AI responder


class MessageStatus(str, Enum):
    """Display status of a message (a hint, not a delivery acknowledgment)"""
    SENT = "sent"
    RECEIVED = "received"
    DRAFT = "draft"
    FAILED = "failed"


class ContactView(str, Enum):
    """Mutually exclusive contact list views"""
    ALL = "all"
    UNREAD = "unread"
    AI = "ai"


# ============================================
# CONTACT MODELS
# ============================================

class Contact(BaseModel):
    """Schema for contact response"""
    id: str = Field(..., description="Contact UUID")
    remote_jid: str = Field(..., description="External WhatsApp address")
    instance_id: Optional[str] = Field(None, description="WhatsApp instance UUID")
    name: Optional[str] = Field(None, description="Display name")
    phone_number: Optional[str] = Field(None, description="Phone number")
    profile_pic: Optional[str] = Field(None, description="Profile picture URL")
    tags: List[ContactTag] = Field(default_factory=list, description="Contact tags")
    ai_enabled: bool = Field(False, description="Whether the AI auto-responder drafts replies")
    persona: Optional[str] = Field(None, description="Persona label selecting AI behavior")
    medical_history: Optional[str] = Field(None, description="Free-text medical history")
    last_message_at: Optional[dt] = Field(None, description="Last activity timestamp")
    unread_count: int = Field(0, ge=0, description="Unread inbound message count")
    created_at: Optional[dt] = Field(None, description="Creation timestamp")
    updated_at: Optional[dt] = Field(None, description="Last update timestamp")

    @field_validator("tags", mode="before")
    @classmethod
    def _tags_default(cls, value):
        return value or []

    class Config:
        from_attributes = True
        json_schema_extra = {
            "example": {
                "id": "c1a2b3c4-0000-0000-0000-000000000001",
                "remote_jid": "5511999990000@s.whatsapp.net",
                "name": "Maria Silva",
                "phone_number": "+55 11 99999-0000",
                "tags": ["triagem"],
                "ai_enabled": True,
                "persona": "triagem",
                "medical_history": "Hipertensão controlada",
                "last_message_at": "2025-10-21T15:30:00Z",
                "unread_count": 2
            }
        }


class ContactCreate(BaseModel):
    """Schema for provisioning a contact"""
    remote_jid: str = Field(..., min_length=1, description="External WhatsApp address")
    name: Optional[str] = Field(None, description="Display name")
    phone_number: Optional[str] = Field(None, description="Phone number")
    profile_pic: Optional[str] = Field(None, description="Profile picture URL")


class ContactUpdate(BaseModel):
    """Schema for operator edits on a contact"""
    name: Optional[str] = None
    tags: Optional[List[ContactTag]] = None
    ai_enabled: Optional[bool] = None
    persona: Optional[str] = None
    medical_history: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "tags": ["urgente", "aguardando"],
                "persona": "emergencia"
            }
        }


class ContactListResponse(BaseModel):
    """Schema for list of contacts"""
    contacts: List[Contact]
    total: int = Field(..., description="Number of contacts matching the filter")


# ============================================
# MESSAGE MODELS
# ============================================

class Message(BaseModel):
    """Schema for message response"""
    id: str = Field(..., description="Message UUID")
    contact_id: str = Field(..., description="Owning contact UUID")
    content: str = Field(..., description="Message content")
    sender_type: SenderType = Field(..., description="Sender type")
    is_draft: bool = Field(False, description="AI suggestion awaiting approval")
    status: Optional[str] = Field(None, description="Display status (sent, received, draft, failed)")
    created_at: dt = Field(..., description="Creation timestamp")

    class Config:
        from_attributes = True
        json_schema_extra = {
            "example": {
                "id": "m1a2b3c4-0000-0000-0000-000000000001",
                "contact_id": "c1a2b3c4-0000-0000-0000-000000000001",
                "content": "Sinto muito que esteja passando por isso.",
                "sender_type": "bot",
                "is_draft": True,
                "status": "draft",
                "created_at": "2025-10-21T15:30:03Z"
            }
        }


class MessageCreate(BaseModel):
    """Schema for an operator message"""
    content: str = Field(..., description="Message content")

    class Config:
        json_schema_extra = {
            "example": {"content": "Bom dia! Como está se sentindo hoje?"}
        }


class DraftUpdate(BaseModel):
    """Schema for editing an AI draft before approval"""
    content: str = Field(..., description="New draft content")


class MessageListResponse(BaseModel):
    """Schema for a conversation"""
    messages: List[Message]
    total: int = Field(..., description="Total number of messages")


class TypingStatus(BaseModel):
    """AI typing indicator for a contact"""
    contact_id: str
    is_typing: bool
    pending: int = Field(0, description="Draft generations still in flight")


# ============================================
# PROMPT (PERSONA) MODELS
# ============================================

class Prompt(BaseModel):
    """Schema for prompt response"""
    id: str = Field(..., description="Prompt UUID")
    title: str = Field(..., description="Persona title")
    content: str = Field(..., description="System instructions")
    assistant_name: str = Field("Carol", description="Name the assistant introduces itself with")
    tone: Optional[str] = Field(None, description="Tone (empático, profissional, casual, formal)")
    response_delay: Optional[int] = Field(None, description="Seconds to wait before drafting")
    is_active: bool = Field(False, description="Whether this is the active persona")
    created_at: Optional[dt] = Field(None, description="Creation timestamp")
    updated_at: Optional[dt] = Field(None, description="Last update timestamp")

    class Config:
        from_attributes = True


class PromptCreate(BaseModel):
    """Schema for creating a prompt"""
    title: str = Field(..., description="Persona title")
    content: str = Field(..., description="System instructions")
    assistant_name: str = Field("Carol", description="Assistant name")
    tone: str = Field("empático", description="Tone")
    response_delay: int = Field(3, ge=1, le=10, description="Seconds to wait before drafting")

    class Config:
        json_schema_extra = {
            "example": {
                "title": "Triagem",
                "content": "Você é uma atendente virtual de uma clínica. Faça a triagem inicial.",
                "assistant_name": "Carol",
                "tone": "empático",
                "response_delay": 3
            }
        }


class PromptUpdate(BaseModel):
    """Schema for updating a prompt"""
    title: Optional[str] = None
    content: Optional[str] = None
    assistant_name: Optional[str] = None
    tone: Optional[str] = None
    response_delay: Optional[int] = Field(None, ge=1, le=10)


class PromptListResponse(BaseModel):
    """Schema for list of prompts"""
    prompts: List[Prompt]
    total: int


# ============================================
# WEBHOOK MODELS
# ============================================

class InboundMessage(BaseModel):
    """Patient message delivered by the WhatsApp gateway"""
    message: str = Field(..., description="Message content")
    contact_id: Optional[str] = Field(None, description="Contact UUID, if already known")
    remote_jid: Optional[str] = Field(None, description="Sender WhatsApp address")
    sender_name: Optional[str] = Field(None, description="Sender name from WhatsApp profile")
    phone_number: Optional[str] = Field(None, description="Sender phone number")
    message_id: Optional[str] = Field(None, description="Gateway message ID (deduplication key)")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Additional metadata")

    @model_validator(mode="after")
    def _require_sender(self):
        if not self.contact_id and not self.remote_jid:
            raise ValueError("Either contact_id or remote_jid is required")
        return self

    class Config:
        json_schema_extra = {
            "example": {
                "remote_jid": "5511999990000@s.whatsapp.net",
                "sender_name": "Maria Silva",
                "phone_number": "+5511999990000",
                "message": "Estou com dor de cabeça desde ontem",
                "message_id": "3EB0C767D26A1D8A",
                "metadata": {}
            }
        }


class InboundResponse(BaseModel):
    """Result of processing an inbound message"""
    success: bool
    status: str = Field(..., description="processed or duplicate")
    contact_id: Optional[str] = None
    message_id: Optional[str] = None
    unread_count: Optional[int] = None
