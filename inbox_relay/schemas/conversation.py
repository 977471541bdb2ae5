"""Pydantic schemas for conversations, messages and operator requests."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from inbox_relay.constants.conversation import ConversationStatus, MessageDirection

# -----------------------------------------------------------------------------
# Conversation / Message write models
# -----------------------------------------------------------------------------


class ConversationCreate(BaseModel):
    """Schema for creating a conversation."""

    contact_id: str
    display_name: str = ""
    last_message_text: Optional[str] = None
    last_message_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    channel_handle: Optional[str] = None
    appointment_id: Optional[UUID] = None
    status: ConversationStatus = ConversationStatus.ACTIVE

    model_config = ConfigDict(use_enum_values=True)


class ConversationUpdate(BaseModel):
    """Schema for updating a conversation. Only set fields are written."""

    display_name: Optional[str] = None
    last_message_text: Optional[str] = None
    last_message_at: Optional[datetime] = None
    channel_handle: Optional[str] = None
    appointment_id: Optional[UUID] = None
    status: Optional[ConversationStatus] = None

    model_config = ConfigDict(use_enum_values=True)


class MessageCreate(BaseModel):
    """Schema for appending a message to the history."""

    message_id: str
    conversation_id: UUID
    contact_id: str
    direction: MessageDirection
    text: str
    sent_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(use_enum_values=True)


# -----------------------------------------------------------------------------
# Conversation / Message read models
# -----------------------------------------------------------------------------


class ConversationRead(BaseModel):
    """Conversation for API responses."""

    id: UUID
    contact_id: str
    display_name: str = ""
    last_message_text: Optional[str] = None
    last_message_at: datetime
    channel_handle: Optional[str] = None
    appointment_id: Optional[UUID] = None
    status: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class MessageRead(BaseModel):
    """History entry for API responses."""

    id: UUID
    message_id: str
    conversation_id: UUID
    contact_id: str
    direction: str
    text: str
    sent_at: datetime

    model_config = {"from_attributes": True}


# -----------------------------------------------------------------------------
# Operator requests / responses
# -----------------------------------------------------------------------------


class SendRequest(BaseModel):
    """Operator send. Fields are optional so blank input can be answered with 400."""

    contact_id: Optional[str] = None
    text: Optional[str] = None
    reopen: bool = False


class ContactRequest(BaseModel):
    """Body for close / reopen."""

    contact_id: Optional[str] = None


class SendResponse(BaseModel):
    ok: bool = True
    message_id: str
    recorded: bool = True
    data: dict[str, Any] = Field(default_factory=dict)


class CloseResponse(BaseModel):
    ok: bool = True
    closed: bool = True
    conversation: ConversationRead


class SyncResponse(BaseModel):
    ok: bool = True
    created: int
    total: int
    failed: int = 0
