"""Events pushed to live subscribers of a contact's conversation."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, Field


class ConversationEventType(StrEnum):
    CONNECTED = "connected"
    MESSAGE = "message"
    CONVERSATION_CLOSED = "conversation_closed"
    CONVERSATION_REOPENED = "conversation_reopened"


class ConversationEvent(BaseModel):
    """Event scoped to one contact_id."""

    type: ConversationEventType
    contact_id: str
    direction: Optional[str] = None
    message_id: Optional[str] = None
    name: Optional[str] = None
    text: Optional[str] = None
    date: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_sse(self) -> str:
        """Render as a server-sent-events data frame."""
        return f"data: {self.model_dump_json(exclude_none=True)}\n\n"
