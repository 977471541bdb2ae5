"""
Normalized message contracts.

Inbound webhook payloads are converted into InboundMessage; the transport takes
OutboundMessage and answers with OutboundSendResult. Stable and independent of
the provider payload shape.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class InboundMessage(BaseModel):
    """Canonical inbound message (adapter → state machine)."""

    contact_id: str
    message_id: str
    text: str
    timestamp: datetime
    sender_display_name: str = ""
    channel_handle: Optional[str] = None


class OutboundMessage(BaseModel):
    """Outbound text message (core → transport)."""

    contact_id: str
    text: str


class OutboundSendResult(BaseModel):
    """Result of a transport send: provider message id plus the raw provider response."""

    platform_message_id: Optional[str] = None
    response: dict[str, Any] = Field(default_factory=dict)
