"""
Message model: append-only history of inbound and outbound messages.

Rows are inserted once and never updated or deleted. message_id carries the
provider id (or a locally generated one) and is unique, which makes repeated
webhook deliveries collapse onto the stored row.
"""

from __future__ import annotations

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import relationship

from inbox_relay.db import Base
from inbox_relay.models.mixins import utcnow


class Message(Base):
    """One row per message; direction is 'IN' (from contact) or 'OUT' (sent to contact)."""

    __tablename__ = "messages"

    __table_args__ = (
        Index("ix_messages_contact_sent", "contact_id", "sent_at"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    message_id = Column(String(255), unique=True, nullable=False)
    conversation_id = Column(
        Uuid, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    contact_id = Column(String(64), nullable=False)
    direction = Column(String(8), nullable=False)  # 'IN' | 'OUT'
    text = Column(Text, nullable=False, default="")
    sent_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    conversation = relationship("Conversation", back_populates="messages")
