"""Conversation model: one row per contact, never hard-deleted."""

from __future__ import annotations

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import relationship

from inbox_relay.constants.conversation import ConversationStatus
from inbox_relay.db import Base
from inbox_relay.models.mixins import TimestampMixin, utcnow


class Conversation(Base, TimestampMixin):
    """Messaging lifecycle of a single contact. Identified by contact_id (digits-only phone handle)."""

    __tablename__ = "conversations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    contact_id = Column(String(64), unique=True, nullable=False, index=True)
    display_name = Column(String(256), nullable=False, default="")
    last_message_text = Column(Text, nullable=True)
    last_message_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, index=True
    )
    channel_handle = Column(String(128), nullable=True)
    appointment_id = Column(
        Uuid, ForeignKey("appointments.id", ondelete="SET NULL"), nullable=True
    )
    status = Column(
        String(16), nullable=False, default=ConversationStatus.ACTIVE.value, index=True
    )

    appointment = relationship("Appointment")
    messages = relationship(
        "Message",
        back_populates="conversation",
        order_by="Message.sent_at",
    )

    @property
    def is_closed(self) -> bool:
        return self.status == ConversationStatus.CLOSED
