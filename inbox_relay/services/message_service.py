"""
Message history service.

Messages are immutable; only insert. Inserting a message_id that is already
stored returns the stored row, so webhook redeliveries never duplicate history.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from sqlalchemy import Select, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from inbox_relay.models.message import Message
from inbox_relay.schemas.conversation import MessageCreate

logger = logging.getLogger(__name__)


class MessageService:
    """Append and read messages. No update/delete."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def get_by_message_id(self, message_id: str) -> Optional[Message]:
        return self.db.query(Message).filter(Message.message_id == message_id).first()

    def append_message(self, data: MessageCreate) -> Tuple[Message, bool]:
        """Insert a message unless its message_id is already stored. Returns (message, created)."""
        existing = self.get_by_message_id(data.message_id)
        if existing is not None:
            return existing, False
        message = Message(**data.model_dump())
        self.db.add(message)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            existing = self.get_by_message_id(data.message_id)
            if existing is None:
                raise
            logger.info("message_append_raced message_id=%s", data.message_id)
            return existing, False
        self.db.refresh(message)
        return message, True

    def has_messages(self, contact_id: str) -> bool:
        return (
            self.db.query(Message.id).filter(Message.contact_id == contact_id).first()
            is not None
        )

    def count_messages(self, contact_id: str) -> int:
        return self.db.query(Message).filter(Message.contact_id == contact_id).count()

    def history_query(self, contact_id: str) -> Select:
        """Messages for a contact, oldest first."""
        return (
            select(Message)
            .where(Message.contact_id == contact_id)
            .order_by(Message.sent_at.asc(), Message.created_at.asc())
        )

    def get_history(self, contact_id: str, limit: int = 100) -> List[Message]:
        return list(self.db.scalars(self.history_query(contact_id).limit(limit)))
