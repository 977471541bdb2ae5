"""Conversation CRUD, lookup by contact_id and the filtered queries used by listings and the sweep."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import Select, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from inbox_relay.constants.conversation import ConversationStatus
from inbox_relay.models.conversation import Conversation
from inbox_relay.schemas.conversation import ConversationCreate, ConversationUpdate

logger = logging.getLogger(__name__)


class ConversationService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_by_contact_id(self, contact_id: str) -> Optional[Conversation]:
        return (
            self.db.query(Conversation)
            .filter(Conversation.contact_id == contact_id)
            .first()
        )

    def create_conversation(self, data: ConversationCreate) -> Tuple[Conversation, bool]:
        """
        Insert a conversation. Returns (conversation, created).

        contact_id is unique: when a concurrent writer inserted the same contact
        first, the insert fails and the stored row is returned with created=False.
        """
        conversation = Conversation(**data.model_dump())
        self.db.add(conversation)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            existing = self.get_by_contact_id(data.contact_id)
            if existing is None:
                raise
            logger.info("conversation_create_raced contact_id=%s", data.contact_id)
            return existing, False
        self.db.refresh(conversation)
        return conversation, True

    def update_conversation(
        self, conversation: Conversation, data: ConversationUpdate
    ) -> Conversation:
        update_data = data.model_dump(exclude_unset=True)
        for key, value in update_data.items():
            setattr(conversation, key, value)
        self.db.commit()
        self.db.refresh(conversation)
        return conversation

    def list_query(self, include_closed: bool = False) -> Select:
        """Conversations ordered by last message time, newest first."""
        stmt = select(Conversation)
        if not include_closed:
            stmt = stmt.where(Conversation.status != ConversationStatus.CLOSED.value)
        return stmt.order_by(Conversation.last_message_at.desc())

    def list_conversations(
        self, include_closed: bool = False, limit: int = 100
    ) -> List[Conversation]:
        return list(self.db.scalars(self.list_query(include_closed).limit(limit)))

    def find_stale(self, cutoff: datetime, limit: int = 100) -> List[Conversation]:
        """Open conversations (not closed) whose last message is older than cutoff."""
        stmt = (
            select(Conversation)
            .where(
                Conversation.status != ConversationStatus.CLOSED.value,
                Conversation.last_message_at < cutoff,
            )
            .order_by(Conversation.last_message_at.asc())
            .limit(limit)
        )
        return list(self.db.scalars(stmt))
