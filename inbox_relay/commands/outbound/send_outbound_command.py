"""
Command to send an operator message to a contact.

Checks the conversation state, sends through the transport, then records the
message. A send that succeeded is never rolled back: if recording fails the
gap is logged and reported with recorded=False.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from inbox_relay.adapters.base import BasePlatformAdapter
from inbox_relay.core.broadcaster import Broadcaster
from inbox_relay.core.contact import normalize_contact_id
from inbox_relay.core.errors import ConversationClosed
from inbox_relay.core.state_machine import ConversationStateMachine
from inbox_relay.schemas.messaging import OutboundMessage, OutboundSendResult
from inbox_relay.services.conversation_service import ConversationService

logger = logging.getLogger(__name__)


@dataclass
class OutboundResult:
    message_id: Optional[str]
    recorded: bool = True
    response: dict[str, Any] = field(default_factory=dict)


class SendOutboundCommand:
    """
    Command to send an outbound message to a contact and record it.
    """

    def __init__(
        self,
        db: Session,
        adapter: BasePlatformAdapter,
        broadcaster: Optional[Broadcaster] = None,
        channel_handle: Optional[str] = None,
    ) -> None:
        self.db = db
        self.adapter = adapter
        self.conversation_service = ConversationService(db)
        self.state_machine = ConversationStateMachine(
            db, adapter, broadcaster, channel_handle=channel_handle
        )

    async def execute(
        self, contact_id: str, text: str, *, reopen: bool = False
    ) -> OutboundResult:
        """
        Send text to contact_id and record it as an OUT message.

        Raises:
            ConversationClosed: The conversation is closed and reopen is False.
                Nothing is sent.
            UpstreamUnavailable: The transport failed. Nothing is recorded.
        """
        contact_id = normalize_contact_id(contact_id)
        conversation = self.conversation_service.get_by_contact_id(contact_id)
        if conversation is not None and conversation.is_closed and not reopen:
            raise ConversationClosed(
                "Conversation is closed. Reopen manually if needed."
            )

        result: OutboundSendResult = await self.adapter.send(
            OutboundMessage(contact_id=contact_id, text=text)
        )

        try:
            message_id = self.state_machine.record_outbound(
                contact_id, text, result.platform_message_id, reopen=reopen
            )
        except (SQLAlchemyError, ConversationClosed):
            # Closed between the check and the write, or the store failed.
            self.db.rollback()
            logger.exception(
                "outbound_record_failed contact_id=%s platform_message_id=%s",
                contact_id,
                result.platform_message_id,
            )
            return OutboundResult(
                message_id=result.platform_message_id,
                recorded=False,
                response=result.response,
            )

        logger.info("outbound_sent contact_id=%s message_id=%s", contact_id, message_id)
        return OutboundResult(
            message_id=message_id, recorded=True, response=result.response
        )
