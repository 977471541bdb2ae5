"""
Conversation state machine.

States: scheduled, active, closed.

    scheduled -> active   any inbound or outbound message
    active    -> active   further messages (last-message fields move forward)
    *         -> closed   close() (operator or auto-close sweep)
    closed    -> closed   inbound message: recorded, auto-reply sent, status untouched
    closed    -> active   reopen() or an outbound send with reopen=True only

There is no lock around find-then-write. The unique contact_id row is the
serialization point: mutable conversation fields are last-write-wins, while
message inserts are independent and keyed by message_id, so history is never
lost and redeliveries never duplicate it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Tuple
from uuid import uuid4

from sqlalchemy.orm import Session

from inbox_relay.adapters.base import BasePlatformAdapter
from inbox_relay.constants.conversation import (
    CLOSE_NOTICE,
    CLOSED_AUTO_REPLY,
    SCHEDULED_PLACEHOLDER,
    ConversationStatus,
    MessageDirection,
)
from inbox_relay.core.broadcaster import Broadcaster
from inbox_relay.core.contact import normalize_contact_id, to_e164
from inbox_relay.core.errors import ConversationClosed, Misconfigured, NotFound
from inbox_relay.models.appointment import Appointment
from inbox_relay.models.conversation import Conversation
from inbox_relay.models.message import Message
from inbox_relay.models.mixins import as_utc, utcnow
from inbox_relay.schemas.conversation import (
    ConversationCreate,
    ConversationUpdate,
    MessageCreate,
)
from inbox_relay.schemas.events import ConversationEvent, ConversationEventType
from inbox_relay.schemas.messaging import InboundMessage, OutboundMessage
from inbox_relay.services.appointment_service import AppointmentService
from inbox_relay.services.conversation_service import ConversationService
from inbox_relay.services.message_service import MessageService

logger = logging.getLogger(__name__)


@dataclass
class InboundOutcome:
    """Result of record_inbound: resulting conversation and the messages written."""

    conversation: Optional[Conversation]
    messages: list[Message] = field(default_factory=list)
    created: bool = False
    initial_status: Optional[ConversationStatus] = None
    auto_replied: bool = False
    duplicate: bool = False


class ConversationStateMachine:
    def __init__(
        self,
        db: Session,
        transport: Optional[BasePlatformAdapter] = None,
        broadcaster: Optional[Broadcaster] = None,
        channel_handle: Optional[str] = None,
    ) -> None:
        self.db = db
        self.transport = transport
        self.broadcaster = broadcaster
        self.channel_handle = channel_handle
        self.conversation_service = ConversationService(db)
        self.message_service = MessageService(db)
        self.appointment_service = AppointmentService(db)

    @staticmethod
    def initial_status(has_appointment: bool, has_messages: bool) -> ConversationStatus:
        """Scheduled only for a booked contact that has never exchanged a message."""
        if has_appointment and not has_messages:
            return ConversationStatus.SCHEDULED
        return ConversationStatus.ACTIVE

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def record_inbound(self, msg: InboundMessage) -> InboundOutcome:
        if self.message_service.get_by_message_id(msg.message_id) is not None:
            logger.info(
                "inbound_duplicate contact_id=%s message_id=%s",
                msg.contact_id,
                msg.message_id,
            )
            return InboundOutcome(
                conversation=self.conversation_service.get_by_contact_id(
                    msg.contact_id
                ),
                duplicate=True,
            )

        conversation = self.conversation_service.get_by_contact_id(msg.contact_id)
        if conversation is not None and conversation.is_closed:
            return await self._record_inbound_on_closed(conversation, msg)

        created = False
        initial_status: Optional[ConversationStatus] = None
        appointment: Optional[Appointment] = None
        if conversation is None or conversation.appointment_id is None:
            appointment = self.appointment_service.find_by_phone(
                to_e164(msg.contact_id)
            )

        if conversation is None:
            initial_status = self.initial_status(
                appointment is not None,
                self.message_service.has_messages(msg.contact_id),
            )
            conversation, created = self.conversation_service.create_conversation(
                ConversationCreate(
                    contact_id=msg.contact_id,
                    display_name=msg.sender_display_name,
                    last_message_text=msg.text,
                    last_message_at=msg.timestamp,
                    channel_handle=msg.channel_handle or self.channel_handle,
                    appointment_id=appointment.id if appointment else None,
                    status=initial_status,
                )
            )
            if not created:
                initial_status = None
                if conversation.is_closed:
                    return await self._record_inbound_on_closed(conversation, msg)
            else:
                logger.info(
                    "conversation_created contact_id=%s status=%s",
                    msg.contact_id,
                    initial_status,
                )

        conversation = self._apply_inbound(conversation, msg, appointment)
        message = self._append(
            conversation, msg.message_id, MessageDirection.IN, msg.text, msg.timestamp
        )
        self._publish_message(message, name=msg.sender_display_name)
        return InboundOutcome(
            conversation=conversation,
            messages=[message],
            created=created,
            initial_status=initial_status,
        )

    def _apply_inbound(
        self,
        conversation: Conversation,
        msg: InboundMessage,
        appointment: Optional[Appointment],
    ) -> Conversation:
        updates: dict[str, Any] = {"status": ConversationStatus.ACTIVE}
        if msg.sender_display_name:
            updates["display_name"] = msg.sender_display_name
        if msg.channel_handle:
            updates["channel_handle"] = msg.channel_handle
        if conversation.appointment_id is None and appointment is not None:
            updates["appointment_id"] = appointment.id
        # Deliveries can arrive out of order; never rewind the preview.
        if conversation.status == ConversationStatus.SCHEDULED or as_utc(
            conversation.last_message_at
        ) <= as_utc(msg.timestamp):
            updates["last_message_text"] = msg.text
            updates["last_message_at"] = msg.timestamp
        return self.conversation_service.update_conversation(
            conversation, ConversationUpdate(**updates)
        )

    async def _record_inbound_on_closed(
        self, conversation: Conversation, msg: InboundMessage
    ) -> InboundOutcome:
        """Closed stays closed: keep the message, answer with the closure notice."""
        logger.info(
            "inbound_on_closed_conversation contact_id=%s message_id=%s",
            msg.contact_id,
            msg.message_id,
        )
        inbound = self._append(
            conversation, msg.message_id, MessageDirection.IN, msg.text, msg.timestamp
        )
        self._publish_message(inbound, name=msg.sender_display_name)

        result = await self._require_transport().send(
            OutboundMessage(contact_id=msg.contact_id, text=CLOSED_AUTO_REPLY)
        )
        reply = self._append(
            conversation,
            result.platform_message_id or f"out_closed_{uuid4().hex}",
            MessageDirection.OUT,
            CLOSED_AUTO_REPLY,
            utcnow(),
        )
        self._publish_message(reply)
        return InboundOutcome(
            conversation=conversation,
            messages=[inbound, reply],
            auto_replied=True,
        )

    # ------------------------------------------------------------------
    # Outbound / operator actions
    # ------------------------------------------------------------------

    def record_outbound(
        self,
        contact_id: str,
        text: str,
        message_id: Optional[str] = None,
        *,
        reopen: bool = False,
    ) -> str:
        """
        Record a message already handed to the transport. Creates the conversation
        when unknown, moves it to active and appends the OUT message. Returns the
        message id stored on the record.
        """
        contact_id = normalize_contact_id(contact_id)
        now = utcnow()
        conversation = self.conversation_service.get_by_contact_id(contact_id)
        if conversation is None:
            conversation, _ = self.conversation_service.create_conversation(
                ConversationCreate(
                    contact_id=contact_id,
                    last_message_text=text,
                    last_message_at=now,
                    channel_handle=self.channel_handle,
                    status=ConversationStatus.ACTIVE,
                )
            )
        was_closed = conversation.is_closed
        if was_closed and not reopen:
            raise ConversationClosed(
                "Conversation is closed. Reopen manually if needed."
            )

        conversation = self.conversation_service.update_conversation(
            conversation,
            ConversationUpdate(
                last_message_text=text,
                last_message_at=now,
                status=ConversationStatus.ACTIVE,
            ),
        )
        if was_closed:
            logger.info("conversation_reopened contact_id=%s via=send", contact_id)
            self._publish(
                contact_id,
                ConversationEvent(
                    type=ConversationEventType.CONVERSATION_REOPENED,
                    contact_id=contact_id,
                ),
            )
        message = self._append(
            conversation,
            message_id or f"out_{uuid4().hex}",
            MessageDirection.OUT,
            text,
            now,
        )
        self._publish_message(message)
        return message.message_id

    async def close(
        self, contact_id: str, final_notice_text: str = CLOSE_NOTICE
    ) -> Conversation:
        """
        Send the closing notice, append it, and mark the conversation closed.
        Closing an already closed conversation sends and records the notice again.
        """
        contact_id = normalize_contact_id(contact_id)
        conversation = self.conversation_service.get_by_contact_id(contact_id)
        if conversation is None:
            raise NotFound("Conversation not found")

        result = await self._require_transport().send(
            OutboundMessage(contact_id=contact_id, text=final_notice_text)
        )
        now = utcnow()
        message = self._append(
            conversation,
            result.platform_message_id or f"out_close_{uuid4().hex}",
            MessageDirection.OUT,
            final_notice_text,
            now,
        )
        conversation = self.conversation_service.update_conversation(
            conversation,
            ConversationUpdate(
                status=ConversationStatus.CLOSED,
                last_message_text=final_notice_text,
                last_message_at=now,
            ),
        )
        logger.info("conversation_closed contact_id=%s", contact_id)
        self._publish(
            contact_id,
            ConversationEvent(
                type=ConversationEventType.CONVERSATION_CLOSED,
                contact_id=contact_id,
                message_id=message.message_id,
                text=final_notice_text,
                date=now,
            ),
        )
        return conversation

    def reopen(self, contact_id: str) -> Conversation:
        """Manual closed -> active. last_message_at restarts so the sweep does not re-close at once."""
        contact_id = normalize_contact_id(contact_id)
        conversation = self.conversation_service.get_by_contact_id(contact_id)
        if conversation is None:
            raise NotFound("Conversation not found")
        if not conversation.is_closed:
            return conversation
        conversation = self.conversation_service.update_conversation(
            conversation,
            ConversationUpdate(status=ConversationStatus.ACTIVE, last_message_at=utcnow()),
        )
        logger.info("conversation_reopened contact_id=%s via=operator", contact_id)
        self._publish(
            contact_id,
            ConversationEvent(
                type=ConversationEventType.CONVERSATION_REOPENED,
                contact_id=contact_id,
            ),
        )
        return conversation

    def seed_from_appointment(
        self, appointment: Appointment
    ) -> Tuple[Optional[Conversation], bool]:
        """
        Create a scheduled conversation for a booked contact unless one exists.
        Returns (conversation, created); (None, False) when the booking has no phone.
        """
        contact_id = normalize_contact_id(appointment.phone_e164)
        if not contact_id:
            return None, False
        existing = self.conversation_service.get_by_contact_id(contact_id)
        if existing is not None:
            return existing, False
        return self.conversation_service.create_conversation(
            ConversationCreate(
                contact_id=contact_id,
                display_name=appointment.name or "",
                last_message_text=SCHEDULED_PLACEHOLDER,
                last_message_at=utcnow(),
                channel_handle=self.channel_handle,
                appointment_id=appointment.id,
                status=ConversationStatus.SCHEDULED,
            )
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_transport(self) -> BasePlatformAdapter:
        if self.transport is None:
            raise Misconfigured("No outbound transport configured")
        return self.transport

    def _append(
        self,
        conversation: Conversation,
        message_id: str,
        direction: MessageDirection,
        text: str,
        sent_at: datetime,
    ) -> Message:
        message, _ = self.message_service.append_message(
            MessageCreate(
                message_id=message_id,
                conversation_id=conversation.id,
                contact_id=conversation.contact_id,
                direction=direction,
                text=text,
                sent_at=sent_at,
            )
        )
        return message

    def _publish_message(self, message: Message, name: Optional[str] = None) -> None:
        self._publish(
            message.contact_id,
            ConversationEvent(
                type=ConversationEventType.MESSAGE,
                contact_id=message.contact_id,
                direction=message.direction,
                message_id=message.message_id,
                name=name or None,
                text=message.text,
                date=as_utc(message.sent_at),
            ),
        )

    def _publish(self, contact_id: str, event: ConversationEvent) -> None:
        if self.broadcaster is not None:
            self.broadcaster.publish(contact_id, event)
