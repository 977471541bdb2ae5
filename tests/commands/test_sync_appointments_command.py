"""Tests for SyncAppointmentsCommand."""

from datetime import datetime, timedelta, timezone

from inbox_relay.commands.conversations.sync_appointments_command import (
    SyncAppointmentsCommand,
)
from inbox_relay.constants.conversation import SCHEDULED_PLACEHOLDER, ConversationStatus
from inbox_relay.services.appointment_service import AppointmentService
from inbox_relay.services.conversation_service import ConversationService
from tests.fixtures.conversation_fixtures import CONTACT_ID


def test_creates_scheduled_conversation(db, setup_appointment):
    result = SyncAppointmentsCommand(db, channel_handle="1098765432").execute()

    assert (result.created, result.total, result.failed) == (1, 1, 0)
    conversation = ConversationService(db).get_by_contact_id(CONTACT_ID)
    assert conversation.status == ConversationStatus.SCHEDULED
    assert conversation.last_message_text == SCHEDULED_PLACEHOLDER
    assert conversation.channel_handle == "1098765432"
    assert conversation.appointment_id == setup_appointment.id


def test_is_idempotent(db, setup_appointment):
    command = SyncAppointmentsCommand(db)
    command.execute()
    second = command.execute()

    assert (second.created, second.total) == (0, 1)


def test_never_overwrites_existing_conversation(db, setup_appointment, make_conversation):
    existing = make_conversation(last_message_text="Ya hablamos")

    result = SyncAppointmentsCommand(db).execute()

    assert result.created == 0
    conversation = ConversationService(db).get_by_contact_id(CONTACT_ID)
    assert conversation.id == existing.id
    assert conversation.status == ConversationStatus.ACTIVE
    assert conversation.last_message_text == "Ya hablamos"


def test_skips_appointments_without_phone_and_past_ones(db, faker):
    service = AppointmentService(db)
    now = datetime.now(timezone.utc)
    service.create_appointment(name=faker.name(), phone_e164=None, start_at=now + timedelta(days=1))
    service.create_appointment(
        name=faker.name(), phone_e164="+34611000000", start_at=now - timedelta(days=1)
    )

    result = SyncAppointmentsCommand(db).execute()

    assert (result.created, result.total) == (0, 1)
    assert ConversationService(db).list_conversations(include_closed=True) == []
