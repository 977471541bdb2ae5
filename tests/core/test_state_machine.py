"""Tests for ConversationStateMachine."""

from datetime import datetime, timedelta, timezone

import pytest

from inbox_relay.constants.conversation import (
    CLOSE_NOTICE,
    CLOSED_AUTO_REPLY,
    SCHEDULED_PLACEHOLDER,
    ConversationStatus,
    MessageDirection,
)
from inbox_relay.core.errors import ConversationClosed, NotFound
from inbox_relay.core.state_machine import ConversationStateMachine
from inbox_relay.models.mixins import as_utc
from inbox_relay.schemas.events import ConversationEventType
from inbox_relay.services.conversation_service import ConversationService
from inbox_relay.services.message_service import MessageService
from tests.fixtures.conversation_fixtures import CONTACT_ID


@pytest.fixture
def machine(db, transport, broadcaster):
    return ConversationStateMachine(
        db, transport, broadcaster, channel_handle="1098765432"
    )


def _history(db, contact_id=CONTACT_ID):
    return MessageService(db).get_history(contact_id)


@pytest.mark.parametrize(
    "has_appointment,has_messages,expected",
    [
        (True, False, ConversationStatus.SCHEDULED),
        (True, True, ConversationStatus.ACTIVE),
        (False, False, ConversationStatus.ACTIVE),
        (False, True, ConversationStatus.ACTIVE),
    ],
)
def test_initial_status(has_appointment, has_messages, expected):
    assert ConversationStateMachine.initial_status(has_appointment, has_messages) == expected


@pytest.mark.asyncio
async def test_first_inbound_for_booked_contact(db, machine, setup_appointment, make_inbound):
    outcome = await machine.record_inbound(make_inbound(text="Hola"))

    assert outcome.created is True
    assert outcome.initial_status == ConversationStatus.SCHEDULED
    assert outcome.conversation.status == ConversationStatus.ACTIVE
    assert outcome.conversation.appointment_id == setup_appointment.id
    assert outcome.conversation.last_message_text == "Hola"

    history = _history(db)
    assert len(history) == 1
    assert history[0].direction == MessageDirection.IN
    assert history[0].text == "Hola"


@pytest.mark.asyncio
async def test_first_inbound_without_appointment_is_active(db, machine, make_inbound):
    outcome = await machine.record_inbound(make_inbound())

    assert outcome.created is True
    assert outcome.initial_status == ConversationStatus.ACTIVE
    assert outcome.conversation.appointment_id is None
    assert outcome.conversation.display_name == "Ana"
    assert outcome.conversation.channel_handle == "1098765432"


@pytest.mark.asyncio
async def test_inbound_moves_scheduled_conversation_to_active(
    db, machine, make_conversation, make_inbound
):
    make_conversation(
        status=ConversationStatus.SCHEDULED,
        last_message_text=SCHEDULED_PLACEHOLDER,
    )
    outcome = await machine.record_inbound(make_inbound(text="Buenas"))

    assert outcome.created is False
    assert outcome.conversation.status == ConversationStatus.ACTIVE
    assert outcome.conversation.last_message_text == "Buenas"


@pytest.mark.asyncio
async def test_inbound_links_appointment_on_existing_conversation(
    db, machine, setup_active_conversation, setup_appointment, make_inbound
):
    outcome = await machine.record_inbound(make_inbound())
    assert outcome.conversation.appointment_id == setup_appointment.id


@pytest.mark.asyncio
async def test_inbound_on_closed_conversation_stays_closed(
    db, machine, transport, setup_closed_conversation, make_inbound
):
    outcome = await machine.record_inbound(make_inbound(text="¿Hola?"))

    assert outcome.auto_replied is True
    conversation = ConversationService(db).get_by_contact_id(CONTACT_ID)
    assert conversation.status == ConversationStatus.CLOSED

    history = _history(db)
    assert [m.direction for m in history] == [MessageDirection.IN, MessageDirection.OUT]
    assert history[0].text == "¿Hola?"
    assert history[1].text == CLOSED_AUTO_REPLY
    transport.send.assert_awaited_once()
    assert transport.send.await_args.args[0].text == CLOSED_AUTO_REPLY


@pytest.mark.asyncio
async def test_auto_reply_for_every_inbound_on_closed(
    db, machine, transport, setup_closed_conversation, make_inbound
):
    await machine.record_inbound(make_inbound(message_id="wamid.a"))
    await machine.record_inbound(make_inbound(message_id="wamid.b"))

    assert transport.send.await_count == 2
    assert len(_history(db)) == 4


@pytest.mark.asyncio
async def test_duplicate_delivery_is_noop(db, machine, transport, make_inbound):
    msg = make_inbound(message_id="wamid.dup")
    await machine.record_inbound(msg)
    outcome = await machine.record_inbound(msg)

    assert outcome.duplicate is True
    assert outcome.messages == []
    assert len(_history(db)) == 1
    transport.send.assert_not_awaited()


@pytest.mark.asyncio
async def test_duplicate_delivery_on_closed_sends_no_second_reply(
    db, machine, transport, setup_closed_conversation, make_inbound
):
    msg = make_inbound(message_id="wamid.dup")
    await machine.record_inbound(msg)
    await machine.record_inbound(msg)

    transport.send.assert_awaited_once()
    assert len(_history(db)) == 2


@pytest.mark.asyncio
async def test_out_of_order_inbound_never_rewinds_last_message(db, machine, make_inbound):
    newer = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)
    older = newer - timedelta(minutes=5)

    await machine.record_inbound(make_inbound(text="second", message_id="wamid.2", timestamp=newer))
    outcome = await machine.record_inbound(
        make_inbound(text="first", message_id="wamid.1", timestamp=older)
    )

    assert as_utc(outcome.conversation.last_message_at) == newer
    assert outcome.conversation.last_message_text == "second"
    assert [m.text for m in _history(db)] == ["first", "second"]


@pytest.mark.asyncio
async def test_inbound_publishes_message_event(machine, broadcaster, make_inbound):
    sub = broadcaster.subscribe(CONTACT_ID)
    await machine.record_inbound(make_inbound(text="Hola", message_id="wamid.ev"))

    event = await sub.next_event(timeout=1)
    assert event.type == ConversationEventType.MESSAGE
    assert event.direction == "IN"
    assert event.message_id == "wamid.ev"
    assert event.name == "Ana"
    assert event.text == "Hola"


def test_record_outbound_creates_conversation(db, machine):
    message_id = machine.record_outbound("+34 600 111 222", "Buenos días", "wamid.o1")

    assert message_id == "wamid.o1"
    conversation = ConversationService(db).get_by_contact_id(CONTACT_ID)
    assert conversation.status == ConversationStatus.ACTIVE
    assert conversation.last_message_text == "Buenos días"
    history = _history(db)
    assert len(history) == 1
    assert history[0].direction == MessageDirection.OUT


def test_record_outbound_generates_local_id(machine):
    assert machine.record_outbound(CONTACT_ID, "hola").startswith("out_")


def test_record_outbound_on_closed_raises(db, machine, setup_closed_conversation):
    with pytest.raises(ConversationClosed):
        machine.record_outbound(CONTACT_ID, "hola")
    assert _history(db) == []


def test_record_outbound_with_reopen(db, machine, broadcaster, setup_closed_conversation):
    sub = broadcaster.subscribe(CONTACT_ID)
    machine.record_outbound(CONTACT_ID, "Te escribimos de nuevo", reopen=True)

    conversation = ConversationService(db).get_by_contact_id(CONTACT_ID)
    assert conversation.status == ConversationStatus.ACTIVE
    assert sub.queue.get_nowait().type == ConversationEventType.CONVERSATION_REOPENED
    assert sub.queue.get_nowait().type == ConversationEventType.MESSAGE


@pytest.mark.asyncio
async def test_close_sends_notice_and_closes(
    db, machine, transport, broadcaster, setup_active_conversation
):
    sub = broadcaster.subscribe(CONTACT_ID)
    conversation = await machine.close(CONTACT_ID, CLOSE_NOTICE)

    assert conversation.status == ConversationStatus.CLOSED
    assert conversation.last_message_text == CLOSE_NOTICE
    history = _history(db)
    assert len(history) == 1
    assert history[0].direction == MessageDirection.OUT
    assert history[0].message_id == "wamid.out1"
    transport.send.assert_awaited_once()

    event = await sub.next_event(timeout=1)
    assert event.type == ConversationEventType.CONVERSATION_CLOSED
    assert event.text == CLOSE_NOTICE


@pytest.mark.asyncio
async def test_close_twice_records_one_notice_per_call(db, machine, setup_active_conversation):
    await machine.close(CONTACT_ID, CLOSE_NOTICE)
    conversation = await machine.close(CONTACT_ID, CLOSE_NOTICE)

    assert conversation.status == ConversationStatus.CLOSED
    assert len(_history(db)) == 2


@pytest.mark.asyncio
async def test_close_unknown_contact_raises_not_found(machine, transport):
    with pytest.raises(NotFound):
        await machine.close("34999999999", CLOSE_NOTICE)
    transport.send.assert_not_awaited()


def test_reopen(db, machine, setup_closed_conversation):
    conversation = machine.reopen(CONTACT_ID)
    assert conversation.status == ConversationStatus.ACTIVE
    assert _history(db) == []


def test_reopen_unknown_contact(machine):
    with pytest.raises(NotFound):
        machine.reopen("34999999999")


def test_seed_from_appointment(db, machine, setup_appointment):
    conversation, created = machine.seed_from_appointment(setup_appointment)

    assert created is True
    assert conversation.contact_id == CONTACT_ID
    assert conversation.status == ConversationStatus.SCHEDULED
    assert conversation.last_message_text == SCHEDULED_PLACEHOLDER
    assert conversation.display_name == setup_appointment.name
    assert conversation.appointment_id == setup_appointment.id

    again, created_again = machine.seed_from_appointment(setup_appointment)
    assert created_again is False
    assert again.id == conversation.id
