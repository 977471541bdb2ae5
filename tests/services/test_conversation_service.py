from datetime import datetime, timedelta, timezone

from inbox_relay.constants.conversation import ConversationStatus
from inbox_relay.schemas.conversation import ConversationCreate, ConversationUpdate
from inbox_relay.services.conversation_service import ConversationService
from tests.fixtures.conversation_fixtures import CONTACT_ID


def test_create_conversation(db):
    conversation, created = ConversationService(db).create_conversation(
        ConversationCreate(contact_id=CONTACT_ID, display_name="Ana")
    )
    assert created is True
    assert conversation.id is not None
    assert conversation.status == ConversationStatus.ACTIVE


def test_create_conversation_existing_contact_returns_stored_row(db, setup_active_conversation):
    conversation, created = ConversationService(db).create_conversation(
        ConversationCreate(contact_id=CONTACT_ID, status=ConversationStatus.SCHEDULED)
    )
    assert created is False
    assert conversation.id == setup_active_conversation.id
    assert conversation.status == ConversationStatus.ACTIVE


def test_update_conversation_writes_only_set_fields(db, setup_active_conversation):
    service = ConversationService(db)
    name = setup_active_conversation.display_name
    updated = service.update_conversation(
        setup_active_conversation, ConversationUpdate(status=ConversationStatus.CLOSED)
    )
    assert updated.status == ConversationStatus.CLOSED
    assert updated.display_name == name


def test_list_query_orders_newest_first_and_hides_closed(db, make_conversation):
    now = datetime.now(timezone.utc)
    make_conversation(contact_id="111", last_message_at=now - timedelta(hours=2))
    make_conversation(contact_id="222", last_message_at=now)
    make_conversation(
        contact_id="333", status=ConversationStatus.CLOSED, last_message_at=now
    )
    make_conversation(
        contact_id="444",
        status=ConversationStatus.SCHEDULED,
        last_message_at=now - timedelta(hours=1),
    )

    service = ConversationService(db)
    open_ids = [c.contact_id for c in service.list_conversations()]
    assert open_ids == ["222", "444", "111"]
    all_ids = {c.contact_id for c in service.list_conversations(include_closed=True)}
    assert all_ids == {"111", "222", "333", "444"}


def test_find_stale(db, make_conversation):
    now = datetime.now(timezone.utc)
    make_conversation(contact_id="111", last_message_at=now - timedelta(hours=30))
    make_conversation(contact_id="222", last_message_at=now - timedelta(hours=1))
    make_conversation(
        contact_id="333",
        status=ConversationStatus.CLOSED,
        last_message_at=now - timedelta(hours=48),
    )
    make_conversation(
        contact_id="444",
        status=ConversationStatus.SCHEDULED,
        last_message_at=now - timedelta(hours=25),
    )

    stale = ConversationService(db).find_stale(now - timedelta(hours=24))
    assert [c.contact_id for c in stale] == ["111", "444"]
