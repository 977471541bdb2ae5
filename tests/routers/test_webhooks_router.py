"""Tests for webhook routes."""

from inbox_relay.constants.conversation import ConversationStatus
from inbox_relay.services.conversation_service import ConversationService
from inbox_relay.services.message_service import MessageService
from tests.fixtures.conversation_fixtures import CONTACT_ID, text_message, whatsapp_payload


def test_verify_subscription_echoes_challenge(client):
    resp = client.get(
        "/webhooks/whatsapp",
        params={
            "hub.mode": "subscribe",
            "hub.verify_token": "verify-me",
            "hub.challenge": "1158201444",
        },
    )
    assert resp.status_code == 200
    assert resp.text == "1158201444"
    assert resp.headers["content-type"].startswith("text/plain")


def test_verify_subscription_wrong_token(client):
    resp = client.get(
        "/webhooks/whatsapp",
        params={"hub.mode": "subscribe", "hub.verify_token": "nope", "hub.challenge": "1"},
    )
    assert resp.status_code == 403


def test_verify_subscription_non_ascii_token_is_forbidden(client):
    resp = client.get(
        "/webhooks/whatsapp",
        params={"hub.mode": "subscribe", "hub.verify_token": "é", "hub.challenge": "1"},
    )
    assert resp.status_code == 403


def test_webhook_processes_inbound_message(client, db):
    payload = whatsapp_payload(
        [text_message("Hola", message_id="wamid.web1")],
        contacts=[{"wa_id": CONTACT_ID, "profile": {"name": "Ana"}}],
    )
    resp = client.post("/webhooks/whatsapp", json=payload)

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}
    db.expire_all()
    conversation = ConversationService(db).get_by_contact_id(CONTACT_ID)
    assert conversation.status == ConversationStatus.ACTIVE
    assert conversation.display_name == "Ana"
    assert [m.message_id for m in MessageService(db).get_history(CONTACT_ID)] == ["wamid.web1"]


def test_webhook_redelivery_is_idempotent(client, db):
    payload = whatsapp_payload([text_message("Hola", message_id="wamid.same")])
    client.post("/webhooks/whatsapp", json=payload)
    client.post("/webhooks/whatsapp", json=payload)

    db.expire_all()
    assert MessageService(db).count_messages(CONTACT_ID) == 1


def test_webhook_invalid_json_still_200(client):
    resp = client.post(
        "/webhooks/whatsapp",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_webhook_status_callback_is_acknowledged(client, db):
    payload = whatsapp_payload([])
    payload["entry"][0]["changes"][0]["value"]["statuses"] = [
        {"id": "wamid.X", "status": "read"}
    ]
    resp = client.post("/webhooks/whatsapp", json=payload)

    assert resp.status_code == 200
    assert ConversationService(db).list_conversations(include_closed=True) == []


def test_webhook_on_closed_conversation_sends_auto_reply(
    client, db, transport, setup_closed_conversation
):
    payload = whatsapp_payload([text_message("¿Sigue abierto?", message_id="wamid.c1")])
    resp = client.post("/webhooks/whatsapp", json=payload)

    assert resp.status_code == 200
    transport.send.assert_awaited_once()
    db.expire_all()
    assert ConversationService(db).get_by_contact_id(CONTACT_ID).status == ConversationStatus.CLOSED
    assert MessageService(db).count_messages(CONTACT_ID) == 2
