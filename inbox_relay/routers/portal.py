"""
Operator portal API: send, close, reopen, list conversations, read history,
trigger the appointment sync and follow a conversation live over SSE.

Every route requires the portal API key.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import StreamingResponse
from fastapi_pagination import Page, Params
from fastapi_pagination.ext.sqlalchemy import paginate
from sqlalchemy.orm import Session

from inbox_relay.adapters.base import BasePlatformAdapter
from inbox_relay.commands.conversations.sync_appointments_command import (
    SyncAppointmentsCommand,
)
from inbox_relay.commands.outbound.send_outbound_command import SendOutboundCommand
from inbox_relay.config import Settings, get_settings
from inbox_relay.constants.conversation import CLOSE_NOTICE
from inbox_relay.core.broadcaster import Broadcaster
from inbox_relay.core.contact import normalize_contact_id
from inbox_relay.core.state_machine import ConversationStateMachine
from inbox_relay.db import get_db
from inbox_relay.routers.utils.dependencies import (
    get_broadcaster,
    get_transport,
    require_portal_api_key,
    require_stream_api_key,
)
from inbox_relay.schemas.conversation import (
    CloseResponse,
    ContactRequest,
    ConversationRead,
    MessageRead,
    SendRequest,
    SendResponse,
    SyncResponse,
)
from inbox_relay.services.conversation_service import ConversationService
from inbox_relay.services.message_service import MessageService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/portal", tags=["portal"])


def _require_contact_id(value: Optional[str]) -> str:
    contact_id = normalize_contact_id(value)
    if not contact_id:
        raise HTTPException(status_code=400, detail="contact_id is required")
    return contact_id


@router.post(
    "/send",
    response_model=SendResponse,
    dependencies=[Depends(require_portal_api_key)],
)
async def send_message(
    body: SendRequest,
    db: Session = Depends(get_db),
    adapter: BasePlatformAdapter = Depends(get_transport),
    broadcaster: Broadcaster = Depends(get_broadcaster),
    settings: Settings = Depends(get_settings),
) -> SendResponse:
    """Send an operator message. 403 when the conversation is closed unless reopen is set."""
    contact_id = _require_contact_id(body.contact_id)
    text = (body.text or "").strip()
    if not text:
        raise HTTPException(status_code=400, detail="text is required")
    command = SendOutboundCommand(
        db, adapter, broadcaster, channel_handle=settings.whatsapp_phone_number_id
    )
    result = await command.execute(contact_id, text, reopen=body.reopen)
    return SendResponse(
        message_id=result.message_id or "",
        recorded=result.recorded,
        data=result.response,
    )


@router.post(
    "/close",
    response_model=CloseResponse,
    dependencies=[Depends(require_portal_api_key)],
)
async def close_conversation(
    body: ContactRequest,
    db: Session = Depends(get_db),
    adapter: BasePlatformAdapter = Depends(get_transport),
    broadcaster: Broadcaster = Depends(get_broadcaster),
) -> CloseResponse:
    """Send the closing notice and mark the conversation closed."""
    contact_id = _require_contact_id(body.contact_id)
    conversation = await ConversationStateMachine(db, adapter, broadcaster).close(
        contact_id, CLOSE_NOTICE
    )
    return CloseResponse(conversation=ConversationRead.model_validate(conversation))


@router.post(
    "/reopen",
    response_model=ConversationRead,
    dependencies=[Depends(require_portal_api_key)],
)
def reopen_conversation(
    body: ContactRequest,
    db: Session = Depends(get_db),
    broadcaster: Broadcaster = Depends(get_broadcaster),
) -> ConversationRead:
    """Move a closed conversation back to active. No message is sent."""
    contact_id = _require_contact_id(body.contact_id)
    conversation = ConversationStateMachine(db, broadcaster=broadcaster).reopen(
        contact_id
    )
    return ConversationRead.model_validate(conversation)


@router.get(
    "/conversations",
    response_model=Page[ConversationRead],
    dependencies=[Depends(require_portal_api_key)],
)
def list_open_conversations(
    params: Params = Depends(),
    db: Session = Depends(get_db),
) -> Page[ConversationRead]:
    """Scheduled and active conversations, most recent message first."""
    query = ConversationService(db).list_query(include_closed=False)
    return paginate(db, query, params=params)


@router.get(
    "/conversations/all",
    response_model=Page[ConversationRead],
    dependencies=[Depends(require_portal_api_key)],
)
def list_all_conversations(
    params: Params = Depends(),
    db: Session = Depends(get_db),
) -> Page[ConversationRead]:
    """All conversations including closed ones, most recent message first."""
    query = ConversationService(db).list_query(include_closed=True)
    return paginate(db, query, params=params)


@router.get(
    "/messages",
    response_model=Page[MessageRead],
    dependencies=[Depends(require_portal_api_key)],
)
def list_messages(
    contact_id: Optional[str] = Query(default=None),
    params: Params = Depends(),
    db: Session = Depends(get_db),
) -> Page[MessageRead]:
    """Message history for a contact, oldest first."""
    contact_id = _require_contact_id(contact_id)
    query = MessageService(db).history_query(contact_id)
    return paginate(db, query, params=params)


@router.post(
    "/sync/appointments",
    response_model=SyncResponse,
    dependencies=[Depends(require_portal_api_key)],
)
def sync_appointments(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> SyncResponse:
    """Run the appointment reconciliation once."""
    command = SyncAppointmentsCommand(
        db, channel_handle=settings.whatsapp_phone_number_id
    )
    result = command.execute(limit=settings.appointment_sync_limit)
    return SyncResponse(created=result.created, total=result.total, failed=result.failed)


@router.get("/stream", dependencies=[Depends(require_stream_api_key)])
async def stream_conversation(
    request: Request,
    contact_id: Optional[str] = Query(default=None),
    broadcaster: Broadcaster = Depends(get_broadcaster),
    settings: Settings = Depends(get_settings),
) -> StreamingResponse:
    """Server-sent events for one contact: connected, then live events only."""
    contact_id = _require_contact_id(contact_id)

    async def event_source() -> AsyncIterator[str]:
        events = broadcaster.stream(
            contact_id,
            heartbeat=settings.stream_keepalive_seconds,
            idle_timeout=settings.stream_idle_timeout_seconds,
        )
        try:
            async for event in events:
                if await request.is_disconnected():
                    break
                if event is None:
                    yield ": keep-alive\n\n"
                    continue
                yield event.to_sse()
        finally:
            await events.aclose()
            logger.debug("stream_closed contact_id=%s", contact_id)

    return StreamingResponse(
        event_source(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
