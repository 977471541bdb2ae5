"""
Webhook routes for the WhatsApp Cloud API.

The provider retries anything that is not a fast 200, so POST acknowledges
unconditionally and processing happens in a background task with its own
session. Webhooks are not behind the portal API key.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from fastapi.responses import PlainTextResponse

from inbox_relay.adapters.base import BasePlatformAdapter
from inbox_relay.commands.webhooks.whatsapp_command import ProcessWhatsAppWebhookCommand
from inbox_relay.config import get_settings
from inbox_relay.core.broadcaster import Broadcaster
from inbox_relay.db import db_manager
from inbox_relay.routers.utils.dependencies import get_broadcaster, get_transport

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


async def process_whatsapp_webhook(
    payload: Any,
    adapter: BasePlatformAdapter,
    broadcaster: Optional[Broadcaster],
) -> None:
    channel_handle = get_settings().whatsapp_phone_number_id
    try:
        with db_manager.db_session() as db:
            command = ProcessWhatsAppWebhookCommand(
                db, adapter, broadcaster, channel_handle=channel_handle
            )
            await command.execute(payload)
    except Exception:
        logger.exception("whatsapp_webhook_processing_failed")


@router.get("/whatsapp", response_class=PlainTextResponse)
def verify_whatsapp_webhook(
    mode: Optional[str] = Query(default=None, alias="hub.mode"),
    token: Optional[str] = Query(default=None, alias="hub.verify_token"),
    challenge: Optional[str] = Query(default=None, alias="hub.challenge"),
    adapter: BasePlatformAdapter = Depends(get_transport),
) -> PlainTextResponse:
    """Subscription handshake: echo hub.challenge when the verify token matches."""
    answer = adapter.verify_subscription(mode, token, challenge)
    if answer is None:
        logger.warning("whatsapp_webhook_verify_rejected mode=%s", mode)
        return PlainTextResponse("Forbidden", status_code=403)
    logger.info("whatsapp_webhook_verified")
    return PlainTextResponse(answer, status_code=200)


@router.post("/whatsapp")
async def whatsapp_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    adapter: BasePlatformAdapter = Depends(get_transport),
    broadcaster: Broadcaster = Depends(get_broadcaster),
) -> dict[str, str]:
    """Acknowledge with 200 and process the batch after the response is sent."""
    try:
        payload = await request.json()
    except ValueError as e:
        logger.warning("whatsapp_webhook_invalid_json error=%s", e)
        return {"status": "ok"}
    background_tasks.add_task(process_whatsapp_webhook, payload, adapter, broadcaster)
    return {"status": "ok"}
