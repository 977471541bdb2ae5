"""
Command to process a WhatsApp webhook batch.

Runs after the 200 has been returned to the provider: parses the raw payload,
then feeds each normalized message through the conversation state machine.
A failing message is logged and the rest of the batch continues.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from inbox_relay.adapters.base import BasePlatformAdapter
from inbox_relay.core.broadcaster import Broadcaster
from inbox_relay.core.state_machine import ConversationStateMachine, InboundOutcome


class ProcessWhatsAppWebhookCommand:
    def __init__(
        self,
        db: Session,
        adapter: BasePlatformAdapter,
        broadcaster: Optional[Broadcaster] = None,
        channel_handle: Optional[str] = None,
    ) -> None:
        self.db = db
        self.adapter = adapter
        self.state_machine = ConversationStateMachine(
            db, adapter, broadcaster, channel_handle=channel_handle
        )
        self.logger = logging.getLogger(__name__)

    async def execute(self, raw_payload: Any) -> list[InboundOutcome]:
        """
        Process every message in the batch.

        Returns:
            list[InboundOutcome]: One outcome per message that was processed.
                Messages that failed are logged and omitted.
        """
        try:
            inbound = self.adapter.parse_webhook(raw_payload)
        except (ValueError, KeyError, TypeError) as e:
            self.logger.warning("whatsapp_webhook_parse_skipped error=%s", e)
            return []

        if not inbound:
            self.logger.debug("whatsapp_webhook_no_messages")
            return []

        outcomes: list[InboundOutcome] = []
        for msg in inbound:
            try:
                outcomes.append(await self.state_machine.record_inbound(msg))
            except Exception:
                self.db.rollback()
                self.logger.exception(
                    "whatsapp_inbound_failed contact_id=%s message_id=%s",
                    msg.contact_id,
                    msg.message_id,
                )
        self.logger.info(
            "whatsapp_webhook_processed received=%s processed=%s",
            len(inbound),
            len(outcomes),
        )
        return outcomes
