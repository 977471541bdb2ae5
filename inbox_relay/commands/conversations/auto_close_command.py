"""Command to close conversations that have been idle longer than the threshold."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from inbox_relay.adapters.base import BasePlatformAdapter
from inbox_relay.constants.conversation import AUTO_CLOSE_NOTICE
from inbox_relay.core.broadcaster import Broadcaster
from inbox_relay.core.state_machine import ConversationStateMachine
from inbox_relay.models.mixins import utcnow
from inbox_relay.services.conversation_service import ConversationService


@dataclass
class SweepResult:
    considered: int = 0
    closed: int = 0
    failed: int = 0


class AutoCloseConversationsCommand:
    """
    Close every non-closed conversation whose last message is older than
    close_after. Each record is closed independently; a failure is logged and
    the record is picked up again on the next run.
    """

    def __init__(
        self,
        db: Session,
        adapter: BasePlatformAdapter,
        broadcaster: Optional[Broadcaster] = None,
        close_after: timedelta = timedelta(hours=24),
        batch_limit: int = 100,
    ) -> None:
        self.db = db
        self.close_after = close_after
        self.batch_limit = batch_limit
        self.conversation_service = ConversationService(db)
        self.state_machine = ConversationStateMachine(db, adapter, broadcaster)
        self.logger = logging.getLogger(__name__)

    async def execute(self, now: Optional[datetime] = None) -> SweepResult:
        now = now or utcnow()
        cutoff = now - self.close_after
        stale = self.conversation_service.find_stale(cutoff, limit=self.batch_limit)
        result = SweepResult(considered=len(stale))

        # Contact ids first: a rollback after a failure expires loaded rows.
        for contact_id in [c.contact_id for c in stale]:
            try:
                await self.state_machine.close(contact_id, AUTO_CLOSE_NOTICE)
                result.closed += 1
            except Exception:
                self.db.rollback()
                result.failed += 1
                self.logger.exception("auto_close_failed contact_id=%s", contact_id)

        if result.considered:
            self.logger.info(
                "auto_close_done considered=%s closed=%s failed=%s",
                result.considered,
                result.closed,
                result.failed,
            )
        return result
