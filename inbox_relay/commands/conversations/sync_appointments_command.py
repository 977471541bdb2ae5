"""Command to seed scheduled conversations from upcoming appointments."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from inbox_relay.core.state_machine import ConversationStateMachine
from inbox_relay.services.appointment_service import AppointmentService


@dataclass
class SyncResult:
    created: int = 0
    total: int = 0
    failed: int = 0


class SyncAppointmentsCommand:
    """
    Create a scheduled conversation for each upcoming appointment whose contact
    has none yet. Existing conversations are never touched, so repeated runs
    are idempotent.
    """

    def __init__(self, db: Session, channel_handle: Optional[str] = None) -> None:
        self.db = db
        self.appointment_service = AppointmentService(db)
        self.state_machine = ConversationStateMachine(
            db, channel_handle=channel_handle
        )
        self.logger = logging.getLogger(__name__)

    def execute(self, limit: int = 50) -> SyncResult:
        appointments = self.appointment_service.list_upcoming(limit=limit)
        result = SyncResult(total=len(appointments))

        for appointment in appointments:
            appointment_id = appointment.id
            try:
                _, created = self.state_machine.seed_from_appointment(appointment)
            except Exception:
                self.db.rollback()
                result.failed += 1
                self.logger.exception(
                    "appointment_sync_failed appointment_id=%s", appointment_id
                )
                continue
            if created:
                result.created += 1

        self.logger.info(
            "appointment_sync_done created=%s total=%s failed=%s",
            result.created,
            result.total,
            result.failed,
        )
        return result
