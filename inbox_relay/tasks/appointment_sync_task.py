"""Periodic appointment to conversation reconciliation."""

from __future__ import annotations

from typing import Optional

from inbox_relay.commands.conversations.sync_appointments_command import (
    SyncAppointmentsCommand,
    SyncResult,
)
from inbox_relay.config import Settings, get_settings
from inbox_relay.db import db_manager


async def appointment_sync_task(settings: Optional[Settings] = None) -> SyncResult:
    """One reconciliation pass in its own session."""
    settings = settings or get_settings()
    with db_manager.db_session() as db:
        command = SyncAppointmentsCommand(
            db, channel_handle=settings.whatsapp_phone_number_id
        )
        return command.execute(limit=settings.appointment_sync_limit)
