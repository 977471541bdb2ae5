"""Periodic auto-close sweep."""

from __future__ import annotations

from datetime import timedelta
from typing import Optional

from inbox_relay.adapters.base import BasePlatformAdapter
from inbox_relay.commands.conversations.auto_close_command import (
    AutoCloseConversationsCommand,
    SweepResult,
)
from inbox_relay.config import Settings, get_settings
from inbox_relay.core.broadcaster import Broadcaster
from inbox_relay.db import db_manager


async def auto_close_task(
    adapter: BasePlatformAdapter,
    broadcaster: Optional[Broadcaster] = None,
    settings: Optional[Settings] = None,
) -> SweepResult:
    """One sweep in its own session."""
    settings = settings or get_settings()
    with db_manager.db_session() as db:
        command = AutoCloseConversationsCommand(
            db,
            adapter,
            broadcaster,
            close_after=timedelta(hours=settings.auto_close_after_hours),
            batch_limit=settings.auto_close_batch_limit,
        )
        return await command.execute()
