"""Tests for PeriodicTask and the job entry points."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from inbox_relay.config import Settings
from inbox_relay.constants.conversation import ConversationStatus
from inbox_relay.services.conversation_service import ConversationService
from inbox_relay.tasks.appointment_sync_task import appointment_sync_task
from inbox_relay.tasks.auto_close_task import auto_close_task
from inbox_relay.tasks.scheduler import PeriodicTask
from tests.fixtures.conversation_fixtures import CONTACT_ID


@pytest.mark.asyncio
async def test_periodic_task_runs_until_stopped():
    runs = []

    async def job():
        runs.append(1)

    task = PeriodicTask("test", job, interval=0.01)
    task.start()
    await asyncio.sleep(0.05)
    assert task.running is True
    await task.stop()

    assert task.running is False
    assert len(runs) >= 2


@pytest.mark.asyncio
async def test_periodic_task_survives_failing_run():
    runs = []

    async def job():
        runs.append(1)
        raise RuntimeError("boom")

    task = PeriodicTask("failing", job, interval=0.01)
    task.start()
    await asyncio.sleep(0.05)
    await task.stop()

    assert len(runs) >= 2


@pytest.mark.asyncio
async def test_auto_close_task_uses_own_session(db, engine, transport, make_conversation):
    make_conversation(last_message_at=datetime.now(timezone.utc) - timedelta(hours=30))

    result = await auto_close_task(transport, settings=Settings(auto_close_after_hours=24))

    assert result.closed == 1
    db.expire_all()
    conversation = ConversationService(db).get_by_contact_id(CONTACT_ID)
    assert conversation.status == ConversationStatus.CLOSED


@pytest.mark.asyncio
async def test_appointment_sync_task(db, engine, setup_appointment):
    result = await appointment_sync_task(settings=Settings())

    assert result.created == 1
    db.expire_all()
    assert ConversationService(db).get_by_contact_id(CONTACT_ID) is not None
