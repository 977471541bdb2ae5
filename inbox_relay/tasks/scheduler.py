"""In-process periodic jobs run on the application's event loop."""

from __future__ import annotations

import asyncio
import contextlib
from typing import Awaitable, Callable, Optional

from inbox_relay.infra.logging_config import get_logger

logger = get_logger("scheduler")


class PeriodicTask:
    """
    Run job every interval seconds until stopped. A run that raises is logged
    and the schedule continues.
    """

    def __init__(
        self,
        name: str,
        job: Callable[[], Awaitable[object]],
        interval: float,
        run_on_start: bool = True,
    ) -> None:
        self.name = name
        self.job = job
        self.interval = interval
        self.run_on_start = run_on_start
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=self.name)
        logger.info("periodic_task_started name=%s interval=%s", self.name, self.interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("periodic_task_stopped name=%s", self.name)

    async def run_once(self) -> None:
        try:
            await self.job()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("periodic_task_failed name=%s", self.name)

    async def _run(self) -> None:
        if not self.run_on_start:
            await asyncio.sleep(self.interval)
        while True:
            await self.run_once()
            await asyncio.sleep(self.interval)
