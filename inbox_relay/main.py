from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi_pagination import add_pagination
from sqlalchemy.exc import SQLAlchemyError

from inbox_relay.adapters.base import BasePlatformAdapter
from inbox_relay.adapters.whatsapp import WhatsAppAdapter
from inbox_relay.config import Settings, get_settings
from inbox_relay.core.broadcaster import Broadcaster
from inbox_relay.core.errors import InboxRelayError, UpstreamUnavailable
from inbox_relay.infra.logging_config import LoggingConfig
from inbox_relay.routers import portal, system, webhooks
from inbox_relay.tasks.appointment_sync_task import appointment_sync_task
from inbox_relay.tasks.auto_close_task import auto_close_task
from inbox_relay.tasks.scheduler import PeriodicTask

logger = logging.getLogger(__name__)


def _build_jobs(app: FastAPI, settings: Settings) -> list[PeriodicTask]:
    jobs: list[PeriodicTask] = []
    if settings.auto_close_enabled:
        jobs.append(
            PeriodicTask(
                "auto_close",
                lambda: auto_close_task(
                    app.state.transport, app.state.broadcaster, settings
                ),
                settings.auto_close_interval_seconds,
            )
        )
    if settings.appointment_sync_enabled:
        jobs.append(
            PeriodicTask(
                "appointment_sync",
                lambda: appointment_sync_task(settings),
                settings.appointment_sync_interval_seconds,
            )
        )
    return jobs


def create_app(
    testing: bool = False, transport: Optional[BasePlatformAdapter] = None
) -> FastAPI:
    settings = get_settings()
    LoggingConfig(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.jobs = [] if testing else _build_jobs(app, settings)
        for job in app.state.jobs:
            job.start()
        logger.info("app_started env=%s", settings.environment)
        yield
        for job in app.state.jobs:
            await job.stop()
        await app.state.transport.aclose()
        logger.info("app_stopped")

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.broadcaster = Broadcaster(queue_size=settings.stream_queue_size)
    app.state.transport = transport or WhatsAppAdapter.from_settings(settings)
    app.state.jobs = []

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(InboxRelayError)
    async def inbox_relay_error_handler(
        request: Request, exc: InboxRelayError
    ) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(
        request: Request, exc: SQLAlchemyError
    ) -> JSONResponse:
        logger.error("record_store_error path=%s", request.url.path, exc_info=exc)
        error = UpstreamUnavailable("Record store unavailable")
        return JSONResponse(status_code=503, content=error.to_payload())

    app.include_router(system.router)
    app.include_router(webhooks.router)
    app.include_router(portal.router)

    add_pagination(app)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("inbox_relay.main:app", host="0.0.0.0", port=get_settings().port)
