from fastapi import APIRouter, Depends, Request

from inbox_relay.config import Settings, get_settings

router = APIRouter(tags=["system"])


@router.get("/")
def root(settings: Settings = Depends(get_settings)) -> dict[str, str]:
    return {"status": "ok", "app": settings.app_name}


@router.get("/health")
def health(request: Request) -> dict[str, object]:
    """Liveness plus a couple of in-process counters useful when troubleshooting."""
    broadcaster = request.app.state.broadcaster
    jobs = getattr(request.app.state, "jobs", [])
    return {
        "status": "ok",
        "subscribers": broadcaster.subscriber_count(),
        "jobs": {job.name: job.running for job in jobs},
    }
