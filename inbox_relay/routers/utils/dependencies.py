import hmac
from typing import Optional

from fastapi import Depends, Header, Query, Request

from inbox_relay.adapters.base import BasePlatformAdapter
from inbox_relay.config import Settings, get_settings
from inbox_relay.core.broadcaster import Broadcaster
from inbox_relay.core.errors import Misconfigured, Unauthorized


def get_broadcaster(request: Request) -> Broadcaster:
    """FastAPI dependency returning the application's event broadcaster."""
    return request.app.state.broadcaster


def get_transport(request: Request) -> BasePlatformAdapter:
    """FastAPI dependency returning the outbound transport adapter."""
    return request.app.state.transport


def _check_api_key(settings: Settings, provided: Optional[str]) -> None:
    if not settings.portal_api_key:
        raise Misconfigured("PORTAL_API_KEY is not configured")
    if not provided or not hmac.compare_digest(
        provided.encode("utf-8"), settings.portal_api_key.encode("utf-8")
    ):
        raise Unauthorized("Invalid or missing API key")


def require_portal_api_key(
    x_api_key: Optional[str] = Header(default=None, alias="X-API-Key"),
    settings: Settings = Depends(get_settings),
) -> None:
    """FastAPI dependency guarding operator routes with the shared API key."""
    _check_api_key(settings, x_api_key)


def require_stream_api_key(
    x_api_key: Optional[str] = Header(default=None, alias="X-API-Key"),
    api_key: Optional[str] = Query(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    """Like require_portal_api_key, also accepting ?api_key= for EventSource clients."""
    _check_api_key(settings, x_api_key or api_key)
