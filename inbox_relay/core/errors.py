"""Domain errors. Routers render them as {"ok": false, "error": kind, ...}."""

from __future__ import annotations

from typing import Any, Optional


class InboxRelayError(Exception):
    kind = "InboxRelayError"
    status_code = 500

    def __init__(self, message: str, *, upstream: Optional[Any] = None) -> None:
        super().__init__(message)
        self.message = message
        self.upstream = upstream

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "ok": False,
            "error": self.kind,
            "detail": self.message,
        }
        if self.upstream is not None:
            payload["upstream"] = self.upstream
        return payload


class ConversationClosed(InboxRelayError):
    kind = "ConversationClosed"
    status_code = 403


class NotFound(InboxRelayError):
    kind = "NotFound"
    status_code = 404


class Unauthorized(InboxRelayError):
    kind = "Unauthorized"
    status_code = 401


class UpstreamUnavailable(InboxRelayError):
    kind = "UpstreamUnavailable"
    status_code = 502


class Misconfigured(InboxRelayError):
    kind = "Misconfigured"
    status_code = 500
