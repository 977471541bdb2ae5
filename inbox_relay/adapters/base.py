"""
Platform adapter interface.

Adapters encapsulate provider-specific logic (webhook parsing, subscription
verification, sending) and expose the normalized message format to the core.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional

from inbox_relay.schemas.messaging import (
    InboundMessage,
    OutboundMessage,
    OutboundSendResult,
)


class BasePlatformAdapter(ABC):
    """Contract for platform adapters. New providers implement this interface."""

    @abstractmethod
    def parse_webhook(self, raw_payload: Any) -> list[InboundMessage]:
        """Parse a raw webhook payload into zero or more normalized inbound messages."""
        ...

    @abstractmethod
    async def send(self, outbound: OutboundMessage) -> OutboundSendResult:
        """Send a normalized outbound message. Raise UpstreamUnavailable on failure."""
        ...

    def verify_subscription(
        self, mode: Optional[str], token: Optional[str], challenge: Optional[str]
    ) -> Optional[str]:
        """
        Answer the provider's subscription handshake. Return the challenge to echo
        back, or None to reject. Override if the platform uses one.
        """
        return None

    async def aclose(self) -> None:
        """Release network resources. Override if the adapter holds a client."""
        return None
