"""
WhatsApp Cloud API adapter.

Parses webhook batches into InboundMessage values, answers the subscription
handshake and sends text messages through the Graph API with httpx.
"""

from __future__ import annotations

import hmac
import logging
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

import httpx
from pydantic import ValidationError

from inbox_relay.adapters.base import BasePlatformAdapter
from inbox_relay.config import Settings
from inbox_relay.constants.conversation import NO_TEXT_PLACEHOLDER
from inbox_relay.core.contact import normalize_contact_id
from inbox_relay.core.errors import Misconfigured, UpstreamUnavailable
from inbox_relay.schemas.messaging import (
    InboundMessage,
    OutboundMessage,
    OutboundSendResult,
)
from inbox_relay.schemas.whatsapp import WhatsAppMessage, WhatsAppValue

logger = logging.getLogger(__name__)


def _parse_timestamp(raw: Optional[str]) -> datetime:
    """Provider epoch seconds → aware UTC datetime; ingestion time when absent or invalid."""
    if raw:
        try:
            return datetime.fromtimestamp(int(raw), tz=timezone.utc)
        except (TypeError, ValueError, OverflowError, OSError):
            logger.warning("whatsapp_timestamp_invalid value=%s", raw)
    return datetime.now(timezone.utc)


def _extract_text(msg: WhatsAppMessage) -> str:
    if msg.text and msg.text.body:
        return msg.text.body
    if msg.button and msg.button.text:
        return msg.button.text
    if msg.interactive:
        for reply in (msg.interactive.button_reply, msg.interactive.list_reply):
            if reply and reply.title:
                return reply.title
    return NO_TEXT_PLACEHOLDER


def _contact_names(value: WhatsAppValue) -> tuple[dict[str, str], str]:
    """Profile names keyed by contact id, plus the first profile name as a fallback."""
    names: dict[str, str] = {}
    first = ""
    for contact in value.contacts:
        name = (contact.profile.name if contact.profile else None) or ""
        if not first and name:
            first = name
        key = normalize_contact_id(contact.wa_id)
        if key and name:
            names[key] = name
    return names, first


def _as_list(raw: Any, name: str) -> list[Any]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        logger.warning("whatsapp_%s_skipped reason=not_a_list", name)
        return []
    return raw


def _parse_change_value(change: Any) -> Optional[WhatsAppValue]:
    """change.value of one change; None (logged) when it does not validate."""
    if not isinstance(change, dict):
        logger.warning("whatsapp_change_skipped reason=not_an_object")
        return None
    try:
        return WhatsAppValue.model_validate(change.get("value") or {})
    except ValidationError as e:
        logger.warning("whatsapp_change_skipped error=%s", e)
        return None


def _response_detail(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class WhatsAppAdapter(BasePlatformAdapter):
    """WhatsApp adapter: parse webhook batches, verify subscription, send via Graph API."""

    def __init__(
        self,
        access_token: Optional[str],
        phone_number_id: Optional[str],
        verify_token: Optional[str] = None,
        graph_version: str = "v24.0",
        base_url: str = "https://graph.facebook.com",
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._access_token = access_token
        self._phone_number_id = phone_number_id
        self._verify_token = verify_token
        self._graph_version = graph_version
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "WhatsAppAdapter":
        return cls(
            access_token=settings.whatsapp_access_token,
            phone_number_id=settings.whatsapp_phone_number_id,
            verify_token=settings.whatsapp_verify_token,
            graph_version=settings.meta_graph_version,
            base_url=settings.whatsapp_api_base_url,
            timeout=settings.whatsapp_timeout_seconds,
        )

    @property
    def phone_number_id(self) -> Optional[str]:
        return self._phone_number_id

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def verify_subscription(
        self, mode: Optional[str], token: Optional[str], challenge: Optional[str]
    ) -> Optional[str]:
        """Echo hub.challenge when hub.mode is 'subscribe' and hub.verify_token matches."""
        if not self._verify_token or mode != "subscribe" or token is None:
            return None
        if not hmac.compare_digest(
            token.encode("utf-8"), self._verify_token.encode("utf-8")
        ):
            return None
        return challenge or ""

    def parse_webhook(self, raw_payload: Any) -> list[InboundMessage]:
        """
        Parse a webhook batch into normalized inbound messages.

        Every message of every change of every entry is returned. Status
        callbacks and changes without messages contribute nothing. Entries,
        changes and messages are validated one at a time: a malformed one is
        logged and skipped and the rest of the batch still comes through. A
        payload that is not an object raises ValueError.
        """
        if not isinstance(raw_payload, dict):
            raise ValueError("WhatsApp webhook payload must be a JSON object")

        inbound: list[InboundMessage] = []
        for entry in _as_list(raw_payload.get("entry"), "entry"):
            if not isinstance(entry, dict):
                logger.warning("whatsapp_entry_skipped reason=not_an_object")
                continue
            for change in _as_list(entry.get("changes"), "changes"):
                value = _parse_change_value(change)
                if value is None or not value.messages:
                    continue
                inbound.extend(self._parse_messages(value))
        return inbound

    def _parse_messages(self, value: WhatsAppValue) -> list[InboundMessage]:
        names, first_name = _contact_names(value)
        channel_handle = value.metadata.phone_number_id if value.metadata else None
        inbound: list[InboundMessage] = []
        for raw_msg in value.messages:
            try:
                msg = WhatsAppMessage.model_validate(raw_msg)
            except ValidationError as e:
                logger.warning("whatsapp_message_parse_failed error=%s", e)
                continue
            contact_id = normalize_contact_id(msg.from_)
            if not contact_id:
                logger.warning("whatsapp_message_without_sender message_id=%s", msg.id)
                continue
            inbound.append(
                InboundMessage(
                    contact_id=contact_id,
                    message_id=msg.id or f"in_{uuid4().hex}",
                    text=_extract_text(msg),
                    timestamp=_parse_timestamp(msg.timestamp),
                    sender_display_name=names.get(contact_id, first_name),
                    channel_handle=channel_handle,
                )
            )
        return inbound

    async def send(self, outbound: OutboundMessage) -> OutboundSendResult:
        """Send a text message. Transport and HTTP errors raise UpstreamUnavailable."""
        if not self._access_token or not self._phone_number_id:
            raise Misconfigured(
                "Missing WHATSAPP_ACCESS_TOKEN or WHATSAPP_PHONE_NUMBER_ID"
            )
        url = f"{self._base_url}/{self._graph_version}/{self._phone_number_id}/messages"
        payload = {
            "messaging_product": "whatsapp",
            "to": normalize_contact_id(outbound.contact_id),
            "type": "text",
            "text": {"body": outbound.text},
        }
        headers = {"Authorization": f"Bearer {self._access_token}"}
        try:
            response = await self._get_client().post(url, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            detail = _response_detail(exc.response)
            logger.error(
                "whatsapp_send_failed contact_id=%s status=%s body=%s",
                outbound.contact_id,
                exc.response.status_code,
                detail,
            )
            raise UpstreamUnavailable("WhatsApp send failed", upstream=detail) from exc
        except httpx.HTTPError as exc:
            logger.error(
                "whatsapp_send_failed contact_id=%s error=%s", outbound.contact_id, exc
            )
            raise UpstreamUnavailable(
                "WhatsApp send failed", upstream=str(exc)
            ) from exc

        data = response.json() if response.content else {}
        messages = data.get("messages") or [{}]
        return OutboundSendResult(
            platform_message_id=messages[0].get("id"),
            response=data,
        )
