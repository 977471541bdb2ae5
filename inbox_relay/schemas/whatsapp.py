"""
WhatsApp Cloud API webhook payload schemas.

Matches the structure Meta posts to the webhook endpoint:
entry[].changes[].value.{messages[], contacts[], metadata, statuses[]}.
Unknown fields are ignored.
"""

from __future__ import annotations

from typing import Annotated, Any, Optional

from pydantic import BaseModel, BeforeValidator, Field


def _number_as_string(v: Any) -> Any:
    # phone numbers and epoch seconds sometimes arrive as JSON numbers
    if isinstance(v, bool):
        return v
    if isinstance(v, int):
        return str(v)
    if isinstance(v, float):
        return str(int(v)) if v.is_integer() else str(v)
    return v


NumericString = Annotated[str, BeforeValidator(_number_as_string)]


class WhatsAppText(BaseModel):
    body: Optional[str] = None


class WhatsAppButton(BaseModel):
    text: Optional[str] = None
    payload: Optional[str] = None


class WhatsAppReply(BaseModel):
    id: Optional[str] = None
    title: Optional[str] = None


class WhatsAppInteractive(BaseModel):
    type: Optional[str] = None
    button_reply: Optional[WhatsAppReply] = None
    list_reply: Optional[WhatsAppReply] = None


class WhatsAppMessage(BaseModel):
    """A single message inside value.messages[]."""

    id: Optional[NumericString] = None
    from_: NumericString = Field(alias="from")
    timestamp: Optional[NumericString] = None
    type: Optional[str] = None
    text: Optional[WhatsAppText] = None
    button: Optional[WhatsAppButton] = None
    interactive: Optional[WhatsAppInteractive] = None

    model_config = {"populate_by_name": True}


class WhatsAppProfile(BaseModel):
    name: Optional[str] = None


class WhatsAppContact(BaseModel):
    wa_id: Optional[NumericString] = None
    profile: Optional[WhatsAppProfile] = None


class WhatsAppMetadata(BaseModel):
    display_phone_number: Optional[NumericString] = None
    phone_number_id: Optional[NumericString] = None


class WhatsAppValue(BaseModel):
    """change.value: messages are validated one by one by the adapter."""

    messaging_product: Optional[str] = None
    metadata: Optional[WhatsAppMetadata] = None
    contacts: list[WhatsAppContact] = Field(default_factory=list)
    messages: list[Any] = Field(default_factory=list)
    statuses: list[Any] = Field(default_factory=list)

