"""Appointment model: calendar bookings mirrored into the store by the calendar integration."""

from __future__ import annotations

import uuid

from sqlalchemy import Column, DateTime, String, Uuid

from inbox_relay.db import Base
from inbox_relay.models.mixins import TimestampMixin


class Appointment(Base, TimestampMixin):
    """Read-mostly here: looked up by phone and listed by upcoming start time."""

    __tablename__ = "appointments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    external_id = Column(String(128), unique=True, nullable=True)
    name = Column(String(256), nullable=False, default="")
    phone_e164 = Column(String(32), nullable=True, index=True)
    start_at = Column(DateTime(timezone=True), nullable=False, index=True)
