"""Appointment lookups (by phone, upcoming). Rows are written by the calendar integration."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from inbox_relay.models.appointment import Appointment


class AppointmentService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def find_by_phone(self, phone_e164: Optional[str]) -> Optional[Appointment]:
        if not phone_e164:
            return None
        return (
            self.db.query(Appointment)
            .filter(Appointment.phone_e164 == phone_e164)
            .order_by(Appointment.start_at.desc())
            .first()
        )

    def list_upcoming(
        self, now: Optional[datetime] = None, limit: int = 50
    ) -> List[Appointment]:
        """Appointments starting at or after now, soonest first. Page size is capped at 100."""
        now = now or datetime.now(timezone.utc)
        stmt = (
            select(Appointment)
            .where(Appointment.start_at >= now)
            .order_by(Appointment.start_at.asc())
            .limit(min(limit, 100))
        )
        return list(self.db.scalars(stmt))

    def create_appointment(
        self,
        *,
        name: str,
        phone_e164: Optional[str],
        start_at: datetime,
        external_id: Optional[str] = None,
    ) -> Appointment:
        appointment = Appointment(
            name=name,
            phone_e164=phone_e164,
            start_at=start_at,
            external_id=external_id,
        )
        self.db.add(appointment)
        self.db.commit()
        self.db.refresh(appointment)
        return appointment
