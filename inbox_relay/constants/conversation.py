"""Conversation statuses, message directions and the fixed notices sent to contacts."""

from enum import StrEnum


class ConversationStatus(StrEnum):
    """Lifecycle of a conversation. Closed is only left through an explicit reopen."""

    SCHEDULED = "scheduled"
    ACTIVE = "active"
    CLOSED = "closed"


class MessageDirection(StrEnum):
    IN = "IN"
    OUT = "OUT"


CLOSED_AUTO_REPLY = (
    "⛔ Esta conversación está cerrada.\n\n"
    "Si deseas volver a hablar con nosotros, por favor reserva otra cita "
    "en Calendly o escríbenos por correo."
)

CLOSE_NOTICE = (
    "⏳ Hemos cerrado esta conversación. Si deseas volver a hablar con nosotros, "
    "por favor reserva otra cita en Calendly o escríbenos por correo."
)

AUTO_CLOSE_NOTICE = (
    "⏳ Hemos cerrado esta conversación por inactividad. Si deseas volver a "
    "hablar con nosotros, por favor reserva otra cita en Calendly o escríbenos "
    "por correo."
)

SCHEDULED_PLACEHOLDER = "📅 Cita programada (sin mensajes aún)"

NO_TEXT_PLACEHOLDER = "(no-text)"
