from inbox_relay.services.appointment_service import AppointmentService
from inbox_relay.services.conversation_service import ConversationService
from inbox_relay.services.message_service import MessageService

__all__ = [
    "AppointmentService",
    "ConversationService",
    "MessageService",
]
