from inbox_relay.models.appointment import Appointment
from inbox_relay.models.conversation import Conversation
from inbox_relay.models.message import Message

__all__ = [
    "Appointment",
    "Conversation",
    "Message",
]
