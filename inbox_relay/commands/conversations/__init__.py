from inbox_relay.commands.conversations.auto_close_command import (
    AutoCloseConversationsCommand,
    SweepResult,
)
from inbox_relay.commands.conversations.sync_appointments_command import (
    SyncAppointmentsCommand,
    SyncResult,
)

__all__ = [
    "AutoCloseConversationsCommand",
    "SweepResult",
    "SyncAppointmentsCommand",
    "SyncResult",
]
