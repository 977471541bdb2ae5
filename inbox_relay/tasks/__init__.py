from inbox_relay.tasks.appointment_sync_task import appointment_sync_task
from inbox_relay.tasks.auto_close_task import auto_close_task
from inbox_relay.tasks.scheduler import PeriodicTask

__all__ = ["PeriodicTask", "appointment_sync_task", "auto_close_task"]
