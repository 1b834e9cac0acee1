"""Background workers for the club outings service."""

from .reminder_worker import ReminderWorker

__all__ = ["ReminderWorker"]
