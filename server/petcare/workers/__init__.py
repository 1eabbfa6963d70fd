"""Background workers for the booking and notification service."""

from .base import BaseWorker
from .reminder_worker import ReminderSweepWorker

__all__ = ["BaseWorker", "ReminderSweepWorker"]
