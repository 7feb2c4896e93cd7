"""Background daemon that fires reminders, overdue alerts and daily summaries."""

from .scheduler import ReminderScheduler
from .state import DaemonState

__all__ = ["DaemonState", "ReminderScheduler"]
