"""Todo management with natural-language scheduling and one-shot reminders."""

from .exceptions import (
    InvalidInputError,
    LockTimeoutError,
    NotifyError,
    PersistenceError,
    TaskNotFoundError,
    TodoError,
)
from .manager import TodoManager
from .models import SubTask, Task, TaskPriority, TaskStatus
from .store import TaskStore
from .time_parser import SmartTimeParser

__all__ = [
    "InvalidInputError",
    "LockTimeoutError",
    "NotifyError",
    "PersistenceError",
    "SmartTimeParser",
    "SubTask",
    "Task",
    "TaskNotFoundError",
    "TaskPriority",
    "TaskStatus",
    "TaskStore",
    "TodoError",
    "TodoManager",
]
