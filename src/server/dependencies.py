"""Dependency helpers shared across FastAPI routes."""

from __future__ import annotations

from functools import lru_cache

from src.todo.config import Config
from src.todo.logger import setup_logger
from src.todo.manager import TodoManager
from src.todo.models import Task

from .schemas import SubTaskModel, TaskResponse

config = Config.load()
_log_file = Config.resolve_path(config.log_file)
setup_logger(log_level=config.log_level, log_file=str(_log_file) if _log_file else None)


@lru_cache(maxsize=1)
def get_todo_manager() -> TodoManager:
    """Singleton TodoManager.

    Configuration is re-read so that environment overrides such as
    TODO_DATA_DIR apply after ``cache_clear()``. Reminders fired through the
    API are returned to the caller rather than broadcast.
    """
    return TodoManager.from_config(Config.load())


def serialize_task(task: Task) -> TaskResponse:
    """Convert domain Task to API response."""
    return TaskResponse(
        id=task.id,
        title=task.title,
        description=task.description,
        priority=task.priority.value,
        status=task.status.value,
        tags=list(task.tags),
        assignee=task.assignee,
        when_time=task.when_time,
        reminder_time=task.reminder_time,
        reminder_sent=task.reminder_sent,
        created_at=task.created_at,
        updated_at=task.updated_at,
        completed_at=task.completed_at,
        reflection=task.reflection,
        auto_log=task.auto_log,
        sub_tasks=[SubTaskModel(title=sub.title, completed=sub.completed) for sub in task.sub_tasks],
    )
