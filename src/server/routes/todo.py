"""Todo endpoints."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Literal, Optional

from fastapi import FastAPI, HTTPException

from src.todo.exceptions import (
    InvalidInputError,
    LockTimeoutError,
    PersistenceError,
    TaskNotFoundError,
    TodoError,
)
from src.todo.schemas import (
    CreateTaskInput,
    FireReminderInput,
    ListTasksInput,
    UpdateTaskInput,
    validate_input,
)

from ..dependencies import get_todo_manager, serialize_task
from ..schemas import (
    DailyTasksResponse,
    ReminderRequest,
    ReminderResponse,
    SnoozeRequest,
    StatsResponse,
    TaskCreateRequest,
    TaskResponse,
    TaskUpdateRequest,
)

logger = logging.getLogger(__name__)


def to_http_error(exc: TodoError, action: str) -> HTTPException:
    """Map domain errors to HTTP status codes."""
    if isinstance(exc, InvalidInputError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, TaskNotFoundError):
        return HTTPException(status_code=404, detail="Todo not found")
    if isinstance(exc, (LockTimeoutError, PersistenceError)):
        logger.warning("Todo store unavailable while trying to %s: %s", action, exc)
        return HTTPException(status_code=503, detail="Todo store is busy or unavailable")
    logger.exception("Failed to %s: %s", action, exc)
    return HTTPException(status_code=500, detail=f"Failed to {action}")


def register_todo_routes(app: FastAPI) -> None:
    """Register todo endpoints."""

    @app.get("/api/todos", response_model=List[TaskResponse])
    async def list_todos(
        status: Literal["pending", "completed", "all"] = "all",
        priority: Optional[Literal["high", "medium", "low"]] = None,
        tag: Optional[str] = None,
        date_range: Optional[Literal["today", "week", "month", "overdue"]] = None,
        sort_by: Literal["whenTime", "priority", "createdAt"] = "whenTime",
    ) -> List[TaskResponse]:
        """List todos filtered by status, priority, tag and date range."""
        manager = get_todo_manager()
        params = ListTasksInput(status=status, priority=priority, tag=tag, date_range=date_range, sort_by=sort_by)
        try:
            tasks = await asyncio.to_thread(manager.list_tasks, params)
            return [serialize_task(task) for task in tasks]
        except TodoError as exc:
            raise to_http_error(exc, "list todos") from exc

    @app.post("/api/todos", response_model=TaskResponse)
    async def create_todo(request: TaskCreateRequest) -> TaskResponse:
        """Create a new todo."""
        manager = get_todo_manager()
        try:
            params = validate_input(CreateTaskInput, request.model_dump(exclude_unset=True))
            created = await asyncio.to_thread(manager.create_task, params)
            return serialize_task(created.task)
        except TodoError as exc:
            raise to_http_error(exc, "create todo") from exc

    @app.get("/api/todos/daily", response_model=DailyTasksResponse)
    async def daily_todos() -> DailyTasksResponse:
        """Pending todos due today, reminded today, or without any date."""
        manager = get_todo_manager()
        try:
            dated, undated = await asyncio.to_thread(manager.get_daily_tasks)
            return DailyTasksResponse(
                dated=[serialize_task(task) for task in dated],
                undated=[serialize_task(task) for task in undated],
            )
        except TodoError as exc:
            raise to_http_error(exc, "list daily todos") from exc

    @app.get("/api/todos/stats", response_model=StatsResponse)
    async def todo_stats() -> StatsResponse:
        """Aggregate counts over all todos."""
        manager = get_todo_manager()
        try:
            stats = await asyncio.to_thread(manager.get_stats)
            return StatsResponse(**stats)
        except TodoError as exc:
            raise to_http_error(exc, "compute stats") from exc

    @app.get("/api/todos/{todo_id}", response_model=TaskResponse)
    async def get_todo(todo_id: str) -> TaskResponse:
        """Get a single todo."""
        manager = get_todo_manager()
        try:
            task = await asyncio.to_thread(manager.get_task, todo_id)
            return serialize_task(task)
        except TodoError as exc:
            raise to_http_error(exc, "get todo") from exc

    @app.patch("/api/todos/{todo_id}", response_model=TaskResponse)
    async def update_todo(todo_id: str, request: TaskUpdateRequest) -> TaskResponse:
        """Update an existing todo."""
        manager = get_todo_manager()
        try:
            payload = request.model_dump(exclude_unset=True)
            payload["todo_id"] = todo_id
            params = validate_input(UpdateTaskInput, payload)
            task = await asyncio.to_thread(manager.update_task, params)
            return serialize_task(task)
        except TodoError as exc:
            raise to_http_error(exc, "update todo") from exc

    @app.delete("/api/todos/{todo_id}")
    async def delete_todo(todo_id: str) -> Dict[str, bool]:
        """Delete a todo and its schedule entry."""
        manager = get_todo_manager()
        try:
            await asyncio.to_thread(manager.delete_task, todo_id)
            return {"deleted": True}
        except TodoError as exc:
            raise to_http_error(exc, "delete todo") from exc

    @app.post("/api/todos/{todo_id}/remind", response_model=ReminderResponse)
    async def fire_reminder(todo_id: str, request: Optional[ReminderRequest] = None) -> ReminderResponse:
        """Fire the reminder of a todo once."""
        manager = get_todo_manager()
        request = request or ReminderRequest()
        try:
            params = FireReminderInput(todo_id=todo_id, format=request.format, agent_name=request.agent_name)
            outcome = await asyncio.to_thread(manager.fire_reminder, params)
            return ReminderResponse(
                todo_id=outcome.task.id,
                handled=outcome.handled,
                reason=outcome.reason,
                delivered=outcome.delivered,
                payload=outcome.payload,
            )
        except TodoError as exc:
            raise to_http_error(exc, "fire reminder") from exc

    @app.post("/api/todos/{todo_id}/snooze", response_model=TaskResponse)
    async def snooze_reminder(todo_id: str, request: Optional[SnoozeRequest] = None) -> TaskResponse:
        """Move the reminder of a todo to now + minutes."""
        manager = get_todo_manager()
        request = request or SnoozeRequest()
        try:
            task = await asyncio.to_thread(manager.snooze_reminder, todo_id, request.minutes)
            return serialize_task(task)
        except TodoError as exc:
            raise to_http_error(exc, "snooze reminder") from exc
