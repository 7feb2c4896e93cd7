"""Pydantic schemas for the FastAPI server."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Response for health check endpoint."""

    status: str


class SubTaskModel(BaseModel):
    title: str = Field(..., min_length=1)
    completed: bool = False


class TaskResponse(BaseModel):
    """Serialized todo."""

    id: str
    title: str
    description: str
    priority: Literal["high", "medium", "low"]
    status: Literal["pending", "completed"]
    tags: List[str]
    assignee: Optional[str] = None
    when_time: Optional[datetime] = None
    reminder_time: Optional[datetime] = None
    reminder_sent: bool = False
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None
    reflection: Optional[str] = None
    auto_log: bool = False
    sub_tasks: List[SubTaskModel] = Field(default_factory=list)


class TaskCreateRequest(BaseModel):
    """Request body for creating a todo."""

    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    priority: Optional[Literal["high", "medium", "low"]] = None
    tags: Optional[List[str]] = None
    assignee: Optional[str] = None
    when: Optional[str] = Field(default=None, description="Natural-language deadline, e.g. 'tomorrow 3pm'")
    remind: Optional[str] = Field(default=None, description="Offset from the deadline, e.g. '15 minutes before'")
    reminder_time: Optional[str] = Field(default=None, description="Explicit reminder instant")
    auto_log: bool = False
    sub_tasks: Optional[List[SubTaskModel]] = None


class TaskUpdateRequest(BaseModel):
    """Request body for updating a todo. Explicit nulls clear `when` / `reminder_time`."""

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    priority: Optional[Literal["high", "medium", "low"]] = None
    tags: Optional[List[str]] = None
    assignee: Optional[str] = None
    when: Optional[str] = None
    remind: Optional[str] = None
    reminder_time: Optional[str] = None
    status: Optional[Literal["pending", "completed"]] = None
    reflection: Optional[str] = None
    auto_log: Optional[bool] = None
    sub_tasks: Optional[List[SubTaskModel]] = None


class SnoozeRequest(BaseModel):
    """Request body for snoozing a reminder."""

    minutes: int = Field(default=30, gt=0, le=7 * 24 * 60)


class ReminderRequest(BaseModel):
    """Request body for firing a reminder."""

    format: Literal["structured", "text"] = "structured"
    agent_name: Optional[str] = None


class ReminderResponse(BaseModel):
    """Outcome of firing a reminder."""

    todo_id: str
    handled: bool
    reason: Optional[str] = None
    delivered: Optional[bool] = None
    payload: Optional[Any] = None


class DailyTasksResponse(BaseModel):
    """Today's todos, dated ones first."""

    dated: List[TaskResponse]
    undated: List[TaskResponse]


class StatsResponse(BaseModel):
    """Aggregate counts over the whole collection."""

    total: int
    pending: int
    completed: int
    completionRate: int
    byPriority: Dict[str, int]
    overdue: int
    today: int
    thisWeek: int
    completedLast7Days: int
    topTags: List[Dict[str, Any]]
