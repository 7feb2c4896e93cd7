"""
コマンド入力・結果のPydanticモデル

入力はcamelCaseのキー（todoId, reminderTime, dateRange ...）で受け取り、
変更を始める前にここで検証する。検証エラーは InvalidInputError に変換される。
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .exceptions import InvalidInputError

PriorityValue = Literal["high", "medium", "low"]
StatusValue = Literal["pending", "completed"]
DisplayFormat = Literal["compact", "standard", "detailed"]

M = TypeVar("M", bound=BaseModel)


def _split_tags(value: Any) -> Any:
    """"a, b" 形式の文字列もタグのリストとして受け付ける"""
    if value is None:
        return None
    if isinstance(value, str):
        return [tag.strip() for tag in value.split(",") if tag.strip()]
    if isinstance(value, list):
        return [str(tag).strip() for tag in value if str(tag).strip()]
    return value


def _empty_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class CommandInput(BaseModel):
    """コマンド入力の基底クラス（未知のキーは無視）"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", str_strip_whitespace=True)


class SubTaskInput(CommandInput):
    title: str = Field(..., min_length=1)
    completed: bool = False


class TaskFieldsInput(CommandInput):
    """CreateTask / UpdateTask 共通のフィールド"""

    description: Optional[str] = None
    priority: Optional[PriorityValue] = None
    tags: Optional[List[str]] = None
    assignee: Optional[str] = None
    when: Optional[str] = Field(default=None, description="自然言語の時間表現（例: tomorrow 3pm）")
    due_date: Optional[str] = Field(default=None, alias="dueDate")
    due_time: Optional[str] = Field(default=None, alias="dueTime")
    remind: Optional[str] = Field(default=None, description="オフセット表現（例: 15 minutes before）")
    reminder_time: Optional[str] = Field(default=None, alias="reminderTime")
    sub_tasks: Optional[List[SubTaskInput]] = Field(default=None, alias="subTasks")

    @field_validator("tags", mode="before")
    @classmethod
    def normalize_tags(cls, value: Any) -> Any:
        return _split_tags(value)

    @field_validator("priority", "due_date", "due_time", mode="before")
    @classmethod
    def normalize_empty(cls, value: Any) -> Any:
        return _empty_to_none(value)

    @property
    def reminder_explicit(self) -> bool:
        """remind / reminderTime のいずれかがキーとして渡されたか（null含む）"""
        return "remind" in self.model_fields_set or "reminder_time" in self.model_fields_set


class CreateTaskInput(TaskFieldsInput):
    title: str = Field(..., min_length=1)
    auto_log: bool = Field(default=False, alias="autoLog")
    format: DisplayFormat = "standard"


class UpdateTaskInput(TaskFieldsInput):
    todo_id: str = Field(..., alias="todoId", min_length=1)
    title: Optional[str] = Field(default=None, min_length=1)
    status: Optional[StatusValue] = None
    reflection: Optional[str] = None
    auto_log: Optional[bool] = Field(default=None, alias="autoLog")
    format: DisplayFormat = "standard"

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, value: Any) -> Any:
        return _empty_to_none(value)


class ListTasksInput(CommandInput):
    status: Literal["pending", "completed", "all"] = "pending"
    priority: Optional[PriorityValue] = None
    tag: Optional[str] = None
    date_range: Optional[Literal["today", "week", "month", "overdue"]] = Field(default=None, alias="dateRange")
    sort_by: Literal["whenTime", "priority", "createdAt"] = Field(default="whenTime", alias="sortBy")
    format: DisplayFormat = "compact"

    @field_validator("priority", "tag", "date_range", mode="before")
    @classmethod
    def normalize_empty(cls, value: Any) -> Any:
        return _empty_to_none(value)


class TaskIdInput(CommandInput):
    todo_id: str = Field(..., alias="todoId", min_length=1)
    format: DisplayFormat = "detailed"


class DailyTasksInput(CommandInput):
    format: DisplayFormat = "compact"


class FireReminderInput(CommandInput):
    todo_id: str = Field(..., alias="todoId", min_length=1)
    format: Literal["structured", "2.0", "text"] = "structured"
    agent_name: Optional[str] = Field(default=None, alias="agentName")
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    message_id: Optional[str] = Field(default=None, alias="messageId")


class SnoozeInput(CommandInput):
    todo_id: str = Field(..., alias="todoId", min_length=1)
    minutes: int = Field(default=30, gt=0, le=7 * 24 * 60)


class BatchCreateInput(CommandInput):
    todos: List[Dict[str, Any]]
    format: DisplayFormat = "compact"


class BatchUpdateInput(CommandInput):
    updates: List[Dict[str, Any]]
    format: DisplayFormat = "compact"


class BatchDeleteInput(CommandInput):
    todo_ids: List[str] = Field(..., alias="todoIds")

    @field_validator("todo_ids", mode="before")
    @classmethod
    def split_ids(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value


class StatsInput(CommandInput):
    pass


class CommandResult(BaseModel):
    """コマンドの結果。statusはsuccess/error"""

    status: Literal["success", "error"]
    result: Optional[Union[str, Dict[str, Any]]] = None
    data: Optional[Any] = None
    details: Optional[List[Dict[str, Any]]] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, result: Union[str, Dict[str, Any]], **kwargs: Any) -> "CommandResult":
        return cls(status="success", result=result, **kwargs)

    @classmethod
    def failure(cls, message: str) -> "CommandResult":
        # エラーメッセージは1行
        return cls(status="error", error=" ".join(str(message).split()))

    @property
    def ok(self) -> bool:
        return self.status == "success"

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


def validate_input(model: Type[M], args: Dict[str, Any]) -> M:
    """引数辞書をモデルで検証。失敗時は InvalidInputError"""
    try:
        return model.model_validate(args)
    except ValidationError as exc:
        problems = []
        for error in exc.errors():
            location = ".".join(str(part) for part in error.get("loc", ())) or "input"
            problems.append(f"{location}: {error.get('msg')}")
        raise InvalidInputError("Invalid input: " + "; ".join(problems)) from exc
