"""Todoのデータモデル

永続化フォーマット（todos.json）はcamelCaseキーのJSON。
メモリ上ではタイムゾーン付きdatetimeで扱い、保存時にISO8601文字列へ変換する。

Related Classes: TaskStore (store.py)
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class TaskStatus(str, Enum):
    """Todoのステータス"""

    PENDING = "pending"
    COMPLETED = "completed"


class TaskPriority(str, Enum):
    """優先度。RANKは降順ソート用"""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return PRIORITY_RANK[self.value]


PRIORITY_RANK = {"high": 3, "medium": 2, "low": 1}


@dataclass(slots=True)
class SubTask:
    """サブタスク（進捗率の計算に使用）"""

    title: str
    completed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"title": self.title, "completed": self.completed}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SubTask":
        return cls(title=str(data.get("title", "")), completed=bool(data.get("completed", False)))


def _to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _from_iso(value: Any) -> Optional[datetime]:
    if not value:
        return None
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    # オフセットなしの値はUTCとみなす
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# dataclassフィールド名 -> 永続化キー
_FIELD_KEYS: Dict[str, str] = {
    "id": "id",
    "title": "title",
    "description": "description",
    "priority": "priority",
    "status": "status",
    "tags": "tags",
    "assignee": "assignee",
    "when_time": "whenTime",
    "reminder_time": "reminderTime",
    "created_at": "createdAt",
    "updated_at": "updatedAt",
    "completed_at": "completedAt",
    "auto_log": "autoLog",
    "reflection": "reflection",
    "sub_tasks": "subTasks",
    "reminder_sent": "reminderSent",
    "reminder_sent_at": "reminderSentAt",
    "reminder_fail_count": "reminderFailCount",
    "last_reminder_attempt_at": "lastReminderAttemptAt",
    "next_reminder_retry_at": "nextReminderRetryAt",
    "when_time_reminder_sent": "whenTimeReminderSent",
    "when_time_reminder_sent_at": "whenTimeReminderSentAt",
    "when_time_reminder_fail_count": "whenTimeReminderFailCount",
    "last_when_time_reminder_attempt_at": "lastWhenTimeReminderAttemptAt",
    "next_when_time_reminder_retry_at": "nextWhenTimeReminderRetryAt",
}

_DATETIME_FIELDS = {
    "when_time",
    "reminder_time",
    "created_at",
    "updated_at",
    "completed_at",
    "reminder_sent_at",
    "last_reminder_attempt_at",
    "next_reminder_retry_at",
    "when_time_reminder_sent_at",
    "last_when_time_reminder_attempt_at",
    "next_when_time_reminder_retry_at",
}


@dataclass(slots=True)
class Task:
    """永続化済みTodoアイテムの表現

    reminder_* / when_time_reminder_* はスケジューラー専用のフラグで、
    ユーザー入力からは直接設定できない。
    """

    id: str
    title: str
    created_at: datetime
    updated_at: datetime
    description: str = ""
    priority: TaskPriority = TaskPriority.MEDIUM
    status: TaskStatus = TaskStatus.PENDING
    tags: List[str] = field(default_factory=list)
    assignee: Optional[str] = None
    when_time: Optional[datetime] = None
    reminder_time: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    auto_log: bool = False
    reflection: Optional[str] = None
    sub_tasks: List[SubTask] = field(default_factory=list)

    # リマインダートラック
    reminder_sent: bool = False
    reminder_sent_at: Optional[datetime] = None
    reminder_fail_count: int = 0
    last_reminder_attempt_at: Optional[datetime] = None
    next_reminder_retry_at: Optional[datetime] = None

    # 期限超過トラック
    when_time_reminder_sent: bool = False
    when_time_reminder_sent_at: Optional[datetime] = None
    when_time_reminder_fail_count: int = 0
    last_when_time_reminder_attempt_at: Optional[datetime] = None
    next_when_time_reminder_retry_at: Optional[datetime] = None

    # 未知のキー（将来の拡張フィールド）を保存時にそのまま書き戻す
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_completed(self) -> bool:
        return self.status is TaskStatus.COMPLETED

    def mark_completed(self, now: datetime) -> bool:
        """pending -> completed。遷移した場合Trueを返す"""
        if self.is_completed:
            return False
        self.status = TaskStatus.COMPLETED
        self.completed_at = now
        self.updated_at = now
        return True

    def reopen(self, now: datetime) -> bool:
        """completed -> pending。期限超過トラックを再アーム"""
        if not self.is_completed:
            return False
        self.status = TaskStatus.PENDING
        self.completed_at = None
        self.reset_overdue_track()
        self.updated_at = now
        return True

    def reset_reminder_track(self) -> None:
        self.reminder_sent = False
        self.reminder_sent_at = None
        self.reminder_fail_count = 0
        self.last_reminder_attempt_at = None
        self.next_reminder_retry_at = None

    def reset_overdue_track(self) -> None:
        self.when_time_reminder_sent = False
        self.when_time_reminder_sent_at = None
        self.when_time_reminder_fail_count = 0
        self.last_when_time_reminder_attempt_at = None
        self.next_when_time_reminder_retry_at = None

    def to_dict(self) -> Dict[str, Any]:
        """永続化フォーマットへ変換"""
        data: Dict[str, Any] = dict(self.extra)
        for name, key in _FIELD_KEYS.items():
            value = getattr(self, name)
            if name in _DATETIME_FIELDS:
                value = _to_iso(value)
            elif isinstance(value, Enum):
                value = value.value
            elif name == "sub_tasks":
                value = [sub.to_dict() for sub in value]
            elif name == "tags":
                value = list(value)
            data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        """永続化フォーマットから復元（欠けたフラグはデフォルト値）"""
        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for name, key in _FIELD_KEYS.items():
            if key not in data or name not in known:
                continue
            value = data[key]
            if name in _DATETIME_FIELDS:
                value = _from_iso(value)
            elif name == "priority":
                value = TaskPriority(value) if value in PRIORITY_RANK else TaskPriority.MEDIUM
            elif name == "status":
                value = TaskStatus(value) if value else TaskStatus.PENDING
            elif name == "sub_tasks":
                value = [SubTask.from_dict(item) for item in (value or [])]
            elif name == "tags":
                value = list(value or [])
            elif name in ("reminder_fail_count", "when_time_reminder_fail_count"):
                value = int(value or 0)
            elif name in ("auto_log", "reminder_sent", "when_time_reminder_sent"):
                value = value is True or value == "true"
            elif name == "description":
                value = value or ""
            kwargs[name] = value

        created_at = kwargs.get("created_at")
        if created_at is None:
            raise ValueError(f"Todo {data.get('id')!r} has no createdAt")
        kwargs.setdefault("updated_at", created_at)
        kwargs["extra"] = {k: v for k, v in data.items() if k not in _FIELD_KEYS.values()}
        return cls(**kwargs)
