"""Todoのテキスト整形（compact / standard / detailed）"""

from __future__ import annotations

from datetime import datetime, timedelta, tzinfo
from typing import Iterable, List, Optional

from .models import Task

FORMATS = ("compact", "standard", "detailed")

PRIORITY_MARK = {"high": "[高]", "medium": "[中]", "low": "[低]"}
STATUS_LABEL = {"pending": "未完了", "completed": "完了"}


def format_datetime(value: Optional[datetime], tz: Optional[tzinfo] = None) -> str:
    if value is None:
        return "未設定"
    if tz is not None:
        value = value.astimezone(tz)
    return value.strftime("%Y-%m-%d %H:%M")


def _compact_when(when: datetime, now: datetime) -> str:
    local = when.astimezone(now.tzinfo) if now.tzinfo else when
    if local.date() == now.date():
        return f"今日 {local:%H:%M}"
    if local.date() == (now + timedelta(days=1)).date():
        return f"明日 {local:%H:%M}"
    return f"{local.month}/{local.day}"


def format_task(task: Task, fmt: str = "standard", now: Optional[datetime] = None) -> str:
    """
    Todoを表示用テキストに整形

    Args:
        task: 対象Todo
        fmt: "compact"（1行）/ "standard" / "detailed"
        now: 相対日付（今日/明日）とタイムゾーンの基準
    """
    tz = now.tzinfo if now is not None else None

    if fmt == "compact":
        status_mark = "✓" if task.is_completed else "・"
        line = f"{status_mark}{PRIORITY_MARK.get(task.priority.value, '')} {task.title}"
        if task.when_time is not None and now is not None:
            line += f" ({_compact_when(task.when_time, now)})"
        elif task.when_time is not None:
            line += f" ({format_datetime(task.when_time)})"
        return line

    detailed = fmt == "detailed"
    lines = [f"ID: {task.id}", f"  タイトル: {task.title}"]
    if detailed and task.description:
        lines.append(f"  説明: {task.description}")
    lines.append(f"  優先度: {task.priority.value}")
    lines.append(f"  状態: {STATUS_LABEL[task.status.value]}")
    if task.when_time is not None:
        lines.append(f"  期限: {format_datetime(task.when_time, tz)}")
    if detailed:
        if task.reminder_time is not None:
            lines.append(f"  リマインダー: {format_datetime(task.reminder_time, tz)}")
        if task.tags:
            lines.append("  タグ: " + " ".join(f"#{tag}" for tag in task.tags))
        if task.assignee:
            lines.append(f"  担当: {task.assignee}")
        lines.append(f"  作成: {format_datetime(task.created_at, tz)}")
        if task.completed_at is not None:
            lines.append(f"  完了: {format_datetime(task.completed_at, tz)}")
        if task.reflection:
            lines.append(f"  振り返り: {task.reflection}")
    return "\n".join(lines)


def format_task_list(
    tasks: Iterable[Task],
    header: str,
    fmt: str = "compact",
    now: Optional[datetime] = None,
    undated_marker: bool = False,
) -> str:
    """番号付きリストとして整形。undated_markerで期限なしに印を付ける"""
    items: List[str] = [header, ""]
    separator = "-" * 40
    for index, task in enumerate(tasks, start=1):
        text = format_task(task, fmt, now)
        if undated_marker and task.when_time is None:
            text = f"(期限なし) {text}"
        items.append(f"{index}. {text}")
        if fmt != "compact":
            items.extend([separator, ""])
    return "\n".join(items).rstrip()
