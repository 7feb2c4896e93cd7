"""
リマインダー通知ペイロードの組み立て

構造化フォーマット（version 2.0）と、互換用のテキストフォーマットを生成する。
数値ロジックは進捗率（calculate_progress）と期限超過の重大度のみで、
それ以外は表示用の整形。
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Dict, List, Optional

from .formatting import PRIORITY_MARK, format_datetime, format_task
from .models import Task, TaskPriority

PAYLOAD_VERSION = "2.0"
PAYLOAD_TYPE = "TODO_REMINDER"

REMINDER_KINDS = ("normal", "overdue", "daily_summary")

URGENT_MINUTES = 30
SNOOZE_DEFAULT_MINUTES = 30

_PRIORITY_DISPLAY = {
    "high": {"color": "#e74c3c", "icon": "exclamation-circle"},
    "medium": {"color": "#f39c12", "icon": "clock"},
    "low": {"color": "#2ecc71", "icon": "check-circle"},
    "normal": {"color": "#3498db", "icon": "circle"},
}
_OVERDUE_COLOR = "#e74c3c"
_SUMMARY_COLOR = "#3498db"


def _epoch_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def calculate_progress(task: Task, now: datetime) -> float:
    """
    進捗率を0.0〜1.0で計算

    1. サブタスクがあれば完了済みサブタスクの割合
    2. 作成日時と期限があれば経過時間の割合（期限を過ぎていれば完了=1, 未完了=0）
    3. それ以外は完了=1, 未完了=0
    """
    if task.sub_tasks:
        done = sum(1 for sub in task.sub_tasks if sub.completed)
        return done / len(task.sub_tasks)

    if task.when_time is not None and task.created_at is not None:
        if now >= task.when_time:
            return 1.0 if task.is_completed else 0.0
        total = (task.when_time - task.created_at).total_seconds()
        if total <= 0:
            return 1.0 if task.is_completed else 0.0
        elapsed = (now - task.created_at).total_seconds()
        return min(max(elapsed / total, 0.0), 1.0)

    return 1.0 if task.is_completed else 0.0


def generate_time_info(task: Task, now: datetime) -> Dict[str, Any]:
    """期限までの残り時間の表示用情報"""
    if task.when_time is None:
        return {"timeRemaining": None, "minutesRemaining": None, "isUrgent": False}

    diff_seconds = (task.when_time - now).total_seconds()
    minutes = math.floor(diff_seconds / 60)
    if diff_seconds < 0:
        remaining = "期限切れ"
    elif minutes < 60:
        remaining = f"あと{minutes}分"
    elif minutes < 24 * 60:
        remaining = f"あと{minutes // 60}時間"
    else:
        remaining = f"あと{minutes // (24 * 60)}日"

    return {
        "timeRemaining": remaining,
        "minutesRemaining": minutes if minutes > 0 else None,
        "isUrgent": 0 < minutes <= URGENT_MINUTES,
    }


def overdue_severity(days_overdue: int) -> str:
    """経過日数（切り捨て）から重大度を決定: 3日未満mild, 3-6日moderate, 7日以上severe"""
    if days_overdue >= 7:
        return "severe"
    if days_overdue >= 3:
        return "moderate"
    return "mild"


def generate_overdue_info(task: Task, now: datetime) -> Optional[Dict[str, Any]]:
    if task.when_time is None:
        return None
    overdue_seconds = (now - task.when_time).total_seconds()
    if overdue_seconds <= 0:
        return None
    days = int(overdue_seconds // 86400)
    hours = int((overdue_seconds % 86400) // 3600)
    return {"daysOverdue": days, "hoursOverdue": hours, "severity": overdue_severity(days)}


def generate_actions(task: Task, kind: str) -> List[Dict[str, Any]]:
    """通知に添えるフォローアップ操作"""
    actions = [
        {
            "type": "complete",
            "label": "完了にする",
            "command": f"UpdateTask status:completed todoId:{task.id}",
            "disabled": False,
        },
        {
            "type": "view",
            "label": "詳細を見る",
            "command": f"GetTaskDetail todoId:{task.id}",
            "disabled": False,
        },
    ]
    if kind == "normal" and task.when_time is not None:
        actions.append(
            {
                "type": "snooze",
                "label": "後で通知",
                "command": f"SnoozeReminder todoId:{task.id} minutes:{SNOOZE_DEFAULT_MINUTES}",
                "disabled": False,
            }
        )
    if kind == "overdue":
        actions.append(
            {
                "type": "reschedule",
                "label": "期限を変更",
                "command": f"UpdateTask todoId:{task.id} when:tomorrow",
                "disabled": False,
            }
        )
    return actions


def generate_display_config(priority: Optional[str], kind: str) -> Dict[str, Any]:
    config = _PRIORITY_DISPLAY.get(priority or "normal", _PRIORITY_DISPLAY["normal"])
    color = config["color"]
    if kind == "overdue":
        color = _OVERDUE_COLOR
    elif kind == "daily_summary":
        color = _SUMMARY_COLOR
    return {
        "showNotification": True,
        "playSound": kind != "daily_summary",
        "icon": config["icon"],
        "color": color,
    }


class ReminderBuilder:
    """タスクごと・種類ごとの通知ペイロードを生成"""

    def __init__(self, agent_name: str = "System", source: str = "TodoManager"):
        self.agent_name = agent_name
        self.source = source

    def build(
        self,
        task: Task,
        kind: str = "normal",
        now: Optional[datetime] = None,
        agent_name: Optional[str] = None,
        session_id: Optional[str] = None,
        message_id: Optional[str] = None,
        summary: Optional[Dict[str, Any]] = None,
        related_todos: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        """
        構造化リマインダー（v2.0）を生成

        Args:
            task: 対象Todo（日次サマリーでは擬似Todo）
            kind: "normal" / "overdue" / "daily_summary"
            now: 基準時刻
            summary / related_todos: 日次サマリー用の集計とTodo一覧

        Returns:
            JSONシリアライズ可能な辞書
        """
        if kind not in REMINDER_KINDS:
            raise ValueError(f"Unknown reminder kind: {kind}")
        now = now or datetime.now().astimezone()
        ts = _epoch_ms(now)

        title = task.title.strip() if task.title and task.title.strip() else "無題のTodo"
        content = task.description.strip() if task.description and task.description.strip() else title
        priority = task.priority.value if isinstance(task.priority, TaskPriority) else "normal"

        payload: Dict[str, Any] = {
            "version": PAYLOAD_VERSION,
            "type": PAYLOAD_TYPE,
            "reminderType": kind,
            "priority": priority,
            "data": {
                "id": f"reminder_{ts}_{task.id.split('_')[-1]}",
                "todoId": task.id,
                "title": title,
                "content": content,
                "status": task.status.value,
                "deadline": task.when_time.isoformat() if task.when_time else None,
                "createdAt": _epoch_ms(task.created_at),
                "updatedAt": _epoch_ms(task.updated_at),
                "tags": list(task.tags),
                "assignee": task.assignee,
                "progress": calculate_progress(task, now),
                "timeInfo": generate_time_info(task, now),
                "subTasks": [sub.to_dict() for sub in task.sub_tasks],
            },
            "metadata": {
                "source": self.source,
                "agentName": agent_name or self.agent_name,
                "timestamp": ts,
                "sessionId": session_id,
                "messageId": message_id,
                "format": "structured",
            },
            "actions": generate_actions(task, kind),
            "display": generate_display_config(priority, kind),
        }

        if kind == "overdue":
            payload["data"]["overdueInfo"] = generate_overdue_info(task, now)
        elif kind == "daily_summary":
            payload["data"]["summary"] = summary
            payload["data"]["relatedTodos"] = related_todos or []
        return payload

    def build_daily_summary(
        self,
        today: List[Task],
        overdue: List[Task],
        undated: List[Task],
        now: datetime,
        upcoming: Optional[List[Task]] = None,
    ) -> Dict[str, Any]:
        """日次サマリーのペイロード（本文テキストをcontentに格納）"""
        upcoming = upcoming or []
        summary = {
            "date": now.date().isoformat(),
            "total": len(today) + len(overdue) + len(undated) + len(upcoming),
            "today": len(today),
            "overdue": len(overdue),
            "undated": len(undated),
            "upcoming": len(upcoming),
        }
        digest = Task(
            id="daily_summary",
            title="今日のTodoまとめ",
            description=self._summary_text(today, overdue, undated, upcoming, now),
            created_at=now,
            updated_at=now,
        )
        related = [
            {"todoId": t.id, "title": t.title, "priority": t.priority.value, "bucket": bucket}
            for bucket, tasks in (("overdue", overdue), ("today", today), ("undated", undated))
            for t in tasks
        ]
        return self.build(digest, "daily_summary", now=now, summary=summary, related_todos=related)

    @staticmethod
    def _summary_text(
        today: List[Task], overdue: List[Task], undated: List[Task], upcoming: List[Task], now: datetime
    ) -> str:
        total = len(today) + len(overdue) + len(undated) + len(upcoming)
        lines = [f"{now:%Y-%m-%d} の未完了Todoは {total} 件です", ""]

        if overdue:
            lines.append(f"【期限切れ】({len(overdue)}件)")
            for index, task in enumerate(overdue, start=1):
                days = int((now - task.when_time).total_seconds() // 86400)
                lines.append(f"{index}. {PRIORITY_MARK.get(task.priority.value, '')} {task.title} ({days}日超過)")
            lines.append("")

        if today:
            lines.append(f"【今日】({len(today)}件)")
            for index, task in enumerate(today, start=1):
                when = task.when_time.astimezone(now.tzinfo) if now.tzinfo else task.when_time
                lines.append(f"{index}. {PRIORITY_MARK.get(task.priority.value, '')} {task.title} {when:%H:%M}")
            lines.append("")

        if upcoming:
            lines.append(f"【今後】({len(upcoming)}件)")
            for index, task in enumerate(upcoming[:3], start=1):
                days_until = math.ceil((task.when_time - now).total_seconds() / 86400)
                lines.append(f"{index}. {PRIORITY_MARK.get(task.priority.value, '')} {task.title} ({days_until}日後)")
            if len(upcoming) > 3:
                lines.append(f"   ほか {len(upcoming) - 3} 件")
            lines.append("")

        if undated:
            lines.append(f"【期限なし】({len(undated)}件)")
        return "\n".join(lines).rstrip()

    def build_text(self, task: Task, now: datetime) -> str:
        """互換用のテキスト形式リマインダー"""
        lines = ["【Todoリマインダー】", "", f"現在時刻: {format_datetime(now)}", "", format_task(task, "detailed", now)]

        if task.when_time is not None:
            diff_seconds = (task.when_time - now).total_seconds()
            if diff_seconds < 0:
                lines.extend(["", f"注意: このTodoは期限を {int(-diff_seconds // 86400)} 日過ぎています"])
            else:
                hours = int(diff_seconds // 3600)
                if hours < 24:
                    lines.extend(["", f"期限まであと {hours} 時間"])
                else:
                    lines.extend(["", f"期限まであと {hours // 24} 日"])

        lines.extend(
            [
                "",
                "操作:",
                f"- 完了にする: UpdateTask todoId={task.id} status=completed",
                f"- 詳細を見る: GetTaskDetail todoId={task.id}",
            ]
        )
        return "\n".join(lines)
