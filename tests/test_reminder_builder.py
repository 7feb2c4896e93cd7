"""ReminderBuilderのテストコード"""

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from src.todo.models import SubTask, Task, TaskPriority, TaskStatus
from src.todo.reminder_builder import (
    ReminderBuilder,
    calculate_progress,
    generate_overdue_info,
    generate_time_info,
    overdue_severity,
)

TZ = ZoneInfo("Asia/Tokyo")
NOW = datetime(2025, 1, 15, 10, 0, tzinfo=TZ)


def make_task(**kwargs):
    kwargs.setdefault("created_at", NOW - timedelta(hours=10))
    kwargs.setdefault("updated_at", NOW - timedelta(hours=10))
    return Task(id="todo_1736900000000_abcd1234", title=kwargs.pop("title", "Pay rent"), **kwargs)


def test_progress_from_sub_tasks():
    task = make_task(sub_tasks=[SubTask("a", True), SubTask("b"), SubTask("c", True), SubTask("d")])
    assert calculate_progress(task, NOW) == 0.5


def test_progress_from_elapsed_time():
    task = make_task(when_time=NOW + timedelta(hours=10))
    assert calculate_progress(task, NOW) == pytest.approx(0.5)


def test_progress_after_deadline_and_without_dates():
    overdue = make_task(when_time=NOW - timedelta(hours=1))
    assert calculate_progress(overdue, NOW) == 0.0
    overdue.status = TaskStatus.COMPLETED
    assert calculate_progress(overdue, NOW) == 1.0

    assert calculate_progress(make_task(), NOW) == 0.0
    # 作成日時が期限より後ならバイナリ判定
    assert calculate_progress(make_task(created_at=NOW + timedelta(hours=2), when_time=NOW + timedelta(hours=1)), NOW) == 0.0


@pytest.mark.parametrize("days, expected", [(0, "mild"), (2, "mild"), (3, "moderate"), (6, "moderate"), (7, "severe")])
def test_overdue_severity(days, expected):
    assert overdue_severity(days) == expected


def test_overdue_info():
    task = make_task(when_time=NOW - timedelta(days=3, hours=5))
    assert generate_overdue_info(task, NOW) == {"daysOverdue": 3, "hoursOverdue": 5, "severity": "moderate"}
    assert generate_overdue_info(make_task(when_time=NOW + timedelta(hours=1)), NOW) is None


def test_time_info():
    assert generate_time_info(make_task(when_time=NOW + timedelta(minutes=20)), NOW) == {
        "timeRemaining": "あと20分",
        "minutesRemaining": 20,
        "isUrgent": True,
    }
    assert generate_time_info(make_task(when_time=NOW + timedelta(hours=5)), NOW)["timeRemaining"] == "あと5時間"
    assert generate_time_info(make_task(when_time=NOW + timedelta(days=2)), NOW)["timeRemaining"] == "あと2日"
    assert generate_time_info(make_task(when_time=NOW - timedelta(minutes=1)), NOW)["timeRemaining"] == "期限切れ"


def test_build_normal_payload():
    builder = ReminderBuilder(agent_name="Nova")
    task = make_task(when_time=NOW + timedelta(hours=1), priority=TaskPriority.HIGH, tags=["home"])

    payload = builder.build(task, "normal", now=NOW, session_id="s1")

    assert payload["version"] == "2.0"
    assert payload["type"] == "TODO_REMINDER"
    assert payload["reminderType"] == "normal"
    assert payload["priority"] == "high"
    data = payload["data"]
    assert data["id"] == f"reminder_{int(NOW.timestamp() * 1000)}_abcd1234"
    assert data["todoId"] == task.id
    assert data["content"] == "Pay rent"
    assert data["deadline"] == (NOW + timedelta(hours=1)).isoformat()
    assert data["tags"] == ["home"]
    assert "overdueInfo" not in data
    assert payload["metadata"]["agentName"] == "Nova"
    assert payload["metadata"]["sessionId"] == "s1"
    assert [a["type"] for a in payload["actions"]] == ["complete", "view", "snooze"]
    assert payload["display"]["color"] == "#e74c3c"
    assert payload["display"]["playSound"] is True


def test_build_overdue_payload():
    task = make_task(when_time=NOW - timedelta(days=8), title="  ")
    payload = ReminderBuilder().build(task, "overdue", now=NOW)

    assert payload["data"]["title"] == "無題のTodo"
    assert payload["data"]["overdueInfo"]["severity"] == "severe"
    assert [a["type"] for a in payload["actions"]] == ["complete", "view", "reschedule"]
    assert payload["display"]["color"] == "#e74c3c"


def test_build_rejects_unknown_kind():
    with pytest.raises(ValueError):
        ReminderBuilder().build(make_task(), "weekly", now=NOW)


def test_build_daily_summary():
    today = [make_task(title="Today", when_time=NOW + timedelta(hours=3))]
    overdue = [make_task(title="Late", when_time=NOW - timedelta(days=2))]
    undated = [make_task(title="Someday")]
    upcoming = [make_task(title=f"Later {n}", when_time=NOW + timedelta(days=n + 1)) for n in range(4)]

    payload = ReminderBuilder().build_daily_summary(today, overdue, undated, NOW, upcoming=upcoming)

    assert payload["reminderType"] == "daily_summary"
    summary = payload["data"]["summary"]
    assert summary == {"date": "2025-01-15", "total": 7, "today": 1, "overdue": 1, "undated": 1, "upcoming": 4}
    content = payload["data"]["content"]
    assert "【期限切れ】(1件)" in content
    assert "【今日】(1件)" in content
    assert "【今後】(4件)" in content
    assert "ほか 1 件" in content
    assert "【期限なし】(1件)" in content
    assert payload["display"]["playSound"] is False
    assert {item["bucket"] for item in payload["data"]["relatedTodos"]} == {"overdue", "today", "undated"}


def test_build_text():
    task = make_task(when_time=NOW + timedelta(hours=5))
    text = ReminderBuilder().build_text(task, NOW)
    assert text.startswith("【Todoリマインダー】")
    assert "期限まであと 5 時間" in text
    assert task.id in text
