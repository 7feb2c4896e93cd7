"""コマンドディスパッチのテストコード"""

import pytest

from src.todo.commands import COMMANDS, dispatch, resolve_command


def test_create_and_get_detail(manager):
    created = dispatch(manager, {"command": "CreateTask", "title": "Pay rent", "when": "tomorrow 3pm", "tags": "home, money"})

    assert created.ok
    assert created.result.startswith("Todoを作成しました")
    assert "60分前にリマインダーを設定しました" in created.result
    assert created.data["tags"] == ["home", "money"]

    detail = dispatch(manager, {"command": "GetTaskDetail", "todoId": created.data["id"]})
    assert detail.ok
    assert "Pay rent" in detail.result
    assert detail.data["id"] == created.data["id"]


@pytest.mark.parametrize(
    "alias, name",
    [
        ("CreateTodo", "CreateTask"),
        ("ListTodos", "ListTasks"),
        ("UpdateTodo", "UpdateTask"),
        ("DeleteTodo", "DeleteTask"),
        ("GetTodoDetail", "GetTaskDetail"),
        ("GetDailyTodos", "GetDailyTasks"),
        ("RemindTodo", "FireReminder"),
        ("AnalyzeTodos", "GetStats"),
        ("BatchCreate", "BatchCreate"),
    ],
)
def test_legacy_names_resolve(alias, name):
    assert resolve_command(alias) == name
    assert name in COMMANDS


def test_legacy_create_todo_with_due_date(manager):
    result = dispatch(manager, {"command": "CreateTodo", "title": "Dentist", "dueDate": "2025-01-20", "dueTime": "14:30"})

    assert result.ok
    assert result.data["whenTime"].startswith("2025-01-20T14:30")


def test_missing_and_unknown_command(manager):
    missing = dispatch(manager, {"title": "x"})
    assert not missing.ok
    assert missing.error == "Missing command"

    unknown = dispatch(manager, {"command": "Teleport"})
    assert not unknown.ok
    assert unknown.error == "Unknown command: Teleport"


def test_errors_become_single_line_results(manager):
    result = dispatch(manager, {"command": "CreateTask"})
    assert not result.ok
    assert result.error.startswith("Invalid input:")
    assert "\n" not in result.error

    result = dispatch(manager, {"command": "DeleteTask", "todoId": "todo_missing"})
    assert result.to_dict() == {"status": "error", "error": "Todo not found: todo_missing"}


def test_list_update_and_delete(manager):
    assert dispatch(manager, {"command": "ListTasks"}).result == "該当するTodoはありません"

    todo_id = dispatch(manager, {"command": "CreateTask", "title": "Write report"}).data["id"]
    listed = dispatch(manager, {"command": "ListTasks", "format": "compact"})
    assert listed.result.startswith("Todo一覧 (1件)")

    completed = dispatch(manager, {"command": "UpdateTask", "todoId": todo_id, "status": "completed"})
    assert completed.result.startswith("Todoを完了しました")
    assert dispatch(manager, {"command": "ListTasks"}).data == []
    assert len(dispatch(manager, {"command": "ListTasks", "status": "all"}).data) == 1

    deleted = dispatch(manager, {"command": "DeleteTask", "todoId": todo_id})
    assert deleted.result == "Todoを削除しました: Write report"


def test_fire_reminder_results(manager, notifier):
    todo_id = dispatch(manager, {"command": "CreateTask", "title": "Call mom", "when": "tomorrow 3pm"}).data["id"]

    fired = dispatch(manager, {"command": "FireReminder", "todoId": todo_id})
    assert fired.ok
    assert fired.result["type"] == "TODO_REMINDER"
    assert fired.data == {"todoId": todo_id, "handled": False, "delivered": True}

    again = dispatch(manager, {"command": "RemindTodo", "todoId": todo_id})
    assert again.result == "このTodoのリマインダーは送信済みです"
    assert again.data["reason"] == "already_sent"


def test_snooze(manager):
    todo_id = dispatch(manager, {"command": "CreateTask", "title": "Stretch", "when": "tomorrow 3pm"}).data["id"]

    result = dispatch(manager, {"command": "SnoozeReminder", "todoId": todo_id, "minutes": 15})
    assert result.ok
    assert result.result.startswith("リマインダーを15分後に延期しました")

    invalid = dispatch(manager, {"command": "SnoozeReminder", "todoId": todo_id, "minutes": 0})
    assert not invalid.ok


def test_batch_commands_report_per_item(manager):
    created = dispatch(
        manager,
        {"command": "BatchCreate", "todos": [{"title": "A"}, {"description": "no title"}, {"title": "B", "when": "tomorrow"}]},
    )
    assert created.result.startswith("一括作成: 成功 2件 / 失敗 1件")
    assert [d["status"] for d in created.details] == ["success", "error", "success"]
    ids = [d["id"] for d in created.details if d["status"] == "success"]

    updated = dispatch(
        manager,
        {"command": "BatchUpdate", "updates": [{"todoId": ids[0], "priority": "high"}, {"todoId": "todo_missing", "title": "x"}]},
    )
    assert updated.result.startswith("一括更新: 成功 1件 / 失敗 1件")
    assert updated.details[1] == {
        "status": "error",
        "index": 1,
        "id": "todo_missing",
        "error": "Todo not found: todo_missing",
    }

    deleted = dispatch(manager, {"command": "BatchDelete", "todoIds": f"{ids[0]}, todo_missing"})
    assert deleted.result == "一括削除: 成功 1件 / 失敗 1件"
    assert deleted.details == [
        {"status": "success", "id": ids[0], "title": "A"},
        {"status": "error", "id": "todo_missing", "error": "Todo not found: todo_missing"},
    ]


def test_stats(manager):
    dispatch(manager, {"command": "CreateTask", "title": "A", "priority": "high"})
    result = dispatch(manager, {"command": "AnalyzeTodos"})

    assert result.ok
    assert result.data["total"] == 1
    assert result.data["byPriority"]["high"] == 1
