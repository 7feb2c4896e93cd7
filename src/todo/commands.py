"""
コマンドディスパッチ

{"command": "CreateTask", "title": ..., ...} 形式の引数辞書を受け取り、
入力を検証して TodoManager の操作を呼び出し、CommandResult を返す。
旧名（CreateTodo, RemindTodo ...）も別名として受け付ける。
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict

from .analyzer import format_stats
from .exceptions import TodoError
from .formatting import format_datetime, format_task, format_task_list
from .manager import TodoManager
from .schemas import (
    BatchCreateInput,
    BatchDeleteInput,
    BatchUpdateInput,
    CommandResult,
    CreateTaskInput,
    DailyTasksInput,
    FireReminderInput,
    ListTasksInput,
    SnoozeInput,
    TaskIdInput,
    UpdateTaskInput,
    validate_input,
)

logger = logging.getLogger(__name__)

Handler = Callable[[TodoManager, Dict[str, Any]], CommandResult]

HANDLED_MESSAGES = {
    "completed": "このTodoは完了済みのため、リマインダーは不要です",
    "already_sent": "このTodoのリマインダーは送信済みです",
    "retry_pending": "リマインダーは再送待ちです",
}


def _batch_summary(label: str, details) -> str:
    succeeded = sum(1 for item in details if item.get("status") == "success")
    return f"{label}: 成功 {succeeded}件 / 失敗 {len(details) - succeeded}件"


def create_task(manager: TodoManager, args: Dict[str, Any]) -> CommandResult:
    params = validate_input(CreateTaskInput, args)
    task, default_reminder = manager.create_task(params)
    text = "Todoを作成しました\n\n" + format_task(task, params.format, manager.now())
    if default_reminder:
        text += f"\n\n（期限の{manager.default_reminder_minutes}分前にリマインダーを設定しました）"
    return CommandResult.success(text, data=task.to_dict())


def list_tasks(manager: TodoManager, args: Dict[str, Any]) -> CommandResult:
    params = validate_input(ListTasksInput, args)
    tasks = manager.list_tasks(params)
    if not tasks:
        return CommandResult.success("該当するTodoはありません", data=[])
    text = format_task_list(tasks, f"Todo一覧 ({len(tasks)}件)", params.format, manager.now())
    return CommandResult.success(text, data=[task.to_dict() for task in tasks])


def update_task(manager: TodoManager, args: Dict[str, Any]) -> CommandResult:
    params = validate_input(UpdateTaskInput, args)
    task = manager.update_task(params)
    heading = "Todoを完了しました" if params.status == "completed" else "Todoを更新しました"
    return CommandResult.success(
        f"{heading}\n\n" + format_task(task, params.format, manager.now()), data=task.to_dict()
    )


def delete_task(manager: TodoManager, args: Dict[str, Any]) -> CommandResult:
    params = validate_input(TaskIdInput, args)
    task = manager.delete_task(params.todo_id)
    return CommandResult.success(f"Todoを削除しました: {task.title}", data={"id": task.id})


def get_task_detail(manager: TodoManager, args: Dict[str, Any]) -> CommandResult:
    params = validate_input(TaskIdInput, args)
    task = manager.get_task(params.todo_id)
    return CommandResult.success(format_task(task, params.format, manager.now()), data=task.to_dict())


def get_daily_tasks(manager: TodoManager, args: Dict[str, Any]) -> CommandResult:
    params = validate_input(DailyTasksInput, args)
    dated, undated = manager.get_daily_tasks()
    tasks = dated + undated
    if not tasks:
        return CommandResult.success("今日のTodoはありません", data=[])
    text = format_task_list(tasks, f"今日のTodo ({len(tasks)}件)", params.format, manager.now(), undated_marker=True)
    return CommandResult.success(text, data=[task.to_dict() for task in tasks])


def fire_reminder(manager: TodoManager, args: Dict[str, Any]) -> CommandResult:
    params = validate_input(FireReminderInput, args)
    outcome = manager.fire_reminder(params)
    if outcome.handled:
        return CommandResult.success(
            HANDLED_MESSAGES[outcome.reason],
            data={"todoId": outcome.task.id, "handled": True, "reason": outcome.reason},
        )
    return CommandResult.success(
        outcome.payload,
        data={"todoId": outcome.task.id, "handled": False, "delivered": outcome.delivered},
    )


def snooze_reminder(manager: TodoManager, args: Dict[str, Any]) -> CommandResult:
    params = validate_input(SnoozeInput, args)
    task = manager.snooze_reminder(params.todo_id, params.minutes)
    reminder = format_datetime(task.reminder_time, manager.parser.tz)
    return CommandResult.success(
        f"リマインダーを{params.minutes}分後に延期しました ({reminder})", data=task.to_dict()
    )


def batch_create(manager: TodoManager, args: Dict[str, Any]) -> CommandResult:
    params = validate_input(BatchCreateInput, args)
    created, details = manager.batch_create(params.todos)
    text = _batch_summary("一括作成", details)
    if created:
        text += "\n\n" + format_task_list(created, "作成したTodo", params.format, manager.now())
    return CommandResult.success(text, details=details)


def batch_update(manager: TodoManager, args: Dict[str, Any]) -> CommandResult:
    params = validate_input(BatchUpdateInput, args)
    updated, details = manager.batch_update(params.updates)
    text = _batch_summary("一括更新", details)
    if updated:
        text += "\n\n" + format_task_list(updated, "更新したTodo", params.format, manager.now())
    return CommandResult.success(text, details=details)


def batch_delete(manager: TodoManager, args: Dict[str, Any]) -> CommandResult:
    params = validate_input(BatchDeleteInput, args)
    _, details = manager.batch_delete(params.todo_ids)
    return CommandResult.success(_batch_summary("一括削除", details), details=details)


def get_stats(manager: TodoManager, args: Dict[str, Any]) -> CommandResult:
    stats = manager.get_stats()
    return CommandResult.success(format_stats(stats), data=stats)


COMMANDS: Dict[str, Handler] = {
    "CreateTask": create_task,
    "ListTasks": list_tasks,
    "UpdateTask": update_task,
    "DeleteTask": delete_task,
    "GetTaskDetail": get_task_detail,
    "GetDailyTasks": get_daily_tasks,
    "FireReminder": fire_reminder,
    "SnoozeReminder": snooze_reminder,
    "BatchCreate": batch_create,
    "BatchUpdate": batch_update,
    "BatchDelete": batch_delete,
    "GetStats": get_stats,
}

ALIASES = {
    "CreateTodo": "CreateTask",
    "ListTodos": "ListTasks",
    "UpdateTodo": "UpdateTask",
    "DeleteTodo": "DeleteTask",
    "GetTodoDetail": "GetTaskDetail",
    "GetDailyTodos": "GetDailyTasks",
    "RemindTodo": "FireReminder",
    "AnalyzeTodos": "GetStats",
}


def resolve_command(name: str) -> str:
    return ALIASES.get(name, name)


def dispatch(manager: TodoManager, args: Dict[str, Any]) -> CommandResult:
    """
    コマンドを実行

    Args:
        manager: 操作の実行先
        args: "command" キーを含む引数辞書

    Returns:
        CommandResult（TodoErrorはstatus=errorの結果に変換される）
    """
    raw_name = args.get("command")
    if not raw_name:
        return CommandResult.failure("Missing command")
    name = resolve_command(str(raw_name))
    handler = COMMANDS.get(name)
    if handler is None:
        return CommandResult.failure(f"Unknown command: {raw_name}")

    try:
        return handler(manager, args)
    except TodoError as e:
        logger.warning(f"{name} failed: {e}")
        return CommandResult.failure(str(e))
