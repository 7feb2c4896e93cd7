#!/usr/bin/env python3
"""
Todo管理CLI - エージェントやスケジューラーがsubprocess経由で呼び出すコマンドラインインターフェース

Usage:
    python -m src.todo.cli list [--status pending|completed|all] [--date-range today|week|month|overdue] [--format json|text]
    python -m src.todo.cli add --title "タイトル" [--when "tomorrow 3pm"] [--remind "15 minutes before"] [--priority high|medium|low] [--tags "a,b"]
    python -m src.todo.cli update --id ID [--title ...] [--when ...] [--clear-when] [--remind ...] [--clear-reminder] [--status pending|completed]
    python -m src.todo.cli complete --id ID [--reflection "振り返り"]
    python -m src.todo.cli delete --id ID
    python -m src.todo.cli get --id ID
    python -m src.todo.cli daily
    python -m src.todo.cli remind --id ID [--text]
    python -m src.todo.cli snooze --id ID [--minutes 30]
    python -m src.todo.cli stats
    echo '{"command": "CreateTask", "title": "..."}' | python -m src.todo.cli exec

結果は --format json でCommandResultのJSON、text で本文を標準出力に出す。
ログは標準エラーにのみ出す。エラー時の終了コードは1。
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Dict, Optional

from .commands import dispatch
from .config import Config
from .file_lock import install_exit_handlers
from .logger import setup_logger
from .manager import TodoManager
from .schemas import CommandResult

logger = logging.getLogger(__name__)


def print_result(result: CommandResult, output_format: str) -> int:
    """CommandResultを出力し、終了コードを返す"""
    if output_format == "json":
        print(json.dumps(result.to_dict(), ensure_ascii=False))
    elif result.ok:
        if isinstance(result.result, str):
            print(result.result)
        else:
            print(json.dumps(result.result, ensure_ascii=False, indent=2))
    else:
        print(f"Error: {result.error}", file=sys.stderr)
    return 0 if result.ok else 1


def run_command(manager: TodoManager, args: Dict[str, Any], output_format: str) -> int:
    """Noneの引数を除いてコマンドを実行"""
    payload = {key: value for key, value in args.items() if value is not None}
    return print_result(dispatch(manager, payload), output_format)


def cmd_list(manager: TodoManager, args: argparse.Namespace) -> int:
    """Todoリストを表示"""
    return run_command(
        manager,
        {
            "command": "ListTasks",
            "status": args.status,
            "priority": args.priority,
            "tag": args.tag,
            "dateRange": args.date_range,
            "sortBy": args.sort_by,
            "format": args.view,
        },
        args.format,
    )


def cmd_add(manager: TodoManager, args: argparse.Namespace) -> int:
    """新しいTodoを追加"""
    return run_command(
        manager,
        {
            "command": "CreateTask",
            "title": args.title,
            "description": args.description,
            "when": args.when,
            "remind": args.remind,
            "reminderTime": args.reminder_time,
            "priority": args.priority,
            "tags": args.tags,
            "assignee": args.assignee,
            "autoLog": True if args.auto_log else None,
        },
        args.format,
    )


def cmd_update(manager: TodoManager, args: argparse.Namespace) -> int:
    """既存のTodoを更新"""
    payload: Dict[str, Any] = {
        "command": "UpdateTask",
        "todoId": args.id,
        "title": args.title,
        "description": args.description,
        "when": args.when,
        "remind": args.remind,
        "reminderTime": args.reminder_time,
        "priority": args.priority,
        "tags": args.tags,
        "status": args.status,
        "reflection": args.reflection,
    }
    if args.clear_when:
        payload["when"] = ""
    if args.clear_reminder:
        payload["reminderTime"] = ""
    return run_command(manager, payload, args.format)


def cmd_complete(manager: TodoManager, args: argparse.Namespace) -> int:
    """Todoを完了状態にする"""
    return run_command(
        manager,
        {"command": "UpdateTask", "todoId": args.id, "status": "completed", "reflection": args.reflection},
        args.format,
    )


def cmd_delete(manager: TodoManager, args: argparse.Namespace) -> int:
    """Todoを削除"""
    return run_command(manager, {"command": "DeleteTask", "todoId": args.id}, args.format)


def cmd_get(manager: TodoManager, args: argparse.Namespace) -> int:
    """特定のTodoを取得"""
    return run_command(manager, {"command": "GetTaskDetail", "todoId": args.id}, args.format)


def cmd_daily(manager: TodoManager, args: argparse.Namespace) -> int:
    """今日のTodoを表示"""
    return run_command(manager, {"command": "GetDailyTasks"}, args.format)


def cmd_remind(manager: TodoManager, args: argparse.Namespace) -> int:
    """リマインダーを発火"""
    return run_command(
        manager,
        {"command": "FireReminder", "todoId": args.id, "format": "text" if args.text else None},
        args.format,
    )


def cmd_snooze(manager: TodoManager, args: argparse.Namespace) -> int:
    """リマインダーを延期"""
    return run_command(
        manager, {"command": "SnoozeReminder", "todoId": args.id, "minutes": args.minutes}, args.format
    )


def cmd_stats(manager: TodoManager, args: argparse.Namespace) -> int:
    """Todoの集計を表示"""
    return run_command(manager, {"command": "GetStats"}, args.format)


def cmd_exec(manager: TodoManager, args: argparse.Namespace) -> int:
    """標準入力のJSON（{"command": ..., ...}）を実行し、結果をJSONで出力"""
    raw = sys.stdin.read()
    try:
        payload = json.loads(raw) if raw.strip() else None
    except json.JSONDecodeError as exc:
        return print_result(CommandResult.failure(f"Invalid JSON input: {exc}"), "json")
    if not isinstance(payload, dict):
        return print_result(CommandResult.failure("Input must be a JSON object"), "json")
    return print_result(dispatch(manager, payload), "json")


COMMAND_HANDLERS = {
    "list": cmd_list,
    "add": cmd_add,
    "update": cmd_update,
    "complete": cmd_complete,
    "delete": cmd_delete,
    "get": cmd_get,
    "daily": cmd_daily,
    "remind": cmd_remind,
    "snooze": cmd_snooze,
    "stats": cmd_stats,
    "exec": cmd_exec,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Todo管理CLI - subprocess経由で呼び出すインターフェース",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", type=str, help="設定ファイルのパス（デフォルト: config/app_config.yaml）")
    parser.add_argument("--data-dir", type=str, help="データディレクトリ（デフォルト: data/）")

    # 出力フォーマットは各サブコマンド共通
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--format",
        choices=["json", "text"],
        default="text",
        help="出力フォーマット（デフォルト: text）",
    )

    subparsers = parser.add_subparsers(dest="command", help="実行するコマンド", required=True)

    # list コマンド
    parser_list = subparsers.add_parser("list", parents=[common], help="Todoリストを表示")
    parser_list.add_argument("--status", choices=["pending", "completed", "all"], help="状態（デフォルト: pending）")
    parser_list.add_argument("--priority", choices=["high", "medium", "low"], help="優先度")
    parser_list.add_argument("--tag", help="タグ")
    parser_list.add_argument("--date-range", choices=["today", "week", "month", "overdue"], help="期間")
    parser_list.add_argument("--sort-by", choices=["whenTime", "priority", "createdAt"], help="並び順")
    parser_list.add_argument("--view", choices=["compact", "standard", "detailed"], help="表示形式")

    # add コマンド
    parser_add = subparsers.add_parser("add", parents=[common], help="新しいTodoを追加")
    parser_add.add_argument("--title", required=True, help="Todoのタイトル")
    parser_add.add_argument("--description", help="Todoの詳細説明")
    parser_add.add_argument("--when", help="期限（例: tomorrow 3pm, 明日 15時）")
    parser_add.add_argument("--remind", help="リマインダー（例: 15 minutes before）")
    parser_add.add_argument("--reminder-time", help="リマインダー時刻（自然言語またはISO形式）")
    parser_add.add_argument("--priority", choices=["high", "medium", "low"], help="優先度（デフォルト: medium）")
    parser_add.add_argument("--tags", help="カンマ区切りのタグ")
    parser_add.add_argument("--assignee", help="担当者")
    parser_add.add_argument("--auto-log", action="store_true", help="完了時に日記へ記録")

    # update コマンド
    parser_update = subparsers.add_parser("update", parents=[common], help="既存のTodoを更新")
    parser_update.add_argument("--id", required=True, help="更新するTodoのID")
    parser_update.add_argument("--title", help="新しいタイトル")
    parser_update.add_argument("--description", help="新しい詳細説明")
    parser_update.add_argument("--when", help="新しい期限")
    parser_update.add_argument("--clear-when", action="store_true", help="期限をクリア")
    parser_update.add_argument("--remind", help="新しいリマインダー（期限からのオフセット）")
    parser_update.add_argument("--reminder-time", help="新しいリマインダー時刻")
    parser_update.add_argument("--clear-reminder", action="store_true", help="リマインダーをクリア")
    parser_update.add_argument("--priority", choices=["high", "medium", "low"], help="新しい優先度")
    parser_update.add_argument("--tags", help="カンマ区切りのタグ")
    parser_update.add_argument("--status", choices=["pending", "completed"], help="新しいステータス")
    parser_update.add_argument("--reflection", help="振り返り")

    # complete コマンド
    parser_complete = subparsers.add_parser("complete", parents=[common], help="Todoを完了状態にする")
    parser_complete.add_argument("--id", required=True, help="完了するTodoのID")
    parser_complete.add_argument("--reflection", help="振り返り")

    # delete / get コマンド
    parser_delete = subparsers.add_parser("delete", parents=[common], help="Todoを削除")
    parser_delete.add_argument("--id", required=True, help="削除するTodoのID")
    parser_get = subparsers.add_parser("get", parents=[common], help="特定のTodoを取得")
    parser_get.add_argument("--id", required=True, help="取得するTodoのID")

    subparsers.add_parser("daily", parents=[common], help="今日のTodoを表示")

    # remind / snooze コマンド
    parser_remind = subparsers.add_parser("remind", parents=[common], help="リマインダーを発火")
    parser_remind.add_argument("--id", required=True, help="対象TodoのID")
    parser_remind.add_argument("--text", action="store_true", help="テキスト形式のリマインダー")
    parser_snooze = subparsers.add_parser("snooze", parents=[common], help="リマインダーを延期")
    parser_snooze.add_argument("--id", required=True, help="対象TodoのID")
    parser_snooze.add_argument("--minutes", type=int, default=30, help="延期する分数（デフォルト: 30）")

    subparsers.add_parser("stats", parents=[common], help="Todoの集計を表示")
    subparsers.add_parser("exec", help="標準入力のJSONコマンドを実行")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """CLIエントリポイント"""
    args = build_parser().parse_args(argv)

    try:
        config = Config.load(args.config)
    except (FileNotFoundError, ValueError) as exc:
        print(f"Error: 設定の読み込みに失敗しました: {exc}", file=sys.stderr)
        return 1
    if args.data_dir:
        config.store.data_dir = args.data_dir

    # 標準出力は結果専用
    setup_logger(log_level=config.log_level, log_file=None)
    install_exit_handlers()

    manager = TodoManager.from_config(config)
    try:
        return COMMAND_HANDLERS[args.command](manager, args)
    except Exception as exc:
        logger.error(f"Unexpected error in {args.command}: {exc}", exc_info=True)
        print(json.dumps(CommandResult.failure(f"Unexpected error: {exc}").to_dict(), ensure_ascii=False))
        return 1
    finally:
        manager.close()


if __name__ == "__main__":
    sys.exit(main())
