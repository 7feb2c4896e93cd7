"""
ワンショットのスケジュールエントリ

リマインダー時刻を持つTodoごとに todo_remind_<id>.json を書き出す。
外部のスケジューラーがこのファイルを読み、指定時刻に
FireReminder コマンドを呼び出す。1タスク1ファイルなのでロック不要。
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from .models import Task

logger = logging.getLogger(__name__)

FIRE_COMMAND = "FireReminder"
TOOL_NAME = "TodoManager"


class ScheduleEntryWriter:
    """スケジュールエントリの作成・削除

    書き込みエラーはTodo操作自体を失敗させないため、ログに残して握りつぶす。
    """

    def __init__(self, schedule_dir: Path):
        self.schedule_dir = Path(schedule_dir)

    @staticmethod
    def entry_name(task_id: str) -> str:
        return f"todo_remind_{task_id}"

    def entry_path(self, task_id: str) -> Path:
        return self.schedule_dir / f"{self.entry_name(task_id)}.json"

    def build_entry(self, task: Task, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or datetime.now(timezone.utc)
        return {
            "taskId": self.entry_name(task.id),
            "scheduledLocalTime": task.reminder_time.isoformat() if task.reminder_time else None,
            "tool_call": {
                "tool_name": TOOL_NAME,
                "arguments": {"command": FIRE_COMMAND, "todoId": task.id},
            },
            "createdAt": now.isoformat(),
            "description": f"Todoリマインダー: {task.title}",
        }

    def write(self, task: Task, now: Optional[datetime] = None) -> bool:
        """リマインダー時刻があればエントリを書き出す（既存は上書き）"""
        if task.reminder_time is None:
            return False
        path = self.entry_path(task.id)
        try:
            self.schedule_dir.mkdir(parents=True, exist_ok=True)
            path.write_text(
                json.dumps(self.build_entry(task, now), ensure_ascii=False, indent=2),
                encoding="utf-8",
            )
        except OSError as e:
            logger.error(f"スケジュールエントリの作成に失敗: {path}: {e}")
            return False
        logger.info(f"スケジュールエントリを作成しました: {path.name}")
        return True

    def remove(self, task_id: str) -> bool:
        path = self.entry_path(task_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.error(f"スケジュールエントリの削除に失敗: {path}: {e}")
            return False
        logger.info(f"スケジュールエントリを削除しました: {path.name}")
        return True

    def replace(self, task: Task, now: Optional[datetime] = None) -> bool:
        """古いエントリを消し、リマインダー時刻があれば書き直す"""
        self.remove(task.id)
        return self.write(task, now)

    def exists(self, task_id: str) -> bool:
        return self.entry_path(task_id).exists()

    def read(self, task_id: str) -> Optional[Dict[str, Any]]:
        try:
            return json.loads(self.entry_path(task_id).read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return None
