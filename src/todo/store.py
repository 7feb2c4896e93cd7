"""
JSONファイルベースのTodoストア

todos.json（{"todos": [...]}）を単一の共有リソースとして扱い、
読み取り・変更・書き戻しは必ず transact() のロック範囲内で行う。
アーカイブ（todos_archive.json）も同じ形のドキュメント。
"""

from __future__ import annotations

import json
import logging
import os
import secrets
import threading
import time
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Iterable, List, Optional, TypeVar

from dateutil.relativedelta import relativedelta

from .exceptions import InvalidInputError, PersistenceError, TaskNotFoundError
from .file_lock import DEFAULT_LOCK_TIMEOUT, FileLock
from .models import PRIORITY_RANK, Task, TaskStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")

STORE_FILE = "todos.json"
ARCHIVE_FILE = "todos_archive.json"
LOCK_RESOURCE = "todos"

DATE_RANGES = ("today", "week", "month", "overdue")
SORT_KEYS = ("whenTime", "priority", "createdAt")


def start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def in_date_range(task: Task, date_range: str, now: datetime) -> bool:
    """whenTimeが日付範囲に入るか（whenTimeなしは常にFalse）"""
    if task.when_time is None:
        return False
    today = start_of_day(now)
    when = task.when_time
    if date_range == "today":
        return today <= when < today + timedelta(days=1)
    if date_range == "week":
        return today <= when < today + timedelta(days=7)
    if date_range == "month":
        return today <= when < today + relativedelta(months=+1)
    if date_range == "overdue":
        return when < today
    raise InvalidInputError(f"Unknown date range: {date_range}")


def filter_tasks(
    tasks: Iterable[Task],
    now: datetime,
    status: Optional[str] = "pending",
    priority: Optional[str] = None,
    tag: Optional[str] = None,
    date_range: Optional[str] = None,
) -> List[Task]:
    """
    フィルタを AND 条件で適用

    Args:
        status: "pending" / "completed" / "all"（Noneは"all"扱い）
        priority: "high" / "medium" / "low"
        tag: このタグを含むものだけ
        date_range: "today" / "week" / "month" / "overdue"
    """
    result = list(tasks)
    if status and status != "all":
        result = [t for t in result if t.status.value == status]
    if priority:
        result = [t for t in result if t.priority.value == priority]
    if tag:
        result = [t for t in result if tag in t.tags]
    if date_range:
        result = [t for t in result if in_date_range(t, date_range, now)]
    return result


def sort_tasks(tasks: List[Task], sort_by: Optional[str] = "whenTime") -> List[Task]:
    """whenTime昇順（未設定は末尾）/ priority降順 / createdAt降順"""
    if sort_by == "priority":
        return sorted(tasks, key=lambda t: PRIORITY_RANK.get(t.priority.value, 0), reverse=True)
    if sort_by == "createdAt":
        return sorted(tasks, key=lambda t: t.created_at, reverse=True)
    if sort_by not in (None, "whenTime"):
        raise InvalidInputError(f"Unknown sort key: {sort_by}")
    dated = sorted((t for t in tasks if t.when_time is not None), key=lambda t: t.when_time)
    return dated + [t for t in tasks if t.when_time is None]


class TaskStore:
    """ロック付きトランザクションを提供するTodoストア"""

    def __init__(
        self,
        data_dir: Optional[Path] = None,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
        file_lock: Optional[FileLock] = None,
    ):
        root = Path(__file__).resolve().parents[2]
        env_dir = os.getenv("TODO_DATA_DIR")
        if data_dir:
            self.data_dir = Path(data_dir)
        elif env_dir:
            self.data_dir = Path(env_dir)
        else:
            self.data_dir = root / "data"
        self.data_dir.mkdir(parents=True, exist_ok=True)

        self.path = self.data_dir / STORE_FILE
        self.archive_path = self.data_dir / ARCHIVE_FILE
        self.lock = file_lock or FileLock(self.data_dir)
        self.lock_timeout = lock_timeout

    @staticmethod
    def generate_id() -> str:
        """todo_<epoch-ms>_<8桁hex>"""
        return f"todo_{int(time.time() * 1000)}_{secrets.token_hex(4)}"

    # ------------------------------------------------------------------
    # トランザクション
    # ------------------------------------------------------------------

    def load(self) -> List[Task]:
        """ロック下で読み取り専用のスナップショットを取得"""
        with self.lock.hold(LOCK_RESOURCE, self.lock_timeout):
            return self._read(self.path)

    def transact(self, fn: Callable[[List[Task]], T]) -> T:
        """
        ロック取得 → 読み込み → fn(tasks) → 保存 → 解放

        fnはリストをその場で変更する。fnが例外を送出した場合は保存しない。

        Returns:
            fnの戻り値
        """
        with self.lock.hold(LOCK_RESOURCE, self.lock_timeout):
            tasks = self._read(self.path)
            result = fn(tasks)
            self._write(self.path, tasks)
            return result

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def add(self, task: Task) -> Task:
        def _append(tasks: List[Task]) -> Task:
            if any(t.id == task.id for t in tasks):
                raise InvalidInputError(f"Duplicate todo id: {task.id}")
            tasks.append(task)
            return task

        return self.transact(_append)

    def get(self, task_id: str) -> Task:
        task = find_task(self.load(), task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def delete(self, task_id: str) -> Task:
        def _remove(tasks: List[Task]) -> Task:
            for index, task in enumerate(tasks):
                if task.id == task_id:
                    return tasks.pop(index)
            raise TaskNotFoundError(task_id)

        return self.transact(_remove)

    def list_tasks(
        self,
        now: datetime,
        status: Optional[str] = "pending",
        priority: Optional[str] = None,
        tag: Optional[str] = None,
        date_range: Optional[str] = None,
        sort_by: Optional[str] = "whenTime",
    ) -> List[Task]:
        tasks = filter_tasks(self.load(), now, status, priority, tag, date_range)
        return sort_tasks(tasks, sort_by)

    # ------------------------------------------------------------------
    # アーカイブ
    # ------------------------------------------------------------------

    def load_archive(self) -> List[Task]:
        with self.lock.hold(LOCK_RESOURCE, self.lock_timeout):
            if not self.archive_path.exists():
                return []
            return self._read(self.archive_path)

    def archive_completed(self, cutoff: datetime) -> List[Task]:
        """
        完了日時がcutoffより前の完了済みTodoをアーカイブへ移動

        1つのロック範囲でアーカイブ追記とライブファイル書き戻しを行う。
        アーカイブを先に書くため、途中で失敗しても消失ではなく重複で済む。

        Returns:
            移動したTodoのリスト
        """
        with self.lock.hold(LOCK_RESOURCE, self.lock_timeout):
            tasks = self._read(self.path)
            moved = [
                t for t in tasks
                if t.is_completed and (t.completed_at or t.updated_at) < cutoff
            ]
            if not moved:
                return []

            archived = self._read(self.archive_path) if self.archive_path.exists() else []
            archived_ids = {t.id for t in archived}
            archived.extend(t for t in moved if t.id not in archived_ids)
            self._write(self.archive_path, archived)

            moved_ids = {t.id for t in moved}
            self._write(self.path, [t for t in tasks if t.id not in moved_ids])

        logger.info("Archived %d completed todo(s)", len(moved))
        return moved

    # ------------------------------------------------------------------
    # ファイルI/O（ロック保持中にのみ呼ぶ）
    # ------------------------------------------------------------------

    def _read(self, path: Path) -> List[Task]:
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            # 初回アクセス時に空のストアを作成
            self._write(path, [])
            return []
        except OSError as exc:
            raise PersistenceError(f"Cannot read {path}: {exc}") from exc

        if not text.strip():
            return []
        try:
            raw = json.loads(text)
        except json.JSONDecodeError as exc:
            raise PersistenceError(f"Corrupt store file {path}: {exc}") from exc

        items = raw.get("todos") if isinstance(raw, dict) else raw
        if not isinstance(items, list):
            raise PersistenceError(f"Store file {path} has no 'todos' list")
        try:
            return [Task.from_dict(item) for item in items]
        except (TypeError, ValueError, KeyError, AttributeError) as exc:
            raise PersistenceError(f"Invalid todo record in {path}: {exc}") from exc

    @staticmethod
    def _write(path: Path, tasks: List[Task]) -> None:
        tmp = path.with_name(f".{path.name}.{os.getpid()}.{threading.get_ident()}.tmp")
        try:
            with tmp.open("w", encoding="utf-8") as f:
                json.dump({"todos": [t.to_dict() for t in tasks]}, f, ensure_ascii=False, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, path)
        except OSError as exc:
            tmp.unlink(missing_ok=True)
            raise PersistenceError(f"Cannot write {path}: {exc}") from exc


def find_task(tasks: Iterable[Task], task_id: str) -> Optional[Task]:
    for task in tasks:
        if task.id == task_id:
            return task
    return None


def pending_tasks(tasks: Iterable[Task]) -> List[Task]:
    return [t for t in tasks if t.status is TaskStatus.PENDING]
