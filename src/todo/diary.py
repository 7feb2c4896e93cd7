"""
日記への完了記録（fire-and-forget）

autoLogが有効なTodoを完了したとき、日記エントリをキューに積んで
バックグラウンドのワーカースレッドが送信する。呼び出し側は結果を待たず、
失敗はログに残すだけで再試行しない。
"""

from __future__ import annotations

import json
import logging
import queue
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

import requests

from .models import Task

logger = logging.getLogger(__name__)

_STOP = object()


def build_diary_entry(task: Task, action: str, now: datetime, agent_name: str, reflection: str = "") -> Dict[str, Any]:
    """日記サービスへ渡すエントリ {maid, date, content, tags}"""
    if action == "completed":
        content = f"Todo完了: {task.title}"
        if reflection:
            content += f"\n\n振り返り: {reflection}"
        if task.description:
            content += f"\n\n説明: {task.description}"
    else:
        content = f"Todo作成: {task.title}"
        if task.when_time is not None:
            content += f"\n期限: {task.when_time.astimezone(now.tzinfo):%Y-%m-%d %H:%M}"

    return {
        "maid": agent_name,
        "date": now.date().isoformat(),
        "content": content,
        "tags": ["Todo", *task.tags],
    }


class DiaryLogger:
    """日記エントリをバックグラウンドで書き出すロガー

    url があればHTTP POST、file があればJSON Linesで追記する。
    どちらもなければエントリはログに出すだけ。
    """

    def __init__(
        self,
        url: Optional[str] = None,
        file: Optional[Path] = None,
        agent_name: str = "TodoManager",
        max_queue_size: int = 100,
        timeout: float = 10.0,
    ):
        self.url = url
        self.file = Path(file) if file else None
        self.agent_name = agent_name
        self.timeout = timeout
        self._queue: "queue.Queue[Any]" = queue.Queue(maxsize=max_queue_size)
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    def submit(self, task: Task, action: str, now: datetime, reflection: str = "") -> bool:
        """
        エントリをキューに積む（ブロックしない）

        Returns:
            キューに積めた場合True。満杯なら破棄してFalse
        """
        entry = build_diary_entry(task, action, now, self.agent_name, reflection)
        self._ensure_worker()
        try:
            self._queue.put_nowait(entry)
        except queue.Full:
            logger.warning(f"日記キューが満杯のためエントリを破棄: {task.id}")
            return False
        return True

    def close(self, timeout: float = 5.0) -> None:
        """キューを送り切ってからワーカーを停止"""
        with self._lock:
            thread = self._thread
            self._thread = None
        if thread is None:
            return
        try:
            self._queue.put(_STOP, timeout=timeout)
        except queue.Full:
            logger.warning("日記キューを閉じられませんでした")
            return
        thread.join(timeout=timeout)

    def _ensure_worker(self) -> None:
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._thread = threading.Thread(target=self._run, name="diary-logger", daemon=True)
            self._thread.start()

    def _run(self) -> None:
        while True:
            entry = self._queue.get()
            if entry is _STOP:
                break
            try:
                self._write(entry)
            except (requests.exceptions.RequestException, OSError) as e:
                logger.error(f"日記への書き込みに失敗: {e}")
            except Exception as e:
                logger.error(f"日記ワーカーで予期しないエラー: {e}", exc_info=True)

    def _write(self, entry: Dict[str, Any]) -> None:
        if self.url:
            response = requests.post(self.url, json=entry, timeout=self.timeout)
            response.raise_for_status()
        elif self.file is not None:
            self.file.parent.mkdir(parents=True, exist_ok=True)
            with self.file.open("a", encoding="utf-8") as f:
                f.write(json.dumps(entry, ensure_ascii=False) + "\n")
        else:
            logger.info(f"日記エントリ: {entry['content']}")
            return
        logger.debug(f"日記に記録しました: {entry['content'][:40]}")
