"""
デーモンの永続状態

日次サマリーの送信済み日付を data_dir/daemon_state.json に保存し、
再起動しても同じ日に二重送信しないようにする。
"""

from __future__ import annotations

import json
import logging
import os
from datetime import date
from pathlib import Path
from typing import Any, Dict, Optional

from src.todo.exceptions import PersistenceError

logger = logging.getLogger(__name__)

STATE_FILE = "daemon_state.json"


class DaemonState:
    """デーモン状態（単一のデーモンプロセスのみが書き込む）"""

    def __init__(self, path: Path):
        self.path = Path(path)
        self.last_daily_summary_date: Optional[str] = None
        self.load()

    @classmethod
    def in_dir(cls, data_dir: Path) -> "DaemonState":
        return cls(Path(data_dir) / STATE_FILE)

    def load(self) -> None:
        if not self.path.exists():
            return
        try:
            data: Dict[str, Any] = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, json.JSONDecodeError) as e:
            # 壊れた状態ファイルは「未送信」とみなす
            logger.warning(f"Ignoring unreadable daemon state {self.path}: {e}")
            return
        self.last_daily_summary_date = data.get("lastDailySummaryDate")

    def save(self) -> None:
        tmp = self.path.with_name(f".{self.path.name}.tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(
                json.dumps({"lastDailySummaryDate": self.last_daily_summary_date}, ensure_ascii=False),
                encoding="utf-8",
            )
            os.replace(tmp, self.path)
        except OSError as e:
            raise PersistenceError(f"Cannot write daemon state {self.path}: {e}") from e

    def summary_sent_on(self, day: date) -> bool:
        return self.last_daily_summary_date == day.isoformat()

    def mark_summary_sent(self, day: date) -> None:
        self.last_daily_summary_date = day.isoformat()
        self.save()
