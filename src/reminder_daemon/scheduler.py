"""
リマインダー定期実行スケジューラー

check_interval_seconds ごとに以下を順に実行する:
  1. reminderTime 到来・未送信のTodoに通常リマインダー
  2. whenTime 到来・未送信のTodoに期限切れ通知（深刻度付き）
  3. 設定時刻以降・本日未送信なら日次サマリー
  4. 完了から archive_after_days 日を過ぎたTodoのアーカイブ

各トラックは「トランザクション内でclaim → ロック外で通知 → トランザクション内で結果を記録」
の順に処理する。どのステップの失敗も次のtickには持ち越さない。

関連クラス:
  - src.todo.manager.TodoManager: claim / 記録 / 通知
  - state.DaemonState: 日次サマリーの送信済み日付
"""

import logging
import threading
import time
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from src.todo.config import DaemonConfig
from src.todo.exceptions import TodoError
from src.todo.manager import TodoManager
from src.todo.models import Task
from src.todo.store import pending_tasks, start_of_day
from src.todo.tracks import OVERDUE_TRACK, REMINDER_TRACK, Track, is_eligible

from .state import DaemonState

TRACK_KINDS: Tuple[Tuple[Track, str], ...] = ((REMINDER_TRACK, "normal"), (OVERDUE_TRACK, "overdue"))


def split_for_summary(tasks: List[Task], now: datetime) -> Dict[str, List[Task]]:
    """未完了Todoを overdue / today / upcoming / undated に振り分ける"""
    today = start_of_day(now)
    tomorrow = today + timedelta(days=1)
    buckets: Dict[str, List[Task]] = {"overdue": [], "today": [], "upcoming": [], "undated": []}
    for task in pending_tasks(tasks):
        if task.when_time is None:
            buckets["undated"].append(task)
        elif task.when_time < today:
            buckets["overdue"].append(task)
        elif task.when_time < tomorrow:
            buckets["today"].append(task)
        else:
            buckets["upcoming"].append(task)
    for name in ("overdue", "today", "upcoming"):
        buckets[name].sort(key=lambda t: t.when_time)
    buckets["undated"].sort(key=lambda t: t.priority.rank, reverse=True)
    return buckets


class ReminderScheduler:
    """リマインダー・期限切れ・日次サマリー・アーカイブを定期実行するスケジューラークラス"""

    def __init__(
        self,
        manager: TodoManager,
        state: DaemonState,
        daemon_config: Optional[DaemonConfig] = None,
    ):
        """
        初期化

        Args:
            manager: Todo操作（ストア・通知先・時計を保持）
            state: 日次サマリーの送信状態
            daemon_config: 実行間隔・サマリー時刻・アーカイブ日数
        """
        self.manager = manager
        self.state = state
        self.config = daemon_config or DaemonConfig()
        self.logger = logging.getLogger(__name__)

        # 状態管理
        self._running = False
        self._lock = threading.Lock()
        self._ticks = 0
        self._last_run_at: Optional[datetime] = None
        self._last_result: Dict[str, Any] = {}
        self._next_summary_retry_at: Optional[datetime] = None

        # スレッド
        self._thread: Optional[threading.Thread] = None

    @property
    def retry_interval(self) -> timedelta:
        return timedelta(seconds=self.config.retry_interval_seconds)

    def start(self) -> None:
        """スケジューラーを開始（バックグラウンドスレッド起動）"""
        with self._lock:
            if self._running:
                self.logger.warning("Reminder scheduler is already running")
                return

            self._running = True
            self._thread = threading.Thread(target=self._run_loop, name="reminder-scheduler", daemon=True)
            self._thread.start()
            self.logger.info(f"Reminder scheduler started (interval: {self.config.check_interval_seconds}s)")

    def stop(self) -> None:
        """スケジューラーを停止"""
        with self._lock:
            if not self._running:
                self.logger.warning("Reminder scheduler is not running")
                return

            self._running = False
            self.logger.info("Stopping reminder scheduler...")

        # スレッドの終了を待機
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)
            self.logger.info("Reminder scheduler stopped")

    def is_running(self) -> bool:
        with self._lock:
            return self._running

    def get_status(self) -> Dict[str, Any]:
        """現在の状態を取得"""
        with self._lock:
            return {
                "running": self._running,
                "check_interval_seconds": self.config.check_interval_seconds,
                "ticks": self._ticks,
                "last_run_at": self._last_run_at.isoformat() if self._last_run_at else None,
                "last_result": dict(self._last_result),
                "last_daily_summary_date": self.state.last_daily_summary_date,
            }

    def _run_loop(self) -> None:
        """
        メインループ（バックグラウンドスレッドで実行）

        起動直後に1回実行し、以後 check_interval_seconds ごとに run_once を呼び出す
        """
        self.logger.info("Reminder scheduler loop started")

        while True:
            with self._lock:
                if not self._running:
                    break

            self.run_once()

            # 次の実行までスリープ（1秒ごとに停止確認）
            for _ in range(self.config.check_interval_seconds):
                with self._lock:
                    if not self._running:
                        return
                time.sleep(1)

        self.logger.info("Reminder scheduler loop exited")

    def run_once(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        1回分のチェックを実行

        Returns:
            {"reminders": 送信数, "overdue": 送信数, "summary": 送信したか, "archived": 件数}
        """
        now = now or self.manager.now()
        result: Dict[str, Any] = {"reminders": 0, "overdue": 0, "summary": False, "archived": 0}

        if self.config.check_reminders:
            result["reminders"] = self._safely("reminder check", self.check_track, REMINDER_TRACK, "normal", now) or 0
        result["overdue"] = self._safely("overdue check", self.check_track, OVERDUE_TRACK, "overdue", now) or 0
        result["summary"] = bool(self._safely("daily summary", self.check_daily_summary, now))
        result["archived"] = self._safely("archival", self.archive_completed, now) or 0

        with self._lock:
            self._ticks += 1
            self._last_run_at = now
            self._last_result = result
        return result

    def _safely(self, step: str, fn, *args):
        """1ステップの失敗を記録して次へ進む"""
        try:
            return fn(*args)
        except TodoError as e:
            self.logger.warning(f"Skipping {step} this tick: {e}")
        except Exception as e:
            self.logger.error(f"Unexpected error in {step}: {e}", exc_info=True)
        return None

    def check_track(self, track: Track, kind: str, now: datetime) -> int:
        """
        1トラック分の通知

        ロックを取らずに候補を選び、各候補をトランザクション内で再確認してclaimする。

        Returns:
            送信に成功した件数
        """
        candidates = [t.id for t in self.manager.store.load() if is_eligible(t, track, now)]
        if not candidates:
            return 0

        self.logger.info(f"{len(candidates)} todo(s) due on the {track.name} track")
        delivered_count = 0
        for todo_id in candidates:
            task = self.manager.claim_track(todo_id, track, now)
            if task is None:
                continue

            payload = self.manager.builder.build(task, kind, now=now)
            delivered = self.manager.deliver(payload)
            self.manager.record_delivery(todo_id, track, now, delivered, now)
            if delivered:
                delivered_count += 1
                self.logger.info(f"Sent {kind} reminder for {todo_id} ({task.title})")
            else:
                self.logger.warning(
                    f"Failed to send {kind} reminder for {todo_id}; retrying after {self.retry_interval}"
                )
        return delivered_count

    def check_daily_summary(self, now: datetime) -> bool:
        """
        日次サマリー

        設定時刻以降で本日未送信なら送信。対象がなければ送信せずに送信済みとする。
        失敗時は retry_interval 後に再試行する。

        Returns:
            送信した場合True
        """
        if now.hour < self.config.daily_summary_hour or self.state.summary_sent_on(now.date()):
            return False
        if self._next_summary_retry_at is not None and now < self._next_summary_retry_at:
            return False

        buckets = split_for_summary(self.manager.store.load(), now)
        if not any(buckets.values()):
            self.logger.info("No pending todos for today's summary")
            self.state.mark_summary_sent(now.date())
            return False

        payload = self.manager.builder.build_daily_summary(
            buckets["today"], buckets["overdue"], buckets["undated"], now, upcoming=buckets["upcoming"]
        )
        if not self.manager.deliver(payload):
            self._next_summary_retry_at = now + self.retry_interval
            self.logger.warning(f"Daily summary failed; retrying at {self._next_summary_retry_at}")
            return False

        self._next_summary_retry_at = None
        self.state.mark_summary_sent(now.date())
        self.logger.info(f"Daily summary sent ({payload['data']['summary']['total']} todo(s))")
        return True

    def archive_completed(self, now: datetime) -> int:
        """完了から archive_after_days 日を過ぎたTodoをアーカイブへ移動"""
        cutoff = now - timedelta(days=self.config.archive_after_days)
        return len(self.manager.store.archive_completed(cutoff))
