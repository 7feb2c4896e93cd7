"""
通知トラックの状態遷移

各Todoは独立した2つのトラックを持つ:
  - reminder: reminderTime 到来で1回だけ通知
  - overdue:  whenTime 到来（期限切れ）で1回だけ通知

    not-due --(instant <= now)--> due-unsent --(送信成功)--> sent（終端）
                                     |
                                     +--(送信失敗)--> fail_count+1, next_retry_at = now + retry

完了済みTodoはどちらのトラックにも乗らない。
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from .models import Task

DEFAULT_RETRY_INTERVAL = timedelta(minutes=5)


@dataclass(frozen=True)
class Track:
    """トラックごとの属性名"""

    name: str
    instant: str
    sent: str
    sent_at: str
    fail_count: str
    last_attempt_at: str
    next_retry_at: str


REMINDER_TRACK = Track(
    name="reminder",
    instant="reminder_time",
    sent="reminder_sent",
    sent_at="reminder_sent_at",
    fail_count="reminder_fail_count",
    last_attempt_at="last_reminder_attempt_at",
    next_retry_at="next_reminder_retry_at",
)

OVERDUE_TRACK = Track(
    name="overdue",
    instant="when_time",
    sent="when_time_reminder_sent",
    sent_at="when_time_reminder_sent_at",
    fail_count="when_time_reminder_fail_count",
    last_attempt_at="last_when_time_reminder_attempt_at",
    next_retry_at="next_when_time_reminder_retry_at",
)


def is_eligible(task: Task, track: Track, now: datetime, require_due: bool = True) -> bool:
    """
    今このトラックで通知を試みてよいか

    Args:
        require_due: Falseなら時刻到来を問わない（FireReminderの明示的な呼び出し用）
    """
    if task.is_completed:
        return False
    instant: Optional[datetime] = getattr(task, track.instant)
    if instant is None:
        return False
    if require_due and instant > now:
        return False
    if getattr(task, track.sent):
        return False
    next_retry: Optional[datetime] = getattr(task, track.next_retry_at)
    return next_retry is None or now >= next_retry


def claim(task: Task, track: Track, now: datetime, retry_interval: timedelta = DEFAULT_RETRY_INTERVAL) -> None:
    """送信前に試行を記録する。送信中に他プロセスが同じトラックを拾わないよう
    next_retry_at を先に進めておく"""
    setattr(task, track.last_attempt_at, now)
    setattr(task, track.next_retry_at, now + retry_interval)


def is_claimed_by(task: Task, track: Track, claimed_at: datetime) -> bool:
    """claim後にユーザー操作でトラックが再アームされていないか"""
    return getattr(task, track.last_attempt_at) == claimed_at and not getattr(task, track.sent)


def record_success(task: Task, track: Track, now: datetime) -> None:
    setattr(task, track.sent, True)
    setattr(task, track.sent_at, now)
    setattr(task, track.next_retry_at, None)
    task.updated_at = now


def record_failure(
    task: Task, track: Track, now: datetime, retry_interval: timedelta = DEFAULT_RETRY_INTERVAL
) -> None:
    setattr(task, track.fail_count, getattr(task, track.fail_count) + 1)
    setattr(task, track.last_attempt_at, now)
    setattr(task, track.next_retry_at, now + retry_interval)
    task.updated_at = now
