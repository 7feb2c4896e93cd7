"""Todoの集計（概要・優先度分布・期限・完了率・よく使うタグ）"""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List

from .models import Task, TaskStatus
from .store import in_date_range, start_of_day

TOP_TAG_LIMIT = 5
RECENT_DAYS = 7


def analyze_tasks(tasks: Iterable[Task], now: datetime) -> Dict[str, Any]:
    """
    Todoの統計を計算

    優先度・期限・タグの集計は未完了のTodoのみが対象。

    Returns:
        total / pending / completed / completionRate(%) / byPriority /
        overdue / today / thisWeek / completedLast7Days / topTags
    """
    tasks = list(tasks)
    pending = [t for t in tasks if t.status is TaskStatus.PENDING]
    completed = [t for t in tasks if t.status is TaskStatus.COMPLETED]
    total = len(tasks)

    since = start_of_day(now) - timedelta(days=RECENT_DAYS)
    tag_counts = Counter(tag for t in pending for tag in t.tags)
    # 同数のタグは初出順
    top_tags = sorted(tag_counts.items(), key=lambda item: -item[1])[:TOP_TAG_LIMIT]

    return {
        "total": total,
        "pending": len(pending),
        "completed": len(completed),
        "completionRate": round(len(completed) / total * 100) if total else 0,
        "byPriority": {
            level: sum(1 for t in pending if t.priority.value == level)
            for level in ("high", "medium", "low")
        },
        "overdue": sum(1 for t in pending if in_date_range(t, "overdue", now)),
        "today": sum(1 for t in pending if in_date_range(t, "today", now)),
        "thisWeek": sum(1 for t in pending if in_date_range(t, "week", now)),
        "completedLast7Days": sum(1 for t in tasks if t.completed_at is not None and t.completed_at >= since),
        "topTags": [{"tag": tag, "count": count} for tag, count in top_tags],
    }


def format_stats(stats: Dict[str, Any]) -> str:
    """1行のレポートに整形"""
    if stats["total"] == 0:
        return "Todo概要: データなし"

    by_priority = stats["byPriority"]
    parts: List[str] = [
        f"Todo概要: 未完了{stats['pending']}件 / 完了{stats['completed']}件 ({stats['completionRate']}%)",
        f"優先度: 高{by_priority['high']} 中{by_priority['medium']} 低{by_priority['low']}",
    ]
    if stats["overdue"]:
        parts.append(f"期限切れ: {stats['overdue']}件")
    if stats["today"]:
        parts.append(f"今日: {stats['today']}件")
    if stats["thisWeek"]:
        parts.append(f"今週: {stats['thisWeek']}件")
    if stats["completedLast7Days"]:
        parts.append(f"7日間の完了: {stats['completedLast7Days']}件")
    if stats["topTags"]:
        parts.append("タグ: " + ", ".join(f"#{item['tag']}({item['count']})" for item in stats["topTags"]))
    return " | ".join(parts)
