"""共通フィクスチャ（固定時刻・一時ストア・モック通知先）"""

from datetime import datetime, timedelta
from unittest.mock import MagicMock
from zoneinfo import ZoneInfo

import pytest

from src.todo.manager import TodoManager
from src.todo.schedule_entries import ScheduleEntryWriter
from src.todo.store import TaskStore
from src.todo.time_parser import SmartTimeParser

TZ = ZoneInfo("Asia/Tokyo")
# 2025-01-15 は水曜日
BASE = datetime(2025, 1, 15, 10, 0, tzinfo=TZ)


class FakeClock:
    """手動で進める時計"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(BASE)


@pytest.fixture
def store(tmp_path):
    return TaskStore(tmp_path / "data")


@pytest.fixture
def notifier():
    mock = MagicMock()
    mock.notify.return_value = True
    return mock


@pytest.fixture
def schedule_writer(tmp_path):
    return ScheduleEntryWriter(tmp_path / "scheduled")


@pytest.fixture
def manager(store, clock, notifier, schedule_writer):
    return TodoManager(
        store,
        parser=SmartTimeParser("Asia/Tokyo"),
        schedule_writer=schedule_writer,
        notifier=notifier,
        clock=clock,
    )
