"""ReminderSchedulerのテストコード"""

import time
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from src.reminder_daemon.scheduler import ReminderScheduler, split_for_summary
from src.reminder_daemon.state import DaemonState
from src.todo.config import DaemonConfig
from src.todo.file_lock import FileLock
from src.todo.manager import TodoManager
from src.todo.models import Task, TaskPriority
from src.todo.schemas import CreateTaskInput, UpdateTaskInput, validate_input
from src.todo.store import LOCK_RESOURCE, TaskStore
from src.todo.time_parser import SmartTimeParser
from src.todo.tracks import REMINDER_TRACK

TZ = ZoneInfo("Asia/Tokyo")


def at(hour, minute=0, day=15):
    return datetime(2025, 1, day, hour, minute, tzinfo=TZ)


def create(manager, **args):
    return manager.create_task(validate_input(CreateTaskInput, args)).task


@pytest.fixture
def state(tmp_path):
    return DaemonState.in_dir(tmp_path / "data")


@pytest.fixture
def scheduler(manager, state):
    # 日次サマリーは個別のテストでのみ有効にする
    return ReminderScheduler(manager, state, DaemonConfig(daily_summary_hour=23))


def sent_payloads(notifier):
    return [c.args[0] for c in notifier.notify.call_args_list]


def test_reminder_and_overdue_tracks_fire_once(manager, scheduler, notifier):
    task = create(manager, title="Pay rent", when="2025-01-15T12:00:00+09:00")
    assert task.reminder_time == at(11)

    assert scheduler.run_once(now=at(10, 30))["reminders"] == 0
    assert notifier.notify.call_count == 0

    result = scheduler.run_once(now=at(11))
    assert result["reminders"] == 1
    assert result["overdue"] == 0
    assert sent_payloads(notifier)[0]["reminderType"] == "normal"
    assert manager.get_task(task.id).reminder_sent is True

    assert scheduler.run_once(now=at(11, 1))["reminders"] == 0

    result = scheduler.run_once(now=at(12))
    assert result["overdue"] == 1
    overdue_payload = sent_payloads(notifier)[-1]
    assert overdue_payload["reminderType"] == "overdue"
    assert overdue_payload["data"]["overdueInfo"]["severity"] == "mild"

    assert scheduler.run_once(now=at(13))["overdue"] == 0
    assert notifier.notify.call_count == 2


def test_completed_todos_are_not_reminded(manager, scheduler, notifier):
    task = create(manager, title="Done already", when="2025-01-15T12:00:00+09:00")
    manager.update_task(validate_input(UpdateTaskInput, {"todoId": task.id, "status": "completed"}))

    result = scheduler.run_once(now=at(13))
    assert result["reminders"] == 0
    assert result["overdue"] == 0
    notifier.notify.assert_not_called()


def test_failed_delivery_retries_after_interval(manager, scheduler, notifier):
    task = create(manager, title="Flaky", when="2025-01-15T12:00:00+09:00")
    notifier.notify.return_value = False

    assert scheduler.check_track(REMINDER_TRACK, "normal", at(11)) == 0
    stored = manager.get_task(task.id)
    assert stored.reminder_sent is False
    assert stored.reminder_fail_count == 1
    assert stored.next_reminder_retry_at == at(11, 5)

    # リトライ時刻前は再送しない
    assert scheduler.check_track(REMINDER_TRACK, "normal", at(11, 3)) == 0
    assert notifier.notify.call_count == 1

    notifier.notify.return_value = True
    assert scheduler.check_track(REMINDER_TRACK, "normal", at(11, 5)) == 1
    stored = manager.get_task(task.id)
    assert stored.reminder_sent is True
    assert stored.reminder_fail_count == 1
    assert stored.next_reminder_retry_at is None


def test_check_reminders_can_be_disabled(manager, state, notifier):
    task = create(manager, title="Quiet", when="2025-01-15T12:00:00+09:00")
    scheduler = ReminderScheduler(manager, state, DaemonConfig(daily_summary_hour=23, check_reminders=False))

    result = scheduler.run_once(now=at(12))
    assert result["reminders"] == 0
    assert result["overdue"] == 1
    assert manager.get_task(task.id).reminder_sent is False


def test_daily_summary_sent_once_after_hour(manager, state, notifier):
    create(manager, title="Write report", when="2025-01-15T18:00:00+09:00")
    create(manager, title="Someday")
    scheduler = ReminderScheduler(manager, state, DaemonConfig(daily_summary_hour=8))

    assert scheduler.check_daily_summary(at(7, 59)) is False
    notifier.notify.assert_not_called()

    assert scheduler.check_daily_summary(at(8)) is True
    payload = sent_payloads(notifier)[0]
    assert payload["reminderType"] == "daily_summary"
    assert payload["data"]["summary"]["today"] == 1
    assert payload["data"]["summary"]["undated"] == 1

    assert scheduler.check_daily_summary(at(9)) is False
    assert notifier.notify.call_count == 1

    # 再起動後も同じ日には送らない
    reloaded = DaemonState(state.path)
    assert reloaded.summary_sent_on(at(9).date()) is True
    restarted = ReminderScheduler(manager, reloaded, DaemonConfig(daily_summary_hour=8))
    assert restarted.check_daily_summary(at(10)) is False

    # 翌日は再び送る
    assert scheduler.check_daily_summary(at(8, day=16)) is True


def test_daily_summary_with_nothing_pending_is_marked_sent(manager, state, notifier):
    scheduler = ReminderScheduler(manager, state, DaemonConfig(daily_summary_hour=8))

    assert scheduler.check_daily_summary(at(8)) is False
    notifier.notify.assert_not_called()
    assert state.summary_sent_on(at(8).date()) is True


def test_daily_summary_failure_retries_later(manager, state, notifier):
    create(manager, title="Someday")
    notifier.notify.return_value = False
    scheduler = ReminderScheduler(manager, state, DaemonConfig(daily_summary_hour=8))

    assert scheduler.check_daily_summary(at(8)) is False
    assert state.summary_sent_on(at(8).date()) is False
    assert scheduler.check_daily_summary(at(8, 3)) is False
    assert notifier.notify.call_count == 1

    notifier.notify.return_value = True
    assert scheduler.check_daily_summary(at(8, 5)) is True
    assert notifier.notify.call_count == 2


def test_archive_completed(manager, scheduler, store):
    task = create(manager, title="Old")
    create(manager, title="Open")
    manager.update_task(validate_input(UpdateTaskInput, {"todoId": task.id, "status": "completed"}))

    assert scheduler.archive_completed(at(10, day=20)) == 0
    assert scheduler.run_once(now=at(10) + timedelta(days=31))["archived"] == 1

    assert [t.title for t in store.load()] == ["Open"]
    assert [t.id for t in store.load_archive()] == [task.id]


def test_lock_timeout_skips_tick(tmp_path, clock, notifier, state):
    data_dir = tmp_path / "data"
    store = TaskStore(data_dir, lock_timeout=0.2)
    manager = TodoManager(store, parser=SmartTimeParser("Asia/Tokyo"), notifier=notifier, clock=clock)
    create(manager, title="Blocked", when="2025-01-15T12:00:00+09:00")
    scheduler = ReminderScheduler(manager, state, DaemonConfig(daily_summary_hour=8))

    other = FileLock(data_dir)
    lock_id = other.acquire(LOCK_RESOURCE)
    try:
        result = scheduler.run_once(now=at(12))
    finally:
        other.release(LOCK_RESOURCE, lock_id)

    assert result == {"reminders": 0, "overdue": 0, "summary": False, "archived": 0}
    notifier.notify.assert_not_called()

    # ロック解放後の次のtickで送られる
    assert scheduler.run_once(now=at(12, 1))["reminders"] == 1


def test_notifier_exception_does_not_stop_tick(manager, scheduler, notifier):
    create(manager, title="Boom", when="2025-01-15T12:00:00+09:00")
    notifier.notify.side_effect = RuntimeError("boom")

    result = scheduler.run_once(now=at(11))
    assert result["reminders"] == 0
    assert scheduler.get_status()["ticks"] == 1


def test_split_for_summary():
    now = at(8)

    def task(title, when=None, priority=TaskPriority.MEDIUM):
        return Task(id=title, title=title, created_at=now, updated_at=now, when_time=when, priority=priority)

    buckets = split_for_summary(
        [
            task("late", at(9, day=13)),
            task("tonight", at(20)),
            task("morning", at(7)),
            task("next week", at(9, day=22)),
            task("low", priority=TaskPriority.LOW),
            task("high", priority=TaskPriority.HIGH),
        ],
        now,
    )

    assert [t.title for t in buckets["overdue"]] == ["late"]
    assert [t.title for t in buckets["today"]] == ["morning", "tonight"]
    assert [t.title for t in buckets["upcoming"]] == ["next week"]
    assert [t.title for t in buckets["undated"]] == ["high", "low"]


def test_start_stop_and_status(manager, state):
    scheduler = ReminderScheduler(manager, state, DaemonConfig(check_interval_seconds=1, daily_summary_hour=23))
    assert scheduler.get_status()["running"] is False

    scheduler.start()
    try:
        deadline = time.monotonic() + 5
        while scheduler.get_status()["ticks"] < 1 and time.monotonic() < deadline:
            time.sleep(0.05)
        status = scheduler.get_status()
        assert status["running"] is True
        assert status["ticks"] >= 1
        assert status["last_run_at"] is not None
        assert set(status["last_result"]) == {"reminders", "overdue", "summary", "archived"}
    finally:
        scheduler.stop()

    assert scheduler.is_running() is False
