"""
Todo操作の本体

コマンド（CreateTask, UpdateTask, FireReminder ...）はすべてここを経由する。
読み取り・変更・書き戻しは TaskStore.transact() の1回のロック範囲で行い、
スケジュールエントリの更新・日記への記録・通知はトランザクションの外で行う。

Design Reference: DESIGN.md
Related Classes:
  - store.TaskStore: 永続化とロック
  - time_parser.SmartTimeParser: when / remind の解釈
  - reminder_daemon.scheduler.ReminderScheduler: 同じトラック操作を定期実行
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Tuple, Union

from .analyzer import analyze_tasks
from .config import Config
from .diary import DiaryLogger
from .exceptions import InvalidInputError, NotifyError, TaskNotFoundError, TodoError
from .models import PRIORITY_RANK, SubTask, Task, TaskPriority
from .notifier import Notifier
from .reminder_builder import ReminderBuilder
from .schedule_entries import ScheduleEntryWriter
from .schemas import (
    CreateTaskInput,
    FireReminderInput,
    ListTasksInput,
    UpdateTaskInput,
    validate_input,
)
from .store import TaskStore, find_task, pending_tasks, start_of_day
from .time_parser import SmartTimeParser
from .tracks import (
    DEFAULT_RETRY_INTERVAL,
    REMINDER_TRACK,
    Track,
    claim,
    is_claimed_by,
    is_eligible,
    record_failure,
    record_success,
)

logger = logging.getLogger(__name__)

Payload = Union[Dict[str, Any], str]


class CreatedTask(NamedTuple):
    task: Task
    default_reminder: bool


@dataclass
class UpdateEffect:
    """1件の更新で発生した副作用（トランザクション後に処理する）"""

    task: Task
    reminder_changed: bool = False
    completed: bool = False
    reopened: bool = False
    reflection: str = ""


@dataclass
class FireOutcome:
    """FireReminderの結果"""

    task: Task
    handled: bool
    reason: Optional[str] = None
    delivered: Optional[bool] = None
    payload: Optional[Payload] = None


class TodoManager:
    """Todo操作（作成・更新・削除・一覧・リマインダー発火・一括操作）"""

    def __init__(
        self,
        store: TaskStore,
        parser: Optional[SmartTimeParser] = None,
        default_reminder_minutes: int = 60,
        schedule_writer: Optional[ScheduleEntryWriter] = None,
        notifier: Optional[Notifier] = None,
        diary: Optional[DiaryLogger] = None,
        builder: Optional[ReminderBuilder] = None,
        retry_interval: timedelta = DEFAULT_RETRY_INTERVAL,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Args:
            store: Todoストア
            parser: 時間表現パーサー（タイムゾーンもここから決まる）
            default_reminder_minutes: whenのみ指定時のデフォルトリマインダー（期限の何分前か）
            schedule_writer: スケジュールエントリの出力先（Noneなら書き出さない）
            notifier: FireReminderの送信先（Noneならペイロードを返すだけ）
            diary: autoLog用の日記ロガー
            clock: 現在時刻の取得関数（テスト用）
        """
        self.store = store
        self.parser = parser or SmartTimeParser()
        self.default_reminder_minutes = default_reminder_minutes
        self.schedule_writer = schedule_writer
        self.notifier = notifier
        self.diary = diary
        self.builder = builder or ReminderBuilder()
        self.retry_interval = retry_interval
        self._clock = clock

    @classmethod
    def from_config(
        cls,
        config: Config,
        notifier: Optional[Notifier] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> "TodoManager":
        """設定からストア・パーサー・コラボレーターを組み立てる"""
        store = TaskStore(config.data_path(), lock_timeout=config.store.lock_timeout)
        diary = None
        if config.diary.enabled:
            diary = DiaryLogger(
                url=config.diary.url,
                file=config.diary_path(),
                agent_name=config.notify.agent_name,
                max_queue_size=config.diary.max_queue_size,
            )
        return cls(
            store,
            parser=SmartTimeParser(config.timezone),
            default_reminder_minutes=config.reminder.default_minutes,
            schedule_writer=ScheduleEntryWriter(config.schedule_path()),
            notifier=notifier,
            diary=diary,
            builder=ReminderBuilder(agent_name=config.reminder.agent_name),
            retry_interval=timedelta(seconds=config.daemon.retry_interval_seconds),
            clock=clock,
        )

    def now(self) -> datetime:
        if self._clock is not None:
            return self.parser.localize(self._clock())
        return self.parser.now()

    def close(self) -> None:
        """日記キューを送り切る"""
        if self.diary is not None:
            self.diary.close()

    # ------------------------------------------------------------------
    # 時刻の解決
    # ------------------------------------------------------------------

    def default_reminder_time(self, when_time: datetime, now: datetime) -> Optional[datetime]:
        """期限の default_reminder_minutes 分前。過去になる場合はNone"""
        reminder = when_time - timedelta(minutes=self.default_reminder_minutes)
        return reminder if reminder > now else None

    def _parse_instant(self, text: Optional[str], now: datetime, field: str) -> Optional[datetime]:
        if text is None or not str(text).strip():
            return None
        parsed = self.parser.parse(text, now)
        if parsed is None:
            raise InvalidInputError(f"Could not parse {field}: {text!r}")
        return parsed

    def _resolve_when(
        self,
        params: Union[CreateTaskInput, UpdateTaskInput],
        now: datetime,
        current: Optional[datetime] = None,
    ) -> Tuple[bool, Optional[datetime]]:
        """
        when / dueDate / dueTime から期限を決める

        Returns:
            (指定があったか, 期限)
        """
        fields = params.model_fields_set
        if params.when:
            return True, self._parse_instant(params.when, now, "when")
        if params.due_date or params.due_time:
            date_part = params.due_date or (current.astimezone(self.parser.tz).date().isoformat() if current else None)
            if date_part is None:
                raise InvalidInputError("dueTime requires dueDate")
            text = f"{date_part} {params.due_time}" if params.due_time else date_part
            return True, self._parse_instant(text, now, "dueDate/dueTime")
        if "when" in fields:
            # when: "" / null は期限のクリア
            return True, None
        return False, current

    def _resolve_reminder(
        self,
        params: Union[CreateTaskInput, UpdateTaskInput],
        when_time: Optional[datetime],
        now: datetime,
    ) -> Optional[datetime]:
        """remind / reminderTime の明示指定からリマインダー時刻を決める"""
        if "reminder_time" in params.model_fields_set and params.reminder_time:
            return self._parse_instant(params.reminder_time, now, "reminderTime")
        if params.remind:
            return self.parser.calculate_reminder_time(when_time, params.remind)
        return None

    def _warn_reminder_after_deadline(self, task: Task) -> None:
        if task.reminder_time and task.when_time and task.reminder_time > task.when_time:
            logger.warning(f"Reminder for {task.id} is after its deadline ({task.reminder_time} > {task.when_time})")

    # ------------------------------------------------------------------
    # 作成
    # ------------------------------------------------------------------

    def _build_task(self, params: CreateTaskInput, now: datetime) -> CreatedTask:
        _, when_time = self._resolve_when(params, now)
        reminder_time = self._resolve_reminder(params, when_time, now)

        default_applied = False
        if when_time is not None and reminder_time is None and not params.reminder_explicit:
            reminder_time = self.default_reminder_time(when_time, now)
            default_applied = reminder_time is not None

        task = Task(
            id=self.store.generate_id(),
            title=params.title,
            created_at=now,
            updated_at=now,
            description=params.description or "",
            priority=TaskPriority(params.priority or "medium"),
            tags=list(params.tags or []),
            assignee=params.assignee,
            when_time=when_time,
            reminder_time=reminder_time,
            auto_log=params.auto_log,
            sub_tasks=[SubTask(sub.title, sub.completed) for sub in params.sub_tasks or []],
        )
        self._warn_reminder_after_deadline(task)
        return CreatedTask(task, default_applied)

    def create_task(self, params: CreateTaskInput) -> CreatedTask:
        """
        Todoを作成

        whenのみ指定された場合、期限の default_reminder_minutes 分前が
        未来であればデフォルトリマインダーを設定する。

        Raises:
            InvalidInputError: whenなどが解析できない
        """
        now = self.now()
        created = self._build_task(params, now)
        self.store.add(created.task)
        logger.info(f"Todo created: {created.task.id} ({created.task.title})")

        if created.task.reminder_time is not None and self.schedule_writer is not None:
            self.schedule_writer.write(created.task, now)
        return created

    # ------------------------------------------------------------------
    # 更新
    # ------------------------------------------------------------------

    def _apply_update(self, tasks: List[Task], params: UpdateTaskInput, now: datetime) -> UpdateEffect:
        task = find_task(tasks, params.todo_id)
        if task is None:
            raise TaskNotFoundError(params.todo_id)
        fields = params.model_fields_set

        # 先に全ての値を解決し、失敗したら何も変更しない
        when_given, when_time = self._resolve_when(params, now, task.when_time)
        reminder_time = task.reminder_time
        if params.reminder_explicit:
            reminder_time = self._resolve_reminder(params, when_time, now)
        elif when_given and when_time != task.when_time and when_time is not None:
            reminder_time = self.default_reminder_time(when_time, now)

        when_changed = when_time != task.when_time
        reminder_changed = reminder_time != task.reminder_time

        if params.title is not None:
            task.title = params.title
        if "description" in fields:
            task.description = params.description or ""
        if params.priority:
            task.priority = TaskPriority(params.priority)
        if "tags" in fields:
            task.tags = list(params.tags or [])
        if "assignee" in fields:
            task.assignee = params.assignee
        if params.sub_tasks is not None:
            task.sub_tasks = [SubTask(sub.title, sub.completed) for sub in params.sub_tasks]
        if params.auto_log is not None:
            task.auto_log = params.auto_log

        task.when_time = when_time
        task.reminder_time = reminder_time
        # remind / reminderTime で別の時刻が指定されたときだけ送信済みを再アーム
        if reminder_changed and params.reminder_explicit:
            task.reset_reminder_track()
        if when_changed:
            task.reset_overdue_track()

        effect = UpdateEffect(task=task, reminder_changed=reminder_changed, reflection=params.reflection or "")
        if params.status == "completed":
            effect.completed = task.mark_completed(now)
        elif params.status == "pending":
            effect.reopened = task.reopen(now)

        if params.reflection:
            task.reflection = params.reflection
        task.updated_at = now
        self._warn_reminder_after_deadline(task)
        return effect

    def _after_update(self, effect: UpdateEffect, now: datetime) -> None:
        task = effect.task
        if self.schedule_writer is not None:
            if task.is_completed:
                if effect.completed or effect.reminder_changed:
                    self.schedule_writer.remove(task.id)
            elif effect.reminder_changed or (effect.reopened and not task.reminder_sent):
                self.schedule_writer.replace(task, now)

        if effect.completed:
            logger.info(f"Todo completed: {task.id} ({task.title})")
            if task.auto_log and self.diary is not None:
                self.diary.submit(task, "completed", now, effect.reflection)

    def update_task(self, params: UpdateTaskInput) -> Task:
        """
        Todoを更新（1回のトランザクション）

        Raises:
            TaskNotFoundError: 存在しないID
            InvalidInputError: when / reminderTime が解析できない
        """
        now = self.now()
        effect = self.store.transact(lambda tasks: self._apply_update(tasks, params, now))
        self._after_update(effect, now)
        return effect.task

    # ------------------------------------------------------------------
    # 削除・取得・一覧
    # ------------------------------------------------------------------

    def delete_task(self, todo_id: str) -> Task:
        deleted = self.store.delete(todo_id)
        if self.schedule_writer is not None:
            self.schedule_writer.remove(todo_id)
        logger.info(f"Todo deleted: {todo_id}")
        return deleted

    def get_task(self, todo_id: str) -> Task:
        return self.store.get(todo_id)

    def list_tasks(self, params: Optional[ListTasksInput] = None) -> List[Task]:
        params = params or ListTasksInput()
        return self.store.list_tasks(
            self.now(),
            status=params.status,
            priority=params.priority,
            tag=params.tag,
            date_range=params.date_range,
            sort_by=params.sort_by,
        )

    def get_daily_tasks(self) -> Tuple[List[Task], List[Task]]:
        """
        今日のTodo

        未完了のうち、今日が期限・今日リマインダーがある・日時の指定が一切ないもの。

        Returns:
            (期限ありをwhenTime順, 期限なしを優先度順)
        """
        now = self.now()
        today = start_of_day(now)
        tomorrow = today + timedelta(days=1)

        def _is_today(value: Optional[datetime]) -> bool:
            return value is not None and today <= value < tomorrow

        selected = [
            t for t in pending_tasks(self.store.load())
            if _is_today(t.when_time)
            or _is_today(t.reminder_time)
            or (t.when_time is None and t.reminder_time is None)
        ]
        dated = sorted((t for t in selected if t.when_time is not None), key=lambda t: t.when_time)
        undated = sorted(
            (t for t in selected if t.when_time is None),
            key=lambda t: PRIORITY_RANK.get(t.priority.value, 0),
            reverse=True,
        )
        return dated, undated

    def get_stats(self) -> Dict[str, Any]:
        return analyze_tasks(self.store.load(), self.now())

    # ------------------------------------------------------------------
    # リマインダー
    # ------------------------------------------------------------------

    def claim_track(
        self, todo_id: str, track: Track, now: datetime, require_due: bool = True
    ) -> Optional[Task]:
        """
        トランザクション内で適格性を再確認し、試行を記録する

        Returns:
            claimしたTodo（適格でなければNone）
        """

        def _claim(tasks: List[Task]) -> Optional[Task]:
            task = find_task(tasks, todo_id)
            if task is None or not is_eligible(task, track, now, require_due):
                return None
            claim(task, track, now, self.retry_interval)
            return task

        return self.store.transact(_claim)

    def record_delivery(self, todo_id: str, track: Track, claimed_at: datetime, delivered: bool, now: datetime) -> bool:
        """
        送信結果を記録する。成功ならsentをラッチ、失敗なら失敗回数とリトライ時刻

        Returns:
            記録した場合True（削除済み・再アーム済みなら記録しない）
        """

        def _record(tasks: List[Task]) -> bool:
            task = find_task(tasks, todo_id)
            if task is None or not is_claimed_by(task, track, claimed_at):
                logger.info(f"{track.name} track for {todo_id} changed during delivery; not recording")
                return False
            if delivered:
                record_success(task, track, now)
            else:
                record_failure(task, track, now, self.retry_interval)
            return True

        return self.store.transact(_record)

    def deliver(self, payload: Payload) -> bool:
        """送信先へ通知（送信先がなければ成功扱い）"""
        if self.notifier is None:
            return True
        try:
            return bool(self.notifier.notify(payload))
        except NotifyError as e:
            logger.error(f"Notification failed: {e}")
            return False

    def _fire_payload(self, task: Task, params: FireReminderInput, now: datetime) -> Payload:
        if params.format == "text":
            return self.builder.build_text(task, now)
        return self.builder.build(
            task,
            "normal",
            now=now,
            agent_name=params.agent_name,
            session_id=params.session_id,
            message_id=params.message_id,
        )

    def _latch_untimed_reminder(self, todo_id: str, now: datetime) -> Task:
        def _latch(tasks: List[Task]) -> Task:
            task = find_task(tasks, todo_id)
            if task is None:
                raise TaskNotFoundError(todo_id)
            if not task.reminder_sent:
                record_success(task, REMINDER_TRACK, now)
            return task

        return self.store.transact(_latch)

    def fire_reminder(self, params: FireReminderInput) -> FireOutcome:
        """
        リマインダーを発火（外部スケジューラーから呼ばれる）

        完了済み・送信済みは「処理済み」として何もしない。
        送信失敗はエラーではなく delivered=False とリトライ情報の記録で表す。

        Raises:
            TaskNotFoundError: 存在しないID
        """
        now = self.now()
        snapshot = self.store.get(params.todo_id)
        if snapshot.is_completed:
            return FireOutcome(task=snapshot, handled=True, reason="completed")
        if snapshot.reminder_sent:
            return FireOutcome(task=snapshot, handled=True, reason="already_sent")

        if snapshot.reminder_time is None:
            # リマインダー時刻のないTodoはその場で送り、成功したら送信済みにする
            payload = self._fire_payload(snapshot, params, now)
            delivered = self.deliver(payload)
            task = self._latch_untimed_reminder(snapshot.id, now) if delivered else snapshot
            return FireOutcome(task=task, handled=False, delivered=delivered, payload=payload)

        task = self.claim_track(params.todo_id, REMINDER_TRACK, now, require_due=False)
        if task is None:
            current = self.store.get(params.todo_id)
            reason = "already_sent" if current.reminder_sent else "retry_pending"
            if current.is_completed:
                reason = "completed"
            return FireOutcome(task=current, handled=True, reason=reason)

        payload = self._fire_payload(task, params, now)
        delivered = self.deliver(payload)
        self.record_delivery(task.id, REMINDER_TRACK, now, delivered, now)
        if not delivered:
            logger.warning(f"Reminder delivery failed for {task.id}; will retry after {self.retry_interval}")
        return FireOutcome(task=task, handled=False, delivered=delivered, payload=payload)

    def snooze_reminder(self, todo_id: str, minutes: int = 30) -> Task:
        """リマインダーを now + minutes に延期し、トラックを再アーム"""
        now = self.now()

        def _snooze(tasks: List[Task]) -> Task:
            task = find_task(tasks, todo_id)
            if task is None:
                raise TaskNotFoundError(todo_id)
            if task.is_completed:
                raise InvalidInputError(f"Todo {todo_id} is already completed")
            task.reminder_time = now + timedelta(minutes=minutes)
            task.reset_reminder_track()
            task.updated_at = now
            return task

        task = self.store.transact(_snooze)
        if self.schedule_writer is not None:
            self.schedule_writer.replace(task, now)
        return task

    # ------------------------------------------------------------------
    # 一括操作（1バッチ1トランザクション、要素ごとの結果）
    # ------------------------------------------------------------------

    def batch_create(self, items: List[Dict[str, Any]]) -> Tuple[List[Task], List[Dict[str, Any]]]:
        now = self.now()
        created: List[Task] = []
        details: List[Dict[str, Any]] = []
        for index, raw in enumerate(items):
            try:
                if not isinstance(raw, dict):
                    raise InvalidInputError("Each todo must be an object")
                params = validate_input(CreateTaskInput, raw)
                task = self._build_task(params, now).task
            except TodoError as e:
                details.append({"status": "error", "index": index, "error": str(e)})
                continue
            created.append(task)
            details.append({"status": "success", "index": index, "id": task.id, "title": task.title})

        if created:
            self.store.transact(lambda tasks: tasks.extend(created))
            if self.schedule_writer is not None:
                for task in created:
                    if task.reminder_time is not None:
                        self.schedule_writer.write(task, now)
        logger.info(f"Batch create: {len(created)}/{len(items)} succeeded")
        return created, details

    def batch_update(self, items: List[Dict[str, Any]]) -> Tuple[List[Task], List[Dict[str, Any]]]:
        now = self.now()
        details: List[Dict[str, Any]] = [{} for _ in items]
        valid: List[Tuple[int, UpdateTaskInput]] = []
        for index, raw in enumerate(items):
            try:
                if not isinstance(raw, dict):
                    raise InvalidInputError("Each update must be an object")
                valid.append((index, validate_input(UpdateTaskInput, raw)))
            except TodoError as e:
                details[index] = {"status": "error", "index": index, "error": str(e)}

        def _apply_all(tasks: List[Task]) -> List[UpdateEffect]:
            effects = []
            for index, params in valid:
                try:
                    effect = self._apply_update(tasks, params, now)
                except TodoError as e:
                    details[index] = {"status": "error", "index": index, "id": params.todo_id, "error": str(e)}
                    continue
                effects.append(effect)
                details[index] = {"status": "success", "index": index, "id": effect.task.id, "title": effect.task.title}
            return effects

        effects = self.store.transact(_apply_all) if valid else []
        for effect in effects:
            self._after_update(effect, now)
        logger.info(f"Batch update: {len(effects)}/{len(items)} succeeded")
        return [effect.task for effect in effects], details

    def batch_delete(self, todo_ids: List[str]) -> Tuple[List[Task], List[Dict[str, Any]]]:
        def _delete_all(tasks: List[Task]) -> Tuple[List[Task], List[Dict[str, Any]]]:
            deleted: List[Task] = []
            details: List[Dict[str, Any]] = []
            for todo_id in todo_ids:
                task = find_task(tasks, todo_id)
                if task is None:
                    details.append({"status": "error", "id": todo_id, "error": f"Todo not found: {todo_id}"})
                    continue
                tasks.remove(task)
                deleted.append(task)
                details.append({"status": "success", "id": todo_id, "title": task.title})
            return deleted, details

        deleted, details = self.store.transact(_delete_all)
        if self.schedule_writer is not None:
            for task in deleted:
                self.schedule_writer.remove(task.id)
        logger.info(f"Batch delete: {len(deleted)}/{len(todo_ids)} succeeded")
        return deleted, details
