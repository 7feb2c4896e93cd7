"""
設定管理モジュール

config/app_config.yaml を読み込み、環境変数で一部を上書きする。
関連クラス:
  - manager.TodoManager: store / reminder / diary 設定を使用
  - reminder_daemon.scheduler.ReminderScheduler: daemon / notify 設定を使用
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config" / "app_config.yaml"

DEFAULT_REMINDER_MINUTES = 60
DEFAULT_NOTIFY_URL = "http://localhost:8855/internal/vcplog-broadcast"


@dataclass
class StoreConfig:
    """ストア設定"""

    data_dir: str = "data"
    lock_timeout: float = 5.0


@dataclass
class ReminderConfig:
    """リマインダー設定"""

    default_minutes: int = DEFAULT_REMINDER_MINUTES
    schedule_dir: str = "scheduled"
    agent_name: str = "System"


@dataclass
class DaemonConfig:
    """デーモン設定"""

    check_interval_seconds: int = 60
    daily_summary_hour: int = 8
    retry_interval_seconds: int = 300
    archive_after_days: int = 30
    check_reminders: bool = True


@dataclass
class NotifyConfig:
    """通知送信先設定"""

    url: Optional[str] = DEFAULT_NOTIFY_URL
    timeout: float = 10.0
    agent_name: str = "Nova"


@dataclass
class DiaryConfig:
    """日記連携設定"""

    enabled: bool = True
    url: Optional[str] = None
    file: Optional[str] = "diary.jsonl"
    max_queue_size: int = 100


@dataclass
class Config:
    """アプリケーション設定クラス"""

    store: StoreConfig = None  # type: ignore
    reminder: ReminderConfig = None  # type: ignore
    daemon: DaemonConfig = None  # type: ignore
    notify: NotifyConfig = None  # type: ignore
    diary: DiaryConfig = None  # type: ignore

    # ログ設定
    log_level: str = "INFO"
    log_file: str = "logs/todo.log"

    timezone: str = "Asia/Tokyo"

    def __post_init__(self):
        """デフォルト値の初期化"""
        if self.store is None:
            self.store = StoreConfig()
        if self.reminder is None:
            self.reminder = ReminderConfig()
        if self.daemon is None:
            self.daemon = DaemonConfig()
        if self.notify is None:
            self.notify = NotifyConfig()
        if self.diary is None:
            self.diary = DiaryConfig()
        if self.reminder.default_minutes <= 0:
            logger.warning(
                f"reminder.default_minutes must be positive, using {DEFAULT_REMINDER_MINUTES}"
            )
            self.reminder.default_minutes = DEFAULT_REMINDER_MINUTES
        if not 0 <= self.daemon.daily_summary_hour <= 23:
            raise ValueError(f"daemon.daily_summary_hour out of range: {self.daemon.daily_summary_hour}")

    @staticmethod
    def resolve_path(value: Optional[str]) -> Optional[Path]:
        """相対パスはプロジェクトルート基準で解決"""
        if not value:
            return None
        path = Path(value).expanduser()
        return path if path.is_absolute() else PROJECT_ROOT / path

    def data_path(self) -> Path:
        return self.resolve_path(self.store.data_dir) or PROJECT_ROOT / "data"

    def _under_data_dir(self, value: str) -> Path:
        path = Path(value).expanduser()
        return path if path.is_absolute() else self.data_path() / path

    def schedule_path(self) -> Path:
        """スケジュールエントリの出力先（相対パスはdata_dir基準）"""
        return self._under_data_dir(self.reminder.schedule_dir)

    def diary_path(self) -> Optional[Path]:
        return self._under_data_dir(self.diary.file) if self.diary.file else None

    @classmethod
    def from_yaml(cls, config_path: Optional[Path] = None) -> "Config":
        """YAMLファイルから設定を読み込む

        Args:
            config_path: 設定ファイルパス（省略時はconfig/app_config.yamlを使用）

        Returns:
            Config: 設定インスタンス
        """
        if config_path is None:
            config_path = DEFAULT_CONFIG_PATH

        with open(config_path, "r", encoding="utf-8") as f:
            yaml_data: Dict[str, Any] = yaml.safe_load(f) or {}

        store_data = yaml_data.get("store", {})
        reminder_data = yaml_data.get("reminder", {})
        daemon_data = yaml_data.get("daemon", {})
        notify_data = yaml_data.get("notify", {})
        diary_data = yaml_data.get("diary", {})
        log_data = yaml_data.get("log", {})

        return cls(
            store=StoreConfig(
                data_dir=store_data.get("data_dir", "data"),
                lock_timeout=float(store_data.get("lock_timeout", 5.0)),
            ),
            reminder=ReminderConfig(
                default_minutes=int(reminder_data.get("default_minutes", DEFAULT_REMINDER_MINUTES)),
                schedule_dir=reminder_data.get("schedule_dir", "scheduled"),
                agent_name=reminder_data.get("agent_name", "System"),
            ),
            daemon=DaemonConfig(
                check_interval_seconds=int(daemon_data.get("check_interval_seconds", 60)),
                daily_summary_hour=int(daemon_data.get("daily_summary_hour", 8)),
                retry_interval_seconds=int(daemon_data.get("retry_interval_seconds", 300)),
                archive_after_days=int(daemon_data.get("archive_after_days", 30)),
                check_reminders=bool(daemon_data.get("check_reminders", True)),
            ),
            notify=NotifyConfig(
                url=notify_data.get("url", DEFAULT_NOTIFY_URL),
                timeout=float(notify_data.get("timeout", 10.0)),
                agent_name=notify_data.get("agent_name", "Nova"),
            ),
            diary=DiaryConfig(
                enabled=bool(diary_data.get("enabled", True)),
                url=diary_data.get("url"),
                file=diary_data.get("file", "diary.jsonl"),
                max_queue_size=int(diary_data.get("max_queue_size", 100)),
            ),
            log_level=log_data.get("level", "INFO"),
            log_file=log_data.get("file", "logs/todo.log"),
            timezone=yaml_data.get("timezone", "Asia/Tokyo"),
        )

    @classmethod
    def from_env(cls) -> "Config":
        """環境変数のみから設定を作る"""
        config = cls()
        config.apply_env_overrides()
        return config

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Config":
        """YAML（存在すれば）を読み込み、環境変数で上書き"""
        path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
        if path.exists():
            config = cls.from_yaml(path)
        else:
            if config_path:
                raise FileNotFoundError(f"Config file not found: {path}")
            config = cls()
        config.apply_env_overrides()
        return config

    def apply_env_overrides(self) -> None:
        """TODO_DATA_DIR / TODO_TIMEZONE / TODO_NOTIFY_URL / DEFAULT_REMINDER_MINUTES / DAILY_SUMMARY_HOUR"""
        if os.getenv("TODO_DATA_DIR"):
            self.store.data_dir = os.environ["TODO_DATA_DIR"]
        if os.getenv("TODO_TIMEZONE"):
            self.timezone = os.environ["TODO_TIMEZONE"]
        if os.getenv("TODO_NOTIFY_URL"):
            self.notify.url = os.environ["TODO_NOTIFY_URL"]
        if os.getenv("LOG_LEVEL"):
            self.log_level = os.environ["LOG_LEVEL"]

        minutes = os.getenv("DEFAULT_REMINDER_MINUTES")
        if minutes:
            try:
                value = int(minutes)
            except ValueError:
                value = 0
            # 不正値・0以下は既定値
            self.reminder.default_minutes = value if value > 0 else DEFAULT_REMINDER_MINUTES

        hour = os.getenv("DAILY_SUMMARY_HOUR")
        if hour:
            value = int(hour)
            if not 0 <= value <= 23:
                raise ValueError(f"DAILY_SUMMARY_HOUR out of range: {value}")
            self.daemon.daily_summary_hour = value
