"""設定読み込みのテストコード"""

import pytest

from src.todo.config import Config, PROJECT_ROOT


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("TODO_DATA_DIR", "TODO_TIMEZONE", "TODO_NOTIFY_URL", "LOG_LEVEL", "DEFAULT_REMINDER_MINUTES", "DAILY_SUMMARY_HOUR"):
        monkeypatch.delenv(name, raising=False)


def test_from_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        """
store:
  data_dir: /var/lib/todo
reminder:
  default_minutes: 15
daemon:
  daily_summary_hour: 7
  check_reminders: false
notify:
  url: null
log:
  level: DEBUG
timezone: UTC
""",
        encoding="utf-8",
    )

    config = Config.load(path)

    assert config.data_path().as_posix() == "/var/lib/todo"
    assert config.schedule_path().as_posix() == "/var/lib/todo/scheduled"
    assert config.diary_path().as_posix() == "/var/lib/todo/diary.jsonl"
    assert config.reminder.default_minutes == 15
    assert config.daemon.daily_summary_hour == 7
    assert config.daemon.check_reminders is False
    assert config.daemon.check_interval_seconds == 60
    assert config.notify.url is None
    assert config.log_level == "DEBUG"
    assert config.timezone == "UTC"


def test_defaults_and_relative_paths():
    config = Config()
    assert config.data_path() == PROJECT_ROOT / "data"
    assert config.reminder.default_minutes == 60
    assert config.daemon.retry_interval_seconds == 300
    assert config.daemon.archive_after_days == 30


def test_env_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("TODO_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("TODO_NOTIFY_URL", "http://example.invalid/notify")
    monkeypatch.setenv("DEFAULT_REMINDER_MINUTES", "30")
    monkeypatch.setenv("DAILY_SUMMARY_HOUR", "9")

    config = Config.load()

    assert config.data_path() == tmp_path
    assert config.notify.url == "http://example.invalid/notify"
    assert config.reminder.default_minutes == 30
    assert config.daemon.daily_summary_hour == 9


@pytest.mark.parametrize("value", ["0", "-5", "abc"])
def test_invalid_default_minutes_fall_back(monkeypatch, value):
    monkeypatch.setenv("DEFAULT_REMINDER_MINUTES", value)
    assert Config.load().reminder.default_minutes == 60


def test_invalid_summary_hour(monkeypatch, tmp_path):
    monkeypatch.setenv("DAILY_SUMMARY_HOUR", "24")
    with pytest.raises(ValueError):
        Config.load()

    monkeypatch.delenv("DAILY_SUMMARY_HOUR")
    path = tmp_path / "config.yaml"
    path.write_text("daemon:\n  daily_summary_hour: 25\n", encoding="utf-8")
    with pytest.raises(ValueError):
        Config.load(path)


def test_missing_explicit_config(tmp_path):
    with pytest.raises(FileNotFoundError):
        Config.load(tmp_path / "nope.yaml")
