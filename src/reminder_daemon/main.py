#!/usr/bin/env python3
"""
リマインダーデーモンのメインスクリプト

Usage:
    python -m src.reminder_daemon [--config CONFIG_PATH] [--once] [--dry-run]
"""

import argparse
import logging
import signal
import sys
import time
from typing import List, Optional

from src.todo.config import Config
from src.todo.file_lock import install_exit_handlers
from src.todo.logger import setup_logger
from src.todo.manager import TodoManager
from src.todo.notifier import LoggingNotifier, build_notifier

from .scheduler import ReminderScheduler
from .state import DaemonState

logger = logging.getLogger(__name__)


def setup_signal_handlers(scheduler: ReminderScheduler, manager: TodoManager) -> None:
    """シグナルハンドラーを設定"""

    def signal_handler(sig, frame):
        logger.info("Received shutdown signal, stopping reminder daemon...")
        if scheduler.is_running():
            scheduler.stop()
        manager.close()
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)


def build_scheduler(config: Config, dry_run: bool = False) -> ReminderScheduler:
    """設定からマネージャー・通知先・状態を組み立てる"""
    notifier = build_notifier(
        config.notify.url,
        agent_name=config.notify.agent_name,
        timeout=config.notify.timeout,
        dry_run=dry_run,
    )
    if notifier is None:
        logger.warning("No notify.url configured; reminders will only be logged")
        notifier = LoggingNotifier()

    manager = TodoManager.from_config(config, notifier=notifier)
    state = DaemonState.in_dir(config.data_path())
    return ReminderScheduler(manager, state, config.daemon)


def main(argv: Optional[List[str]] = None) -> int:
    """メインエントリーポイント"""
    parser = argparse.ArgumentParser(description="Todo Reminder Daemon")
    parser.add_argument("--config", type=str, default=None, help="Config file path")
    parser.add_argument("--once", action="store_true", help="Run a single check and exit")
    parser.add_argument("--dry-run", action="store_true", help="Log reminders instead of sending them")
    args = parser.parse_args(argv)

    # 設定読み込み
    try:
        config = Config.load(args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: failed to load config: {e}", file=sys.stderr)
        return 1

    log_file = Config.resolve_path(config.log_file)
    setup_logger(log_level=config.log_level, log_file=str(log_file) if log_file else None)
    install_exit_handlers()

    scheduler = build_scheduler(config, dry_run=args.dry_run)
    manager = scheduler.manager

    if args.once:
        result = scheduler.run_once()
        logger.info(f"Single check finished: {result}")
        manager.close()
        return 0

    setup_signal_handlers(scheduler, manager)

    logger.info("Starting reminder daemon...")
    scheduler.start()

    # 無限ループ
    logger.info("Running indefinitely (Ctrl+C to stop)...")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        scheduler.stop()
        manager.close()
        logger.info("Reminder daemon stopped by user")
    return 0


if __name__ == "__main__":
    sys.exit(main())
