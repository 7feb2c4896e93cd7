"""リマインダーデーモン実行用エントリポイント

Usage:
    python -m src.reminder_daemon [--config CONFIG_PATH] [--once] [--dry-run]
"""

from .main import main

if __name__ == "__main__":
    raise SystemExit(main())
