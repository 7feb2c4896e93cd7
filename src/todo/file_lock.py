"""
ファイルベースの排他ロック

短命なコマンドプロセスと常駐デーモンが同じtodos.jsonを共有するため、
O_CREAT|O_EXCL によるマーカーファイルの排他作成で相互排他を実現する。
保持者がクラッシュしたロックは STALE_LOCK_SECONDS を超えた時点で奪取する。

プロセス終了時（正常終了・SIGTERM）には、このプロセスが作成したマーカーを
ベストエフォートで削除する。プロセス間の安全性はあくまで排他作成と
stale判定が担う。
"""

from __future__ import annotations

import atexit
import json
import logging
import os
import secrets
import signal
import sys
import threading
import time
import weakref
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Dict, Iterator, Optional, TypeVar

from .exceptions import LockTimeoutError, PersistenceError

logger = logging.getLogger(__name__)

T = TypeVar("T")

STALE_LOCK_SECONDS = 30.0
DEFAULT_LOCK_TIMEOUT = 5.0
DEFAULT_RETRY_INTERVAL = 0.05

_instances: "weakref.WeakSet[FileLock]" = weakref.WeakSet()
_handlers_installed = False


class FileLock:
    """マーカーファイルによる協調ロック

    Attributes:
        lock_dir: マーカーファイルを置くディレクトリ
        stale_seconds: このロック年齢を超えたマーカーは奪取される
    """

    def __init__(self, lock_dir: Path, stale_seconds: float = STALE_LOCK_SECONDS):
        self.lock_dir = Path(lock_dir)
        self.stale_seconds = stale_seconds
        self._held: Dict[str, str] = {}
        self._mutex = threading.Lock()
        _instances.add(self)

    def lock_path(self, resource: str) -> Path:
        return self.lock_dir / f".{resource}.lock"

    @property
    def held_resources(self) -> list[str]:
        with self._mutex:
            return list(self._held)

    def acquire(
        self,
        resource: str,
        timeout: Optional[float] = None,
        retry_interval: float = DEFAULT_RETRY_INTERVAL,
    ) -> str:
        """
        ロックを取得

        Args:
            resource: リソース名（マーカーは .<resource>.lock）
            timeout: 最大待ち時間（秒）。Noneなら DEFAULT_LOCK_TIMEOUT
            retry_interval: 再試行間隔（秒）

        Returns:
            ロックID（releaseに渡す）

        Raises:
            LockTimeoutError: timeout以内に取得できなかった
            PersistenceError: マーカーファイルを作成できない
        """
        timeout = DEFAULT_LOCK_TIMEOUT if timeout is None else timeout
        path = self.lock_path(resource)
        lock_id = f"{os.getpid()}_{int(time.time() * 1000)}_{secrets.token_hex(4)}"
        deadline = time.monotonic() + timeout

        try:
            self.lock_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise PersistenceError(f"Cannot create lock directory {self.lock_dir}: {exc}") from exc

        while True:
            if self._try_create(path, lock_id):
                with self._mutex:
                    self._held[resource] = lock_id
                logger.debug("Lock acquired: %s (%s)", resource, lock_id)
                return lock_id

            if self._is_stale(path) and self._remove_marker(path):
                logger.warning("Removed stale lock file: %s", path)
                continue

            if time.monotonic() >= deadline:
                raise LockTimeoutError(
                    f"Could not acquire lock for '{resource}' within {timeout:.1f}s"
                )
            time.sleep(retry_interval)

    def release(self, resource: str, lock_id: Optional[str] = None) -> bool:
        """
        ロックを解放

        マーカーの中身が自分のロックIDと一致する場合のみ削除する
        （stale判定で奪取された後の他プロセスのロックは消さない）。

        Returns:
            マーカーを削除した場合True
        """
        path = self.lock_path(resource)
        with self._mutex:
            held_id = self._held.get(resource)
            expected = lock_id or held_id
            if expected is None:
                logger.debug("Release of lock not held by this process: %s", resource)
                return False

            current = self._read_lock_id(path)
            if current is not None and current != expected:
                logger.warning("Lock %s was taken over by another holder; not removing", resource)
                self._held.pop(resource, None)
                return False

            removed = self._remove_marker(path)
            if held_id == expected:
                self._held.pop(resource, None)
            logger.debug("Lock released: %s (%s)", resource, expected)
            return removed

    @contextmanager
    def hold(self, resource: str, timeout: Optional[float] = None) -> Iterator[str]:
        """with文でロックを保持する"""
        lock_id = self.acquire(resource, timeout)
        try:
            yield lock_id
        finally:
            self.release(resource, lock_id)

    def with_lock(self, resource: str, fn: Callable[[], T], timeout: Optional[float] = None) -> T:
        """ロック保持中にfnを実行し、その戻り値を返す（例外時も必ず解放）"""
        with self.hold(resource, timeout):
            return fn()

    def cleanup(self) -> None:
        """このインスタンスが保持中のロックをすべて解放"""
        for resource in self.held_resources:
            try:
                self.release(resource)
            except OSError as exc:
                logger.warning("Failed to clean up lock %s: %s", resource, exc)

    @staticmethod
    def _try_create(path: Path, lock_id: str) -> bool:
        try:
            fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        except OSError as exc:
            raise PersistenceError(f"Cannot create lock file {path}: {exc}") from exc

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(
                    {"lockId": lock_id, "pid": os.getpid(), "acquiredAt": int(time.time() * 1000)},
                    f,
                )
        except OSError as exc:
            # 中途半端なマーカーを残さない
            path.unlink(missing_ok=True)
            raise PersistenceError(f"Cannot write lock file {path}: {exc}") from exc
        return True

    def _is_stale(self, path: Path) -> bool:
        """マーカーが消えているか、stale閾値を超えていればTrue"""
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            age = time.time() - float(data["acquiredAt"]) / 1000
        except FileNotFoundError:
            return True
        except (OSError, ValueError, KeyError, TypeError):
            # 書き込み途中・破損したマーカーはmtimeで判定
            try:
                age = time.time() - path.stat().st_mtime
            except FileNotFoundError:
                return True
            except OSError:
                return False
        return age > self.stale_seconds

    @staticmethod
    def _read_lock_id(path: Path) -> Optional[str]:
        try:
            return json.loads(path.read_text(encoding="utf-8")).get("lockId")
        except (OSError, ValueError, AttributeError):
            return None

    @staticmethod
    def _remove_marker(path: Path) -> bool:
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return True
        except OSError as exc:
            logger.warning("Could not remove lock file %s: %s", path, exc)
            return False


def cleanup_all_locks() -> None:
    """プロセス内の全FileLockが保持するマーカーを削除"""
    for file_lock in list(_instances):
        file_lock.cleanup()


def _exit_on_sigterm(signum, frame) -> None:
    # sys.exitでatexitハンドラを走らせる
    sys.exit(128 + signum)


def install_exit_handlers() -> None:
    """atexitとSIGTERMでロックを掃除するハンドラを登録（複数回呼んでも1回だけ）"""
    global _handlers_installed
    if _handlers_installed:
        return
    atexit.register(cleanup_all_locks)
    if threading.current_thread() is threading.main_thread():
        if signal.getsignal(signal.SIGTERM) in (signal.SIG_DFL, None):
            signal.signal(signal.SIGTERM, _exit_on_sigterm)
    _handlers_installed = True
