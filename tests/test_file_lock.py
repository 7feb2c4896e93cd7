"""FileLockのテストコード"""

import json
import os
import threading
import time

import pytest

from src.todo.exceptions import LockTimeoutError
from src.todo.file_lock import FileLock


def test_acquire_and_release(tmp_path):
    """取得でマーカーが作成され、解放で削除されることを確認"""
    lock = FileLock(tmp_path)
    lock_id = lock.acquire("todos")

    marker = tmp_path / ".todos.lock"
    assert marker.exists()
    data = json.loads(marker.read_text(encoding="utf-8"))
    assert data["lockId"] == lock_id
    assert data["pid"] == os.getpid()
    assert lock.held_resources == ["todos"]

    assert lock.release("todos", lock_id) is True
    assert not marker.exists()
    assert lock.held_resources == []


def test_second_holder_times_out(tmp_path):
    first = FileLock(tmp_path)
    second = FileLock(tmp_path)
    first.acquire("todos")

    started = time.monotonic()
    with pytest.raises(LockTimeoutError):
        second.acquire("todos", timeout=0.2, retry_interval=0.02)
    assert time.monotonic() - started >= 0.2

    first.release("todos")
    # 解放後は取得できる
    second.acquire("todos", timeout=0.2)
    second.release("todos")


def test_stale_lock_is_taken_over(tmp_path):
    """stale閾値を超えたマーカーは奪取される"""
    marker = tmp_path / ".todos.lock"
    old_ms = int((time.time() - 120) * 1000)
    marker.write_text(json.dumps({"lockId": "crashed", "pid": 999999, "acquiredAt": old_ms}), encoding="utf-8")

    lock = FileLock(tmp_path, stale_seconds=30)
    lock_id = lock.acquire("todos", timeout=0.5)
    assert json.loads(marker.read_text(encoding="utf-8"))["lockId"] == lock_id
    lock.release("todos", lock_id)


def test_unreadable_marker_is_aged_by_mtime(tmp_path):
    marker = tmp_path / ".todos.lock"
    marker.write_text("not json", encoding="utf-8")
    old = time.time() - 120
    os.utime(marker, (old, old))

    lock = FileLock(tmp_path, stale_seconds=30)
    lock.release("todos", lock.acquire("todos", timeout=0.5))

    # 新しい壊れたマーカーはstaleではない
    marker.write_text("not json", encoding="utf-8")
    with pytest.raises(LockTimeoutError):
        lock.acquire("todos", timeout=0.1)


def test_release_does_not_remove_taken_over_lock(tmp_path):
    """奪取された後、元の保持者の解放は新しい保持者のマーカーを消さない"""
    lock = FileLock(tmp_path)
    lock.acquire("todos")
    marker = tmp_path / ".todos.lock"
    marker.write_text(json.dumps({"lockId": "other", "pid": 1, "acquiredAt": int(time.time() * 1000)}), encoding="utf-8")

    assert lock.release("todos") is False
    assert marker.exists()
    assert lock.held_resources == []


def test_with_lock_releases_on_error(tmp_path):
    lock = FileLock(tmp_path)

    def fail():
        raise RuntimeError("boom")

    assert lock.with_lock("todos", lambda: 42) == 42
    with pytest.raises(RuntimeError):
        lock.with_lock("todos", fail)
    assert not (tmp_path / ".todos.lock").exists()


def test_cleanup_removes_held_markers(tmp_path):
    lock = FileLock(tmp_path)
    lock.acquire("todos")
    lock.acquire("other")
    lock.cleanup()
    assert not (tmp_path / ".todos.lock").exists()
    assert not (tmp_path / ".other.lock").exists()


def test_mutual_exclusion_across_threads(tmp_path):
    """独立したFileLockインスタンス間で区間が重ならないことを確認"""
    inside = []
    overlaps = []

    def worker():
        lock = FileLock(tmp_path)
        for _ in range(5):
            with lock.hold("todos", timeout=10):
                if inside:
                    overlaps.append(True)
                inside.append(1)
                time.sleep(0.005)
                inside.pop()

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert overlaps == []
