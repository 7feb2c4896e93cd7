"""Todo管理のカスタム例外定義

コマンド層はTodoErrorを捕捉して1行のエラー結果に変換する。
デーモンはTodoErrorをログに残し、次のtickで再試行する。

Design Reference: DESIGN.md
"""


class TodoError(Exception):
    """Todo管理の基底例外"""

    pass


class InvalidInputError(TodoError):
    """必須フィールドの欠落、解析できない時間表現など"""

    pass


class TaskNotFoundError(TodoError):
    """存在しないタスクID"""

    def __init__(self, task_id: str):
        super().__init__(f"Todo not found: {task_id}")
        self.task_id = task_id


class LockTimeoutError(TodoError):
    """タイムアウト内にストアのロックを取得できなかった"""

    pass


class PersistenceError(TodoError):
    """ストアファイルの読み書きに失敗"""

    pass


class NotifyError(TodoError):
    """通知の配信に失敗（リトライ対象）"""

    pass
