"""通知の送信先（フロントエンドへのHTTPブロードキャスト / ログ出力）"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol, Union

import requests

logger = logging.getLogger(__name__)

Payload = Union[Dict[str, Any], str]


class Notifier(Protocol):
    """notify(payload) -> 成功ならTrue"""

    def notify(self, payload: Payload) -> bool:
        ...


def broadcast_body(payload: Payload, agent_name: str) -> Dict[str, Any]:
    """ブロードキャストチャネルへ送るJSONボディ"""
    if isinstance(payload, str):
        return {
            "type": "TODO_REMINDER",
            "reminderType": "normal",
            "agentName": agent_name,
            "message": payload,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    data = payload.get("data", {})
    return {
        "type": payload.get("type", "TODO_REMINDER"),
        "reminderType": payload.get("reminderType", "normal"),
        "agentName": agent_name,
        "todoId": data.get("todoId"),
        "title": data.get("title"),
        "message": data.get("content"),
        "priority": payload.get("priority"),
        "dueDateTime": data.get("deadline"),
        "tags": data.get("tags", []),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "reminder": payload,
    }


class HttpNotifier:
    """
    HTTP POSTで通知をブロードキャストする

    2xx応答のみ成功。接続エラー・タイムアウト・非2xxは失敗として
    Falseを返し、呼び出し側のリトライ管理に委ねる。
    """

    def __init__(self, url: str, agent_name: str = "System", timeout: float = 10.0):
        """
        Args:
            url: ブロードキャストエンドポイント（例: http://localhost:8855/internal/vcplog-broadcast）
            agent_name: 通知に付けるエージェント名
            timeout: リクエストタイムアウト（秒）
        """
        self.url = url
        self.agent_name = agent_name
        self.timeout = timeout

    def notify(self, payload: Payload) -> bool:
        body = broadcast_body(payload, self.agent_name)
        try:
            response = requests.post(
                self.url,
                headers={"Content-Type": "application/json"},
                json=body,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.error(f"通知の送信に失敗: {e}")
            return False

        logger.info(f"通知を送信しました: {body.get('title')} -> {self.agent_name}")
        return True


class LoggingNotifier:
    """通知内容をログに出すだけの送信先（--dry-run用）"""

    def __init__(self, level: int = logging.INFO):
        self.level = level
        self.sent: list[Payload] = []

    def notify(self, payload: Payload) -> bool:
        if isinstance(payload, dict):
            data = payload.get("data", {})
            logger.log(self.level, f"[dry-run] {payload.get('reminderType')}: {data.get('title')} ({data.get('todoId')})")
        else:
            logger.log(self.level, f"[dry-run] {payload}")
        self.sent.append(payload)
        return True


def build_notifier(url: Optional[str], agent_name: str, timeout: float, dry_run: bool = False) -> Optional[Notifier]:
    """設定から送信先を選ぶ。URLなしかつdry-runでなければNone"""
    if dry_run:
        return LoggingNotifier()
    if url:
        return HttpNotifier(url, agent_name=agent_name, timeout=timeout)
    return None
