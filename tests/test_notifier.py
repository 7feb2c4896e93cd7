"""通知送信先のテストコード"""

from unittest.mock import MagicMock

import requests

from src.todo.notifier import HttpNotifier, LoggingNotifier, broadcast_body, build_notifier

PAYLOAD = {
    "type": "TODO_REMINDER",
    "reminderType": "overdue",
    "priority": "high",
    "data": {
        "todoId": "todo_1_abcd",
        "title": "Pay rent",
        "content": "Transfer to landlord",
        "deadline": "2025-01-15T12:00:00+09:00",
        "tags": ["home"],
    },
}


def test_broadcast_body_for_structured_payload():
    body = broadcast_body(PAYLOAD, "Nova")

    assert body["type"] == "TODO_REMINDER"
    assert body["reminderType"] == "overdue"
    assert body["agentName"] == "Nova"
    assert body["todoId"] == "todo_1_abcd"
    assert body["message"] == "Transfer to landlord"
    assert body["dueDateTime"] == "2025-01-15T12:00:00+09:00"
    assert body["reminder"] is PAYLOAD
    assert "timestamp" in body


def test_broadcast_body_for_text_payload():
    body = broadcast_body("【Todoリマインダー】", "Nova")
    assert body["message"] == "【Todoリマインダー】"
    assert body["reminderType"] == "normal"


def test_http_notifier_posts_json(monkeypatch):
    response = MagicMock()
    post = MagicMock(return_value=response)
    monkeypatch.setattr(requests, "post", post)

    notifier = HttpNotifier("http://localhost:8855/internal/vcplog-broadcast", agent_name="Nova", timeout=3)
    assert notifier.notify(PAYLOAD) is True

    args, kwargs = post.call_args
    assert args[0] == "http://localhost:8855/internal/vcplog-broadcast"
    assert kwargs["json"]["title"] == "Pay rent"
    assert kwargs["timeout"] == 3
    response.raise_for_status.assert_called_once()


def test_http_notifier_reports_failures(monkeypatch):
    monkeypatch.setattr(requests, "post", MagicMock(side_effect=requests.exceptions.ConnectionError("refused")))
    assert HttpNotifier("http://localhost:1").notify(PAYLOAD) is False

    response = MagicMock()
    response.raise_for_status.side_effect = requests.exceptions.HTTPError("500 Server Error")
    monkeypatch.setattr(requests, "post", MagicMock(return_value=response))
    assert HttpNotifier("http://localhost:1").notify(PAYLOAD) is False


def test_build_notifier():
    assert isinstance(build_notifier("http://x", "Nova", 1.0), HttpNotifier)
    assert isinstance(build_notifier("http://x", "Nova", 1.0, dry_run=True), LoggingNotifier)
    assert build_notifier(None, "Nova", 1.0) is None


def test_logging_notifier_records_payloads():
    notifier = LoggingNotifier()
    assert notifier.notify(PAYLOAD) is True
    assert notifier.notify("text") is True
    assert notifier.sent == [PAYLOAD, "text"]
