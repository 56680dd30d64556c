import json

import httpx
import pytest

from turnrelay.recordings import RecordedNotification
from turnrelay.transport import ForwardingError, MemorySessionTransport, forward_messages, replay_notifications


def _notification(method: str, params: dict, line: int) -> RecordedNotification:
    return RecordedNotification(method=method, params=params, line=line)


TURN = [
    _notification("thread/started", {"thread": {"id": "thr-1"}}, 1),
    _notification("turn/started", {"threadId": "thr-1", "turn": {"id": "turn-1"}}, 2),
    _notification("turn/plan/updated", {"turnId": "turn-1", "plan": [{"step": "read", "status": "pending"}]}, 3),
    _notification(
        "item/started",
        {"turnId": "turn-1", "item": {"id": "cmd-1", "type": "commandExecution", "command": "ls"}},
        4,
    ),
    _notification(
        "item/completed",
        {"turnId": "turn-1", "item": {"id": "cmd-1", "type": "commandExecution", "aggregatedOutput": "a.py"}},
        5,
    ),
    _notification("turn/completed", {"turn": {"id": "turn-1"}, "status": "completed"}, 6),
]


def test_replay_produces_ordered_outbound_messages(sequential_ids) -> None:
    result = replay_notifications(TURN, id_factory=sequential_ids)

    sent = result.transport.sent
    assert [message["type"] for message in sent] == [
        "tool-call",
        "tool-call",
        "tool-call-result",
        "tool-call-result",
        "ready",
    ]
    assert sent[0]["name"] == "ExitPlanMode"
    assert sent[1]["callId"] == sent[2]["callId"] == "cmd-1"
    assert sent[3]["callId"] == sent[0]["callId"]
    assert result.open_plan_calls == {}
    assert result.to_dict()["session_id"] == "thr-1"
    assert result.to_dict()["message_count"] == 4


def test_replay_reports_plan_calls_left_open(sequential_ids) -> None:
    result = replay_notifications(TURN[:3], id_factory=sequential_ids)

    assert result.open_plan_calls == {"turn-1": "turn-plan:turn-1"}


def test_memory_transport_tracks_thinking_and_session() -> None:
    transport = MemorySessionTransport()

    transport.on_thinking_change(True)
    transport.on_thinking_change(False)
    transport.on_session_found("thr-9")

    assert transport.thinking is False
    assert transport.thinking_changes == [True, False]
    assert transport.session_id == "thr-9"


def test_forward_messages_posts_session_payload() -> None:
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(202)

    with httpx.Client(transport=httpx.MockTransport(handler)) as client:
        status = forward_messages(
            "http://hub.test/sessions",
            [{"type": "ready"}],
            session_id="thr-1",
            client=client,
        )

    assert status == 202
    assert seen == [{"session_id": "thr-1", "messages": [{"type": "ready"}]}]


def test_forward_messages_wraps_http_status_errors() -> None:
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(503)))

    with pytest.raises(ForwardingError, match="HTTP 503"):
        forward_messages("http://hub.test/sessions", [], client=client)


def test_forward_messages_wraps_connection_errors() -> None:
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = httpx.Client(transport=httpx.MockTransport(refuse))

    with pytest.raises(ForwardingError, match="Unable to reach hub"):
        forward_messages("http://hub.test/sessions", [], client=client)
