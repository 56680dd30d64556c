"""Session transports: an in-memory collector and HTTP forwarding to a hub."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

import httpx

from turnrelay.core.models import CanonicalEvent
from turnrelay.normalize.converter import NotificationNormalizer
from turnrelay.recordings import RecordedNotification
from turnrelay.session.emitter import ToolCallEmitter, new_message_id
from turnrelay.session.exceptions import RelayError
from turnrelay.session.pipeline import NotificationPipeline
from turnrelay.session.ports import DiffProcessor, MessageBuffer, ReasoningProcessor
from turnrelay.session.state import TurnLifecycleTracker

logger = logging.getLogger(__name__)

DEFAULT_FORWARD_TIMEOUT_SECONDS = 30.0


class ForwardingError(RelayError):
    """Raised when outbound messages cannot be delivered to the hub."""


@dataclass(slots=True)
class MemorySessionTransport:
    """Session transport that records everything it is asked to send."""

    session_id: str | None = None
    thinking: bool = False
    messages: list[dict[str, Any]] = field(default_factory=list)
    session_events: list[dict[str, Any]] = field(default_factory=list)
    thinking_changes: list[bool] = field(default_factory=list)
    sent: list[dict[str, Any]] = field(default_factory=list)

    def send_message(self, message: dict[str, Any]) -> None:
        self.messages.append(dict(message))
        self.sent.append(dict(message))

    def send_session_event(self, event: dict[str, Any]) -> None:
        self.session_events.append(dict(event))
        self.sent.append(dict(event))

    def on_session_found(self, thread_id: str) -> None:
        self.session_id = thread_id

    def on_thinking_change(self, thinking: bool) -> None:
        self.thinking = thinking
        self.thinking_changes.append(thinking)


@dataclass(frozen=True, slots=True)
class ReplayResult:
    events: tuple[CanonicalEvent, ...]
    transport: MemorySessionTransport
    open_plan_calls: dict[str, str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_count": len(self.events),
            "message_count": len(self.transport.messages),
            "session_event_count": len(self.transport.session_events),
            "session_id": self.transport.session_id,
            "open_plan_calls": dict(self.open_plan_calls),
        }


def replay_notifications(
    notifications: Iterable[RecordedNotification],
    *,
    transport: MemorySessionTransport | None = None,
    reasoning: ReasoningProcessor | None = None,
    diff: DiffProcessor | None = None,
    message_buffer: MessageBuffer | None = None,
    id_factory: Callable[[], str] = new_message_id,
) -> ReplayResult:
    """Run recorded notifications through a fresh pipeline."""
    transport = transport or MemorySessionTransport()
    tracker = TurnLifecycleTracker()
    emitter = ToolCallEmitter(transport, tracker, reasoning=reasoning, diff=diff, id_factory=id_factory)
    pipeline = NotificationPipeline(
        transport=transport,
        tracker=tracker,
        emitter=emitter,
        normalizer=NotificationNormalizer(),
        message_buffer=message_buffer,
        diff=diff,
    )
    events: list[CanonicalEvent] = []
    for notification in notifications:
        events.extend(pipeline.handle_notification(notification.method, notification.params))
    return ReplayResult(
        events=tuple(events),
        transport=transport,
        open_plan_calls=dict(tracker.state.plan_calls),
    )


def forward_messages(
    url: str,
    messages: list[dict[str, Any]],
    *,
    session_id: str | None = None,
    timeout_seconds: float = DEFAULT_FORWARD_TIMEOUT_SECONDS,
    client: httpx.Client | None = None,
) -> int:
    """POST outbound messages to a hub endpoint; returns the HTTP status code."""
    payload = {"session_id": session_id, "messages": messages}
    owns_client = client is None
    http = client or httpx.Client(timeout=timeout_seconds)
    try:
        response = http.post(url, json=payload)
        response.raise_for_status()
    except httpx.HTTPStatusError as error:
        raise ForwardingError(
            f"Hub rejected {len(messages)} messages: HTTP {error.response.status_code}"
        ) from error
    except httpx.HTTPError as error:
        raise ForwardingError(f"Unable to reach hub at {url}: {error}") from error
    finally:
        if owns_client:
            http.close()
    logger.debug("Forwarded %d messages to %s", len(messages), url)
    return response.status_code
