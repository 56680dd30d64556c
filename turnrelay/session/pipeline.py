"""Notification pipeline: normalizer, lifecycle tracker and tool-call emitter.

Notifications are handled synchronously and in arrival order; nothing here
awaits, so a notification callback can never interleave with another.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable

from turnrelay.core.fields import as_string
from turnrelay.core.models import CanonicalEvent
from turnrelay.normalize.converter import NotificationNormalizer
from turnrelay.session.emitter import ToolCallEmitter
from turnrelay.session.ports import DiffProcessor, MessageBuffer, SessionTransport
from turnrelay.session.state import TurnLifecycleTracker

logger = logging.getLogger(__name__)

PREVIEW_LIMIT = 200
REASONING_PREVIEW_LIMIT = 100


def _preview(value: Any) -> str:
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, sort_keys=True)
    except (TypeError, ValueError):
        return str(value)


def _truncate(text: str, limit: int = PREVIEW_LIMIT) -> str:
    return text[:limit] + ("..." if len(text) > limit else "")


def describe_event(event: CanonicalEvent) -> tuple[str, str] | None:
    """Return a ``(text, kind)`` activity line for ``event``, if it has one."""
    payload = event.payload
    kind = event.type

    if kind == "agent_message":
        message = as_string(payload.get("message"))
        return (message, "assistant") if message else None
    if kind == "agent_reasoning":
        text = as_string(payload.get("text"))
        return (f"[Thinking] {text[:REASONING_PREVIEW_LIMIT]}...", "system") if text else None
    if kind == "exec_command_begin":
        return f"Executing: {as_string(payload.get('command')) or 'command'}", "tool"
    if kind == "exec_command_end":
        output = payload.get("output")
        if output is None:
            output = payload.get("error")
        if output is None:
            output = "Command completed"
        return f"Result: {_truncate(_preview(output))}", "result"
    if kind == "patch_apply_begin":
        count = len(payload.get("changes") or {})
        files = "1 file" if count == 1 else f"{count} files"
        return f"Modifying {files}...", "tool"
    if kind == "patch_apply_end":
        if payload.get("success"):
            stdout = as_string(payload.get("stdout")) or "Files modified successfully"
            return stdout[:PREVIEW_LIMIT], "result"
        stderr = as_string(payload.get("stderr")) or "Failed to modify files"
        return f"Error: {stderr[:PREVIEW_LIMIT]}", "result"
    if kind == "task_started":
        return "Starting task...", "status"
    if kind == "task_complete":
        return "Task completed", "status"
    if kind == "turn_aborted":
        return "Turn aborted", "status"
    if kind == "task_failed":
        error = as_string(payload.get("error"))
        return (f"Task failed: {error}" if error else "Task failed"), "status"
    return None


class NotificationPipeline:
    """Route runtime notifications through normalization into the session.

    ``ready_check`` decides whether a ``ready`` signal follows a turn end;
    without one the signal is always sent.
    """

    def __init__(
        self,
        *,
        transport: SessionTransport,
        tracker: TurnLifecycleTracker,
        emitter: ToolCallEmitter,
        normalizer: NotificationNormalizer | None = None,
        message_buffer: MessageBuffer | None = None,
        diff: DiffProcessor | None = None,
        ready_check: Callable[[], bool] | None = None,
    ) -> None:
        self.transport = transport
        self.tracker = tracker
        self.emitter = emitter
        self.normalizer = normalizer or NotificationNormalizer()
        self.message_buffer = message_buffer
        self.diff = diff
        self.ready_check = ready_check

    def handle_notification(self, method: str, params: Any) -> list[CanonicalEvent]:
        events = self.normalizer.handle_notification(method, params)
        for event in events:
            self.handle_event(event)
        return events

    def handle_event(self, event: CanonicalEvent) -> None:
        if event.type == "thread_started":
            self.tracker.observe(event)
            if event.thread_id:
                self.transport.on_session_found(event.thread_id)
            return

        line = describe_event(event)
        if line is not None and self.message_buffer is not None:
            self.message_buffer.add_message(*line)

        turn_ended = self.tracker.observe(event)
        if event.type == "task_started" and not self.transport.thinking:
            logger.debug("thinking started")
            self.transport.on_thinking_change(True)

        self.emitter.emit(event)

        if turn_ended:
            self.finish_turn()

    def finish_turn(self) -> None:
        if self.transport.thinking:
            logger.debug("thinking completed")
            self.transport.on_thinking_change(False)
        if self.diff is not None:
            self.diff.reset()
        self.normalizer.reset()
        self.emitter.reset()
        if self.ready_check is None or self.ready_check():
            self.send_ready()

    def send_ready(self) -> None:
        self.transport.send_session_event({"type": "ready"})

    def reset(self) -> None:
        self.normalizer.reset()
        if self.diff is not None:
            self.diff.reset()
