"""Tool-call emission from canonical events.

Each canonical event maps to at most one outbound message in the uniform
tool-call protocol. Begin events open a ``tool-call``; end events close it with
a ``tool-call-result`` under the same call id.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Callable, Mapping

from turnrelay.core.fields import CALL_ID_KEYS, as_string, pick_string
from turnrelay.core.models import CanonicalEvent, ToolCallRecord
from turnrelay.core.types import TURN_TERMINAL_EVENT_TYPES
from turnrelay.session.ports import DiffProcessor, ReasoningProcessor, SessionTransport
from turnrelay.session.state import TurnLifecycleTracker

logger = logging.getLogger(__name__)

EXIT_PLAN_MODE_TOOL = "ExitPlanMode"
ENVELOPE_KEYS = frozenset({"type", "call_id", "callId"})

# begin type -> (tool name, call id prefix); ``None`` takes the name from the payload.
_BEGIN_EVENTS: dict[str, tuple[str | None, str]] = {
    "exec_command_begin": ("CodexBash", "exec"),
    "patch_apply_begin": ("CodexPatch", "patch"),
    "mcp_tool_call_begin": (None, "mcp"),
    "collab_tool_call_begin": (None, "collab"),
    "web_search_begin": ("web_search", "web-search"),
    "image_view_begin": ("image_view", "image-view"),
}

_RESULT_EVENTS: dict[str, str] = {
    "mcp_tool_call_end": "mcp",
    "collab_tool_call_end": "collab",
    "web_search_end": "web-search",
    "image_view_end": "image-view",
}

_DEFAULT_TOOL_NAMES: dict[str, str] = {
    "mcp_tool_call_begin": "mcp_tool_call",
    "collab_tool_call_begin": "collab_tool_call",
}


def new_message_id() -> str:
    return str(uuid.uuid4())


def extract_call_id(event: CanonicalEvent, prefix: str) -> str:
    """Explicit call id, else item id, else a fresh ``prefix:``-tagged id."""
    call_id = pick_string(dict(event.payload), CALL_ID_KEYS) or event.item_id
    if call_id:
        return call_id
    return f"{prefix}:{uuid.uuid4()}"


def strip_envelope_fields(payload: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in payload.items() if key not in ENVELOPE_KEYS}


class ToolCallEmitter:
    """Map canonical events onto the session transport.

    Open calls are kept in ``open_calls`` until their result is emitted, and
    a call id is closed at most once per turn. Plan calls opened by turn plan
    updates are also keyed by turn id in the session state; every plan call
    still open when its turn terminates is closed then.
    """

    def __init__(
        self,
        transport: SessionTransport,
        tracker: TurnLifecycleTracker,
        *,
        reasoning: ReasoningProcessor | None = None,
        diff: DiffProcessor | None = None,
        id_factory: Callable[[], str] = new_message_id,
    ) -> None:
        self.transport = transport
        self.tracker = tracker
        self.reasoning = reasoning
        self.diff = diff
        self.id_factory = id_factory
        self.open_calls: dict[str, ToolCallRecord] = {}
        self.closed_calls: set[str] = set()

    def emit(self, event: CanonicalEvent) -> None:
        kind = event.type
        payload = event.payload

        if kind in _BEGIN_EVENTS:
            name, prefix = _BEGIN_EVENTS[kind]
            if name is None:
                name = as_string(payload.get("name")) or _DEFAULT_TOOL_NAMES[kind]
                tool_input = payload.get("input")
                if tool_input is None:
                    tool_input = strip_envelope_fields(payload)
            else:
                tool_input = strip_envelope_fields(payload)
            self.emit_tool_call(name, extract_call_id(event, prefix), tool_input, event)
        elif kind == "exec_command_end":
            self.emit_tool_result(
                extract_call_id(event, "exec"),
                strip_envelope_fields(payload),
                event,
                is_error=bool(payload.get("error")),
            )
        elif kind == "patch_apply_delta":
            self.emit_tool_result(
                extract_call_id(event, "patch"),
                {
                    "stream": True,
                    "delta": payload.get("delta", ""),
                    "status": event.status or "in_progress",
                },
                event,
            )
        elif kind == "patch_apply_end":
            self.emit_tool_result(
                extract_call_id(event, "patch"),
                strip_envelope_fields(payload),
                event,
                is_error=not payload.get("success"),
            )
        elif kind in _RESULT_EVENTS:
            output = payload.get("output")
            if output is None:
                output = {"error": payload.get("error")}
            self.emit_tool_result(
                extract_call_id(event, _RESULT_EVENTS[kind]),
                output,
                event,
                is_error=bool(payload.get("error")),
            )
        elif kind == "review_mode_entered":
            self.emit_tool_call(
                "review_mode", extract_call_id(event, "review"), {"review": payload.get("review")}, event
            )
        elif kind == "review_mode_exited":
            self.emit_tool_result(extract_call_id(event, "review"), {"review": payload.get("review")}, event)
        elif kind == "context_compaction_started":
            self.emit_tool_call(
                "context_compaction",
                extract_call_id(event, "context-compaction"),
                {"status": "started"},
                event,
            )
        elif kind == "context_compaction_completed":
            self.emit_tool_result(
                extract_call_id(event, "context-compaction"), {"status": "completed"}, event
            )
        elif kind in ("turn_plan_updated", "agent_plan_delta", "plan_item_started"):
            self._emit_plan_call(event)
        elif kind == "plan_item_completed":
            self._close_plan_item(event)
        elif kind == "agent_message":
            message = as_string(payload.get("message"))
            if message:
                self.transport.send_message(
                    {"type": "message", "message": message, **event.trace_fields(), "id": self.id_factory()}
                )
        elif kind == "agent_reasoning_delta":
            delta = as_string(payload.get("delta"))
            if delta and self.reasoning is not None:
                self.reasoning.process_delta(delta)
        elif kind == "agent_reasoning_section_break":
            if self.reasoning is not None:
                self.reasoning.handle_section_break()
        elif kind == "agent_reasoning":
            text = as_string(payload.get("text"))
            if text and self.reasoning is not None:
                self.reasoning.complete(text)
        elif kind == "turn_diff":
            diff = as_string(payload.get("unified_diff"))
            if diff and self.diff is not None:
                self.diff.process_diff(diff)
        elif kind == "token_count":
            self._pass_through(event)

        if kind in TURN_TERMINAL_EVENT_TYPES:
            self.close_plan_calls(event)
            if kind == "task_failed":
                self._pass_through(event)

    def emit_tool_call(self, name: str, call_id: str, tool_input: Any, event: CanonicalEvent) -> None:
        self.open_calls[call_id] = ToolCallRecord(
            call_id=call_id, name=name, input=tool_input, turn_id=event.turn_id
        )
        self.transport.send_message(
            {
                "type": "tool-call",
                "name": name,
                "callId": call_id,
                "input": tool_input,
                **event.trace_fields(),
                "id": self.id_factory(),
            }
        )

    def emit_tool_result(
        self,
        call_id: str,
        output: Any,
        event: CanonicalEvent,
        *,
        is_error: bool = False,
    ) -> None:
        record = self.open_calls.get(call_id)
        streaming = isinstance(output, dict) and output.get("stream") is True
        if record is not None and not streaming:
            record.close(output, is_error=is_error)
            del self.open_calls[call_id]
        if not streaming:
            self.closed_calls.add(call_id)
        self.transport.send_message(
            {
                "type": "tool-call-result",
                "callId": call_id,
                "output": output,
                "is_error": is_error,
                **event.trace_fields(),
                "id": self.id_factory(),
            }
        )

    def close_plan_calls(self, event: CanonicalEvent) -> None:
        """Close every plan call still open when a turn terminates.

        Calls opened without a turn id are closed by any terminal event.
        """
        turn_id = event.turn_id
        call_ids = [
            call_id
            for call_id, record in self.open_calls.items()
            if record.name == EXIT_PLAN_MODE_TOOL and (turn_id is None or record.turn_id in (turn_id, None))
        ]
        for call_id in call_ids:
            self.emit_tool_result(
                call_id,
                {"status": event.type, "error": as_string(event.payload.get("error"))},
                event,
                is_error=event.type == "task_failed",
            )
        if turn_id is None:
            self.tracker.state.plan_calls.clear()
        else:
            self.tracker.close_plan_call(turn_id)

    def reset(self) -> None:
        if self.open_calls:
            logger.debug("Forgetting %d open tool calls", len(self.open_calls))
        self.open_calls.clear()
        self.closed_calls.clear()

    def _open_turn_plan_call(self, turn_id: str | None) -> str | None:
        if not turn_id:
            return None
        call_id = self.tracker.plan_call_for(turn_id)
        if call_id is not None and call_id not in self.open_calls:
            self.tracker.close_plan_call(turn_id)
            return None
        return call_id

    def _fresh_turn_plan_id(self, turn_id: str | None) -> str:
        if not turn_id:
            return f"turn-plan:{uuid.uuid4()}"
        call_id = f"turn-plan:{turn_id}"
        revision = 1
        while call_id in self.closed_calls:
            revision += 1
            call_id = f"turn-plan:{turn_id}:{revision}"
        return call_id

    def _emit_plan_call(self, event: CanonicalEvent) -> None:
        payload = event.payload
        turn_id = event.turn_id

        if event.type == "plan_item_started":
            call_id = extract_call_id(event, "plan-item")
            if call_id in self.closed_calls:
                logger.debug("Plan item %s already completed; ignoring start", call_id)
                return
            tool_input: dict[str, Any] = {"plan": payload.get("text", ""), "updated_from": "item/started(plan)"}
            self.emit_tool_call(EXIT_PLAN_MODE_TOOL, call_id, tool_input, event)
            return

        open_call_id = self._open_turn_plan_call(turn_id)
        if event.type == "turn_plan_updated":
            call_id = open_call_id or self._fresh_turn_plan_id(turn_id)
            tool_input = {
                "explanation": payload.get("explanation"),
                "plan": payload.get("plan", []),
                "updated_from": "turn/plan/updated",
            }
        else:
            call_id = open_call_id or extract_call_id(event, "plan-delta")
            if call_id in self.closed_calls:
                call_id = f"plan-delta:{uuid.uuid4()}"
            tool_input = {
                "plan": payload.get("plan_text", payload.get("delta", "")),
                "delta": payload.get("delta", ""),
                "updated_from": "item/plan/delta",
            }

        if turn_id:
            self.tracker.open_plan_call(turn_id, call_id)
        self.emit_tool_call(EXIT_PLAN_MODE_TOOL, call_id, tool_input, event)

    def _close_plan_item(self, event: CanonicalEvent) -> None:
        call_id = extract_call_id(event, "plan-item")
        if call_id in self.closed_calls:
            logger.debug("Plan call %s already closed", call_id)
            return
        self.tracker.discard_plan_call(call_id)
        self.emit_tool_result(
            call_id,
            {"plan": event.payload.get("text", ""), "status": event.status or "completed"},
            event,
        )

    def _pass_through(self, event: CanonicalEvent) -> None:
        self.transport.send_message({**event.to_dict(), "id": self.id_factory()})
