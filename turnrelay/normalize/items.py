"""Item-kind handlers for ``item/started`` and ``item/completed`` notifications."""

from __future__ import annotations

import logging
from typing import Any, Callable

from turnrelay.core.fields import (
    AGENT_STATUS_KEYS,
    AUTO_APPROVED_KEYS,
    CHANGES_KEYS,
    COMMAND_KEYS,
    COMMAND_OUTPUT_KEYS,
    CWD_KEYS,
    EXIT_CODE_KEYS,
    NEW_THREAD_KEYS,
    PATCH_STDOUT_KEYS,
    PATCH_SUCCESS_KEYS,
    RECEIVER_THREAD_KEYS,
    RESULT_KEYS,
    SENDER_THREAD_KEYS,
    TEXT_KEYS,
    TOOL_INPUT_KEYS,
    Notification,
    as_bool,
    as_number,
    as_string,
    as_text,
    extract_changes,
    extract_command,
    pick,
    pick_string,
)
from turnrelay.core.models import CanonicalEvent
from turnrelay.core.types import ITEM_KINDS, ItemKind, ItemPhase
from turnrelay.normalize.buffers import BufferStream, StreamBufferStore

logger = logging.getLogger(__name__)

ItemHandler = Callable[[Notification, ItemPhase, StreamBufferStore], list[CanonicalEvent]]


def _event(
    event_type: str,
    notification: Notification,
    payload: dict[str, Any],
    *,
    thread_id: str | None = None,
    turn_id: str | None = None,
) -> CanonicalEvent:
    return CanonicalEvent(
        type=event_type,
        thread_id=notification.thread_id or thread_id,
        turn_id=notification.turn_id or turn_id,
        item_id=notification.item_id,
        status=notification.status,
        payload=payload,
    )


def _item(notification: Notification) -> dict[str, Any]:
    return notification.item or {}


def _item_id(notification: Notification) -> str:
    # Dispatch guarantees an item id before any handler runs.
    assert notification.item_id is not None
    return notification.item_id


def _capture_identity(notification: Notification, metadata: dict[str, Any]) -> dict[str, Any]:
    if notification.thread_id:
        metadata["thread_id"] = notification.thread_id
    if notification.turn_id:
        metadata["turn_id"] = notification.turn_id
    return metadata


def _split_identity(metadata: dict[str, Any]) -> tuple[dict[str, Any], str | None, str | None]:
    payload = dict(metadata)
    thread_id = payload.pop("thread_id", None)
    turn_id = payload.pop("turn_id", None)
    return payload, thread_id, turn_id


def _resolve_text(
    notification: Notification,
    buffers: StreamBufferStore,
    stream: BufferStream,
) -> str | None:
    explicit = pick_string(_item(notification), TEXT_KEYS)
    buffered = buffers.pop(stream, _item_id(notification))
    return explicit if explicit is not None else buffered


def handle_agent_message(
    notification: Notification,
    phase: ItemPhase,
    buffers: StreamBufferStore,
) -> list[CanonicalEvent]:
    if phase != "completed":
        return []
    text = _resolve_text(notification, buffers, "agent_message")
    if not text:
        return []
    return [_event("agent_message", notification, {"message": text})]


def handle_reasoning(
    notification: Notification,
    phase: ItemPhase,
    buffers: StreamBufferStore,
) -> list[CanonicalEvent]:
    if phase != "completed":
        return []
    text = _resolve_text(notification, buffers, "reasoning")
    if not text:
        return []
    return [_event("agent_reasoning", notification, {"text": text})]


def handle_plan(
    notification: Notification,
    phase: ItemPhase,
    buffers: StreamBufferStore,
) -> list[CanonicalEvent]:
    item_id = _item_id(notification)
    payload: dict[str, Any] = {"call_id": item_id}
    if phase == "started":
        text = pick_string(_item(notification), TEXT_KEYS)
        if text:
            buffers.seed("plan", item_id, text)
            payload["text"] = text
        return [_event("plan_item_started", notification, payload)]

    text = _resolve_text(notification, buffers, "plan")
    if text:
        payload["text"] = text
    return [_event("plan_item_completed", notification, payload)]


def handle_command_execution(
    notification: Notification,
    phase: ItemPhase,
    buffers: StreamBufferStore,
) -> list[CanonicalEvent]:
    item = _item(notification)
    item_id = _item_id(notification)

    if phase == "started":
        metadata: dict[str, Any] = {}
        command = extract_command(pick(item, COMMAND_KEYS))
        cwd = pick_string(item, CWD_KEYS)
        auto_approved = as_bool(pick(item, AUTO_APPROVED_KEYS))
        if command:
            metadata["command"] = command
        if cwd:
            metadata["cwd"] = cwd
        if auto_approved is not None:
            metadata["auto_approved"] = auto_approved
        if buffers.has_metadata("command", item_id):
            logger.warning("Repeated item/started for command item %s; replacing metadata", item_id)
        buffers.save_metadata("command", item_id, _capture_identity(notification, metadata))
        return [_event("exec_command_begin", notification, {"call_id": item_id, **metadata})]

    saved, thread_id, turn_id = _split_identity(buffers.get_metadata("command", item_id))
    buffered = buffers.pop("command_output", item_id)
    buffers.discard_metadata("command", item_id)

    payload: dict[str, Any] = {"call_id": item_id, **saved}
    output = as_text(pick(item, COMMAND_OUTPUT_KEYS))
    if output is None:
        output = buffered
    stderr = as_text(item.get("stderr"))
    error = as_text(item.get("error"))
    exit_code = as_number(pick(item, EXIT_CODE_KEYS))
    if output:
        payload["output"] = output
    if stderr:
        payload["stderr"] = stderr
    if error:
        payload["error"] = error
    if exit_code is not None:
        payload["exit_code"] = exit_code
    return [_event("exec_command_end", notification, payload, thread_id=thread_id, turn_id=turn_id)]


def handle_file_change(
    notification: Notification,
    phase: ItemPhase,
    buffers: StreamBufferStore,
) -> list[CanonicalEvent]:
    item = _item(notification)
    item_id = _item_id(notification)

    if phase == "started":
        metadata: dict[str, Any] = {}
        changes = extract_changes(pick(item, CHANGES_KEYS))
        auto_approved = as_bool(pick(item, AUTO_APPROVED_KEYS))
        if changes:
            metadata["changes"] = changes
        if auto_approved is not None:
            metadata["auto_approved"] = auto_approved
        if buffers.has_metadata("file_change", item_id):
            logger.warning("Repeated item/started for fileChange item %s; replacing metadata", item_id)
        buffers.save_metadata("file_change", item_id, _capture_identity(notification, metadata))
        return [_event("patch_apply_begin", notification, {"call_id": item_id, **metadata})]

    saved, thread_id, turn_id = _split_identity(buffers.get_metadata("file_change", item_id))
    buffered = buffers.pop("file_change_output", item_id)
    buffers.discard_metadata("file_change", item_id)

    payload: dict[str, Any] = {"call_id": item_id, **saved}
    stdout = as_text(pick(item, PATCH_STDOUT_KEYS))
    if stdout is None:
        stdout = buffered
    stderr = as_text(item.get("stderr"))
    success_value = pick(item, PATCH_SUCCESS_KEYS)
    if success_value is None:
        success_value = item.get("status") == "completed"
    if stdout:
        payload["stdout"] = stdout
    if stderr:
        payload["stderr"] = stderr
    payload["success"] = bool(as_bool(success_value))
    return [_event("patch_apply_end", notification, payload, thread_id=thread_id, turn_id=turn_id)]


def _tool_result(item: dict[str, Any]) -> dict[str, Any]:
    return {"output": pick(item, RESULT_KEYS), "error": item.get("error")}


def handle_mcp_tool_call(
    notification: Notification,
    phase: ItemPhase,
    buffers: StreamBufferStore,
) -> list[CanonicalEvent]:
    item = _item(notification)
    server = as_string(item.get("server"))
    tool = as_string(item.get("tool"))
    if server and tool:
        name = f"mcp__{server}__{tool}"
    else:
        name = tool or "mcp_tool_call"
    payload: dict[str, Any] = {"call_id": _item_id(notification), "name": name}
    if phase == "started":
        payload["input"] = pick(item, TOOL_INPUT_KEYS)
        return [_event("mcp_tool_call_begin", notification, payload)]
    payload.update(_tool_result(item))
    return [_event("mcp_tool_call_end", notification, payload)]


def handle_collab_tool_call(
    notification: Notification,
    phase: ItemPhase,
    buffers: StreamBufferStore,
) -> list[CanonicalEvent]:
    item = _item(notification)
    payload: dict[str, Any] = {
        "call_id": _item_id(notification),
        "name": as_string(item.get("tool")) or "collab_tool_call",
    }
    if phase == "started":
        payload["input"] = {
            "sender_thread_id": pick(item, SENDER_THREAD_KEYS),
            "receiver_thread_id": pick(item, RECEIVER_THREAD_KEYS),
            "new_thread_id": pick(item, NEW_THREAD_KEYS),
            "prompt": item.get("prompt"),
            "agent_status": pick(item, AGENT_STATUS_KEYS),
        }
        return [_event("collab_tool_call_begin", notification, payload)]
    payload.update(_tool_result(item))
    return [_event("collab_tool_call_end", notification, payload)]


def handle_web_search(
    notification: Notification,
    phase: ItemPhase,
    buffers: StreamBufferStore,
) -> list[CanonicalEvent]:
    item = _item(notification)
    payload: dict[str, Any] = {"call_id": _item_id(notification), "name": "web_search"}
    if phase == "started":
        payload["input"] = {"query": item.get("query"), "action": item.get("action")}
        return [_event("web_search_begin", notification, payload)]
    payload.update(_tool_result(item))
    return [_event("web_search_end", notification, payload)]


def handle_image_view(
    notification: Notification,
    phase: ItemPhase,
    buffers: StreamBufferStore,
) -> list[CanonicalEvent]:
    item = _item(notification)
    payload: dict[str, Any] = {"call_id": _item_id(notification), "name": "image_view"}
    if phase == "started":
        payload["input"] = {"path": as_string(item.get("path"))}
        return [_event("image_view_begin", notification, payload)]
    payload.update(_tool_result(item))
    return [_event("image_view_end", notification, payload)]


def handle_entered_review_mode(
    notification: Notification,
    phase: ItemPhase,
    buffers: StreamBufferStore,
) -> list[CanonicalEvent]:
    payload = {"call_id": _item_id(notification), "review": _item(notification).get("review")}
    return [_event("review_mode_entered", notification, payload)]


def handle_exited_review_mode(
    notification: Notification,
    phase: ItemPhase,
    buffers: StreamBufferStore,
) -> list[CanonicalEvent]:
    payload = {"call_id": _item_id(notification), "review": _item(notification).get("review")}
    return [_event("review_mode_exited", notification, payload)]


def handle_context_compaction(
    notification: Notification,
    phase: ItemPhase,
    buffers: StreamBufferStore,
) -> list[CanonicalEvent]:
    event_type = "context_compaction_started" if phase == "started" else "context_compaction_completed"
    return [_event(event_type, notification, {"call_id": _item_id(notification)})]


ITEM_HANDLERS: dict[ItemKind, ItemHandler] = {
    "agentmessage": handle_agent_message,
    "reasoning": handle_reasoning,
    "plan": handle_plan,
    "commandexecution": handle_command_execution,
    "filechange": handle_file_change,
    "mcptoolcall": handle_mcp_tool_call,
    "collabtoolcall": handle_collab_tool_call,
    "websearch": handle_web_search,
    "imageview": handle_image_view,
    "enteredreviewmode": handle_entered_review_mode,
    "exitedreviewmode": handle_exited_review_mode,
    "contextcompaction": handle_context_compaction,
}

if set(ITEM_HANDLERS) != set(ITEM_KINDS):  # pragma: no cover - import-time guard
    missing = sorted(set(ITEM_KINDS) - set(ITEM_HANDLERS))
    raise RuntimeError(f"Item kinds without a handler: {', '.join(missing)}")


def handle_item(
    notification: Notification,
    buffers: StreamBufferStore,
) -> list[CanonicalEvent]:
    """Dispatch an item lifecycle notification to its kind handler."""
    if not notification.item_type or not notification.item_id:
        logger.debug(
            "Dropping %s without item type or id (type=%r id=%r)",
            notification.method,
            notification.item_type,
            notification.item_id,
        )
        return []
    handler = ITEM_HANDLERS.get(notification.item_type)  # type: ignore[call-overload]
    if handler is None:
        logger.debug("Ignoring unrecognized item type %r", notification.item_type)
        return []
    phase: ItemPhase = "started" if notification.method == "item/started" else "completed"
    return handler(notification, phase, buffers)
