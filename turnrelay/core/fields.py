"""Ingestion boundary for app-server notification payloads.

The runtime has used several naming conventions over time (camelCase,
snake_case, short aliases) and several nesting shapes (flat params, nested
``item``, nested ``turn``). Every alias is resolved here into a single
:class:`Notification`; the rest of the package reads its canonical attributes
and the key tuples below instead of probing payloads on its own.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import json
import math
from typing import Any, Iterable

ITEM_METHODS = frozenset({"item/started", "item/completed"})

ITEM_ID_KEYS = ("itemId", "item_id", "id")
NESTED_ITEM_ID_KEYS = ("id", "itemId", "item_id")
ITEM_TYPE_KEYS = ("type", "itemType", "kind")
THREAD_RECORD_ID_KEYS = ("threadId", "thread_id", "id")
TURN_RECORD_ID_KEYS = ("turnId", "turn_id", "id")

TEXT_KEYS = ("text", "message", "content")
DELTA_KEYS = ("delta", "text", "message")
COMMAND_OUTPUT_DELTA_KEYS = ("delta", "text", "output", "stdout")
PATCH_OUTPUT_DELTA_KEYS = ("delta", "text", "output", "stdout", "response")
SUMMARY_INDEX_KEYS = ("summaryIndex", "summary_index")

COMMAND_KEYS = ("command", "cmd", "args")
CWD_KEYS = ("cwd", "workingDirectory", "working_directory")
AUTO_APPROVED_KEYS = ("autoApproved", "auto_approved")
COMMAND_OUTPUT_KEYS = ("output", "result", "stdout")
EXIT_CODE_KEYS = ("exitCode", "exit_code", "exitcode")

CHANGES_KEYS = ("changes", "change", "diff")
CHANGE_PATH_KEYS = ("path", "file", "filePath", "file_path")
PATCH_STDOUT_KEYS = ("stdout", "output")
PATCH_SUCCESS_KEYS = ("success", "ok", "applied")

RESULT_KEYS = ("result", "output")
TOOL_INPUT_KEYS = ("arguments", "input")
SENDER_THREAD_KEYS = ("senderThreadId", "sender_thread_id")
RECEIVER_THREAD_KEYS = ("receiverThreadId", "receiver_thread_id")
NEW_THREAD_KEYS = ("newThreadId", "new_thread_id")
AGENT_STATUS_KEYS = ("agentStatus", "agent_status")

DIFF_KEYS = ("diff", "unified_diff", "unifiedDiff")
TOKEN_USAGE_KEYS = ("tokenUsage", "token_usage")
TURN_ERROR_KEYS = ("error", "message", "reason")
WILL_RETRY_KEYS = ("will_retry", "willRetry")
ERROR_INFO_KEYS = ("codexErrorInfo", "codex_error_info")
ADDITIONAL_DETAILS_KEYS = ("additionalDetails", "additional_details")
HTTP_STATUS_KEYS = ("httpStatusCode", "http_status_code")

CALL_ID_KEYS = ("call_id", "callId", "item_id", "itemId")


def as_record(value: Any) -> dict[str, Any] | None:
    if isinstance(value, dict):
        return value
    return None


def as_string(value: Any) -> str | None:
    if isinstance(value, str) and value:
        return value
    return None


def as_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    return None


def as_number(value: Any) -> int | float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


def as_text(value: Any) -> str | None:
    """Render scalar or structured output as text."""
    if isinstance(value, str):
        return value
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    try:
        return json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(value)


def pick(record: dict[str, Any] | None, keys: Iterable[str]) -> Any:
    """Return the first value under ``keys`` that is not ``None``."""
    if record is None:
        return None
    for key in keys:
        value = record.get(key)
        if value is not None:
            return value
    return None


def pick_string(record: dict[str, Any] | None, keys: Iterable[str]) -> str | None:
    return as_string(pick(record, keys))


def first_string(candidates: Iterable[Any]) -> str | None:
    for candidate in candidates:
        value = as_string(candidate)
        if value:
            return value
    return None


def normalize_item_type(value: Any) -> str | None:
    raw = as_string(value)
    if raw is None:
        return None
    normalized = "".join(char for char in raw.lower() if char not in " \t\r\n_-")
    return normalized or None


def extract_item_id(params: dict[str, Any]) -> str | None:
    direct = pick_string(params, ITEM_ID_KEYS)
    if direct:
        return direct
    item = as_record(params.get("item"))
    if item is not None:
        return pick_string(item, NESTED_ITEM_ID_KEYS)
    return None


def extract_thread_id(
    params: dict[str, Any],
    item: dict[str, Any] | None = None,
) -> str | None:
    thread = as_record(params.get("thread")) or {}
    turn = as_record(params.get("turn")) or {}
    turn_thread = as_record(turn.get("thread")) or {}
    item_record = item or {}
    item_thread = as_record(item_record.get("thread")) or {}
    return first_string(
        (
            params.get("threadId"),
            params.get("thread_id"),
            thread.get("id"),
            thread.get("threadId"),
            thread.get("thread_id"),
            params.get("sid"),
            turn.get("threadId"),
            turn.get("thread_id"),
            turn_thread.get("id"),
            item_record.get("threadId"),
            item_record.get("thread_id"),
            item_thread.get("id"),
        )
    )


def extract_turn_id(
    params: dict[str, Any],
    item: dict[str, Any] | None = None,
) -> str | None:
    turn = as_record(params.get("turn")) or {}
    item_record = item or {}
    item_turn = as_record(item_record.get("turn")) or {}
    return first_string(
        (
            params.get("turnId"),
            params.get("turn_id"),
            turn.get("id"),
            turn.get("turnId"),
            turn.get("turn_id"),
            item_record.get("turnId"),
            item_record.get("turn_id"),
            item_turn.get("id"),
        )
    )


def extract_command(value: Any) -> str | None:
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        parts = [part for part in value if isinstance(part, str)]
        return " ".join(parts) if parts else None
    return None


def extract_changes(value: Any) -> dict[str, Any] | None:
    """Map file-change entries to ``{path: change_record}``."""
    if isinstance(value, list):
        changes: dict[str, Any] = {}
        for entry in value:
            entry_record = as_record(entry)
            if entry_record is None:
                continue
            path = pick_string(entry_record, CHANGE_PATH_KEYS)
            if path:
                changes[path] = entry_record
        return changes or None
    return as_record(value)


@dataclass(frozen=True, slots=True)
class Notification:
    """One runtime notification resolved into canonical identity fields."""

    method: str
    params: dict[str, Any]
    thread_id: str | None = None
    turn_id: str | None = None
    item_id: str | None = None
    status: str | None = None
    item: dict[str, Any] | None = None
    item_type: str | None = None
    item_status: str | None = None
    turn: dict[str, Any] = field(default_factory=dict)
    thread: dict[str, Any] = field(default_factory=dict)

    @property
    def is_item_lifecycle(self) -> bool:
        return self.method in ITEM_METHODS

    @property
    def record_turn_id(self) -> str | None:
        """Turn id carried by the nested (or flat) turn record itself."""
        return pick_string(self.turn, TURN_RECORD_ID_KEYS)

    @property
    def record_thread_id(self) -> str | None:
        return pick_string(self.thread, THREAD_RECORD_ID_KEYS)

    def trace_fields(self, *, item_id: str | None = None) -> dict[str, str]:
        trace: dict[str, str] = {}
        if self.thread_id:
            trace["thread_id"] = self.thread_id
        if self.turn_id:
            trace["turn_id"] = self.turn_id
        if item_id:
            trace["item_id"] = item_id
        if self.status:
            trace["status"] = self.status
        return trace


def ingest_notification(method: str, payload: Any) -> Notification:
    """Resolve a raw ``(method, payload)`` pair into a :class:`Notification`."""
    params = as_record(payload) or {}
    turn = as_record(params.get("turn")) or params
    thread = as_record(params.get("thread")) or params

    if method in ITEM_METHODS:
        item = as_record(params.get("item")) or params
        item_status = as_string(item.get("status"))
        status_value = params.get("status")
        if status_value is None:
            status_value = item.get("status")
        return Notification(
            method=method,
            params=params,
            thread_id=extract_thread_id(params, item),
            turn_id=extract_turn_id(params, item),
            item_id=extract_item_id(params) or pick_string(item, NESTED_ITEM_ID_KEYS),
            status=as_string(status_value),
            item=item,
            item_type=normalize_item_type(pick(item, ITEM_TYPE_KEYS)),
            item_status=item_status,
            turn=turn,
            thread=thread,
        )

    return Notification(
        method=method,
        params=params,
        thread_id=extract_thread_id(params),
        turn_id=extract_turn_id(params),
        item_id=extract_item_id(params),
        status=as_string(params.get("status")),
        turn=turn,
        thread=thread,
    )
