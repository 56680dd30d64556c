"""App-server notification normalization into canonical events."""

from __future__ import annotations

import logging
from typing import Any, Callable

from turnrelay.core.fields import (
    ADDITIONAL_DETAILS_KEYS,
    COMMAND_OUTPUT_DELTA_KEYS,
    DELTA_KEYS,
    DIFF_KEYS,
    ERROR_INFO_KEYS,
    HTTP_STATUS_KEYS,
    PATCH_OUTPUT_DELTA_KEYS,
    SUMMARY_INDEX_KEYS,
    TOKEN_USAGE_KEYS,
    TURN_ERROR_KEYS,
    WILL_RETRY_KEYS,
    Notification,
    as_bool,
    as_number,
    as_record,
    as_string,
    as_text,
    ingest_notification,
    pick,
    pick_string,
)
from turnrelay.core.models import CanonicalEvent
from turnrelay.normalize.buffers import StreamBufferStore
from turnrelay.normalize.items import handle_item

logger = logging.getLogger(__name__)

ABORTED_TURN_STATUSES = frozenset({"interrupted", "cancelled", "canceled"})
FAILED_TURN_STATUSES = frozenset({"failed", "error"})
DEFAULT_REASONING_ITEM_ID = "reasoning"
UNKNOWN_ERROR_MESSAGE = "Unknown app-server error"

NotificationHandler = Callable[["NotificationNormalizer", Notification], list[CanonicalEvent]]


class NotificationNormalizer:
    """Convert runtime notifications into canonical events.

    ``handle_notification`` never raises on payload shape: malformed or
    partial payloads degrade to best-effort extraction or to no events.
    Streamed deltas are accumulated in a :class:`StreamBufferStore` until the
    owning item completes.
    """

    def __init__(self, buffers: StreamBufferStore | None = None) -> None:
        self.buffers = buffers or StreamBufferStore()

    def handle_notification(self, method: str, payload: Any) -> list[CanonicalEvent]:
        notification = ingest_notification(method, payload)
        handler = _METHOD_HANDLERS.get(method)
        if handler is None:
            logger.debug("Unhandled app-server notification: %s", method)
            return []
        return handler(self, notification)

    def reset(self) -> None:
        self.buffers.reset()

    def _thread_started(self, notification: Notification) -> list[CanonicalEvent]:
        thread_id = notification.record_thread_id
        if not thread_id:
            return []
        return [CanonicalEvent(type="thread_started", thread_id=thread_id)]

    def _turn_started(self, notification: Notification) -> list[CanonicalEvent]:
        return [
            CanonicalEvent(
                type="task_started",
                thread_id=notification.thread_id,
                turn_id=notification.record_turn_id or notification.turn_id,
                status=notification.status,
            )
        ]

    def _turn_completed(self, notification: Notification) -> list[CanonicalEvent]:
        raw_status = notification.status or as_string(notification.turn.get("status"))
        status = raw_status.lower() if raw_status else None
        envelope = {
            "thread_id": notification.thread_id,
            "turn_id": notification.record_turn_id or notification.turn_id,
            "status": raw_status,
        }

        if status in ABORTED_TURN_STATUSES:
            return [CanonicalEvent(type="turn_aborted", **envelope)]

        if status in FAILED_TURN_STATUSES:
            payload: dict[str, Any] = {}
            error_message = _turn_error_message(notification)
            if error_message:
                payload["error"] = error_message
            return [CanonicalEvent(type="task_failed", payload=payload, **envelope)]

        return [CanonicalEvent(type="task_complete", **envelope)]

    def _turn_diff(self, notification: Notification) -> list[CanonicalEvent]:
        diff = pick_string(notification.params, DIFF_KEYS)
        if not diff:
            return []
        return [_stable_event("turn_diff", notification, {"unified_diff": diff})]

    def _turn_plan_updated(self, notification: Notification) -> list[CanonicalEvent]:
        payload: dict[str, Any] = {}
        explanation = as_string(notification.params.get("explanation"))
        plan = notification.params.get("plan")
        if explanation:
            payload["explanation"] = explanation
        if isinstance(plan, list):
            payload["plan"] = plan
        return [_stable_event("turn_plan_updated", notification, payload)]

    def _token_usage(self, notification: Notification) -> list[CanonicalEvent]:
        usage = pick(notification.params, TOKEN_USAGE_KEYS)
        if usage is None:
            usage = notification.params
        info = as_record(usage) or {}
        return [_stable_event("token_count", notification, {"info": info})]

    def _error(self, notification: Notification) -> list[CanonicalEvent]:
        params = notification.params
        if as_bool(pick(params, WILL_RETRY_KEYS)):
            return []

        error_record = as_record(params.get("error"))
        error_info = as_record(pick(params, ERROR_INFO_KEYS)) or as_record(pick(error_record, ERROR_INFO_KEYS))
        additional_details = as_record(pick(params, ADDITIONAL_DETAILS_KEYS)) or as_record(
            pick(error_record, ADDITIONAL_DETAILS_KEYS)
        )
        http_status = as_number(pick(error_info, HTTP_STATUS_KEYS))
        if http_status is None:
            http_status = as_number(pick(params, HTTP_STATUS_KEYS))
        message = (
            as_string(params.get("message"))
            or as_string((error_record or {}).get("message"))
            or as_string(params.get("reason"))
            or UNKNOWN_ERROR_MESSAGE
        )

        payload: dict[str, Any] = {"error": message}
        if error_info:
            payload["codex_error_info"] = error_info
        if additional_details:
            payload["additional_details"] = additional_details
        if http_status is not None:
            payload["http_status_code"] = http_status
        return [_stable_event("task_failed", notification, payload)]

    def _agent_message_delta(self, notification: Notification) -> list[CanonicalEvent]:
        delta = pick_string(notification.params, DELTA_KEYS)
        if notification.item_id and delta:
            self.buffers.append("agent_message", notification.item_id, delta)
        return []

    def _plan_delta(self, notification: Notification) -> list[CanonicalEvent]:
        item_id = notification.item_id
        delta = pick_string(notification.params, DELTA_KEYS)
        if not item_id or not delta:
            return []
        plan_text = self.buffers.append("plan", item_id, delta)
        return [
            _stable_event(
                "agent_plan_delta",
                notification,
                {"delta": delta, "plan_text": plan_text},
                item_id=item_id,
            )
        ]

    def _reasoning_delta(self, notification: Notification) -> list[CanonicalEvent]:
        item_id = notification.item_id or DEFAULT_REASONING_ITEM_ID
        delta = pick_string(notification.params, DELTA_KEYS)
        if not delta:
            return []
        self.buffers.append("reasoning", item_id, delta)
        payload: dict[str, Any] = {
            "delta": delta,
            "reasoning_stream": "summary" if notification.method.endswith("summaryTextDelta") else "raw",
        }
        summary_index = as_number(pick(notification.params, SUMMARY_INDEX_KEYS))
        if summary_index is not None:
            payload["summary_index"] = summary_index
        return [_stable_event("agent_reasoning_delta", notification, payload, item_id=item_id)]

    def _reasoning_section_break(self, notification: Notification) -> list[CanonicalEvent]:
        return [_stable_event("agent_reasoning_section_break", notification, {})]

    def _command_output_delta(self, notification: Notification) -> list[CanonicalEvent]:
        delta = as_text(pick(notification.params, COMMAND_OUTPUT_DELTA_KEYS))
        if notification.item_id and delta:
            self.buffers.append("command_output", notification.item_id, delta)
        return []

    def _file_change_output_delta(self, notification: Notification) -> list[CanonicalEvent]:
        item_id = notification.item_id
        delta = as_text(pick(notification.params, PATCH_OUTPUT_DELTA_KEYS))
        if not item_id or not delta:
            return []
        self.buffers.append("file_change_output", item_id, delta)
        return [_stable_event("patch_apply_delta", notification, {"delta": delta}, item_id=item_id)]

    def _item_lifecycle(self, notification: Notification) -> list[CanonicalEvent]:
        return handle_item(notification, self.buffers)


def _stable_event(
    event_type: str,
    notification: Notification,
    payload: dict[str, Any],
    *,
    item_id: str | None = None,
) -> CanonicalEvent:
    return CanonicalEvent(
        type=event_type,
        thread_id=notification.thread_id,
        turn_id=notification.turn_id,
        item_id=item_id,
        status=notification.status,
        payload=payload,
    )


def _turn_error_message(notification: Notification) -> str | None:
    message = pick_string(notification.params, TURN_ERROR_KEYS)
    if message:
        return message
    turn_error = as_record(notification.turn.get("error"))
    return as_string((turn_error or {}).get("message"))


_METHOD_HANDLERS: dict[str, NotificationHandler] = {
    "thread/started": NotificationNormalizer._thread_started,
    "thread/resumed": NotificationNormalizer._thread_started,
    "turn/started": NotificationNormalizer._turn_started,
    "turn/completed": NotificationNormalizer._turn_completed,
    "turn/diff/updated": NotificationNormalizer._turn_diff,
    "turn/plan/updated": NotificationNormalizer._turn_plan_updated,
    "thread/tokenUsage/updated": NotificationNormalizer._token_usage,
    "error": NotificationNormalizer._error,
    "item/agentMessage/delta": NotificationNormalizer._agent_message_delta,
    "item/plan/delta": NotificationNormalizer._plan_delta,
    "item/reasoning/textDelta": NotificationNormalizer._reasoning_delta,
    "item/reasoning/summaryTextDelta": NotificationNormalizer._reasoning_delta,
    "item/reasoning/summaryPartAdded": NotificationNormalizer._reasoning_section_break,
    "item/commandExecution/outputDelta": NotificationNormalizer._command_output_delta,
    "item/fileChange/outputDelta": NotificationNormalizer._file_change_output_delta,
    "item/started": NotificationNormalizer._item_lifecycle,
    "item/completed": NotificationNormalizer._item_lifecycle,
}
