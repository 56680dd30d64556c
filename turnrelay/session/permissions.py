"""Adapter from runtime approval requests to the session permission handler."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Literal, Mapping, Protocol

from turnrelay.core.fields import as_record, as_string
from turnrelay.session.ports import PermissionHandler

logger = logging.getLogger(__name__)

PermissionDecision = Literal["approved", "approved_for_session", "denied", "abort"]

PERMISSION_DECISIONS: tuple[PermissionDecision, ...] = (
    "approved",
    "approved_for_session",
    "denied",
    "abort",
)

_RUNTIME_DECISIONS: dict[str, str] = {
    "approved": "accept",
    "approved_for_session": "acceptForSession",
    "denied": "decline",
    "abort": "cancel",
}

COMMAND_APPROVAL_METHOD = "item/commandExecution/requestApproval"
FILE_CHANGE_APPROVAL_METHOD = "item/fileChange/requestApproval"
USER_INPUT_METHODS: tuple[str, ...] = ("item/tool/requestUserInput", "tool/requestUserInput")
USER_INPUT_TOOL = "request_user_input"

RequestHandler = Callable[[Any], Awaitable[dict[str, Any]]]
UserInputHook = Callable[[Any], Awaitable[Mapping[str, Any]]]


@dataclass(frozen=True, slots=True)
class PermissionResult:
    decision: PermissionDecision
    reason: str | None = None
    answers: Mapping[str, Any] | None = None

    def __post_init__(self) -> None:
        if self.decision not in PERMISSION_DECISIONS:
            raise ValueError(f"Unsupported permission decision: {self.decision}")


class ApprovalHandler(PermissionHandler, Protocol):
    async def handle_tool_call(self, call_id: str, tool_name: str, tool_input: Any) -> PermissionResult:
        ...


class RequestRouter(Protocol):
    def register_request_handler(self, method: str, handler: RequestHandler) -> None:
        ...


def map_decision(decision: str) -> dict[str, str]:
    try:
        return {"decision": _RUNTIME_DECISIONS[decision]}
    except KeyError:
        raise ValueError(f"Unsupported permission decision: {decision}") from None


def normalize_answers(answers: Mapping[str, Any] | None) -> dict[str, list[str]]:
    """Flatten ``{key: [..]}`` and ``{key: {"answers": [..]}}`` into ``{key: [str]}``."""
    normalized: dict[str, list[str]] = {}
    for key, value in (answers or {}).items():
        if isinstance(value, dict):
            value = value.get("answers")
        if isinstance(value, list):
            normalized[key] = [entry for entry in value if isinstance(entry, str)]
    return normalized


def _request_id(record: dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = as_string(record.get(key))
        if value:
            return value
    return str(uuid.uuid4())


def register_permission_handlers(
    client: RequestRouter,
    handler: ApprovalHandler,
    *,
    on_user_input: UserInputHook | None = None,
) -> None:
    """Install approval and user-input request handlers on ``client``."""

    async def command_approval(params: Any) -> dict[str, Any]:
        record = as_record(params) or {}
        result = await handler.handle_tool_call(
            _request_id(record, "itemId"),
            "CodexBash",
            {
                "message": as_string(record.get("reason")),
                "command": record.get("command"),
                "cwd": as_string(record.get("cwd")),
            },
        )
        return map_decision(result.decision)

    async def file_change_approval(params: Any) -> dict[str, Any]:
        record = as_record(params) or {}
        result = await handler.handle_tool_call(
            _request_id(record, "itemId"),
            "CodexPatch",
            {
                "message": as_string(record.get("reason")),
                "grantRoot": as_string(record.get("grantRoot")),
            },
        )
        return map_decision(result.decision)

    async def user_input(params: Any) -> dict[str, Any]:
        if on_user_input is not None:
            return {"decision": "accept", "answers": normalize_answers(await on_user_input(params))}

        record = as_record(params) or {}
        call_id = _request_id(record, "itemId", "id")
        result = await handler.handle_tool_call(call_id, USER_INPUT_TOOL, record)
        if result.decision in ("approved", "approved_for_session"):
            return {"decision": "accept", "answers": normalize_answers(result.answers)}
        if result.decision == "denied":
            return {"decision": "decline"}
        logger.debug("User input request %s cancelled", call_id)
        return {"decision": "cancel"}

    client.register_request_handler(COMMAND_APPROVAL_METHOD, command_approval)
    client.register_request_handler(FILE_CHANGE_APPROVAL_METHOD, file_change_approval)
    for method in USER_INPUT_METHODS:
        client.register_request_handler(method, user_input)
