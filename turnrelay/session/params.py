"""Thread and turn request parameters derived from the session operating mode."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from turnrelay.core.hashing import compute_mode_hash

PermissionMode = Literal["default", "read-only", "safe-yolo", "yolo"]
ApprovalPolicy = Literal["untrusted", "on-failure", "on-request", "never"]
SandboxMode = Literal["read-only", "workspace-write", "danger-full-access"]

_RUNTIME_BY_PERMISSION_MODE: dict[str, tuple[str, str]] = {
    "default": ("untrusted", "workspace-write"),
    "read-only": ("never", "read-only"),
    "safe-yolo": ("on-failure", "workspace-write"),
    "yolo": ("on-failure", "danger-full-access"),
}

_SANDBOX_POLICY_TYPES: dict[str, str] = {
    "danger-full-access": "dangerFullAccess",
    "read-only": "readOnly",
    "workspace-write": "workspaceWrite",
}


@dataclass(frozen=True, slots=True)
class SessionMode:
    """Operating mode attached to each queued user message."""

    permission_mode: str = "default"
    model: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"permission_mode": self.permission_mode, "model": self.model}

    def hash(self) -> str:
        return compute_mode_hash(self.to_dict())


@dataclass(frozen=True, slots=True)
class CliOverrides:
    """Approval/sandbox overrides supplied on the command line."""

    approval_policy: str | None = None
    sandbox: str | None = None


def resolve_runtime_config(
    mode: SessionMode,
    overrides: CliOverrides | None = None,
) -> tuple[str, str]:
    """Return ``(approval_policy, sandbox)`` for a mode.

    Overrides only apply in ``default`` permission mode.
    """
    try:
        approval_policy, sandbox = _RUNTIME_BY_PERMISSION_MODE[mode.permission_mode]
    except KeyError:
        raise ValueError(f"Unknown permission mode: {mode.permission_mode}") from None
    if mode.permission_mode != "default" or overrides is None:
        return approval_policy, sandbox
    return (
        overrides.approval_policy or approval_policy,
        overrides.sandbox or sandbox,
    )


def to_sandbox_policy(sandbox: str) -> dict[str, str]:
    try:
        return {"type": _SANDBOX_POLICY_TYPES[sandbox]}
    except KeyError:
        raise ValueError(f"Unknown sandbox mode: {sandbox}") from None


def build_thread_start_params(
    *,
    mode: SessionMode,
    mcp_servers: dict[str, Any] | None = None,
    overrides: CliOverrides | None = None,
    developer_instructions: str | None = None,
) -> dict[str, Any]:
    approval_policy, sandbox = resolve_runtime_config(mode, overrides)
    params: dict[str, Any] = {
        "approvalPolicy": approval_policy,
        "sandbox": sandbox,
        "config": {"mcp_servers": dict(mcp_servers or {})},
    }
    if developer_instructions:
        params["developerInstructions"] = developer_instructions
    if mode.model:
        params["model"] = mode.model
    return params


def _text_input(message: str) -> list[dict[str, str]]:
    return [{"type": "text", "text": message}]


def build_turn_start_params(
    *,
    thread_id: str,
    message: str,
    mode: SessionMode,
    overrides: CliOverrides | None = None,
) -> dict[str, Any]:
    approval_policy, sandbox = resolve_runtime_config(mode, overrides)
    params: dict[str, Any] = {
        "threadId": thread_id,
        "input": _text_input(message),
        "approvalPolicy": approval_policy,
        "sandboxPolicy": to_sandbox_policy(sandbox),
    }
    if mode.model:
        params["model"] = mode.model
    return params


def build_turn_steer_params(*, thread_id: str, turn_id: str, message: str) -> dict[str, Any]:
    return {"threadId": thread_id, "turnId": turn_id, "input": _text_input(message)}


def build_interrupt_params(*, thread_id: str, turn_id: str) -> dict[str, str]:
    return {"threadId": thread_id, "turnId": turn_id}


def build_initialize_params(client_info: dict[str, str]) -> dict[str, Any]:
    return {"clientInfo": dict(client_info)}
