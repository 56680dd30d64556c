import pytest

from turnrelay.config import RelayConfig
from turnrelay.session import CliOverrides, SessionMode
from turnrelay.session.params import (
    build_initialize_params,
    build_thread_start_params,
    build_turn_start_params,
    resolve_runtime_config,
    to_sandbox_policy,
)


@pytest.mark.parametrize(
    ("permission_mode", "expected"),
    [
        ("default", ("untrusted", "workspace-write")),
        ("read-only", ("never", "read-only")),
        ("safe-yolo", ("on-failure", "workspace-write")),
        ("yolo", ("on-failure", "danger-full-access")),
    ],
)
def test_permission_modes_map_to_runtime_policy(permission_mode: str, expected: tuple[str, str]) -> None:
    assert resolve_runtime_config(SessionMode(permission_mode)) == expected


def test_overrides_apply_only_in_default_mode() -> None:
    overrides = CliOverrides(approval_policy="on-request", sandbox="read-only")

    assert resolve_runtime_config(SessionMode("default"), overrides) == ("on-request", "read-only")
    assert resolve_runtime_config(SessionMode("yolo"), overrides) == ("on-failure", "danger-full-access")
    assert resolve_runtime_config(SessionMode("default"), CliOverrides(sandbox="read-only")) == (
        "untrusted",
        "read-only",
    )


def test_unknown_modes_are_rejected() -> None:
    with pytest.raises(ValueError, match="permission mode"):
        resolve_runtime_config(SessionMode("anything-goes"))
    with pytest.raises(ValueError, match="sandbox"):
        to_sandbox_policy("container")


def test_thread_start_params_carry_servers_instructions_and_model() -> None:
    params = build_thread_start_params(
        mode=SessionMode("safe-yolo", model="gpt-5"),
        mcp_servers={"docs": {"url": "http://localhost:9000"}},
        developer_instructions="stay in repo",
    )

    assert params == {
        "approvalPolicy": "on-failure",
        "sandbox": "workspace-write",
        "config": {"mcp_servers": {"docs": {"url": "http://localhost:9000"}}},
        "developerInstructions": "stay in repo",
        "model": "gpt-5",
    }


def test_turn_start_params_use_sandbox_policy_object() -> None:
    params = build_turn_start_params(thread_id="thr-1", message="go", mode=SessionMode("yolo"))

    assert params == {
        "threadId": "thr-1",
        "input": [{"type": "text", "text": "go"}],
        "approvalPolicy": "on-failure",
        "sandboxPolicy": {"type": "dangerFullAccess"},
    }


def test_mode_hash_tracks_model_and_permission_mode() -> None:
    assert SessionMode("yolo").hash() == SessionMode("yolo").hash()
    assert SessionMode("yolo").hash() != SessionMode("default").hash()
    assert SessionMode("yolo", model="a").hash() != SessionMode("yolo", model="b").hash()


def test_initialize_params_carry_client_info() -> None:
    params = build_initialize_params(RelayConfig(client_name="hub", client_version="9.9.9").client_info())

    assert params == {"clientInfo": {"name": "hub", "version": "9.9.9"}}
