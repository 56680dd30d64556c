import pytest

from turnrelay.normalize import StreamBufferStore


def test_append_returns_accumulated_text_and_pop_removes_it() -> None:
    buffers = StreamBufferStore()

    assert buffers.append("command_output", "cmd-1", "a") == "a"
    assert buffers.append("command_output", "cmd-1", "b") == "ab"
    assert buffers.pop("command_output", "cmd-1") == "ab"
    assert buffers.pop("command_output", "cmd-1") is None
    assert buffers.is_empty()


def test_streams_are_independent() -> None:
    buffers = StreamBufferStore()
    buffers.append("agent_message", "item-1", "hello")
    buffers.append("reasoning", "item-1", "thinking")

    buffers.discard("agent_message", "item-1")

    assert buffers.get("agent_message", "item-1") is None
    assert buffers.get("reasoning", "item-1") == "thinking"


def test_metadata_is_copied_on_save_and_read() -> None:
    buffers = StreamBufferStore()
    source = {"command": "ls"}
    buffers.save_metadata("command", "cmd-1", source)
    source["command"] = "rm -rf /"

    snapshot = buffers.get_metadata("command", "cmd-1")
    snapshot["cwd"] = "/tmp"

    assert buffers.get_metadata("command", "cmd-1") == {"command": "ls"}
    assert buffers.get_metadata("file_change", "cmd-1") == {}


def test_reset_clears_buffers_and_metadata() -> None:
    buffers = StreamBufferStore()
    buffers.append("plan", "plan-1", "step")
    buffers.save_metadata("file_change", "patch-1", {"changes": {}})

    assert buffers.counts()["plan"] == 1
    assert buffers.counts()["file_change_metadata"] == 1

    buffers.reset()

    assert buffers.is_empty()


def test_unknown_stream_or_kind_is_rejected() -> None:
    buffers = StreamBufferStore()

    with pytest.raises(ValueError, match="Unknown buffer stream"):
        buffers.append("stderr", "x", "y")  # type: ignore[arg-type]
    with pytest.raises(ValueError, match="Unknown metadata kind"):
        buffers.get_metadata("mcp", "x")  # type: ignore[arg-type]
