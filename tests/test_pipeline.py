from turnrelay.core import CanonicalEvent
from turnrelay.session import NotificationPipeline, SessionState, ToolCallEmitter, TurnLifecycleTracker
from turnrelay.session.pipeline import describe_event


def _pipeline(transport, sequential_ids, **kwargs) -> NotificationPipeline:
    tracker = TurnLifecycleTracker()
    emitter = ToolCallEmitter(transport, tracker, id_factory=sequential_ids, diff=kwargs.get("diff"))
    return NotificationPipeline(transport=transport, tracker=tracker, emitter=emitter, **kwargs)


def test_tracker_records_thread_and_turn_transitions() -> None:
    tracker = TurnLifecycleTracker()

    assert tracker.observe(CanonicalEvent(type="thread_started", thread_id="thr-1")) is False
    assert tracker.observe(CanonicalEvent(type="task_started", turn_id="turn-1")) is False
    assert tracker.state.turn_in_flight is True
    assert tracker.state.phase == "turn_active"
    assert tracker.can_interrupt is True

    assert tracker.observe(CanonicalEvent(type="task_complete", turn_id="turn-1")) is True
    assert tracker.state.turn_in_flight is False
    assert tracker.state.turn_id is None
    assert tracker.state.last_turn_id == "turn-1"
    assert tracker.state.thread_id == "thr-1"
    assert tracker.state.phase == "idle"
    assert tracker.can_interrupt is False


def test_tracker_keeps_aborting_phase_until_abort_finishes() -> None:
    state = SessionState(phase="aborting", turn_id="turn-1", turn_in_flight=True)
    tracker = TurnLifecycleTracker(state)

    tracker.observe(CanonicalEvent(type="turn_aborted"))

    assert state.phase == "aborting"
    assert state.last_turn_id == "turn-1"


def test_tracker_plan_call_map() -> None:
    tracker = TurnLifecycleTracker()

    assert tracker.open_plan_call("turn-1", "plan-a") == "plan-a"
    assert tracker.open_plan_call("turn-1", "plan-b") == "plan-a"
    tracker.discard_plan_call("plan-a")
    assert tracker.plan_call_for("turn-1") is None


def test_forget_identity_clears_thread_and_created_flag() -> None:
    state = SessionState(thread_id="thr-1", turn_id="turn-1", turn_in_flight=True, was_created=True)

    TurnLifecycleTracker(state).forget_identity()

    assert (state.thread_id, state.turn_id, state.turn_in_flight, state.was_created) == (None, None, False, False)


def test_pipeline_runs_a_turn_end_to_end(transport, sequential_ids, diff, message_buffer) -> None:
    pipeline = _pipeline(transport, sequential_ids, diff=diff, message_buffer=message_buffer)

    pipeline.handle_notification("thread/started", {"thread": {"id": "thr-1"}})
    pipeline.handle_notification("turn/started", {"threadId": "thr-1", "turn": {"id": "turn-1"}})
    pipeline.handle_notification(
        "item/started",
        {"threadId": "thr-1", "turnId": "turn-1", "item": {"id": "cmd-1", "type": "commandExecution", "command": "ls"}},
    )
    pipeline.handle_notification("item/commandExecution/outputDelta", {"itemId": "cmd-1", "delta": "o"})
    pipeline.handle_notification("item/commandExecution/outputDelta", {"itemId": "cmd-1", "delta": "k"})
    pipeline.handle_notification(
        "item/completed",
        {"threadId": "thr-1", "turnId": "turn-1", "item": {"id": "cmd-1", "type": "commandExecution", "exitCode": 0}},
    )
    pipeline.handle_notification("turn/completed", {"threadId": "thr-1", "turn": {"id": "turn-1"}, "status": "completed"})

    assert transport.session_id == "thr-1"
    assert transport.thinking_changes == [True, False]
    call, result = transport.messages
    assert call["callId"] == result["callId"] == "cmd-1"
    assert result["output"]["output"] == "ok"
    assert result["output"]["command"] == "ls"
    assert transport.session_events == [{"type": "ready"}]
    assert diff.resets == 1
    assert [line for line, _ in message_buffer.lines] == [
        "Starting task...",
        "Executing: ls",
        "Result: ok",
        "Task completed",
    ]


def test_pipeline_turn_end_resets_buffers(transport, sequential_ids) -> None:
    pipeline = _pipeline(transport, sequential_ids)

    pipeline.handle_notification("item/agentMessage/delta", {"itemId": "msg-1", "delta": "orphan"})
    pipeline.handle_notification("turn/completed", {"turn": {"id": "turn-1"}, "status": "interrupted"})

    assert pipeline.normalizer.buffers.is_empty()


def test_pipeline_ready_check_can_hold_ready(transport, sequential_ids) -> None:
    pipeline = _pipeline(transport, sequential_ids, ready_check=lambda: False)

    pipeline.handle_notification("turn/completed", {"turn": {"id": "turn-1"}})

    assert transport.session_events == []


def test_plan_lifecycle_through_notifications_leaves_no_open_call(transport, sequential_ids) -> None:
    pipeline = _pipeline(transport, sequential_ids)

    pipeline.handle_notification("turn/started", {"threadId": "thr-1", "turn": {"id": "turn-1"}})
    pipeline.handle_notification("turn/plan/updated", {"turnId": "turn-1", "plan": [{"step": "a"}]})
    pipeline.handle_notification("turn/completed", {"turn": {"id": "turn-1"}, "status": "completed"})

    begins = [message for message in transport.messages if message["type"] == "tool-call"]
    ends = [message for message in transport.messages if message["type"] == "tool-call-result"]
    assert len(begins) == len(ends) == 1
    assert begins[0]["callId"] == ends[0]["callId"]
    assert pipeline.tracker.state.plan_calls == {}


def test_describe_event_lines() -> None:
    assert describe_event(CanonicalEvent(type="patch_apply_begin", payload={"changes": {"a": {}}})) == (
        "Modifying 1 file...",
        "tool",
    )
    assert describe_event(CanonicalEvent(type="patch_apply_end", payload={"success": False})) == (
        "Error: Failed to modify files",
        "result",
    )
    assert describe_event(CanonicalEvent(type="task_failed", payload={"error": "boom"})) == (
        "Task failed: boom",
        "status",
    )
    long_output = describe_event(CanonicalEvent(type="exec_command_end", payload={"output": "x" * 250}))
    assert long_output is not None and long_output[0].endswith("...")
    assert describe_event(CanonicalEvent(type="token_count")) is None
