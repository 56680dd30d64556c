"""Type definitions for turnrelay canonical events and item kinds."""

from typing import Literal

ItemKind = Literal[
    "agentmessage",
    "reasoning",
    "plan",
    "commandexecution",
    "filechange",
    "mcptoolcall",
    "collabtoolcall",
    "websearch",
    "imageview",
    "enteredreviewmode",
    "exitedreviewmode",
    "contextcompaction",
]

ITEM_KINDS: tuple[str, ...] = (
    "agentmessage",
    "reasoning",
    "plan",
    "commandexecution",
    "filechange",
    "mcptoolcall",
    "collabtoolcall",
    "websearch",
    "imageview",
    "enteredreviewmode",
    "exitedreviewmode",
    "contextcompaction",
)

ItemPhase = Literal["started", "completed"]

EVENT_TYPES: tuple[str, ...] = (
    "thread_started",
    "task_started",
    "task_complete",
    "turn_aborted",
    "task_failed",
    "turn_diff",
    "turn_plan_updated",
    "token_count",
    "agent_message",
    "agent_reasoning",
    "agent_reasoning_delta",
    "agent_reasoning_section_break",
    "agent_plan_delta",
    "plan_item_started",
    "plan_item_completed",
    "exec_command_begin",
    "exec_command_end",
    "patch_apply_begin",
    "patch_apply_delta",
    "patch_apply_end",
    "mcp_tool_call_begin",
    "mcp_tool_call_end",
    "collab_tool_call_begin",
    "collab_tool_call_end",
    "web_search_begin",
    "web_search_end",
    "image_view_begin",
    "image_view_end",
    "review_mode_entered",
    "review_mode_exited",
    "context_compaction_started",
    "context_compaction_completed",
)

TURN_TERMINAL_EVENT_TYPES: frozenset[str] = frozenset(
    {"task_complete", "turn_aborted", "task_failed"}
)

NOTIFICATION_METHODS: tuple[str, ...] = (
    "thread/started",
    "thread/resumed",
    "turn/started",
    "turn/completed",
    "turn/diff/updated",
    "turn/plan/updated",
    "thread/tokenUsage/updated",
    "error",
    "item/agentMessage/delta",
    "item/plan/delta",
    "item/reasoning/textDelta",
    "item/reasoning/summaryTextDelta",
    "item/reasoning/summaryPartAdded",
    "item/commandExecution/outputDelta",
    "item/fileChange/outputDelta",
    "item/started",
    "item/completed",
)
