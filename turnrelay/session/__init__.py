"""Session loop: lifecycle tracking, tool-call emission and orchestration."""

from turnrelay.session.cancellation import CancelScope
from turnrelay.session.emitter import ToolCallEmitter, extract_call_id
from turnrelay.session.exceptions import RelayError, ThreadStartError, UserCancelledError
from turnrelay.session.orchestrator import SessionOrchestrator
from turnrelay.session.params import CliOverrides, SessionMode
from turnrelay.session.pipeline import NotificationPipeline
from turnrelay.session.ports import QueuedMessage
from turnrelay.session.queue import InMemoryMessageQueue
from turnrelay.session.state import SessionState, TurnLifecycleTracker

__all__ = [
    "CancelScope",
    "CliOverrides",
    "InMemoryMessageQueue",
    "NotificationPipeline",
    "QueuedMessage",
    "RelayError",
    "SessionMode",
    "SessionOrchestrator",
    "SessionState",
    "ThreadStartError",
    "ToolCallEmitter",
    "TurnLifecycleTracker",
    "UserCancelledError",
    "extract_call_id",
]
