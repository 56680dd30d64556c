"""Stable public API surface for turnrelay.

Runtime notifications go in through :class:`NotificationNormalizer` or a full
:class:`SessionOrchestrator`; tool-call messages come out on a session transport.
"""

from __future__ import annotations

from turnrelay.config import ConfigError, RelayConfig, load_relay_config
from turnrelay.core import CanonicalEvent, Notification, ToolCallRecord, ingest_notification
from turnrelay.normalize import NotificationNormalizer, StreamBufferStore
from turnrelay.recordings import Recording, RecordingError, read_recording, write_recording
from turnrelay.session import (
    CancelScope,
    InMemoryMessageQueue,
    NotificationPipeline,
    RelayError,
    SessionMode,
    SessionOrchestrator,
    ToolCallEmitter,
    TurnLifecycleTracker,
    UserCancelledError,
)
from turnrelay.transport import MemorySessionTransport, forward_messages, replay_notifications

__version__ = "0.1.0"

__all__ = [
    "CancelScope",
    "CanonicalEvent",
    "ConfigError",
    "InMemoryMessageQueue",
    "MemorySessionTransport",
    "Notification",
    "NotificationNormalizer",
    "NotificationPipeline",
    "Recording",
    "RecordingError",
    "RelayConfig",
    "RelayError",
    "SessionMode",
    "SessionOrchestrator",
    "StreamBufferStore",
    "ToolCallEmitter",
    "ToolCallRecord",
    "TurnLifecycleTracker",
    "UserCancelledError",
    "__version__",
    "forward_messages",
    "ingest_notification",
    "load_relay_config",
    "read_recording",
    "replay_notifications",
    "write_recording",
]
