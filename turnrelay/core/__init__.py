"""Core models and payload primitives for turnrelay."""

from turnrelay.core.fields import Notification, ingest_notification
from turnrelay.core.hashing import compute_mode_hash
from turnrelay.core.models import TRACE_FIELD_NAMES, CanonicalEvent, ToolCallRecord
from turnrelay.core.types import (
    EVENT_TYPES,
    ITEM_KINDS,
    NOTIFICATION_METHODS,
    TURN_TERMINAL_EVENT_TYPES,
    ItemKind,
    ItemPhase,
)

__all__ = [
    "CanonicalEvent",
    "EVENT_TYPES",
    "ITEM_KINDS",
    "ItemKind",
    "ItemPhase",
    "NOTIFICATION_METHODS",
    "Notification",
    "TRACE_FIELD_NAMES",
    "TURN_TERMINAL_EVENT_TYPES",
    "ToolCallRecord",
    "compute_mode_hash",
    "ingest_notification",
]
