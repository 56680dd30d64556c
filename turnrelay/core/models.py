"""Core data models for canonical events and tool-call correlation."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

from turnrelay.core.types import EVENT_TYPES

TRACE_FIELD_NAMES: tuple[str, ...] = ("thread_id", "turn_id", "item_id", "status")


@dataclass(frozen=True, slots=True)
class CanonicalEvent:
    """Normalized event produced from one runtime notification.

    Trace fields are kept apart from the type-specific payload so the
    envelope shape stays fixed across every event type.
    """

    type: str
    thread_id: str | None = None
    turn_id: str | None = None
    item_id: str | None = None
    status: str | None = None
    payload: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.type not in EVENT_TYPES:
            raise ValueError(f"Unsupported canonical event type: {self.type}")
        reserved = {"type", *TRACE_FIELD_NAMES} & set(self.payload)
        if reserved:
            raise ValueError(
                f"Payload for {self.type} repeats envelope fields: {', '.join(sorted(reserved))}"
            )
        object.__setattr__(self, "payload", MappingProxyType(dict(self.payload)))

    def get(self, key: str, default: Any = None) -> Any:
        if key == "type":
            return self.type
        if key in TRACE_FIELD_NAMES:
            value = getattr(self, key)
            return default if value is None else value
        return self.payload.get(key, default)

    def trace_fields(self) -> dict[str, str]:
        trace: dict[str, str] = {}
        for name in TRACE_FIELD_NAMES:
            value = getattr(self, name)
            if value:
                trace[name] = value
        return trace

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, **dict(self.payload), **self.trace_fields()}

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "CanonicalEvent":
        payload = {
            key: value
            for key, value in raw.items()
            if key != "type" and key not in TRACE_FIELD_NAMES
        }
        return cls(
            type=str(raw["type"]),
            thread_id=raw.get("thread_id"),
            turn_id=raw.get("turn_id"),
            item_id=raw.get("item_id"),
            status=raw.get("status"),
            payload=payload,
        )


@dataclass(slots=True)
class ToolCallRecord:
    """A begin/end correlation unit for one logical tool call."""

    call_id: str
    name: str
    input: Any
    turn_id: str | None = None
    result: Any = None
    is_error: bool = False
    closed: bool = False

    def close(self, result: Any, *, is_error: bool = False) -> None:
        self.result = result
        self.is_error = is_error
        self.closed = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "call_id": self.call_id,
            "name": self.name,
            "input": self.input,
            "turn_id": self.turn_id,
            "result": self.result,
            "is_error": self.is_error,
            "closed": self.closed,
        }
