"""Per-item stream buffers and begin-time metadata snapshots."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

BufferStream = Literal[
    "agent_message",
    "reasoning",
    "plan",
    "command_output",
    "file_change_output",
]
MetadataKind = Literal["command", "file_change"]

BUFFER_STREAMS: tuple[str, ...] = (
    "agent_message",
    "reasoning",
    "plan",
    "command_output",
    "file_change_output",
)
METADATA_KINDS: tuple[str, ...] = ("command", "file_change")


@dataclass(slots=True)
class StreamBufferStore:
    """Owned string accumulators keyed by item id.

    Buffers are created on the first delta and must be removed on the item's
    terminal transition (``pop``/``discard``) or by :meth:`reset`.
    """

    _buffers: dict[str, dict[str, str]] = field(
        default_factory=lambda: {stream: {} for stream in BUFFER_STREAMS}
    )
    _metadata: dict[str, dict[str, dict[str, Any]]] = field(
        default_factory=lambda: {kind: {} for kind in METADATA_KINDS}
    )

    def append(self, stream: BufferStream, item_id: str, delta: str) -> str:
        buffers = self._stream(stream)
        accumulated = buffers.get(item_id, "") + delta
        buffers[item_id] = accumulated
        return accumulated

    def seed(self, stream: BufferStream, item_id: str, text: str) -> None:
        self._stream(stream)[item_id] = text

    def get(self, stream: BufferStream, item_id: str) -> str | None:
        return self._stream(stream).get(item_id)

    def pop(self, stream: BufferStream, item_id: str) -> str | None:
        return self._stream(stream).pop(item_id, None)

    def discard(self, stream: BufferStream, item_id: str) -> None:
        self._stream(stream).pop(item_id, None)

    def save_metadata(self, kind: MetadataKind, item_id: str, metadata: dict[str, Any]) -> None:
        self._kind(kind)[item_id] = dict(metadata)

    def get_metadata(self, kind: MetadataKind, item_id: str) -> dict[str, Any]:
        return dict(self._kind(kind).get(item_id, {}))

    def has_metadata(self, kind: MetadataKind, item_id: str) -> bool:
        return item_id in self._kind(kind)

    def discard_metadata(self, kind: MetadataKind, item_id: str) -> None:
        self._kind(kind).pop(item_id, None)

    def counts(self) -> dict[str, int]:
        counts = {stream: len(buffers) for stream, buffers in self._buffers.items()}
        counts.update({f"{kind}_metadata": len(entries) for kind, entries in self._metadata.items()})
        return counts

    def is_empty(self) -> bool:
        return not any(self.counts().values())

    def reset(self) -> None:
        for buffers in self._buffers.values():
            buffers.clear()
        for entries in self._metadata.values():
            entries.clear()

    def _stream(self, stream: str) -> dict[str, str]:
        try:
            return self._buffers[stream]
        except KeyError:
            raise ValueError(f"Unknown buffer stream: {stream}") from None

    def _kind(self, kind: str) -> dict[str, dict[str, Any]]:
        try:
            return self._metadata[kind]
        except KeyError:
            raise ValueError(f"Unknown metadata kind: {kind}") from None
