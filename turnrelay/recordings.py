"""JSON-lines recordings of runtime notifications.

Each line holds one ``{"method": ..., "params": ...}`` record. Files ending in
``.zst`` are zstandard-compressed.
"""

from __future__ import annotations

import io
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

import zstandard as zstd

from turnrelay.session.exceptions import RelayError

COMPRESSED_SUFFIX = ".zst"


class RecordingError(RelayError):
    """Raised when a recording cannot be read at all."""


@dataclass(frozen=True, slots=True)
class RecordedNotification:
    method: str
    params: Any
    line: int

    def to_dict(self) -> dict[str, Any]:
        return {"method": self.method, "params": self.params}


@dataclass(frozen=True, slots=True)
class Recording:
    path: Path
    notifications: tuple[RecordedNotification, ...]
    dropped_lines: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": str(self.path),
            "notification_count": len(self.notifications),
            "dropped_lines": self.dropped_lines,
        }


def _is_compressed(path: Path) -> bool:
    return path.suffix == COMPRESSED_SUFFIX


def _read_text(path: Path) -> str:
    data = path.read_bytes()
    if not _is_compressed(path):
        return data.decode("utf-8", errors="replace")

    decompressor = zstd.ZstdDecompressor()
    try:
        with decompressor.stream_reader(io.BytesIO(data)) as reader:
            raw = reader.read()
    except zstd.ZstdError as error:
        raise RecordingError(f"Invalid zstd recording ({path}): {error}") from error
    return raw.decode("utf-8", errors="replace")


def parse_recording_line(text: str, *, line: int) -> RecordedNotification | None:
    """Parse one line; ``None`` for blank or malformed records."""
    stripped = text.strip()
    if not stripped:
        return None
    try:
        raw = json.loads(stripped)
    except json.JSONDecodeError:
        return None
    if not isinstance(raw, dict):
        return None
    method = raw.get("method")
    if not isinstance(method, str) or not method:
        return None
    return RecordedNotification(method=method, params=raw.get("params", {}), line=line)


def read_recording(path: str | Path) -> Recording:
    recording_path = Path(path)
    text = _read_text(recording_path)

    notifications: list[RecordedNotification] = []
    dropped = 0
    for index, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        parsed = parse_recording_line(line, line=index)
        if parsed is None:
            dropped += 1
            continue
        notifications.append(parsed)

    return Recording(path=recording_path, notifications=tuple(notifications), dropped_lines=dropped)


def write_recording(path: str | Path, notifications: Iterable[dict[str, Any]]) -> Path:
    """Write ``{method, params}`` records, compressing when the path ends in ``.zst``."""
    recording_path = Path(path)
    lines = [
        json.dumps(
            {"method": record["method"], "params": record.get("params", {})},
            ensure_ascii=True,
            sort_keys=True,
        )
        for record in notifications
    ]
    body = ("\n".join(lines) + "\n").encode("utf-8") if lines else b""
    if _is_compressed(recording_path):
        body = zstd.ZstdCompressor().compress(body)
    recording_path.parent.mkdir(parents=True, exist_ok=True)
    recording_path.write_bytes(body)
    return recording_path
