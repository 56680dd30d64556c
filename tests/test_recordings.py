from pathlib import Path

import pytest
import zstandard as zstd

from turnrelay.recordings import RecordingError, parse_recording_line, read_recording, write_recording

NOTIFICATIONS = [
    {"method": "thread/started", "params": {"thread": {"id": "thr-1"}}},
    {"method": "turn/started", "params": {"threadId": "thr-1", "turn": {"id": "turn-1"}}},
]


def test_jsonl_recording_skips_malformed_lines(tmp_path: Path) -> None:
    path = tmp_path / "session.jsonl"
    path.write_text(
        "\n".join(
            [
                '{"method": "thread/started", "params": {"thread": {"id": "thr-1"}}}',
                "",
                "not json",
                '["method"]',
                '{"params": {}}',
                '{"method": "turn/completed"}',
            ]
        ),
        encoding="utf-8",
    )

    recording = read_recording(path)

    assert [notification.method for notification in recording.notifications] == [
        "thread/started",
        "turn/completed",
    ]
    assert recording.notifications[1].params == {}
    assert recording.notifications[1].line == 6
    assert recording.dropped_lines == 3
    assert recording.to_dict() == {"path": str(path), "notification_count": 2, "dropped_lines": 3}


def test_compressed_recording_is_written_and_read(tmp_path: Path) -> None:
    path = write_recording(tmp_path / "nested" / "session.jsonl.zst", NOTIFICATIONS)

    raw = path.read_bytes()
    assert raw[:4] == b"\x28\xb5\x2f\xfd"

    recording = read_recording(path)
    assert [notification.to_dict() for notification in recording.notifications] == NOTIFICATIONS


def test_plain_recording_is_one_sorted_record_per_line(tmp_path: Path) -> None:
    path = write_recording(tmp_path / "session.jsonl", NOTIFICATIONS[:1])

    assert path.read_text(encoding="utf-8") == (
        '{"method": "thread/started", "params": {"thread": {"id": "thr-1"}}}\n'
    )


def test_invalid_zstd_payload_raises_recording_error(tmp_path: Path) -> None:
    path = tmp_path / "broken.jsonl.zst"
    path.write_bytes(b"definitely not zstd")

    with pytest.raises(RecordingError, match="Invalid zstd recording"):
        read_recording(path)


def test_missing_recording_raises_file_not_found(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        read_recording(tmp_path / "missing.jsonl")


def test_streamed_zstd_frames_are_accepted(tmp_path: Path) -> None:
    path = tmp_path / "streamed.jsonl.zst"
    with path.open("wb") as handle:
        with zstd.ZstdCompressor().stream_writer(handle) as writer:
            writer.write(b'{"method": "turn/completed", "params": {"turn": {"id": "t"}}}\n')

    assert read_recording(path).notifications[0].params == {"turn": {"id": "t"}}


def test_parse_recording_line_ignores_blank_text() -> None:
    assert parse_recording_line("   ", line=1) is None
