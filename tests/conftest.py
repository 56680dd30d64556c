import itertools
from typing import Callable

import pytest

from turnrelay.transport import MemorySessionTransport


class RecordingReasoning:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str | None]] = []

    def process_delta(self, text: str) -> None:
        self.calls.append(("delta", text))

    def complete(self, text: str) -> None:
        self.calls.append(("complete", text))

    def handle_section_break(self) -> None:
        self.calls.append(("section_break", None))

    def abort(self) -> None:
        self.calls.append(("abort", None))


class RecordingDiff:
    def __init__(self) -> None:
        self.diffs: list[str] = []
        self.resets = 0

    def process_diff(self, text: str) -> None:
        self.diffs.append(text)

    def reset(self) -> None:
        self.resets += 1


class RecordingPermissions:
    def __init__(self) -> None:
        self.resets = 0

    def reset(self) -> None:
        self.resets += 1


class RecordingMessageBuffer:
    def __init__(self) -> None:
        self.lines: list[tuple[str, str]] = []

    def add_message(self, text: str, kind: str) -> None:
        self.lines.append((text, kind))


@pytest.fixture
def transport() -> MemorySessionTransport:
    return MemorySessionTransport()


@pytest.fixture
def sequential_ids() -> Callable[[], str]:
    counter = itertools.count(1)
    return lambda: f"id-{next(counter)}"


@pytest.fixture
def reasoning() -> RecordingReasoning:
    return RecordingReasoning()


@pytest.fixture
def diff() -> RecordingDiff:
    return RecordingDiff()


@pytest.fixture
def permissions() -> RecordingPermissions:
    return RecordingPermissions()


@pytest.fixture
def message_buffer() -> RecordingMessageBuffer:
    return RecordingMessageBuffer()
