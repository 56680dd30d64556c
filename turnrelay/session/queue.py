"""In-memory user message queue with mode-hash batching."""

from __future__ import annotations

import asyncio
from collections import deque

from turnrelay.session.cancellation import CancelScope
from turnrelay.session.params import SessionMode
from turnrelay.session.ports import QueuedMessage


class InMemoryMessageQueue:
    """FIFO of user messages drained one batch at a time.

    Consecutive non-isolated messages that share a mode hash are joined with
    newlines into a single batch. An isolated message always forms its own
    batch.
    """

    def __init__(self) -> None:
        self._items: deque[QueuedMessage] = deque()
        self._changed = asyncio.Event()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, message: str, mode: SessionMode | None = None, *, isolate: bool = False) -> QueuedMessage:
        if self._closed:
            raise RuntimeError("Message queue is closed")
        mode = mode or SessionMode()
        queued = QueuedMessage(message=message, mode=mode, mode_hash=mode.hash(), isolate=isolate)
        self._items.append(queued)
        self._changed.set()
        return queued

    def size(self) -> int:
        return len(self._items)

    def reset(self) -> None:
        self._items.clear()

    def close(self) -> None:
        self._closed = True
        self._changed.set()

    async def wait_for_next_batch(self, cancel: CancelScope) -> QueuedMessage | None:
        while True:
            if self._items:
                return self._take_batch()
            if self._closed or cancel.cancelled:
                return None
            self._changed.clear()
            changed = asyncio.ensure_future(self._changed.wait())
            cancelled = asyncio.ensure_future(cancel.wait())
            try:
                await asyncio.wait({changed, cancelled}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                changed.cancel()
                cancelled.cancel()

    def _take_batch(self) -> QueuedMessage:
        first = self._items.popleft()
        if first.isolate:
            return first
        lines = [first.message]
        while self._items:
            candidate = self._items[0]
            if candidate.isolate or candidate.mode_hash != first.mode_hash:
                break
            lines.append(self._items.popleft().message)
        if len(lines) == 1:
            return first
        return QueuedMessage(message="\n".join(lines), mode=first.mode, mode_hash=first.mode_hash)
