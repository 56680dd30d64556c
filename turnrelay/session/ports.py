"""Collaborator contracts consumed by the session loop."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from turnrelay.session.cancellation import CancelScope
from turnrelay.session.params import SessionMode


@dataclass(frozen=True, slots=True)
class QueuedMessage:
    """A batch of user text waiting to be sent as one turn."""

    message: str
    mode: SessionMode
    mode_hash: str
    isolate: bool = False


class MessageQueue(Protocol):
    """Source of queued user message batches."""

    async def wait_for_next_batch(self, cancel: CancelScope) -> QueuedMessage | None:
        """Wait for the next batch; ``None`` when cancelled or closed."""

    def size(self) -> int:
        """Number of messages still queued."""

    def reset(self) -> None:
        """Drop every queued message."""


class ReasoningProcessor(Protocol):
    def process_delta(self, text: str) -> None:
        ...

    def complete(self, text: str) -> None:
        ...

    def handle_section_break(self) -> None:
        ...

    def abort(self) -> None:
        ...


class DiffProcessor(Protocol):
    def process_diff(self, text: str) -> None:
        ...

    def reset(self) -> None:
        ...


class PermissionHandler(Protocol):
    def reset(self) -> None:
        ...


class MessageBuffer(Protocol):
    """Local, human-readable activity log."""

    def add_message(self, text: str, kind: str) -> None:
        ...


class SessionTransport(Protocol):
    """Outbound channel to the chat session."""

    session_id: str | None
    thinking: bool

    def send_message(self, message: dict[str, Any]) -> None:
        """Send a tool-call, tool-call-result or pass-through record."""

    def send_session_event(self, event: dict[str, Any]) -> None:
        """Send a session-level event such as ``ready``."""

    def on_session_found(self, thread_id: str) -> None:
        """Record the runtime thread id as the resumable session id."""

    def on_thinking_change(self, thinking: bool) -> None:
        ...


class AppServerClient(Protocol):
    """Request side of the runtime connection.

    ``resumable_threads`` tells the session loop whether thread identity
    survives failures and can be resumed.
    """

    resumable_threads: bool

    async def start_thread(self, params: dict[str, Any], *, cancel: CancelScope) -> dict[str, Any]:
        ...

    async def resume_thread(self, params: dict[str, Any], *, cancel: CancelScope) -> dict[str, Any]:
        ...

    async def start_turn(self, params: dict[str, Any], *, cancel: CancelScope) -> dict[str, Any]:
        ...

    async def steer_turn(self, params: dict[str, Any], *, cancel: CancelScope) -> dict[str, Any]:
        ...

    async def interrupt_turn(
        self,
        params: dict[str, Any],
        *,
        cancel: CancelScope | None = None,
    ) -> dict[str, Any]:
        ...
