"""Session loop state and turn lifecycle tracking."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from turnrelay.core.models import CanonicalEvent
from turnrelay.core.types import TURN_TERMINAL_EVENT_TYPES
from turnrelay.session.ports import QueuedMessage

SessionPhase = Literal["idle", "thread_pending", "turn_pending", "turn_active", "aborting"]
ExitReason = Literal["exit", "switch"]


@dataclass(slots=True)
class SessionState:
    """All mutable state of one session loop.

    ``thread_id``/``turn_id`` are the only identities used to route interrupt
    requests. ``last_turn_id`` keeps the most recent turn after it stops being
    active. ``plan_calls`` maps a turn id to its open plan tool-call id.
    """

    thread_id: str | None = None
    turn_id: str | None = None
    last_turn_id: str | None = None
    turn_in_flight: bool = False
    phase: SessionPhase = "idle"
    plan_calls: dict[str, str] = field(default_factory=dict)
    was_created: bool = False
    mode_hash: str | None = None
    pending: QueuedMessage | None = None
    should_exit: bool = False
    exit_reason: ExitReason = "exit"


class TurnLifecycleTracker:
    """Apply canonical events and loop decisions to a :class:`SessionState`."""

    def __init__(self, state: SessionState | None = None) -> None:
        self.state = state or SessionState()

    @property
    def can_interrupt(self) -> bool:
        return bool(self.state.thread_id and self.state.turn_id)

    def observe(self, event: CanonicalEvent) -> bool:
        """Record identity changes carried by ``event``.

        Returns ``True`` when the event terminated a turn.
        """
        if event.type == "thread_started":
            if event.thread_id:
                self.state.thread_id = event.thread_id
            return False

        if event.type == "task_started":
            if event.turn_id:
                self.state.turn_id = event.turn_id
                self.state.last_turn_id = event.turn_id
            self.state.turn_in_flight = True
            if self.state.phase != "aborting":
                self.state.phase = "turn_active"
            return False

        if event.type in TURN_TERMINAL_EVENT_TYPES:
            self.end_turn(event.turn_id)
            return True

        return False

    def thread_started(self, thread_id: str) -> None:
        self.state.thread_id = thread_id

    def turn_requested(self) -> None:
        self.state.turn_in_flight = True
        self.state.phase = "turn_pending"

    def turn_accepted(self, turn_id: str | None) -> None:
        if turn_id:
            self.state.turn_id = turn_id
            self.state.last_turn_id = turn_id
        if self.state.turn_in_flight and self.state.phase == "turn_pending":
            self.state.phase = "turn_active"

    def end_turn(self, turn_id: str | None = None) -> None:
        if turn_id:
            self.state.last_turn_id = turn_id
        elif self.state.turn_id:
            self.state.last_turn_id = self.state.turn_id
        self.state.turn_id = None
        self.state.turn_in_flight = False
        if self.state.phase != "aborting":
            self.state.phase = "idle"

    def forget_identity(self) -> None:
        """Discard thread and turn identity so the next message restarts cleanly."""
        self.state.thread_id = None
        self.state.turn_id = None
        self.state.turn_in_flight = False
        self.state.was_created = False

    def set_phase(self, phase: SessionPhase) -> None:
        self.state.phase = phase

    def plan_call_for(self, turn_id: str) -> str | None:
        return self.state.plan_calls.get(turn_id)

    def open_plan_call(self, turn_id: str, call_id: str) -> str:
        """Record ``call_id`` for ``turn_id`` unless one is already open."""
        return self.state.plan_calls.setdefault(turn_id, call_id)

    def close_plan_call(self, turn_id: str) -> str | None:
        return self.state.plan_calls.pop(turn_id, None)

    def discard_plan_call(self, call_id: str) -> None:
        for turn_id, open_call_id in list(self.state.plan_calls.items()):
            if open_call_id == call_id:
                del self.state.plan_calls[turn_id]
