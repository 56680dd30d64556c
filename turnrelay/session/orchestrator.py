"""Session loop driving thread and turn requests against the runtime."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from turnrelay.core.fields import as_record, as_string
from turnrelay.core.models import CanonicalEvent
from turnrelay.normalize.converter import NotificationNormalizer
from turnrelay.session.cancellation import CancelScope
from turnrelay.session.emitter import ToolCallEmitter, new_message_id
from turnrelay.session.exceptions import ThreadStartError, UserCancelledError
from turnrelay.session.params import (
    CliOverrides,
    build_interrupt_params,
    build_thread_start_params,
    build_turn_start_params,
    build_turn_steer_params,
)
from turnrelay.session.pipeline import NotificationPipeline
from turnrelay.session.ports import (
    AppServerClient,
    DiffProcessor,
    MessageBuffer,
    MessageQueue,
    PermissionHandler,
    QueuedMessage,
    ReasoningProcessor,
    SessionTransport,
)
from turnrelay.session.state import ExitReason, SessionState, TurnLifecycleTracker

logger = logging.getLogger(__name__)

DEFAULT_INTERRUPT_TIMEOUT_SECONDS = 30.0
ABORTED_BY_USER = "Aborted by user"
PROCESS_EXITED = "Process exited unexpectedly"


def _response_id(response: Any, record_key: str, *flat_keys: str) -> str | None:
    record = as_record(response) or {}
    nested = as_record(record.get(record_key)) or {}
    value = as_string(nested.get("id"))
    if value:
        return value
    for key in flat_keys:
        value = as_string(record.get(key))
        if value:
            return value
    return None


class SessionOrchestrator:
    """Drain the message queue into runtime threads and turns.

    ``run()`` processes one queued batch at a time until an exit or switch is
    requested, and returns the exit reason. Runtime notifications are fed in
    through :meth:`handle_notification` from the connection's reader.
    """

    def __init__(
        self,
        *,
        client: AppServerClient,
        transport: SessionTransport,
        queue: MessageQueue,
        permission_handler: PermissionHandler | None = None,
        reasoning: ReasoningProcessor | None = None,
        diff: DiffProcessor | None = None,
        message_buffer: MessageBuffer | None = None,
        mcp_servers: dict[str, Any] | None = None,
        overrides: CliOverrides | None = None,
        developer_instructions: str | None = None,
        interrupt_timeout_seconds: float = DEFAULT_INTERRUPT_TIMEOUT_SECONDS,
        id_factory: Callable[[], str] = new_message_id,
    ) -> None:
        self.client = client
        self.transport = transport
        self.queue = queue
        self.permission_handler = permission_handler
        self.reasoning = reasoning
        self.diff = diff
        self.message_buffer = message_buffer
        self.mcp_servers = dict(mcp_servers or {})
        self.overrides = overrides
        self.developer_instructions = developer_instructions
        self.interrupt_timeout_seconds = interrupt_timeout_seconds

        self.state = SessionState()
        self.tracker = TurnLifecycleTracker(self.state)
        self.emitter = ToolCallEmitter(
            transport, self.tracker, reasoning=reasoning, diff=diff, id_factory=id_factory
        )
        self.pipeline = NotificationPipeline(
            transport=transport,
            tracker=self.tracker,
            emitter=self.emitter,
            normalizer=NotificationNormalizer(),
            message_buffer=message_buffer,
            diff=diff,
            ready_check=self._is_idle,
        )
        self.cancel_scope = CancelScope()

    def handle_notification(self, method: str, params: Any) -> list[CanonicalEvent]:
        return self.pipeline.handle_notification(method, params)

    async def run(self) -> ExitReason:
        state = self.state
        while not state.should_exit:
            message = state.pending
            state.pending = None
            if message is None:
                scope = self.cancel_scope
                message = await self.queue.wait_for_next_batch(scope)
                if message is None:
                    if scope.cancelled and not state.should_exit:
                        logger.debug("Wait aborted while idle; continuing")
                        continue
                    break

            if state.was_created and state.mode_hash and message.mode_hash != state.mode_hash:
                logger.debug("Mode changed; restarting thread")
                self._note("═" * 40, "status")
                self._note("Starting new session (mode changed)...", "status")
                state.was_created = False
                state.mode_hash = None
                state.pending = message
                self._reset_processors()
                self.transport.on_thinking_change(False)
                continue

            self._note(message.message, "user")
            state.mode_hash = message.mode_hash

            steering = False
            try:
                if not state.was_created:
                    thread_id = await self._open_thread(message)
                    await self._start_turn(thread_id, message)
                    state.was_created = True
                elif not state.thread_id:
                    logger.debug("Missing thread id; restarting thread")
                    state.was_created = False
                    state.pending = message
                    continue
                elif state.turn_in_flight and state.turn_id:
                    steering = True
                    await self._steer_turn(state.thread_id, state.turn_id, message)
                else:
                    await self._start_turn(state.thread_id, message)
            except UserCancelledError:
                logger.debug("Turn request cancelled by user")
                if not steering:
                    self._stop_turn()
                self._report(ABORTED_BY_USER)
                if not self.client.resumable_threads:
                    state.was_created = False
                    state.mode_hash = None
            except Exception:
                logger.warning("Turn request failed", exc_info=True)
                self._stop_turn()
                self._report(PROCESS_EXITED)
                if self.client.resumable_threads:
                    self.tracker.forget_identity()
            finally:
                self._reset_processors()
                self.pipeline.reset()
                self.transport.on_thinking_change(False)
                if not state.turn_in_flight:
                    self.emit_ready_if_idle()

        return state.exit_reason

    async def handle_abort(self) -> None:
        """Interrupt the active turn and start a fresh cancellation episode."""
        logger.debug("Abort requested")
        state = self.state
        state.phase = "aborting"
        try:
            if self.tracker.can_interrupt:
                params = build_interrupt_params(thread_id=state.thread_id, turn_id=state.turn_id)
                try:
                    await asyncio.wait_for(
                        self.client.interrupt_turn(params),
                        timeout=self.interrupt_timeout_seconds,
                    )
                except Exception:
                    logger.debug("Interrupting turn %s failed", params["turnId"], exc_info=True)
            state.turn_id = None
            for step in self._abort_steps():
                try:
                    step()
                except Exception:
                    logger.debug("Abort step %s failed", getattr(step, "__qualname__", step), exc_info=True)
        finally:
            self.cancel_scope = CancelScope()
            state.phase = "turn_active" if state.turn_in_flight else "idle"

    async def request_exit(self) -> None:
        self.state.should_exit = True
        self.state.exit_reason = "exit"
        await self.handle_abort()

    async def request_switch(self) -> None:
        self.state.should_exit = True
        self.state.exit_reason = "switch"
        await self.handle_abort()

    def emit_ready_if_idle(self) -> bool:
        if not self._is_idle():
            return False
        self.pipeline.send_ready()
        return True

    def _is_idle(self) -> bool:
        return (
            self.state.pending is None
            and self.queue.size() == 0
            and not self.state.should_exit
        )

    async def _open_thread(self, message: QueuedMessage) -> str:
        scope = self.cancel_scope
        self.tracker.set_phase("thread_pending")
        params = build_thread_start_params(
            mode=message.mode,
            mcp_servers=self.mcp_servers,
            overrides=self.overrides,
            developer_instructions=self.developer_instructions,
        )

        thread_id: str | None = None
        candidate = self.transport.session_id
        if candidate:
            try:
                response = await scope.guard(
                    self.client.resume_thread({"threadId": candidate, **params}, cancel=scope)
                )
            except UserCancelledError:
                raise
            except Exception:
                logger.warning("Failed to resume thread %s; starting a new thread", candidate, exc_info=True)
            else:
                thread_id = _response_id(response, "thread") or candidate
                logger.debug("Resumed thread %s", thread_id)

        if not thread_id:
            response = await scope.guard(self.client.start_thread(params, cancel=scope))
            thread_id = _response_id(response, "thread")
            if not thread_id:
                raise ThreadStartError("thread/start did not return thread.id")

        self.tracker.thread_started(thread_id)
        self.transport.on_session_found(thread_id)
        return thread_id

    async def _start_turn(self, thread_id: str, message: QueuedMessage) -> None:
        scope = self.cancel_scope
        params = build_turn_start_params(
            thread_id=thread_id,
            message=message.message,
            mode=message.mode,
            overrides=self.overrides,
        )
        self.tracker.turn_requested()
        response = await scope.guard(self.client.start_turn(params, cancel=scope))
        self.tracker.turn_accepted(_response_id(response, "turn", "turnId"))

    async def _steer_turn(self, thread_id: str, turn_id: str, message: QueuedMessage) -> None:
        scope = self.cancel_scope
        params = build_turn_steer_params(thread_id=thread_id, turn_id=turn_id, message=message.message)
        response = await scope.guard(self.client.steer_turn(params, cancel=scope))
        self.tracker.turn_accepted(_response_id(response, "turn", "turnId"))

    def _stop_turn(self) -> None:
        self.state.turn_in_flight = False
        if self.state.phase != "aborting":
            self.state.phase = "idle"

    def _abort_steps(self) -> list[Callable[[], None]]:
        steps: list[Callable[[], None]] = [self.cancel_scope.cancel, self.queue.reset]
        if self.permission_handler is not None:
            steps.append(self.permission_handler.reset)
        if self.reasoning is not None:
            steps.append(self.reasoning.abort)
        if self.diff is not None:
            steps.append(self.diff.reset)
        return steps

    def _reset_processors(self) -> None:
        if self.permission_handler is not None:
            self.permission_handler.reset()
        if self.reasoning is not None:
            self.reasoning.abort()
        if self.diff is not None:
            self.diff.reset()

    def _note(self, text: str, kind: str) -> None:
        if self.message_buffer is not None:
            self.message_buffer.add_message(text, kind)

    def _report(self, message: str) -> None:
        self._note(message, "status")
        self.transport.send_session_event({"type": "message", "message": message})
