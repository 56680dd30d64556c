"""Cancellation scopes for the session loop.

Each abort episode cancels the current scope and installs a fresh one, so a
scope that has already fired can never pre-cancel later operations.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import Awaitable, TypeVar

from turnrelay.session.exceptions import UserCancelledError

T = TypeVar("T")


class CancelScope:
    """One-shot cancellation signal observed at suspension points."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "aborted by user") -> None:
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise UserCancelledError(self.reason or "aborted by user")

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the scope fires first.

        When the scope fires, the pending operation is cancelled and
        :class:`UserCancelledError` is raised.
        """
        self.raise_if_cancelled()
        operation = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({operation, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            operation.cancel()
            raise
        finally:
            if not waiter.done():
                waiter.cancel()

        if operation.done():
            return operation.result()

        operation.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await operation
        raise UserCancelledError(self.reason or "aborted by user")
