import asyncio

import pytest

from turnrelay.session import CancelScope, UserCancelledError


def test_guard_returns_result_when_not_cancelled() -> None:
    async def scenario() -> str:
        scope = CancelScope()

        async def operation() -> str:
            await asyncio.sleep(0)
            return "done"

        return await scope.guard(operation())

    assert asyncio.run(scenario()) == "done"


def test_guard_raises_user_cancelled_and_cancels_operation() -> None:
    observed: list[str] = []

    async def scenario() -> None:
        scope = CancelScope()

        async def operation() -> None:
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                observed.append("cancelled")
                raise

        async def cancel_soon() -> None:
            await asyncio.sleep(0.01)
            scope.cancel("stop")

        canceller = asyncio.ensure_future(cancel_soon())
        try:
            await scope.guard(operation())
        finally:
            await canceller

    with pytest.raises(UserCancelledError, match="stop"):
        asyncio.run(scenario())
    assert observed == ["cancelled"]


def test_already_cancelled_scope_rejects_new_work() -> None:
    async def scenario() -> None:
        scope = CancelScope()
        scope.cancel()

        async def operation() -> None:
            return None

        coroutine = operation()
        try:
            await scope.guard(coroutine)
        finally:
            coroutine.close()

    with pytest.raises(UserCancelledError):
        asyncio.run(scenario())


def test_cancel_keeps_the_first_reason() -> None:
    scope = CancelScope()

    scope.cancel("first")
    scope.cancel("second")

    assert scope.cancelled is True
    assert scope.reason == "first"


def test_operation_errors_propagate_unchanged() -> None:
    async def scenario() -> None:
        async def operation() -> None:
            raise RuntimeError("transport closed")

        await CancelScope().guard(operation())

    with pytest.raises(RuntimeError, match="transport closed"):
        asyncio.run(scenario())
