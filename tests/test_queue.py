import asyncio

from turnrelay.session import CancelScope, InMemoryMessageQueue, SessionMode


def test_consecutive_messages_with_same_mode_are_batched() -> None:
    queue = InMemoryMessageQueue()
    queue.push("first")
    queue.push("second")
    queue.push("third", SessionMode("yolo"))

    async def scenario():
        scope = CancelScope()
        return [await queue.wait_for_next_batch(scope), await queue.wait_for_next_batch(scope)]

    batched, separate = asyncio.run(scenario())

    assert batched.message == "first\nsecond"
    assert batched.mode_hash == SessionMode().hash()
    assert separate.message == "third"
    assert separate.mode.permission_mode == "yolo"
    assert queue.size() == 0


def test_isolated_message_forms_its_own_batch() -> None:
    queue = InMemoryMessageQueue()
    queue.push("a")
    queue.push("/clear", isolate=True)
    queue.push("b")

    async def scenario():
        scope = CancelScope()
        return [(await queue.wait_for_next_batch(scope)).message for _ in range(3)]

    assert asyncio.run(scenario()) == ["a", "/clear", "b"]


def test_wait_returns_pushed_message() -> None:
    async def scenario():
        queue = InMemoryMessageQueue()
        scope = CancelScope()

        async def push_later() -> None:
            await asyncio.sleep(0.01)
            queue.push("late")

        pusher = asyncio.ensure_future(push_later())
        batch = await queue.wait_for_next_batch(scope)
        await pusher
        return batch

    assert asyncio.run(scenario()).message == "late"


def test_wait_returns_none_when_cancelled_or_closed() -> None:
    async def scenario():
        queue = InMemoryMessageQueue()
        scope = CancelScope()

        async def cancel_later() -> None:
            await asyncio.sleep(0.01)
            scope.cancel()

        canceller = asyncio.ensure_future(cancel_later())
        cancelled = await queue.wait_for_next_batch(scope)
        await canceller

        queue.close()
        closed = await queue.wait_for_next_batch(CancelScope())
        return cancelled, closed

    assert asyncio.run(scenario()) == (None, None)


def test_reset_drops_queued_messages() -> None:
    queue = InMemoryMessageQueue()
    queue.push("a")
    queue.push("b")

    queue.reset()

    assert queue.size() == 0
