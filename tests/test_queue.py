"""Tests for the command queue module."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from pygree.exceptions import CommandCancelledError, GreeError, GreeTimeoutError, ProtocolError
from pygree.queue import CommandQueue, QueuedCommand


class TestQueuedCommand:
    """Tests for QueuedCommand dataclass."""

    async def test_create_command(self) -> None:
        """Test creating a queued command."""
        execute_fn = AsyncMock(return_value={"Pow": 1})
        loop = asyncio.get_running_loop()
        future: asyncio.Future[dict] = loop.create_future()

        command = QueuedCommand(
            command_type="Pow",
            params={"Pow": 1},
            execute_fn=execute_fn,
            future=future,
            queued_at=loop.time(),
        )

        assert command.command_type == "Pow"
        assert command.params == {"Pow": 1}
        assert command.execute_fn == execute_fn


class TestCommandQueue:
    """Tests for CommandQueue class."""

    async def test_init_defaults(self) -> None:
        """Test queue initialization with defaults."""
        queue = CommandQueue()

        assert queue._min_interval == 0.5
        assert queue._max_queue_size == 10
        assert queue._command_timeout == 10.0
        assert queue.pending_count == 0
        assert queue.pending_types == []

    async def test_enqueue_single_command(self) -> None:
        """Test enqueuing a single command."""
        queue = CommandQueue(min_interval=0.0)
        execute_fn = AsyncMock(return_value={"Pow": 1})

        result = await queue.enqueue(command_type="Pow", params={"Pow": 1}, execute_fn=execute_fn)

        assert result == {"Pow": 1}
        execute_fn.assert_awaited_once()
        await queue.shutdown()

    async def test_enqueue_coalesces_same_type(self) -> None:
        """Test that set-temperature taps during the spacing wait coalesce.

        The first command runs at once; later commands of the same type queued
        while the queue waits out the interval replace each other.
        """
        queue = CommandQueue(min_interval=0.5, command_timeout=10.0)
        written: list[int] = []

        async def write(value: int) -> int:
            written.append(value)
            return value

        task1 = asyncio.create_task(queue.enqueue("SetTem", {"SetTem": 22}, lambda: write(22)))
        await asyncio.sleep(0.05)

        task2 = asyncio.create_task(queue.enqueue("SetTem", {"SetTem": 23}, lambda: write(23)))
        await asyncio.sleep(0.01)
        task3 = asyncio.create_task(queue.enqueue("SetTem", {"SetTem": 24}, lambda: write(24)))

        results = await asyncio.gather(task1, task2, task3)

        assert written == [22, 24]
        # The replaced command resolves with its replacement's result
        assert results == [22, 24, 24]

        await queue.shutdown()

    async def test_different_types_not_coalesced(self) -> None:
        """Test that different command types both run."""
        queue = CommandQueue(min_interval=0.0)
        power = AsyncMock(return_value="power")
        mode = AsyncMock(return_value="mode")

        assert await queue.enqueue("Pow", {"Pow": 1}, power) == "power"
        assert await queue.enqueue("Mod", {"Mod": 1}, mode) == "mode"

        power.assert_awaited_once()
        mode.assert_awaited_once()
        await queue.shutdown()

    async def test_spacing(self) -> None:
        """Test that writes are spaced by the minimum interval."""
        queue = CommandQueue(min_interval=0.2)
        loop = asyncio.get_running_loop()
        times: list[float] = []

        async def execute() -> None:
            times.append(loop.time())

        await queue.enqueue("Pow", {}, execute)
        await queue.enqueue("Mod", {}, execute)

        assert times[1] - times[0] >= 0.15
        await queue.shutdown()

    async def test_queue_full(self) -> None:
        """Test that new command types are refused when the queue is full."""
        queue = CommandQueue(min_interval=5.0, max_queue_size=1)
        started = asyncio.Event()

        async def first() -> None:
            started.set()

        await queue.enqueue("Pow", {}, first)
        await started.wait()

        pending = asyncio.create_task(queue.enqueue("Mod", {}, AsyncMock()))
        await asyncio.sleep(0.05)

        with pytest.raises(GreeError, match="full"):
            await queue.enqueue("SetTem", {}, AsyncMock())

        await queue.shutdown()
        with pytest.raises(CommandCancelledError):
            await pending

    async def test_cancel_pending_command(self) -> None:
        """Test that a cancelled command fails with CommandCancelledError and never runs."""
        queue = CommandQueue(min_interval=1.0, command_timeout=10.0)
        execute = AsyncMock()

        await queue.enqueue("init", {}, AsyncMock())
        task = asyncio.create_task(queue.enqueue("Pow", {}, execute))
        await asyncio.sleep(0.05)

        assert await queue.cancel("Pow") is True

        with pytest.raises(CommandCancelledError):
            await task
        execute.assert_not_awaited()
        await queue.shutdown()

    async def test_cancel_nonexistent_command(self) -> None:
        """Test cancelling a non-existent command returns False."""
        queue = CommandQueue()

        assert await queue.cancel("nonexistent") is False
        await queue.shutdown()

    async def test_cancel_all(self) -> None:
        """Test cancelling all pending commands."""
        queue = CommandQueue(min_interval=5.0)

        await queue.enqueue("init", {}, AsyncMock())
        tasks = [
            asyncio.create_task(queue.enqueue("Pow", {}, AsyncMock())),
            asyncio.create_task(queue.enqueue("Mod", {}, AsyncMock())),
        ]
        await asyncio.sleep(0.05)

        assert await queue.cancel_all() == 2

        results = await asyncio.gather(*tasks, return_exceptions=True)
        assert all(isinstance(result, CommandCancelledError) for result in results)
        await queue.shutdown()

    async def test_flush_executes_all_pending(self) -> None:
        """Test that flush runs pending commands without waiting."""
        queue = CommandQueue(min_interval=5.0)
        executed: list[str] = []

        async def execute(name: str) -> str:
            executed.append(name)
            return name

        await queue.enqueue("init", {}, AsyncMock())
        task1 = asyncio.create_task(queue.enqueue("Pow", {}, lambda: execute("Pow")))
        task2 = asyncio.create_task(queue.enqueue("Mod", {}, lambda: execute("Mod")))
        await asyncio.sleep(0.05)

        await queue.flush()

        assert await asyncio.gather(task1, task2) == ["Pow", "Mod"]
        assert executed == ["Pow", "Mod"]
        await queue.shutdown()

    async def test_pending_types(self) -> None:
        """Test that pending types are listed in execution order."""
        queue = CommandQueue(min_interval=5.0)

        await queue.enqueue("init", {}, AsyncMock())
        tasks = [
            asyncio.create_task(queue.enqueue("Pow", {}, AsyncMock())),
            asyncio.create_task(queue.enqueue("Mod", {}, AsyncMock())),
        ]
        await asyncio.sleep(0.05)

        assert queue.pending_types == ["Pow", "Mod"]
        assert queue.pending_count == 2

        await queue.shutdown()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def test_command_timeout(self) -> None:
        """Test that a slow command raises GreeTimeoutError to its caller."""
        queue = CommandQueue(min_interval=0.0, command_timeout=0.1)

        async def slow_execute() -> None:
            await asyncio.sleep(10)

        with pytest.raises(GreeTimeoutError, match="did not complete"):
            await queue.enqueue("slow", {}, slow_execute)

        await queue.shutdown()

    async def test_execute_failure_propagates(self) -> None:
        """Test that a failing write reaches the caller."""
        queue = CommandQueue(min_interval=0.0)

        with pytest.raises(ProtocolError, match="rejected"):
            await queue.enqueue("Pow", {}, AsyncMock(side_effect=ProtocolError("rejected")))

        await queue.shutdown()

    async def test_coalesced_failure_reaches_all_callers(self) -> None:
        """Test that a replaced command receives its replacement's failure."""
        queue = CommandQueue(min_interval=0.3)

        await queue.enqueue("init", {}, AsyncMock())
        task1 = asyncio.create_task(queue.enqueue("Pow", {"Pow": 1}, AsyncMock()))
        await asyncio.sleep(0.01)
        task2 = asyncio.create_task(queue.enqueue("Pow", {"Pow": 0}, AsyncMock(side_effect=GreeTimeoutError("x"))))

        results = await asyncio.gather(task1, task2, return_exceptions=True)

        assert all(isinstance(result, GreeTimeoutError) for result in results)
        await queue.shutdown()

    async def test_shutdown_cancels_pending(self) -> None:
        """Test that shutdown fails pending commands."""
        queue = CommandQueue(min_interval=5.0)

        await queue.enqueue("init", {}, AsyncMock())
        task = asyncio.create_task(queue.enqueue("Pow", {}, AsyncMock()))
        await asyncio.sleep(0.05)

        await queue.shutdown()

        with pytest.raises(CommandCancelledError):
            await asyncio.wait_for(task, timeout=1.0)
