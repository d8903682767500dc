"""Coalescing command queue for Gree devices.

Writes to one device are funnelled through a queue that:
- Coalesces commands of the same type (several set-temperature taps → one write)
- Enforces a minimum interval between writes so the unit is not flooded
- Hands each caller a future that resolves with the device's acknowledgement
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pygree.const import (
    DEFAULT_COMMAND_TIMEOUT,
    DEFAULT_MAX_QUEUE_SIZE,
    DEFAULT_MIN_REQUEST_INTERVAL,
)
from pygree.exceptions import CommandCancelledError, GreeError, GreeTimeoutError


if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

__all__ = ["CommandQueue", "QueuedCommand"]

_LOGGER = logging.getLogger(__name__)


@dataclass
class QueuedCommand:
    """A command waiting to be sent.

    Attributes:
        command_type: Coalescing key (e.g., "SetTem+TemRec").
        params: Values being written, for logging.
        execute_fn: Coroutine function performing the write.
        future: Resolved with the write's result.
        queued_at: Loop time at which the command was queued.
    """

    command_type: str
    params: Any
    execute_fn: Callable[[], Awaitable[Any]]
    future: asyncio.Future[Any]
    queued_at: float = field(default=0.0)


class CommandQueue:
    """Coalescing command queue with a minimum interval between writes.

    1. **Coalescing**: a command replaces a pending one of the same type; callers
       of the replaced command receive the result of the replacement.
    2. **Spacing**: at least ``min_interval`` seconds pass between two writes.
    3. **Futures**: ``enqueue`` returns once the command ran (or failed).

    Example:
        ```python
        queue = CommandQueue(min_interval=0.5)

        # Only the last temperature is written
        await asyncio.gather(
            queue.enqueue("SetTem", {"SetTem": 22}, write_22),
            queue.enqueue("SetTem", {"SetTem": 24}, write_24),
        )
        ```
    """

    def __init__(
        self,
        min_interval: float = DEFAULT_MIN_REQUEST_INTERVAL,
        max_queue_size: int = DEFAULT_MAX_QUEUE_SIZE,
        command_timeout: float = DEFAULT_COMMAND_TIMEOUT,
    ) -> None:
        """Initialize the command queue.

        Args:
            min_interval: Minimum seconds between two writes.
            max_queue_size: Maximum number of distinct pending command types.
            command_timeout: Maximum seconds a caller waits for its command.
        """
        self._min_interval = min_interval
        self._max_queue_size = max_queue_size
        self._command_timeout = command_timeout

        # Command type -> latest queued command
        self._queue: dict[str, QueuedCommand] = {}

        self._last_execute_time: float | None = None
        # Created lazily so they bind to the running loop
        self._lock: asyncio.Lock | None = None
        self._processor_task: asyncio.Task[None] | None = None
        self._processing_event: asyncio.Event | None = None
        self._shutdown = False

    @property
    def pending_count(self) -> int:
        """Number of pending commands."""
        return len(self._queue)

    @property
    def pending_types(self) -> list[str]:
        """Pending command types, in execution order."""
        return list(self._queue.keys())

    async def enqueue(
        self,
        command_type: str,
        params: Any,
        execute_fn: Callable[[], Awaitable[Any]],
    ) -> Any:
        """Queue a command, replacing a pending command of the same type.

        Args:
            command_type: Coalescing key.
            params: Values being written, for logging.
            execute_fn: Coroutine function performing the write.

        Returns:
            Result of the write that finally ran for this command type.

        Raises:
            GreeError: If the queue is full, or whatever the write raised.
            GreeTimeoutError: If the command does not complete within the timeout.
            CommandCancelledError: If the command is cancelled before it runs.
        """
        self._ensure_processor_running()
        assert self._lock is not None
        assert self._processing_event is not None

        loop = asyncio.get_running_loop()
        async with self._lock:
            previous = self._queue.get(command_type)
            if previous is None and len(self._queue) >= self._max_queue_size:
                msg = f"Command queue is full ({self._max_queue_size} pending)"
                raise GreeError(msg)

            future: asyncio.Future[Any] = loop.create_future()
            if previous is not None and not previous.future.done():
                _LOGGER.debug("Coalescing %s command: %s -> %s", command_type, previous.params, params)
                future.add_done_callback(lambda f, old=previous.future: _chain(f, old))

            self._queue[command_type] = QueuedCommand(
                command_type=command_type,
                params=params,
                execute_fn=execute_fn,
                future=future,
                queued_at=loop.time(),
            )
            _LOGGER.debug("Queued %s command: %s", command_type, params)
            self._processing_event.set()

        try:
            return await asyncio.wait_for(asyncio.shield(future), timeout=self._command_timeout)
        except TimeoutError as err:
            _LOGGER.warning("Command %s timed out after %ss", command_type, self._command_timeout)
            msg = f"Command {command_type} did not complete within {self._command_timeout}s"
            raise GreeTimeoutError(msg) from err

    def _ensure_processor_running(self) -> None:
        if self._processor_task is None or self._processor_task.done():
            self._shutdown = False
            self._lock = asyncio.Lock()
            self._processing_event = asyncio.Event()
            self._processor_task = asyncio.create_task(self._process_queue())

    async def _process_queue(self) -> None:
        """Background task draining the queue."""
        _LOGGER.debug("Command queue processor started")
        assert self._processing_event is not None
        assert self._lock is not None

        try:
            while not self._shutdown:
                await self._processing_event.wait()
                self._processing_event.clear()

                while self._queue and not self._shutdown:
                    await self._wait_for_interval()
                    async with self._lock:
                        if not self._queue:
                            break
                        command = self._queue.pop(next(iter(self._queue)))
                    await self._execute_command(command)
        except asyncio.CancelledError:
            _LOGGER.debug("Command queue processor cancelled")
            raise
        finally:
            _LOGGER.debug("Command queue processor stopped")

    async def _wait_for_interval(self) -> None:
        if self._last_execute_time is None:
            return
        elapsed = asyncio.get_running_loop().time() - self._last_execute_time
        if elapsed < self._min_interval:
            wait_time = self._min_interval - elapsed
            _LOGGER.debug("Spacing writes: waiting %.3fs", wait_time)
            await asyncio.sleep(wait_time)

    async def _execute_command(self, command: QueuedCommand) -> None:
        """Run one command and resolve its future."""
        _LOGGER.debug("Executing %s command: %s", command.command_type, command.params)
        try:
            result = await command.execute_fn()
        except Exception as exc:  # noqa: BLE001 - handed to the waiting caller
            _LOGGER.debug("Command %s failed: %s", command.command_type, exc)
            if not command.future.done():
                command.future.set_exception(exc)
        else:
            if not command.future.done():
                command.future.set_result(result)
            _LOGGER.debug("Command %s completed: %s", command.command_type, result)
        finally:
            self._last_execute_time = asyncio.get_running_loop().time()

    async def flush(self) -> None:
        """Run all pending commands now, ignoring the minimum interval."""
        if self._lock is None:
            return

        async with self._lock:
            commands = list(self._queue.values())
            self._queue.clear()

        for command in commands:
            await self._execute_command(command)

    async def cancel(self, command_type: str) -> bool:
        """Cancel the pending command of the given type.

        Returns:
            True if a command was cancelled, False if none was pending.
        """
        if self._lock is None:
            return False

        async with self._lock:
            command = self._queue.pop(command_type, None)
        if command is None:
            return False
        _fail_cancelled(command)
        _LOGGER.debug("Cancelled %s command", command_type)
        return True

    async def cancel_all(self) -> int:
        """Cancel all pending commands.

        Returns:
            Number of commands cancelled.
        """
        if self._lock is None:
            return 0

        async with self._lock:
            commands = list(self._queue.values())
            self._queue.clear()
        for command in commands:
            _fail_cancelled(command)
        _LOGGER.debug("Cancelled %d commands", len(commands))
        return len(commands)

    async def shutdown(self) -> None:
        """Cancel pending commands and stop the background task."""
        self._shutdown = True
        if self._processing_event is not None:
            self._processing_event.set()

        await self.cancel_all()

        if self._processor_task is not None:
            self._processor_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._processor_task
            self._processor_task = None

        _LOGGER.debug("Command queue shutdown complete")


def _chain(new: asyncio.Future[Any], old: asyncio.Future[Any]) -> None:
    """Resolve a coalesced command's future with its replacement's outcome."""
    if old.done():
        return
    if new.cancelled():
        old.cancel()
    elif new.exception() is not None:
        old.set_exception(new.exception())  # type: ignore[arg-type]
    else:
        old.set_result(new.result())


def _fail_cancelled(command: QueuedCommand) -> None:
    if not command.future.done():
        msg = f"Command {command.command_type} was cancelled"
        command.future.set_exception(CommandCancelledError(msg))
