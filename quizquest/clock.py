"""
Scheduling primitives used by the quiz engine for timer ticks and delays.

The engine never sleeps on its own; it asks a scheduler to call it back.
Tests substitute a virtual scheduler that advances time explicitly.
"""
import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, Optional, Set

logger = logging.getLogger(__name__)

Callback = Callable[[], Awaitable[None]]


class ScheduledCall:
    """Handle for a callback scheduled on the event loop."""

    def __init__(self, task: asyncio.Task):
        self._task = task

    def cancel(self) -> None:
        if not self._task.done():
            self._task.cancel()

    @property
    def cancelled(self) -> bool:
        return self._task.cancelled()

    @property
    def done(self) -> bool:
        return self._task.done()


class Scheduler:
    """Runs coroutine callbacks after a delay on the running event loop."""

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def now(self) -> datetime:
        return datetime.now()

    def call_later(self, delay: float, callback: Callback) -> ScheduledCall:
        """
        Schedule a coroutine callback.

        Args:
            delay: Seconds to wait before calling
            callback: Zero-argument coroutine function

        Returns:
            Handle that can cancel the pending call
        """
        task = asyncio.get_running_loop().create_task(self._run_later(delay, callback))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return ScheduledCall(task)

    async def _run_later(self, delay: float, callback: Callback) -> None:
        await asyncio.sleep(delay)
        try:
            await callback()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Scheduled callback failed")

    def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()

    @property
    def pending_count(self) -> int:
        return sum(1 for task in self._tasks if not task.done())


def cancel_call(call: Optional[ScheduledCall]) -> None:
    """Cancel a handle if there is one."""
    if call is not None:
        call.cancel()
