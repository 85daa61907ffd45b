"""
Trailing-edge debouncer for realtime refetches.

A burst of change notifications collapses into one callback run `delay`
seconds after the last trigger. A trigger only resets the timer: a callback
that is already running is left to finish.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class Debouncer:
    def __init__(self, delay: float, callback: Callable[[], Awaitable[None]]) -> None:
        self.delay = delay
        self._callback = callback
        self._timer: Optional[asyncio.Task] = None
        self._running: set[asyncio.Task] = set()

    @property
    def pending(self) -> bool:
        return (self._timer is not None and not self._timer.done()) or bool(self._running)

    def trigger(self) -> None:
        """(Re)start the timer. Must be called from the running event loop."""
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = asyncio.get_running_loop().create_task(self._run())

    def cancel(self) -> None:
        """Drop the pending run and stop any run in progress."""
        for task in [self._timer, *self._running]:
            if task is not None and not task.done():
                task.cancel()
        self._timer = None
        self._running.clear()

    async def _run(self) -> None:
        await asyncio.sleep(self.delay)
        task = asyncio.current_task()
        if self._timer is task:
            self._timer = None
        self._running.add(task)
        try:
            await self._callback()
        except Exception as exc:
            logger.warning("Debounced refetch failed: %s", exc)
        finally:
            self._running.discard(task)
