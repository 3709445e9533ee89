"""PeriodicTimer: cancellable fixed-rate asyncio timer."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


class PeriodicTimer:
    """Invoke an async callback every ``period`` seconds until cancelled.

    Ticks never overlap: a callback that runs longer than the period delays
    the next tick instead of stacking up. Exceptions raised by the callback
    are logged and do not stop the timer.

    :ivar period: Seconds between tick starts.
    :ivar callback: Coroutine function called on each tick.
    :ivar name: Name used in log messages.
    :ivar ticks: Number of completed ticks.
    """

    def __init__(
        self,
        period: float,
        callback: Callable[[], Awaitable[Any]],
        name: str = "timer",
    ) -> None:
        """Initialize the timer.

        :param period: Seconds between ticks (must be positive).
        :param callback: Coroutine function to call.
        :param name: Name for logging.
        :raises ValueError: If period is not positive.
        """
        if period <= 0:
            raise ValueError("period must be positive")
        self.period = period
        self.callback = callback
        self.name = name
        self.ticks = 0
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        """True while the timer task is alive."""
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task[None]:
        """Start ticking. The first tick runs immediately.

        :returns: The timer task.
        :raises RuntimeError: If already running.
        """
        if self.running:
            raise RuntimeError(f"{self.name} is already running")
        self._task = asyncio.create_task(self._run(), name=self.name)
        return self._task

    async def wait(self) -> None:
        """Wait until the timer stops (i.e., is cancelled).

        Cancelling the waiting task does not cancel the timer.
        """
        if self._task is not None:
            await asyncio.wait({self._task})

    async def cancel(self) -> None:
        """Stop the timer and wait for the running tick to unwind."""
        if self._task is None:
            return
        self._task.cancel()
        await self.wait()
        self._task = None
        logger.debug(f"{self.name} cancelled after {self.ticks} ticks")

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            started = loop.time()
            try:
                await self.callback()
            except Exception as e:
                logger.exception(f"{self.name} tick failed: {e}")
            self.ticks += 1
            elapsed = loop.time() - started
            await asyncio.sleep(max(0.0, self.period - elapsed))
