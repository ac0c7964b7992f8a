from __future__ import annotations
from typing import Awaitable, Callable, Optional
import asyncio
import logging

log = logging.getLogger(__name__)


class Debouncer:
    """
    Run ``callback`` once ``delay`` seconds after the last ``poke()``.

    Only the countdown is cancellable: once the callback has started, a new
    poke starts a fresh countdown and leaves the running callback alone.
    """

    def __init__(self, delay: float, callback: Callable[[], Awaitable[None]]):
        self.delay = delay
        self.callback = callback
        self._countdown: Optional[asyncio.Task] = None
        self._running: set[asyncio.Task] = set()

    @property
    def pending(self) -> bool:
        return self._countdown is not None and not self._countdown.done()

    def poke(self) -> None:
        self.cancel()
        self._countdown = asyncio.get_running_loop().create_task(self._wait())

    def cancel(self) -> None:
        if self._countdown is not None and not self._countdown.done():
            self._countdown.cancel()
        self._countdown = None

    async def _wait(self) -> None:
        await asyncio.sleep(self.delay)
        self._countdown = None
        task = asyncio.get_running_loop().create_task(self.callback())
        self._running.add(task)
        task.add_done_callback(self._finished)

    def _finished(self, task: asyncio.Task) -> None:
        self._running.discard(task)
        if not task.cancelled() and task.exception() is not None:
            log.error("debounced callback failed", exc_info=task.exception())

    async def drain(self) -> None:
        """Wait for callbacks that already started."""
        while self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)
