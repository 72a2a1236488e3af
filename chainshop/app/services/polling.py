"""
Cancellable periodic task on the running asyncio loop.
"""
import asyncio
from typing import Awaitable, Callable, Optional

from chainshop.app.core.logging import get_logger

logger = get_logger(__name__)


class PeriodicTask:
    """
    Runs ``callback`` every ``interval`` seconds until stopped.

    The next tick is scheduled only after the previous callback has finished,
    so runs never overlap.
    """

    def __init__(self, callback: Callable[[], Awaitable[None]], interval: float, name: str = "periodic"):
        self.callback = callback
        self.interval = interval
        self.name = name
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        if task is asyncio.current_task():
            return
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.callback()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Periodic task failed", task=self.name, error=str(e), exc_info=True)
