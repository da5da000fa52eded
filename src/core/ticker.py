import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class Ticker:
    """
    Runs an async callback on a fixed interval in its own task until stopped.

    The interval is measured from the start of one run to the start of the next, so a
    slow callback shortens the following pause instead of drifting the schedule.
    Exceptions raised by the callback are logged and do not end the ticker.
    """

    def __init__(
        self,
        name: str,
        interval: float,
        callback: Callable[[], Awaitable[None]],
    ):
        self.name = name
        self.interval = interval
        self.callback = callback
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=f"ticker:{self.name}")
        logger.debug(f"Ticker {self.name} started with interval {self.interval}s")

    async def stop(self):
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug(f"Ticker {self.name} stopped")

    async def _run(self):
        loop = asyncio.get_running_loop()
        while True:
            started = loop.time()
            try:
                await self.callback()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(f"Ticker {self.name} callback failed")
            elapsed = loop.time() - started
            await asyncio.sleep(max(0.0, self.interval - elapsed))
