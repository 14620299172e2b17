"""
Periodic Background Task

Runs an async callback on a fixed interval, independent of request traffic.
Used for the registry rescan and the gateway route refresh.
"""
import asyncio
from typing import Awaitable, Callable, Optional

import structlog

logger = structlog.get_logger("periodic-task")


class PeriodicTask:
    """
    Fixed-interval runner with clean cancellation.

    The first run happens one interval after start(); callers that need an
    immediate run do it themselves before starting the task. Exceptions raised
    by the callback are logged and the loop keeps going.

    Usage:
        task = PeriodicTask("route-refresh", 60, manager.refresh)
        task.start()
        ...
        await task.stop()
    """

    def __init__(
        self,
        name: str,
        interval: float,
        callback: Callable[[], Awaitable[object]]
    ):
        self.name = name
        self.interval = interval
        self.callback = callback
        self._task: Optional[asyncio.Task] = None

    @property
    def enabled(self) -> bool:
        return self.interval > 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        """Schedule the loop on the running event loop (no-op when disabled)"""
        if not self.enabled:
            logger.info("Periodic task disabled", task=self.name)
            return
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=self.name)
        logger.info("Periodic task started", task=self.name, interval=self.interval)

    async def stop(self):
        """Cancel the loop and wait until it has exited"""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Periodic task stopped", task=self.name)

    async def _run(self):
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.callback()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Periodic task run failed", task=self.name, error=str(e), exc_info=True)
