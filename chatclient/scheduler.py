import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class RecurringTask:
    """Runs an async callable on a fixed interval until cancelled."""

    def __init__(self, func: Callable[[], Awaitable[None]], interval_seconds: float, name: str = "recurring"):
        self.func = func
        self.interval = interval_seconds
        self.name = name
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run_loop(), name=self.name)

    async def cancel(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.func()
            except Exception:
                # one failed tick must not stop the loop
                logger.exception("%s tick failed", self.name)
