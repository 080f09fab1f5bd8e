import asyncio
from typing import Awaitable, Callable, Optional, Set


class Debouncer:
    """Runs the most recently scheduled callback once the input has been quiet for ``delay`` seconds."""

    def __init__(self, delay: float):
        self.delay = delay
        self._task: Optional[asyncio.Task] = None
        self._firing: Set[asyncio.Task] = set()

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done() and self._task not in self._firing

    def schedule(self, callback: Callable[[], Awaitable[object]]) -> asyncio.Task:
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(self._run(callback))
        return self._task

    def cancel(self) -> None:
        # a callback that already started is left to finish
        if self.pending:
            self._task.cancel()
        self._task = None

    async def _run(self, callback: Callable[[], Awaitable[object]]) -> None:
        await asyncio.sleep(self.delay)
        task = asyncio.current_task()
        self._firing.add(task)
        try:
            await callback()
        finally:
            self._firing.discard(task)
