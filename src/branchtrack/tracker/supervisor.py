from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine, Dict, List

from branchtrack.metric import active_edges

logger = logging.getLogger("branchtrack")


class Supervisor:
    """Owns the tasks of all running trackers.

    Tasks are started fire-and-forget, the registry only exists so they can be
    listed, awaited and cancelled as a whole.
    """

    def __init__(self):
        self._tasks: Dict[asyncio.Task, Any] = {}

    def spawn(self, coro: Coroutine[Any, Any, None], owner: Any) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks[task] = owner
        active_edges.inc()
        task.add_done_callback(self._forget)
        return task

    def _forget(self, task: asyncio.Task) -> None:
        owner = self._tasks.pop(task, None)
        active_edges.dec()
        if task.cancelled():
            logger.debug("Tracking %s cancelled", owner)
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Tracking %s failed", owner, exc_info=exc)

    def active(self) -> List[Any]:
        return list(self._tasks.values())

    def is_active(self, owner: Any) -> bool:
        return any(o == owner for o in self._tasks.values())

    def __len__(self) -> int:
        return len(self._tasks)

    async def join(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        while self._tasks:
            tasks = list(self._tasks)
            logger.info("Cancelling %d trackers", len(tasks))
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
