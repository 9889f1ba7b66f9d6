"""
Detached Background Tasks.

Fire-and-forget work (usage records, last-used stamps) runs in tasks that
are not children of the request, so cancelling the request never cancels
them. Strong references are kept until each task finishes, and shutdown
drains whatever is still in flight.
"""

import asyncio
from collections.abc import Coroutine
from typing import Any

from structlog import get_logger

from speedformat.observability.metrics import metrics

logger = get_logger(__name__)


class BackgroundTasks:
    """Owns detached tasks for the lifetime of the process."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task[Any]:
        """Schedule coro on the running loop without awaiting it."""
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        metrics.background_tasks_in_flight.set(len(self._tasks))
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        metrics.background_tasks_in_flight.set(len(self._tasks))
        if task.cancelled():
            logger.warning("background_task_cancelled", task=task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            # Workers handle their own failures; anything reaching here is a bug
            logger.error(
                "background_task_crashed",
                task=task.get_name(),
                error=str(exc),
                error_type=type(exc).__name__,
            )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: float = 10.0) -> None:
        """Wait for in-flight tasks at shutdown, cancelling stragglers after timeout."""
        if not self._tasks:
            return
        tasks = list(self._tasks)
        logger.info("background_tasks_draining", count=len(tasks))
        done, still_pending = await asyncio.wait(tasks, timeout=timeout)
        for task in still_pending:
            task.cancel()
        if still_pending:
            logger.warning("background_tasks_abandoned", count=len(still_pending))
        logger.info("background_tasks_drained", completed=len(done))


# Process-wide registry
background_tasks = BackgroundTasks()
