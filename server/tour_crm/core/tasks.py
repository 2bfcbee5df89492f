"""Fire-and-forget background task dispatch."""

import asyncio
import logging
from typing import Any, Coroutine, Set

from .observability import metrics_collector

logger = logging.getLogger(__name__)


class BackgroundTaskDispatcher:
    """
    Runs side-effect coroutines outside the request that triggered them.

    Failures are logged and never reach the caller. References to pending
    tasks are held so the event loop does not garbage-collect them mid-flight.
    """

    def __init__(self, name: str = "background"):
        self.name = name
        self._tasks: Set[asyncio.Task] = set()

    def dispatch(self, coro: Coroutine[Any, Any, Any], task_name: str, **context: Any) -> asyncio.Task:
        """
        Schedule ``coro`` on the running loop.

        Args:
            coro: Coroutine to run
            task_name: Name used in logs
            **context: Extra fields attached to the failure log

        Returns:
            asyncio.Task: The scheduled task
        """
        task = asyncio.create_task(self._run(coro, task_name, context), name=task_name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, coro: Coroutine[Any, Any, Any], task_name: str, context: dict) -> None:
        try:
            await coro
        except asyncio.CancelledError:
            logger.info(f"{self.name} task {task_name} cancelled")
            raise
        except Exception as e:
            logger.error(
                f"{self.name} task {task_name} failed: {str(e)}",
                exc_info=True,
                extra={"task": task_name, **context},
            )
            metrics_collector.record_background_task_failure(task_name.split(":")[0])

    @property
    def pending(self) -> int:
        """Number of tasks still running."""
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every pending task to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
