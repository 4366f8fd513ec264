"""Background task runner abstraction.

Export executions are fire-and-forget: the API returns as soon as the job row
exists and callers poll the job record for progress. The runner only keeps
the bookkeeping needed to hold strong task references and to report crashes.
"""

import asyncio
import enum
import uuid
from collections import deque
from collections.abc import Coroutine
from typing import Any, Protocol

from loguru import logger


class TaskStatus(enum.StrEnum):
    """Status of a submitted background task."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class BackgroundTaskRunner(Protocol):
    """Protocol for background task execution."""

    def submit_task(self, coro: Coroutine[Any, Any, Any], *, name: str | None = None) -> str:
        """Submit an async task for background execution.

        Args:
            coro: The coroutine to execute.
            name: Optional label used in logs.

        Returns:
            A task ID string for tracking.
        """
        ...

    def get_status(self, task_id: str) -> TaskStatus:
        """Get the current status of a background task."""
        ...


class InProcessTaskRunner:
    """In-process background task runner using asyncio.

    Tasks run on the event loop of the process that submitted them. Swapping
    to an external queue only requires another BackgroundTaskRunner.

    Statuses of finished tasks are kept for the most recent
    ``finished_history`` tasks only; older ones are forgotten.
    """

    def __init__(self, finished_history: int = 1000) -> None:
        self._statuses: dict[str, TaskStatus] = {}
        self._tasks: dict[str, asyncio.Task[Any]] = {}
        self._finished: deque[str] = deque()
        self._finished_history = finished_history

    def submit_task(self, coro: Coroutine[Any, Any, Any], *, name: str | None = None) -> str:
        """Submit an async task for background execution.

        Args:
            coro: The coroutine to execute.
            name: Optional label used in logs.

        Returns:
            A task ID string for tracking.
        """
        task_id = str(uuid.uuid4())
        label = name or task_id
        self._statuses[task_id] = TaskStatus.PENDING

        async def _run() -> None:
            self._statuses[task_id] = TaskStatus.RUNNING
            try:
                await coro
                self._statuses[task_id] = TaskStatus.COMPLETED
            except Exception:
                self._statuses[task_id] = TaskStatus.FAILED
                logger.exception(f"Background task {label} crashed")
            finally:
                self._record_finished(task_id)

        task = asyncio.create_task(_run(), name=label)
        self._tasks[task_id] = task
        # Strong reference until done; asyncio only keeps weak ones
        task.add_done_callback(lambda _t: self._tasks.pop(task_id, None))
        return task_id

    def get_status(self, task_id: str) -> TaskStatus:
        """Get the current status of a background task.

        Raises:
            KeyError: If the task ID is unknown or its status was already forgotten.
        """
        return self._statuses[task_id]

    def _record_finished(self, finished_id: str) -> None:
        self._finished.append(finished_id)
        while len(self._finished) > self._finished_history:
            self._statuses.pop(self._finished.popleft(), None)

    @property
    def active_count(self) -> int:
        """Number of tasks that have not finished yet."""
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every in-flight task to finish (shutdown and tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)


# Shared runner for the application process
task_runner = InProcessTaskRunner()
