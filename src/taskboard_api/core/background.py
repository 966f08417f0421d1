"""Background task runner abstraction.

Provides a protocol for submitting and tracking background tasks, with
an in-process asyncio implementation.  Every submitted task keeps a
joinable handle so callers can wait on it and shutdown can drain it;
exceptions escaping a task are logged and recorded rather than left on
an unobserved future.
"""

import asyncio
import enum
import uuid
from collections import deque
from collections.abc import Coroutine
from typing import Any, Protocol

from loguru import logger


class JobStatus(enum.StrEnum):
    """Status of a background job."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class BackgroundTaskRunner(Protocol):
    """Protocol for background task execution."""

    def submit_task(self, coro: Coroutine[Any, Any, Any], *, task_id: str | None = None) -> str:
        """Submit an async task for background execution.

        Args:
            coro: The coroutine to execute.
            task_id: Optional identifier to track the task under.

        Returns:
            A task ID string for tracking.
        """
        ...

    def get_status(self, task_id: str) -> JobStatus:
        """Get the current status of a background task."""
        ...

    async def wait(self, task_id: str) -> None:
        """Wait until the given task has finished."""
        ...

    async def drain(self) -> None:
        """Wait until every submitted task has finished."""
        ...


class InProcessTaskRunner:
    """In-process background task runner using asyncio.

    Tasks run in the same process and event loop as the API server via
    ``asyncio.create_task()``.  Status and error records are kept for the
    most recent ``max_finished`` finished tasks only; older ones are
    forgotten as if never submitted.
    """

    def __init__(self, max_finished: int = 1000) -> None:
        self._jobs: dict[str, JobStatus] = {}
        self._tasks: dict[str, asyncio.Task[Any]] = {}
        self._errors: dict[str, BaseException] = {}
        self._finished: deque[str] = deque()
        self._max_finished = max_finished

    def submit_task(self, coro: Coroutine[Any, Any, Any], *, task_id: str | None = None) -> str:
        """Submit an async task for background execution.

        Args:
            coro: The coroutine to execute.
            task_id: Optional identifier to track the task under. A random
                UUID is generated when omitted.

        Returns:
            The task ID string for tracking.
        """
        task_id = task_id or str(uuid.uuid4())
        self._jobs[task_id] = JobStatus.PENDING

        async def _run() -> None:
            self._jobs[task_id] = JobStatus.RUNNING
            try:
                await coro
                self._jobs[task_id] = JobStatus.COMPLETED
            except Exception as exc:
                self._jobs[task_id] = JobStatus.FAILED
                self._errors[task_id] = exc
                logger.exception("Background task {} failed", task_id)
            finally:
                self._record_finished(task_id)

        task = asyncio.create_task(_run(), name=f"background-{task_id}")
        self._tasks[task_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(task_id, None))
        return task_id

    def _record_finished(self, finished_id: str) -> None:
        self._finished.append(finished_id)
        while len(self._finished) > self._max_finished:
            old_id = self._finished.popleft()
            self._jobs.pop(old_id, None)
            self._errors.pop(old_id, None)

    def get_status(self, task_id: str) -> JobStatus:
        """Get the current status of a background task.

        Raises:
            KeyError: If the task ID is not found.
        """
        return self._jobs[task_id]

    def get_error(self, task_id: str) -> BaseException | None:
        """Return the exception that failed the task, if any."""
        return self._errors.get(task_id)

    @property
    def active_count(self) -> int:
        """Number of tasks that have not finished yet."""
        return len(self._tasks)

    async def wait(self, task_id: str) -> None:
        """Wait until the given task has finished.

        Returns immediately for tasks that already finished.

        Raises:
            KeyError: If the task ID was never submitted.
        """
        if task_id not in self._jobs:
            raise KeyError(task_id)
        task = self._tasks.get(task_id)
        if task is not None:
            await asyncio.shield(task)

    async def drain(self) -> None:
        """Wait for every in-flight task to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)
