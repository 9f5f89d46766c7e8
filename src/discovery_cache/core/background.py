"""Background task runner for fire-and-forget cache writes.

Cache persistence must never block the caller that produced the data, but a
failed write must not vanish either: every failure is logged, counted, and
handed to an injected observer.
"""

import asyncio
import enum
import uuid
from collections import OrderedDict
from collections.abc import Callable, Coroutine
from typing import Any, Protocol

from loguru import logger

ErrorObserver = Callable[[str, BaseException], None]

DEFAULT_HISTORY_SIZE = 100


class JobStatus(enum.StrEnum):
    """Status of a background job."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class BackgroundTaskRunner(Protocol):
    """Protocol for background task execution."""

    def submit_task(self, coro: Coroutine[Any, Any, Any], *, label: str = "task") -> str:
        """Submit an async task for background execution.

        Args:
            coro: The coroutine to execute.
            label: Short name reported to the error observer on failure.

        Returns:
            A job ID string for tracking.
        """
        ...

    def get_status(self, job_id: str) -> JobStatus:
        """Get the current status of a background job."""
        ...


class InProcessTaskRunner:
    """In-process background task runner using asyncio.create_task().

    Statuses of finished jobs are kept only for the most recent
    ``history_size`` jobs, so a long-lived client does not accumulate them.

    Args:
        on_error: Optional observer invoked with ``(label, exception)`` when a
            submitted task raises.
        history_size: Finished job statuses retained for ``get_status``.
    """

    def __init__(self, on_error: ErrorObserver | None = None, *, history_size: int = DEFAULT_HISTORY_SIZE) -> None:
        self._on_error = on_error
        self._history_size = history_size
        self._jobs: dict[str, JobStatus] = {}
        self._history: OrderedDict[str, JobStatus] = OrderedDict()
        self._tasks: dict[str, asyncio.Task[Any]] = {}
        self.failures = 0

    def submit_task(self, coro: Coroutine[Any, Any, Any], *, label: str = "task") -> str:
        """Submit an async task for background execution.

        Args:
            coro: The coroutine to execute.
            label: Short name reported to the error observer on failure.

        Returns:
            A job ID string for tracking.
        """
        job_id = str(uuid.uuid4())
        self._jobs[job_id] = JobStatus.PENDING

        async def _run() -> None:
            self._jobs[job_id] = JobStatus.RUNNING
            try:
                await coro
                self._finish(job_id, JobStatus.COMPLETED)
            except Exception as e:
                self._finish(job_id, JobStatus.FAILED)
                self.failures += 1
                logger.warning(f"Background task {label!r} failed: {e}")
                self._notify(label, e)
            finally:
                self._tasks.pop(job_id, None)

        self._tasks[job_id] = asyncio.create_task(_run())
        return job_id

    def get_status(self, job_id: str) -> JobStatus:
        """Get the current status of a background job.

        Raises:
            KeyError: If the job ID is unknown or aged out of the history.
        """
        if job_id in self._jobs:
            return self._jobs[job_id]
        return self._history[job_id]

    @property
    def pending(self) -> int:
        """Number of submitted tasks that have not finished yet."""
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every in-flight task to finish (used on shutdown and in tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    def _finish(self, job_id: str, status: JobStatus) -> None:
        self._jobs.pop(job_id, None)
        self._history[job_id] = status
        while len(self._history) > self._history_size:
            self._history.popitem(last=False)

    def _notify(self, label: str, error: BaseException) -> None:
        if self._on_error is None:
            return
        try:
            self._on_error(label, error)
        except Exception:
            logger.exception(f"Background error observer raised while reporting {label!r}")
