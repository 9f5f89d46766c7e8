"""Tests for the background task runner module."""

import asyncio

import pytest

from discovery_cache.core.background import InProcessTaskRunner, JobStatus


class TestJobStatus:
    """Tests for JobStatus enum."""

    def test_status_values(self) -> None:
        assert JobStatus.PENDING == "pending"
        assert JobStatus.RUNNING == "running"
        assert JobStatus.COMPLETED == "completed"
        assert JobStatus.FAILED == "failed"


class TestInProcessTaskRunner:
    """Tests for InProcessTaskRunner."""

    async def test_submit_task_returns_job_id(self) -> None:
        runner = InProcessTaskRunner()

        async def noop() -> None:
            pass

        job_id = runner.submit_task(noop())
        assert isinstance(job_id, str)
        assert len(job_id) == 36  # UUID format
        await runner.drain()

    async def test_successful_task_completes(self) -> None:
        runner = InProcessTaskRunner()
        completed = False

        async def simple_task() -> None:
            nonlocal completed
            completed = True

        job_id = runner.submit_task(simple_task())
        await runner.drain()

        assert runner.get_status(job_id) == JobStatus.COMPLETED
        assert completed is True
        assert runner.pending == 0

    async def test_failed_task_marks_status_and_counts(self) -> None:
        runner = InProcessTaskRunner()

        async def failing_task() -> None:
            msg = "disk full"
            raise RuntimeError(msg)

        job_id = runner.submit_task(failing_task(), label="geocode-cache-write")
        await runner.drain()

        assert runner.get_status(job_id) == JobStatus.FAILED
        assert runner.failures == 1

    async def test_failure_reaches_observer(self) -> None:
        seen: list[tuple[str, BaseException]] = []
        runner = InProcessTaskRunner(on_error=lambda label, exc: seen.append((label, exc)))

        async def failing_task() -> None:
            msg = "disk full"
            raise OSError(msg)

        runner.submit_task(failing_task(), label="distance-cache-write")
        await runner.drain()

        assert len(seen) == 1
        label, error = seen[0]
        assert label == "distance-cache-write"
        assert isinstance(error, OSError)

    async def test_observer_errors_are_contained(self) -> None:
        def broken_observer(label: str, exc: BaseException) -> None:
            msg = "observer bug"
            raise RuntimeError(msg)

        runner = InProcessTaskRunner(on_error=broken_observer)

        async def failing_task() -> None:
            raise ValueError

        job_id = runner.submit_task(failing_task())
        await runner.drain()

        assert runner.get_status(job_id) == JobStatus.FAILED

    async def test_get_status_unknown_job_raises(self) -> None:
        runner = InProcessTaskRunner()

        with pytest.raises(KeyError):
            runner.get_status("nonexistent-job-id")

    async def test_submit_does_not_block_caller(self) -> None:
        runner = InProcessTaskRunner()
        release = asyncio.Event()

        async def blocking_task() -> None:
            await release.wait()

        job_id = runner.submit_task(blocking_task())
        assert runner.get_status(job_id) in (JobStatus.PENDING, JobStatus.RUNNING)
        assert runner.pending == 1

        release.set()
        await runner.drain()
        assert runner.get_status(job_id) == JobStatus.COMPLETED

    async def test_multiple_tasks(self) -> None:
        runner = InProcessTaskRunner()
        results: list[int] = []

        async def task(n: int) -> None:
            results.append(n)

        job_ids = [runner.submit_task(task(i)) for i in range(5)]
        await runner.drain()

        for job_id in job_ids:
            assert runner.get_status(job_id) == JobStatus.COMPLETED
        assert sorted(results) == [0, 1, 2, 3, 4]

    async def test_finished_job_history_is_bounded(self) -> None:
        runner = InProcessTaskRunner(history_size=3)

        async def noop() -> None:
            pass

        job_ids = [runner.submit_task(noop()) for _ in range(5)]
        await runner.drain()

        for job_id in job_ids[:2]:
            with pytest.raises(KeyError):
                runner.get_status(job_id)
        assert [runner.get_status(job_id) for job_id in job_ids[2:]] == [JobStatus.COMPLETED] * 3
        assert len(runner._jobs) + len(runner._history) == 3
