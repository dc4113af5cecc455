"""In-process job queue for submission saves.

This module provides:
- SubmissionQueue: bounded asyncio queue drained by a fixed set of workers
- QueueStats: waiting + active job counts

``enqueue`` never fails the caller: when the queue is not running or is
full, the job is started inline as a background task instead. A job that
fails with a retryable error is run again with exponential backoff.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from paddysync.core.retry import DEFAULT_MAX_DELAY, retry_with_backoff

logger = logging.getLogger(__name__)

JobFactory = Callable[[], Awaitable[Any]]

DEFAULT_CONCURRENCY = 1
DEFAULT_MAX_SIZE = 100
DEFAULT_JOB_RETRIES = 2  # three attempts in total
DEFAULT_JOB_RETRY_DELAY = 2.0  # seconds


@dataclass(frozen=True)
class QueueStats:
    """Snapshot of queue activity.

    Attributes:
        size: Jobs waiting plus jobs running.
        active: Jobs running right now, inline fallbacks included.
    """

    size: int
    active: int


@dataclass(frozen=True)
class _Job:
    job_id: str
    name: str
    factory: JobFactory


class SubmissionQueue:
    """Fire-and-forget job queue with inline fallback."""

    def __init__(
        self,
        concurrency: int = DEFAULT_CONCURRENCY,
        max_size: int = DEFAULT_MAX_SIZE,
        max_retries: int = DEFAULT_JOB_RETRIES,
        base_delay: float = DEFAULT_JOB_RETRY_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the queue.

        Args:
            concurrency: Number of worker tasks.
            max_size: Maximum number of waiting jobs.
            max_retries: Retries of a job failing with a retryable error.
            base_delay: First backoff delay in seconds.
            max_delay: Upper bound for a backoff delay in seconds.
            sleep: Awaitable sleep, injectable for tests.
        """
        self._concurrency = max(1, concurrency)
        self._max_size = max_size
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._sleep = sleep
        self._queue: asyncio.Queue[_Job] | None = None
        self._workers: list[asyncio.Task[None]] = []
        self._inline: set[asyncio.Task[None]] = set()
        self._active = 0

    @property
    def running(self) -> bool:
        return bool(self._workers)

    def start(self) -> None:
        """Start the worker tasks. Must be called from a running event loop."""
        if self._workers:
            return  # Already running
        self._queue = asyncio.Queue(maxsize=self._max_size)
        self._workers = [
            asyncio.create_task(self._worker(index), name=f"submission-worker-{index}")
            for index in range(self._concurrency)
        ]
        logger.info("Submission queue started with %d worker(s)", self._concurrency)

    async def stop(self, timeout: float = 30.0) -> None:
        """Wait for queued and inline jobs to finish, then stop the workers.

        Args:
            timeout: Seconds to wait for pending jobs before cancelling.
        """
        if self._queue is not None and self._workers:
            try:
                await asyncio.wait_for(self._queue.join(), timeout)
            except TimeoutError:
                logger.warning("Submission queue did not drain within %.0fs", timeout)
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        self._queue = None

        if self._inline:
            await asyncio.wait(self._inline, timeout=timeout)
        logger.info("Submission queue stopped")

    async def _run(self, job: _Job) -> None:
        self._active += 1
        try:
            await retry_with_backoff(
                job.factory,
                max_retries=self._max_retries,
                base_delay=self._base_delay,
                max_delay=self._max_delay,
                operation_name=f"Submission job {job.name}",
                sleep=self._sleep,
            )
        except Exception:
            logger.exception("Submission job %s (%s) failed", job.job_id, job.name)
        finally:
            self._active -= 1

    async def _worker(self, index: int) -> None:
        assert self._queue is not None
        queue = self._queue
        while True:
            job = await queue.get()
            try:
                await self._run(job)
            finally:
                queue.task_done()

    def enqueue(self, name: str, factory: JobFactory) -> str:
        """Queue a job, or start it inline if the queue cannot take it.

        Args:
            name: Label used in log messages.
            factory: Zero-argument callable returning the job's awaitable.

        Returns:
            Job ID.
        """
        job = _Job(job_id=str(uuid.uuid4()), name=name, factory=factory)
        try:
            if self._queue is None:
                raise RuntimeError("submission queue not running")
            self._queue.put_nowait(job)
            return job.job_id
        except (RuntimeError, asyncio.QueueFull) as e:
            logger.warning("Failed to enqueue %s (%s), processing inline", name, e)

        task = asyncio.create_task(self._run(job), name=f"inline-{job.job_id}")
        self._inline.add(task)
        task.add_done_callback(self._inline.discard)
        return job.job_id

    def stats(self) -> QueueStats:
        waiting = self._queue.qsize() if self._queue is not None else 0
        return QueueStats(size=waiting + self._active, active=self._active)
