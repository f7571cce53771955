"""In-process job queue with bounded concurrency and exponential-backoff retries."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from meeting_copilot.ingestion.models import RawFragment, fragment_time_range
from meeting_copilot.pipeline_config import RetryPolicy

logger = logging.getLogger(__name__)


@dataclass
class FlushJob:
    """A snapshot of one meeting's buffer, waiting to be persisted and indexed."""

    meeting_id: str
    fragments: list[RawFragment]
    time_start_ms: int
    time_end_ms: int
    job_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    attempts: int = 0
    max_attempts: int = 3
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_fragments(cls, meeting_id: str, fragments: list[RawFragment]) -> FlushJob:
        start, end = fragment_time_range(fragments)
        return cls(
            meeting_id=meeting_id,
            fragments=list(fragments),
            time_start_ms=start,
            time_end_ms=end,
        )


JobHandler = Callable[[FlushJob], Awaitable[None]]


@dataclass(frozen=True)
class JobStats:
    waiting: int
    active: int
    retrying: int
    completed: int
    failed: int


class JobProcessor:
    """FIFO job queue drained by a single scheduler task.

    At most ``policy.concurrency`` jobs run at once. A failed job is re-queued
    after ``policy.backoff(attempts)`` seconds until it has run
    ``policy.max_attempts`` times, then it is dropped and counted as failed.
    Jobs waiting out a backoff do not hold a concurrency slot.
    """

    def __init__(self, policy: RetryPolicy | None = None, handler: JobHandler | None = None) -> None:
        self.policy = policy or RetryPolicy()
        self._handler = handler
        self._queue: deque[FlushJob] = deque()
        self._active: set[asyncio.Task[None]] = set()
        self._delayed: set[asyncio.Task[None]] = set()
        self._wakeup = asyncio.Event()
        self._scheduler: asyncio.Task[None] | None = None
        self._closed = False
        self._completed = 0
        self._failed = 0

    def set_handler(self, handler: JobHandler) -> None:
        self._handler = handler

    async def enqueue(self, job: FlushJob) -> None:
        if self._closed:
            raise RuntimeError("Job processor is shut down")
        job.max_attempts = self.policy.max_attempts
        self._queue.append(job)
        logger.debug(
            "Queued job %s for meeting %s (%d fragments)",
            job.job_id,
            job.meeting_id,
            len(job.fragments),
        )
        self._wakeup.set()
        if self._scheduler is None or self._scheduler.done():
            self._scheduler = asyncio.create_task(self._run(), name="job-scheduler")

    async def _run(self) -> None:
        while self._queue or self._active or self._delayed:
            while self._queue and len(self._active) < self.policy.concurrency:
                job = self._queue.popleft()
                task = asyncio.create_task(self._execute(job), name=f"job-{job.job_id}")
                self._active.add(task)
                task.add_done_callback(self._on_job_done)
            self._wakeup.clear()
            await self._wakeup.wait()

    def _on_job_done(self, task: asyncio.Task[None]) -> None:
        self._active.discard(task)
        self._wakeup.set()

    async def _execute(self, job: FlushJob) -> None:
        job.attempts += 1
        if self._handler is None:
            self._failed += 1
            logger.error("No handler registered, dropping job %s", job.job_id)
            return

        try:
            await self._handler(job)
        except Exception as exc:
            if job.attempts < job.max_attempts:
                delay = self.policy.backoff(job.attempts)
                logger.warning(
                    "Job %s for meeting %s failed (attempt %d/%d), retrying in %.1fs: %s",
                    job.job_id,
                    job.meeting_id,
                    job.attempts,
                    job.max_attempts,
                    delay,
                    exc,
                )
                retry = asyncio.create_task(self._requeue_after(job, delay))
                self._delayed.add(retry)
                retry.add_done_callback(self._on_retry_done)
            else:
                self._failed += 1
                logger.exception(
                    "Job %s for meeting %s failed after %d attempts, dropping it",
                    job.job_id,
                    job.meeting_id,
                    job.attempts,
                )
            return

        self._completed += 1
        logger.debug("Job %s completed", job.job_id)

    async def _requeue_after(self, job: FlushJob, delay: float) -> None:
        await asyncio.sleep(delay)
        self._queue.append(job)

    def _on_retry_done(self, task: asyncio.Task[None]) -> None:
        self._delayed.discard(task)
        self._wakeup.set()

    def stats(self) -> JobStats:
        return JobStats(
            waiting=len(self._queue),
            active=len(self._active),
            retrying=len(self._delayed),
            completed=self._completed,
            failed=self._failed,
        )

    async def wait_until_idle(self) -> None:
        """Wait until no job is queued, running, or waiting to be retried."""
        while self._scheduler is not None and not self._scheduler.done():
            await self._scheduler

    async def shutdown(self) -> None:
        self._closed = True
        pending = len(self._queue) + len(self._active) + len(self._delayed)
        if pending:
            logger.info("Draining %d jobs before shutdown", pending)
        await self.wait_until_idle()
        logger.info(
            "Job processor stopped (completed: %d, failed: %d)", self._completed, self._failed
        )
