"""Per-meeting transcript buffers flushed on size, age and a periodic timer."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from meeting_copilot.ingestion.jobs import FlushJob, JobProcessor
from meeting_copilot.ingestion.models import RawFragment
from meeting_copilot.ingestion.storage import MeetingRepository
from meeting_copilot.pipeline_config import BufferLimits

logger = logging.getLogger(__name__)


@dataclass
class _MeetingBuffer:
    opened_at: float
    fragments: list[RawFragment] = field(default_factory=list)
    timer: asyncio.Task[None] | None = None


@dataclass(frozen=True)
class BufferStats:
    active_meetings: int
    pending_fragments: dict[str, int]
    flushing: list[str]


class TranscriptBufferManager:
    """Accumulates live fragments per meeting and hands them off in batches.

    A buffer is flushed to the :class:`JobProcessor` when it reaches
    ``max_buffer_size`` fragments, when its oldest unflushed fragment is
    ``max_buffer_age`` seconds old, or on the per-meeting ``flush_interval``
    timer. Only one flush per meeting is in flight at any time.
    """

    def __init__(
        self,
        jobs: JobProcessor,
        repository: MeetingRepository,
        limits: BufferLimits | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.jobs = jobs
        self.repository = repository
        self.limits = limits or BufferLimits()
        self._clock = clock
        self._buffers: dict[str, _MeetingBuffer] = {}
        self._flushing: dict[str, asyncio.Event] = {}
        self._closed = False

    async def add_fragment(self, meeting_id: str, fragment: RawFragment) -> bool:
        """Buffer *fragment*; returns False if it was dropped."""
        if self._closed:
            logger.warning("Buffer manager is shut down, dropping fragment for %s", meeting_id)
            return False

        buffer = self._buffers.get(meeting_id)
        if buffer is None:
            if len(self._buffers) >= self.limits.max_concurrent_meetings:
                logger.warning(
                    "Max concurrent meetings (%d) reached, dropping fragment for %s",
                    self.limits.max_concurrent_meetings,
                    meeting_id,
                )
                return False
            buffer = _MeetingBuffer(opened_at=self._clock())
            buffer.timer = asyncio.create_task(
                self._periodic_flush(meeting_id), name=f"flush-timer-{meeting_id}"
            )
            self._buffers[meeting_id] = buffer
            logger.info("Opened transcript buffer for meeting %s", meeting_id)
        elif not buffer.fragments:
            buffer.opened_at = self._clock()

        buffer.fragments.append(fragment)

        if len(buffer.fragments) >= self.limits.max_buffer_size:
            logger.debug("Buffer for %s reached %d fragments", meeting_id, len(buffer.fragments))
            await self.flush(meeting_id)
        elif self._clock() - buffer.opened_at >= self.limits.max_buffer_age:
            logger.debug("Buffer for %s exceeded max age", meeting_id)
            await self.flush(meeting_id)
        return True

    async def flush(self, meeting_id: str, *, final: bool = False) -> int:
        """Hand the meeting's pending fragments to the job processor.

        Returns the number of fragments handed over. Returns 0 when the
        buffer is empty or another flush for the meeting is in flight. On
        failure the fragments go back to the front of the buffer.

        A *final* flush does not give up when the meeting lookup fails; the
        fragments are enqueued anyway.
        """
        if meeting_id in self._flushing:
            logger.debug("Flush already in progress for meeting %s", meeting_id)
            return 0
        buffer = self._buffers.get(meeting_id)
        if buffer is None or not buffer.fragments:
            return 0

        done = asyncio.Event()
        self._flushing[meeting_id] = done
        snapshot = buffer.fragments
        buffer.fragments = []
        try:
            try:
                known = await self.repository.get_meeting(meeting_id) is not None
            except Exception:
                if not final:
                    raise
                logger.warning(
                    "Meeting lookup failed during final flush of %s, enqueueing anyway",
                    meeting_id,
                    exc_info=True,
                )
                known = True
            if not known:
                logger.warning(
                    "Meeting %s not found, discarding %d buffered fragments",
                    meeting_id,
                    len(snapshot),
                )
                self.clear(meeting_id)
                return 0

            job = FlushJob.from_fragments(meeting_id, snapshot)
            await self.jobs.enqueue(job)
        except Exception:
            buffer.fragments[:0] = snapshot
            logger.exception(
                "Failed to flush %d fragments for meeting %s, kept in buffer",
                len(snapshot),
                meeting_id,
            )
            return 0
        finally:
            del self._flushing[meeting_id]
            done.set()

        logger.info("Flushed %d fragments for meeting %s", len(snapshot), meeting_id)
        return len(snapshot)

    async def flush_and_clear(self, meeting_id: str) -> int:
        """Final flush for a meeting, then drop its buffer and timer.

        A failed hand-over is retried up to ``final_flush_attempts`` times.
        Fragments still pending after that are dropped and logged as lost.
        """
        attempts = self.limits.final_flush_attempts
        count = 0
        for attempt in range(1, attempts + 1):
            while (in_flight := self._flushing.get(meeting_id)) is not None:
                await in_flight.wait()
            count += await self.flush(meeting_id, final=True)
            if not self._pending(meeting_id):
                break
            if attempt < attempts:
                logger.warning(
                    "Final flush of meeting %s failed (attempt %d/%d)", meeting_id, attempt, attempts
                )
                await asyncio.sleep(self.limits.final_flush_retry_delay * attempt)

        lost = self._pending(meeting_id)
        if lost:
            logger.error(
                "Dropping %d transcript fragments of meeting %s after %d failed final flushes",
                lost,
                meeting_id,
                attempts,
            )
        self.clear(meeting_id)
        return count

    def _pending(self, meeting_id: str) -> int:
        buffer = self._buffers.get(meeting_id)
        return len(buffer.fragments) if buffer else 0

    def clear(self, meeting_id: str) -> None:
        buffer = self._buffers.pop(meeting_id, None)
        if buffer is None:
            return
        if buffer.timer is not None and not buffer.timer.done():
            buffer.timer.cancel()
        logger.info("Cleared transcript buffer for meeting %s", meeting_id)

    async def _periodic_flush(self, meeting_id: str) -> None:
        while True:
            await asyncio.sleep(self.limits.flush_interval)
            buffer = self._buffers.get(meeting_id)
            if buffer is None:
                return
            if not buffer.fragments:
                continue
            try:
                await self.flush(meeting_id)
            except Exception:
                logger.exception("Periodic flush failed for meeting %s", meeting_id)

    def stats(self) -> BufferStats:
        return BufferStats(
            active_meetings=len(self._buffers),
            pending_fragments={mid: len(b.fragments) for mid, b in self._buffers.items()},
            flushing=sorted(self._flushing),
        )

    async def shutdown(self) -> None:
        """Flush every open buffer, then stop accepting fragments."""
        self._closed = True
        meeting_ids = list(self._buffers)
        logger.info("Flushing %d transcript buffers before shutdown", len(meeting_ids))
        for meeting_id in meeting_ids:
            try:
                await self.flush_and_clear(meeting_id)
            except Exception:
                logger.exception("Final flush failed for meeting %s", meeting_id)
                self.clear(meeting_id)
