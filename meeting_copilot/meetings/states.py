"""Per-status handlers: allowed next statuses plus enter/exit hooks."""

from __future__ import annotations

import logging
from typing import Protocol

from meeting_copilot.meetings.models import Meeting, MeetingStatus

logger = logging.getLogger(__name__)


class BufferFlusher(Protocol):
    async def flush_and_clear(self, meeting_id: str) -> int: ...


class MeetingState:
    status: MeetingStatus
    transitions: frozenset[MeetingStatus] = frozenset()

    def can_transition_to(self, target: MeetingStatus) -> bool:
        return target in self.transitions

    def get_valid_transitions(self) -> list[MeetingStatus]:
        return sorted(self.transitions)

    async def on_enter(self, meeting: Meeting) -> None:
        logger.debug("Meeting %s entered %s", meeting.id, self.status)

    async def on_exit(self, meeting: Meeting) -> None:
        logger.debug("Meeting %s leaving %s", meeting.id, self.status)


class ScheduledState(MeetingState):
    status = MeetingStatus.SCHEDULED
    transitions = frozenset({MeetingStatus.LIVE, MeetingStatus.CANCELLED, MeetingStatus.NO_SHOW})


class LiveState(MeetingState):
    status = MeetingStatus.LIVE
    transitions = frozenset({MeetingStatus.PAST})

    async def on_enter(self, meeting: Meeting) -> None:
        logger.info("Meeting %s is now live", meeting.id)


class PastState(MeetingState):
    """Terminal. Entering it flushes whatever is still buffered for the meeting."""

    status = MeetingStatus.PAST

    def __init__(self, buffer: BufferFlusher) -> None:
        self.buffer = buffer

    async def on_enter(self, meeting: Meeting) -> None:
        logger.info("Meeting %s has ended", meeting.id)
        try:
            flushed = await self.buffer.flush_and_clear(meeting.id)
            logger.info("Final flush of %d fragments for meeting %s", flushed, meeting.id)
        except Exception:
            logger.exception("Failed to flush transcripts for meeting %s", meeting.id)

    async def on_exit(self, meeting: Meeting) -> None:
        logger.warning("Unexpected exit from terminal state for meeting %s", meeting.id)
