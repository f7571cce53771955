"""Meeting lifecycle: validated status transitions with enter/exit hooks."""

from __future__ import annotations

import logging

from meeting_copilot.meetings.models import Meeting, MeetingStatus, TransitionResult
from meeting_copilot.meetings.states import (
    BufferFlusher,
    LiveState,
    MeetingState,
    PastState,
    ScheduledState,
)

logger = logging.getLogger(__name__)

BOT_STATE_TO_STATUS: dict[str, MeetingStatus] = {
    "joining": MeetingStatus.LIVE,
    "joined_not_recording": MeetingStatus.LIVE,
    "joined_recording": MeetingStatus.LIVE,
    "post_processing": MeetingStatus.PAST,
    "ended": MeetingStatus.PAST,
    "left": MeetingStatus.PAST,
    "fatal_error": MeetingStatus.PAST,
}


class MeetingStateMachine:
    """Moves meetings between statuses along the allowed edges only.

    SCHEDULED -> LIVE | CANCELLED | NO_SHOW, LIVE -> PAST. CANCELLED and
    NO_SHOW have no handler and therefore no way out.
    """

    def __init__(self, buffer: BufferFlusher) -> None:
        self._states: dict[MeetingStatus, MeetingState] = {
            MeetingStatus.SCHEDULED: ScheduledState(),
            MeetingStatus.LIVE: LiveState(),
            MeetingStatus.PAST: PastState(buffer),
        }

    def get_state(self, status: MeetingStatus) -> MeetingState | None:
        return self._states.get(status)

    def can_transition(self, source: MeetingStatus, target: MeetingStatus) -> bool:
        state = self._states.get(source)
        if state is None:
            logger.warning("No handler for status %s", source)
            return False
        return state.can_transition_to(target)

    def get_valid_transitions(self, status: MeetingStatus) -> list[MeetingStatus]:
        state = self._states.get(status)
        return state.get_valid_transitions() if state else []

    async def transition(self, meeting: Meeting, target: MeetingStatus) -> TransitionResult:
        """Move *meeting* to *target*, running the exit then enter hooks.

        Never raises: an invalid edge or a failing hook yields an
        unsuccessful result and leaves ``meeting.status`` unchanged.
        """
        previous = meeting.status
        if previous == target:
            return TransitionResult(success=True, previous_status=previous, new_status=target)

        if not self.can_transition(previous, target):
            error = f"Invalid transition from {previous} to {target}"
            logger.warning("Meeting %s: %s", meeting.id, error)
            return TransitionResult(
                success=False, previous_status=previous, new_status=previous, error=error
            )

        try:
            source_state = self._states.get(previous)
            if source_state is not None:
                await source_state.on_exit(meeting)

            meeting.status = target

            target_state = self._states.get(target)
            if target_state is not None:
                await target_state.on_enter(meeting)
        except Exception as exc:
            meeting.status = previous
            logger.exception(
                "Transition of meeting %s from %s to %s failed", meeting.id, previous, target
            )
            return TransitionResult(
                success=False, previous_status=previous, new_status=previous, error=str(exc)
            )

        logger.info("Meeting %s transitioned from %s to %s", meeting.id, previous, target)
        return TransitionResult(success=True, previous_status=previous, new_status=target)

    async def transition_from_bot_state(self, meeting: Meeting, bot_state: str) -> TransitionResult:
        target = BOT_STATE_TO_STATUS.get(bot_state)
        if target is None:
            logger.warning("Unknown bot state %r for meeting %s", bot_state, meeting.id)
            return TransitionResult(
                success=False,
                previous_status=meeting.status,
                new_status=meeting.status,
                error=f"Unknown bot state: {bot_state}",
            )
        return await self.transition(meeting, target)
