"""Meeting records and lifecycle types."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class MeetingStatus(StrEnum):
    SCHEDULED = "scheduled"
    LIVE = "live"
    PAST = "past"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


@dataclass
class Meeting:
    """A meeting as seen by the pipeline; only ``status`` changes here."""

    id: str
    status: MeetingStatus = MeetingStatus.SCHEDULED
    title: str | None = None
    user_id: str | None = None


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of a requested status change."""

    success: bool
    previous_status: MeetingStatus
    new_status: MeetingStatus
    error: str | None = None
