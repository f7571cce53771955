"""Pydantic request/response schemas for the Meeting Copilot API."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from meeting_copilot.meetings.models import MeetingStatus
from meeting_copilot.retrieval.models import QAStatus


class QuestionRequest(BaseModel):
    """Request body for POST /api/meetings/{id}/questions."""

    question: str = Field(min_length=1)
    user_id: str


class QAEntryResponse(BaseModel):
    id: int | None = None
    meeting_id: str
    user_id: str
    question: str
    answer: str
    status: QAStatus
    sources: list[str] = []
    created_at: datetime


class FragmentAcceptedResponse(BaseModel):
    """Response body for POST /api/meetings/{id}/transcripts."""

    meeting_id: str
    speaker_name: str
    timestamp_ms: int
    buffered: bool


class BotStateRequest(BaseModel):
    """Bot status webhook body: ``{"trigger": ..., "data": {"new_state": ...}}``."""

    trigger: str | None = None
    bot_id: str | None = None
    data: dict[str, Any] = {}
    state: str | None = None


class TransitionResponse(BaseModel):
    success: bool
    previous_status: MeetingStatus
    new_status: MeetingStatus
    error: str | None = None


class TranscriptEntryResponse(BaseModel):
    id: int | None = None
    meeting_id: str
    time_start_ms: int
    time_end_ms: int
    fragments: list[dict[str, Any]]
    created_at: datetime


class SummaryResponse(BaseModel):
    id: int | None = None
    meeting_id: str
    content: str
    created_at: datetime
