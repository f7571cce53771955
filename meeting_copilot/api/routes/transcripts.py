"""Transcript endpoints: live fragment webhook and stored transcript entries."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException

from meeting_copilot.api.deps import get_copilot
from meeting_copilot.api.models import FragmentAcceptedResponse, TranscriptEntryResponse
from meeting_copilot.ingestion.parsers import FragmentParseError
from meeting_copilot.runtime import MeetingCopilot

router = APIRouter()


@router.post(
    "/api/meetings/{meeting_id}/transcripts",
    response_model=FragmentAcceptedResponse,
    status_code=202,
)
async def receive_fragment(
    meeting_id: str,
    payload: dict[str, Any] = Body(...),
    copilot: MeetingCopilot = Depends(get_copilot),
) -> FragmentAcceptedResponse:
    """Accept one transcript fragment from the meeting bot.

    ``buffered`` is False when the fragment was dropped because too many
    meetings are live at once.
    """
    try:
        fragment, buffered = await copilot.ingest(meeting_id, payload)
    except FragmentParseError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    return FragmentAcceptedResponse(
        meeting_id=meeting_id,
        speaker_name=fragment.speaker_name,
        timestamp_ms=fragment.timestamp_ms,
        buffered=buffered,
    )


@router.get(
    "/api/meetings/{meeting_id}/transcripts",
    response_model=list[TranscriptEntryResponse],
)
async def list_transcripts(
    meeting_id: str,
    since_ms: int | None = None,
    until_ms: int | None = None,
    copilot: MeetingCopilot = Depends(get_copilot),
) -> list[TranscriptEntryResponse]:
    """Flushed transcript entries, optionally limited to a time range (ms)."""
    entries = await copilot.repository.list_transcript_entries(meeting_id, since_ms, until_ms)
    return [
        TranscriptEntryResponse(
            id=e.id,
            meeting_id=e.meeting_id,
            time_start_ms=e.time_start_ms,
            time_end_ms=e.time_end_ms,
            fragments=[f.to_dict() for f in e.fragments],
            created_at=e.created_at,
        )
        for e in entries
    ]
