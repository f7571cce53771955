"""Meeting endpoints: bot status webhook and rolling summaries."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from meeting_copilot.api.deps import get_copilot
from meeting_copilot.api.models import BotStateRequest, SummaryResponse, TransitionResponse
from meeting_copilot.ingestion.parsers import parse_bot_state
from meeting_copilot.runtime import MeetingCopilot, MeetingNotFoundError

router = APIRouter()


@router.post("/api/meetings/{meeting_id}/bot-state", response_model=TransitionResponse)
async def bot_state_changed(
    meeting_id: str,
    request: BotStateRequest,
    copilot: MeetingCopilot = Depends(get_copilot),
) -> TransitionResponse:
    """Move the meeting along its lifecycle after a bot status change.

    Returns 409 when the change is not a valid transition for the meeting.
    """
    try:
        bot_state = parse_bot_state(request.model_dump(exclude_none=True))
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    try:
        result = await copilot.handle_bot_state(meeting_id, bot_state)
    except MeetingNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Meeting not found") from exc

    if not result.success:
        raise HTTPException(status_code=409, detail=result.error)
    return TransitionResponse(
        success=result.success,
        previous_status=result.previous_status,
        new_status=result.new_status,
    )


@router.get("/api/meetings/{meeting_id}/summaries", response_model=list[SummaryResponse])
async def list_summaries(
    meeting_id: str,
    copilot: MeetingCopilot = Depends(get_copilot),
) -> list[SummaryResponse]:
    """Rolling summaries written after each flush, oldest first."""
    summaries = await copilot.repository.list_summaries(meeting_id)
    return [
        SummaryResponse(id=s.id, meeting_id=s.meeting_id, content=s.content, created_at=s.created_at)
        for s in summaries
    ]
