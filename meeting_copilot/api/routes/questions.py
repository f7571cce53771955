"""Question endpoints: ask about a meeting and list past answers."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from meeting_copilot.api.deps import get_copilot
from meeting_copilot.api.models import QAEntryResponse, QuestionRequest
from meeting_copilot.retrieval.models import QAEntry
from meeting_copilot.retrieval.rag import (
    GENERATION_ERROR_ANSWER,
    GENERIC_ERROR_ANSWER,
    RETRIEVAL_ERROR_ANSWER,
    GenerationError,
    RetrievalError,
)
from meeting_copilot.runtime import MeetingCopilot

logger = logging.getLogger(__name__)

router = APIRouter()


def _to_response(entry: QAEntry) -> QAEntryResponse:
    return QAEntryResponse(
        id=entry.id,
        meeting_id=entry.meeting_id,
        user_id=entry.user_id,
        question=entry.question,
        answer=entry.answer,
        status=entry.status,
        sources=entry.sources,
        created_at=entry.created_at,
    )


@router.post("/api/meetings/{meeting_id}/questions", response_model=QAEntryResponse)
async def ask_question(
    meeting_id: str,
    request: QuestionRequest,
    copilot: MeetingCopilot = Depends(get_copilot),
) -> QAEntryResponse:
    """Answer a question from the meeting's transcript so far.

    Failures are recorded as ERROR entries and surface as 503 with the same
    user-facing message; upstream error details are never returned.
    """
    try:
        entry = await copilot.ask(meeting_id, request.user_id, request.question)
    except RetrievalError as exc:
        raise HTTPException(status_code=503, detail=RETRIEVAL_ERROR_ANSWER) from exc
    except GenerationError as exc:
        raise HTTPException(status_code=503, detail=GENERATION_ERROR_ANSWER) from exc
    except Exception as exc:
        logger.exception("Question failed for meeting %s", meeting_id)
        raise HTTPException(status_code=503, detail=GENERIC_ERROR_ANSWER) from exc
    return _to_response(entry)


@router.get("/api/meetings/{meeting_id}/questions", response_model=list[QAEntryResponse])
async def list_questions(
    meeting_id: str,
    limit: int = 50,
    copilot: MeetingCopilot = Depends(get_copilot),
) -> list[QAEntryResponse]:
    """Questions asked about the meeting, newest first."""
    entries = await copilot.list_questions(meeting_id, limit=limit)
    return [_to_response(e) for e in entries]
