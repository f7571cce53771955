"""FastAPI dependencies."""

from __future__ import annotations

from fastapi import Request

from meeting_copilot.runtime import MeetingCopilot


def get_copilot(request: Request) -> MeetingCopilot:
    """The pipeline instance created in the app lifespan."""
    return request.app.state.copilot
