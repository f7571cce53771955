"""Data models for question answering over meeting transcripts."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum


class QAStatus(StrEnum):
    ASKING = "asking"
    ANSWERED = "answered"
    ERROR = "error"


@dataclass
class QAEntry:
    """One question asked about a meeting and what came back."""

    meeting_id: str
    user_id: str
    question: str
    answer: str
    status: QAStatus
    sources: list[str] = field(default_factory=list)
    id: int | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass
class Summary:
    """A rolling summary written after each buffer flush."""

    meeting_id: str
    content: str
    id: int | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass
class SearchResult:
    """A transcript chunk retrieved for a question, with its similarity."""

    content: str
    speaker_id: str
    speaker_name: str
    timestamp: int  # ms offset into the meeting
    score: float


@dataclass
class RAGAnswer:
    answer: str
    sources: list[str] = field(default_factory=list)
