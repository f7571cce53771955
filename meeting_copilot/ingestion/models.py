"""Data models for the live transcript pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


@dataclass
class RawFragment:
    """One speech-recognition result as delivered by the meeting bot."""

    speaker_id: str
    speaker_name: str
    text: str
    timestamp_ms: int
    duration_ms: int = 0
    word_count: int = 0
    speaker_user_id: str | None = None
    speaker_is_host: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "speaker_id": self.speaker_id,
            "speaker_name": self.speaker_name,
            "speaker_user_id": self.speaker_user_id,
            "speaker_is_host": self.speaker_is_host,
            "timestamp_ms": self.timestamp_ms,
            "duration_ms": self.duration_ms,
            "text": self.text,
            "word_count": self.word_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RawFragment:
        return cls(
            speaker_id=str(data["speaker_id"]),
            speaker_name=str(data.get("speaker_name") or "Unknown"),
            speaker_user_id=data.get("speaker_user_id"),
            speaker_is_host=bool(data.get("speaker_is_host", False)),
            timestamp_ms=int(data["timestamp_ms"]),
            duration_ms=int(data.get("duration_ms") or 0),
            text=str(data.get("text", "")),
            word_count=int(data.get("word_count") or 0),
        )


@dataclass
class Chunk:
    """A merged run of same-speaker fragments, ready for embedding."""

    text: str
    speaker_id: str
    speaker_name: str
    timestamp: int  # latest fragment timestamp in the merge window (ms)
    segment_count: int = 1

    @property
    def content(self) -> str:
        """Speaker-attributed text, the string that gets embedded."""
        return f"{self.speaker_name}: {self.text}"


def fragment_time_range(fragments: list[RawFragment]) -> tuple[int, int]:
    """Earliest start and latest end (ms) covered by *fragments*."""
    if not fragments:
        raise ValueError("At least one fragment is needed for a time range")
    start = min(f.timestamp_ms for f in fragments)
    end = max(f.timestamp_ms + f.duration_ms for f in fragments)
    return start, end


@dataclass
class TranscriptEntry:
    """One flush's worth of fragments plus the time range they span."""

    meeting_id: str
    fragments: list[RawFragment]
    time_start_ms: int
    time_end_ms: int
    id: int | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_fragments(cls, meeting_id: str, fragments: list[RawFragment]) -> TranscriptEntry:
        start, end = fragment_time_range(fragments)
        return cls(
            meeting_id=meeting_id,
            fragments=list(fragments),
            time_start_ms=start,
            time_end_ms=end,
        )


@dataclass
class VectorPoint:
    """An embedding plus the payload stored alongside it for similarity search."""

    id: str
    vector: list[float]
    payload: dict[str, Any]
