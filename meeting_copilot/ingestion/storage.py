"""Persistence for meetings, transcripts, summaries and Q&A history.

The pipeline only depends on the :class:`MeetingRepository` protocol.
:class:`SupabaseMeetingRepository` implements it on top of the synchronous
Supabase client, with every call pushed to a worker thread so the event loop
never blocks on the network.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Protocol

from supabase import Client, create_client

from meeting_copilot.config import Settings
from meeting_copilot.ingestion.models import RawFragment, TranscriptEntry
from meeting_copilot.meetings.models import Meeting, MeetingStatus
from meeting_copilot.retrieval.models import QAEntry, QAStatus, Summary

logger = logging.getLogger(__name__)


class MeetingRepository(Protocol):
    async def get_meeting(self, meeting_id: str) -> Meeting | None: ...

    async def save_meeting_status(self, meeting_id: str, status: MeetingStatus) -> None: ...

    async def save_segment(self, meeting_id: str, fragment: RawFragment) -> None: ...

    async def save_transcript_entry(self, entry: TranscriptEntry) -> TranscriptEntry: ...

    async def list_transcript_entries(
        self,
        meeting_id: str,
        since_ms: int | None = None,
        until_ms: int | None = None,
    ) -> list[TranscriptEntry]: ...

    async def save_summary(self, meeting_id: str, content: str) -> Summary: ...

    async def list_summaries(self, meeting_id: str) -> list[Summary]: ...

    async def save_qa_entry(self, entry: QAEntry) -> QAEntry: ...

    async def list_qa_entries(self, meeting_id: str, limit: int = 50) -> list[QAEntry]: ...

    async def count_qa_entries(self, meeting_id: str) -> int: ...


def get_supabase_client(settings: Settings) -> Client:
    """Create and return a Supabase client from settings."""
    return create_client(settings.supabase_url, settings.supabase_key)


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _row_to_entry(row: dict[str, Any]) -> TranscriptEntry:
    return TranscriptEntry(
        id=row.get("id"),
        meeting_id=str(row["meeting_id"]),
        fragments=[RawFragment.from_dict(f) for f in row.get("fragments") or []],
        time_start_ms=int(row["time_start_ms"]),
        time_end_ms=int(row["time_end_ms"]),
        created_at=_parse_timestamp(row["created_at"]),
    )


def _row_to_qa(row: dict[str, Any]) -> QAEntry:
    return QAEntry(
        id=row.get("id"),
        meeting_id=str(row["meeting_id"]),
        user_id=str(row["user_id"]),
        question=row["question"],
        answer=row.get("answer") or "",
        status=QAStatus(row["status"]),
        sources=list(row.get("sources") or []),
        created_at=_parse_timestamp(row["created_at"]),
    )


def _row_to_summary(row: dict[str, Any]) -> Summary:
    return Summary(
        id=row.get("id"),
        meeting_id=str(row["meeting_id"]),
        content=row["content"],
        created_at=_parse_timestamp(row["created_at"]),
    )


class SupabaseMeetingRepository:
    """:class:`MeetingRepository` backed by Supabase tables.

    Tables: ``meetings``, ``transcript_segments``, ``transcript_entries``,
    ``summaries`` and ``qa_entries``.
    """

    def __init__(self, client: Client) -> None:
        self.client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> SupabaseMeetingRepository:
        return cls(get_supabase_client(settings))

    async def get_meeting(self, meeting_id: str) -> Meeting | None:
        def _query() -> list[dict[str, Any]]:
            result = (
                self.client.table("meetings")
                .select("id, status, title, user_id")
                .eq("id", meeting_id)
                .execute()
            )
            return result.data

        rows = await asyncio.to_thread(_query)
        if not rows:
            return None
        row = rows[0]
        return Meeting(
            id=str(row["id"]),
            status=MeetingStatus(row["status"]),
            title=row.get("title"),
            user_id=row.get("user_id"),
        )

    async def save_meeting_status(self, meeting_id: str, status: MeetingStatus) -> None:
        def _update() -> None:
            self.client.table("meetings").update({"status": str(status)}).eq(
                "id", meeting_id
            ).execute()

        await asyncio.to_thread(_update)

    async def save_segment(self, meeting_id: str, fragment: RawFragment) -> None:
        row = {"meeting_id": meeting_id, **fragment.to_dict()}
        await asyncio.to_thread(
            lambda: self.client.table("transcript_segments").insert(row).execute()
        )

    async def save_transcript_entry(self, entry: TranscriptEntry) -> TranscriptEntry:
        row = {
            "meeting_id": entry.meeting_id,
            "fragments": [f.to_dict() for f in entry.fragments],
            "time_start_ms": entry.time_start_ms,
            "time_end_ms": entry.time_end_ms,
            "created_at": entry.created_at.isoformat(),
        }
        result = await asyncio.to_thread(
            lambda: self.client.table("transcript_entries").insert(row).execute()
        )
        entry.id = result.data[0]["id"]
        logger.debug(
            "Saved transcript entry %s for meeting %s (%d fragments)",
            entry.id,
            entry.meeting_id,
            len(entry.fragments),
        )
        return entry

    async def list_transcript_entries(
        self,
        meeting_id: str,
        since_ms: int | None = None,
        until_ms: int | None = None,
    ) -> list[TranscriptEntry]:
        """Entries overlapping ``[since_ms, until_ms]``, oldest first."""

        def _query() -> list[dict[str, Any]]:
            query = self.client.table("transcript_entries").select("*").eq("meeting_id", meeting_id)
            if since_ms is not None:
                query = query.gte("time_end_ms", since_ms)
            if until_ms is not None:
                query = query.lte("time_start_ms", until_ms)
            return query.order("time_start_ms").execute().data

        rows = await asyncio.to_thread(_query)
        return [_row_to_entry(r) for r in rows]

    async def save_summary(self, meeting_id: str, content: str) -> Summary:
        summary = Summary(meeting_id=meeting_id, content=content)
        row = {
            "meeting_id": meeting_id,
            "content": content,
            "created_at": summary.created_at.isoformat(),
        }
        result = await asyncio.to_thread(
            lambda: self.client.table("summaries").insert(row).execute()
        )
        summary.id = result.data[0]["id"]
        return summary

    async def list_summaries(self, meeting_id: str) -> list[Summary]:
        def _query() -> list[dict[str, Any]]:
            return (
                self.client.table("summaries")
                .select("*")
                .eq("meeting_id", meeting_id)
                .order("created_at")
                .execute()
                .data
            )

        rows = await asyncio.to_thread(_query)
        return [_row_to_summary(r) for r in rows]

    async def save_qa_entry(self, entry: QAEntry) -> QAEntry:
        row = {
            "meeting_id": entry.meeting_id,
            "user_id": entry.user_id,
            "question": entry.question,
            "answer": entry.answer,
            "status": str(entry.status),
            "sources": entry.sources,
            "created_at": entry.created_at.isoformat(),
        }
        result = await asyncio.to_thread(
            lambda: self.client.table("qa_entries").insert(row).execute()
        )
        entry.id = result.data[0]["id"]
        return entry

    async def list_qa_entries(self, meeting_id: str, limit: int = 50) -> list[QAEntry]:
        """Most recent entries first."""

        def _query() -> list[dict[str, Any]]:
            return (
                self.client.table("qa_entries")
                .select("*")
                .eq("meeting_id", meeting_id)
                .order("created_at", desc=True)
                .limit(limit)
                .execute()
                .data
            )

        rows = await asyncio.to_thread(_query)
        return [_row_to_qa(r) for r in rows]

    async def count_qa_entries(self, meeting_id: str) -> int:
        def _query() -> int | None:
            return (
                self.client.table("qa_entries")
                .select("id", count="exact")
                .eq("meeting_id", meeting_id)
                .execute()
                .count
            )

        return await asyncio.to_thread(_query) or 0
