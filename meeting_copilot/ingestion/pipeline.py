"""Live ingestion pipeline: webhook payload -> buffer -> (flush job) -> index + store."""

from __future__ import annotations

import logging
from typing import Any

from meeting_copilot.ingestion.buffer import TranscriptBufferManager
from meeting_copilot.ingestion.jobs import FlushJob
from meeting_copilot.ingestion.models import RawFragment, TranscriptEntry
from meeting_copilot.ingestion.parsers import parse_fragment
from meeting_copilot.ingestion.storage import MeetingRepository
from meeting_copilot.retrieval.rag import RAGEngine

logger = logging.getLogger(__name__)


async def ingest_fragment(
    meeting_id: str,
    payload: dict[str, Any],
    repository: MeetingRepository,
    buffer: TranscriptBufferManager,
) -> tuple[RawFragment, bool]:
    """Parse -> save raw segment -> buffer.

    Returns the parsed fragment and whether the buffer accepted it.

    Raises:
        FragmentParseError: If the payload is not a transcript fragment.
    """
    fragment = parse_fragment(payload)
    await repository.save_segment(meeting_id, fragment)
    accepted = await buffer.add_fragment(meeting_id, fragment)
    return fragment, accepted


class FlushHandler:
    """Processes one flushed buffer: index -> persist entry -> rolling summary.

    Indexing comes first and is idempotent, so a retried job never leaves a
    stored entry without its vectors. Summary failures are logged only.
    """

    def __init__(self, rag: RAGEngine, repository: MeetingRepository) -> None:
        self.rag = rag
        self.repository = repository

    async def __call__(self, job: FlushJob) -> None:
        logger.info(
            "Processing flush of %d fragments for meeting %s (attempt %d/%d)",
            len(job.fragments),
            job.meeting_id,
            job.attempts,
            job.max_attempts,
        )

        # 1. Index
        await self.rag.store_transcripts(job.meeting_id, job.fragments)

        # 2. Persist
        entry = TranscriptEntry.from_fragments(job.meeting_id, job.fragments)
        await self.repository.save_transcript_entry(entry)

        # 3. Rolling summary
        try:
            summary = await self.rag.generate_summary(job.meeting_id, job.fragments)
            if summary:
                await self.repository.save_summary(job.meeting_id, summary)
        except Exception:
            logger.exception("Summary generation failed for meeting %s", job.meeting_id)
