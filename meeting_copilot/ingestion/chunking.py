"""Speaker/time-window chunking of live transcript fragments."""

from __future__ import annotations

import logging

from meeting_copilot.ingestion.models import Chunk, RawFragment

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_MS = 60_000


def _should_merge(chunk: Chunk, fragment: RawFragment, window_ms: int) -> bool:
    """Same speaker and strictly inside the window of the chunk's last fragment."""
    if fragment.speaker_id != chunk.speaker_id:
        return False
    return abs(fragment.timestamp_ms - chunk.timestamp) < window_ms


def chunk_fragments(
    fragments: list[RawFragment],
    window_ms: int = DEFAULT_WINDOW_MS,
) -> list[Chunk]:
    """Group consecutive same-speaker fragments into context-preserving chunks.

    A fragment joins the current chunk only when it comes from the same
    speaker and lands less than *window_ms* after the chunk's most recent
    fragment. A speaker change always starts a new chunk, so interleaved
    speakers produce alternating chunks.

    Args:
        fragments: Fragments in arrival order.
        window_ms: Merge window in milliseconds (boundary excluded).

    Returns:
        List of :class:`Chunk` instances; their ``segment_count`` values sum
        to ``len(fragments)``.
    """
    if not fragments:
        return []

    first = fragments[0]
    current = Chunk(
        text=first.text,
        speaker_id=first.speaker_id,
        speaker_name=first.speaker_name,
        timestamp=first.timestamp_ms,
    )
    chunks: list[Chunk] = []

    for fragment in fragments[1:]:
        if _should_merge(current, fragment, window_ms):
            current.text = f"{current.text} {fragment.text}"
            current.timestamp = fragment.timestamp_ms
            current.segment_count += 1
            continue

        chunks.append(current)
        current = Chunk(
            text=fragment.text,
            speaker_id=fragment.speaker_id,
            speaker_name=fragment.speaker_name,
            timestamp=fragment.timestamp_ms,
        )

    chunks.append(current)

    logger.debug("Chunked %d fragments into %d chunks", len(fragments), len(chunks))
    return chunks
